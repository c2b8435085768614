"""Public preview of published artifacts under ``/static/<deploy_key>/``."""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse, Response

from vibecode.api.deps import get_preview
from vibecode.common.exceptions import NotFoundError
from vibecode.common.logging import get_logger
from vibecode.common.metrics import PREVIEW_RESPONSES
from vibecode.core.preview.service import PreviewServer

logger = get_logger("api.preview")

router = APIRouter(prefix="/static", tags=["Preview"])


@router.get("/{deploy_key}", include_in_schema=False)
def redirect_to_directory(request: Request, deploy_key: str):
    # Relative URLs inside the page only resolve against the directory form.
    PREVIEW_RESPONSES.labels(status="301").inc()
    return RedirectResponse(url=f"{request.url.path}/", status_code=301)


@router.get("/{deploy_key}/{path:path}")
def serve_preview(
    deploy_key: str,
    path: str,
    preview: PreviewServer = Depends(get_preview),
):
    try:
        file = preview.resolve(deploy_key, path)
    except NotFoundError:
        PREVIEW_RESPONSES.labels(status="404").inc()
        raise
    except Exception:
        logger.exception("Preview failed | key=%s | path=%r", deploy_key, path)
        PREVIEW_RESPONSES.labels(status="500").inc()
        raise HTTPException(status_code=500, detail="Internal server error") from None

    PREVIEW_RESPONSES.labels(status="200").inc()
    return Response(content=file.body, media_type=file.content_type, headers={"Cache-Control": "no-cache"})
