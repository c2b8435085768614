from fastapi import APIRouter, Depends
from fastapi.responses import Response

from vibecode.api.deps import get_storage
from vibecode.common.exceptions import NotFoundError
from vibecode.common.logging import get_logger
from vibecode.core.preview.archive import build_archive
from vibecode.integrations.storage import ArtifactStorage

logger = get_logger("api.deploys")

router = APIRouter(prefix="/deploys", tags=["Deploys"])


@router.get("/{deploy_key}/download")
def download_deploy(
    deploy_key: str,
    storage: ArtifactStorage = Depends(get_storage),
):
    if not storage.exists(deploy_key):
        raise NotFoundError("Deploy", deploy_key)
    archive = build_archive(storage, deploy_key)
    logger.info("Archive built | key=%s | bytes=%d", deploy_key, len(archive))
    return Response(
        content=archive,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{deploy_key}.zip"'},
    )
