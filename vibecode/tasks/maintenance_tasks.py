from vibecode.common.logging import get_logger
from vibecode.config import settings
from vibecode.integrations.storage import ArtifactStorage
from vibecode.tasks.celery_app import app

logger = get_logger("tasks.maintenance")


@app.task(name="vibecode.tasks.maintenance_tasks.purge_stale_staging")
def purge_stale_staging(max_age_seconds: int | None = None, root: str | None = None) -> int:
    """Celery Beat task: remove staging directories abandoned by crashed workers."""
    max_age = max_age_seconds if max_age_seconds is not None else settings.STAGING_MAX_AGE_SECONDS
    storage = ArtifactStorage(root or settings.CODE_OUTPUT_ROOT)
    removed = storage.purge_stale_staging(max_age)
    logger.info("Staging purge finished | removed=%d | max_age=%ds", removed, max_age)
    return removed
