import os
import time

from vibecode.integrations.storage import ArtifactStorage
from vibecode.tasks.maintenance_tasks import purge_stale_staging


def test_purge_removes_only_stale_staging(output_root):
    staging = output_root / ".staging"
    stale = staging / "vue_project_1_old-1a2b3c4d"
    fresh = staging / "vue_project_1_new-5e6f7a8b"
    for path in (stale, fresh):
        (path / "src").mkdir(parents=True)
        (path / "src" / "main.js").write_text("x")
    old = time.time() - 7200
    os.utime(stale, (old, old))

    removed = purge_stale_staging(max_age_seconds=3600, root=str(output_root))

    assert removed == 1
    assert not stale.exists()
    assert fresh.exists()


def test_purge_leaves_published_deploys(output_root):
    published = output_root / "html_1_abc"
    published.mkdir()
    old = time.time() - 7200
    os.utime(published, (old, old))

    assert ArtifactStorage(output_root).purge_stale_staging(60) == 0
    assert published.exists()
