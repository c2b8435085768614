import os

import pytest

from vibecode.common.enums import GenerationType
from vibecode.common.exceptions import IOFailure, PathTraversal, ValidationFailed
from vibecode.core.artifacts.paths import is_valid_deploy_key
from vibecode.core.artifacts.saver import ArtifactSaver, mint_deploy_key
from vibecode.core.artifacts.schemas import ArtifactFile, HtmlArtifact, MultiFileArtifact
from vibecode.core.preview.receiver import RECEIVER_MARKER, inject_receiver_script
from vibecode.integrations.storage import StagingArea


def _visible_entries(root):
    return sorted(name for name in os.listdir(root) if name != ".staging")


def test_mint_deploy_key_is_unique_and_url_safe():
    keys = {mint_deploy_key(42, GenerationType.HTML) for _ in range(50)}
    assert len(keys) == 50
    for key in keys:
        assert key.startswith("html_42_")
        assert is_valid_deploy_key(key)


def test_save_html_writes_index(saver, output_root):
    markup = "<html><head></head><body><button>Go</button></body></html>"
    key = saver.save(HtmlArtifact(html_code=markup), GenerationType.HTML, app_id=42)

    assert (output_root / key / "index.html").read_text(encoding="utf-8") == markup
    # Serve-time policy: the stored source is not augmented
    assert RECEIVER_MARKER not in (output_root / key / "index.html").read_text(encoding="utf-8")
    assert list((output_root / ".staging").iterdir()) == []


def test_html_artifact_accepts_wire_alias():
    artifact = HtmlArtifact.model_validate({"htmlCode": "<p>x</p>", "description": "d"})
    assert artifact.html_code == "<p>x</p>"
    assert artifact.kind == "html"


def test_multi_file_round_trip_through_preview(saver, preview, output_root):
    files = [
        ("index.html", "<h1>hi</h1>"),
        ("style.css", "h1{color:red}"),
        ("js/app.js", "console.log('héllo')"),
    ]
    artifact = MultiFileArtifact(files=[ArtifactFile(path=p, content=c) for p, c in files])
    key = saver.save(artifact, GenerationType.MULTI_FILE, app_id=7)

    for path, content in files:
        assert (output_root / key / path).read_bytes() == content.encode("utf-8")
        served = preview.resolve(key, path)
        if path.endswith(".html"):
            assert served.body == inject_receiver_script(content).encode("utf-8")
        else:
            assert served.body == content.encode("utf-8")


@pytest.mark.parametrize(
    "artifact,generation_type,error",
    [
        (HtmlArtifact(html_code=""), GenerationType.HTML, ValidationFailed),
        (HtmlArtifact(html_code="   \n"), GenerationType.HTML, ValidationFailed),
        (MultiFileArtifact(files=[]), GenerationType.MULTI_FILE, ValidationFailed),
        (
            MultiFileArtifact(files=[ArtifactFile(path="a.css", content="x"), ArtifactFile(path="./a.css", content="y")]),
            GenerationType.MULTI_FILE,
            ValidationFailed,
        ),
        (
            MultiFileArtifact(files=[ArtifactFile(path="index.html", content="ok"), ArtifactFile(path="../evil.js", content="x")]),
            GenerationType.MULTI_FILE,
            PathTraversal,
        ),
        (MultiFileArtifact(files=[ArtifactFile(path=" ", content="x")]), GenerationType.MULTI_FILE, ValidationFailed),
        (
            MultiFileArtifact(files=[ArtifactFile(path="a", content="x"), ArtifactFile(path="a/b.txt", content="y")]),
            GenerationType.MULTI_FILE,
            ValidationFailed,
        ),
        (
            MultiFileArtifact(files=[ArtifactFile(path="lib/util/x.js", content="x"), ArtifactFile(path="lib/util", content="y")]),
            GenerationType.MULTI_FILE,
            ValidationFailed,
        ),
        (HtmlArtifact(html_code="<p>x</p>"), GenerationType.MULTI_FILE, ValidationFailed),
        (HtmlArtifact(html_code="<p>x</p>"), GenerationType.CHAT, ValidationFailed),
    ],
)
def test_failed_validation_leaves_root_unchanged(saver, output_root, artifact, generation_type, error):
    before = sorted(os.listdir(output_root))
    with pytest.raises(error):
        saver.save(artifact, generation_type, app_id=1)
    assert sorted(os.listdir(output_root)) == before


def test_write_failure_discards_staging(saver, output_root, monkeypatch):
    original = StagingArea.write_file
    calls = {"n": 0}

    def flaky_write(self, relative_path, data):
        calls["n"] += 1
        if calls["n"] == 2:
            raise IOFailure()
        return original(self, relative_path, data)

    monkeypatch.setattr(StagingArea, "write_file", flaky_write)
    artifact = MultiFileArtifact(files=[ArtifactFile(path="index.html", content="a"), ArtifactFile(path="b.css", content="b")])

    with pytest.raises(IOFailure):
        saver.save(artifact, GenerationType.MULTI_FILE, app_id=3)

    assert _visible_entries(output_root) == []
    assert list((output_root / ".staging").iterdir()) == []


def test_save_time_augmentation(storage, preview, output_root):
    saver = ArtifactSaver(storage, augment_html=True)
    key = saver.save(HtmlArtifact(html_code="<html><head></head><body></body></html>"), GenerationType.HTML, app_id=5)

    on_disk = (output_root / key / "index.html").read_text(encoding="utf-8")
    assert on_disk.count(RECEIVER_MARKER) == 1
    # Serving an already augmented file must not inject a second copy
    assert preview.resolve(key, "index.html").body.decode("utf-8").count(RECEIVER_MARKER) == 1


def test_sibling_paths_sharing_a_prefix_are_accepted(saver, output_root):
    artifact = MultiFileArtifact(
        files=[ArtifactFile(path="a", content="x"), ArtifactFile(path="ab/c.txt", content="y")]
    )

    key = saver.save(artifact, GenerationType.MULTI_FILE, app_id=1)

    assert (output_root / key / "ab" / "c.txt").read_text() == "y"
