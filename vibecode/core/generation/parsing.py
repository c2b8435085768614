"""Turn raw structured model output into artifact models."""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import ValidationError

from vibecode.common.enums import GenerationType
from vibecode.common.exceptions import GenerationFailed
from vibecode.core.artifacts.schemas import ArtifactFile, HtmlArtifact, MultiFileArtifact

_FENCE_RE = re.compile(r"```([A-Za-z0-9_-]*)[^\n]*\n(.*?)```", re.DOTALL)

# Older prompts answered with fixed html/css/js slots.
_LEGACY_SLOTS = (("htmlCode", "index.html"), ("cssCode", "style.css"), ("jsCode", "script.js"))


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        text = "\n".join(lines)
    return text.strip()


def _load_json(raw: str) -> dict[str, Any] | None:
    try:
        data = json.loads(_strip_fences(raw))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _without_kind(data: dict[str, Any]) -> dict[str, Any]:
    # The artifact tag is ours; a model-supplied one is ignored.
    return {k: v for k, v in data.items() if k != "kind"}


def _fenced_blocks(raw: str) -> list[tuple[str, str]]:
    return [(lang.lower(), body) for lang, body in _FENCE_RE.findall(raw)]


def parse_html_output(raw: str) -> HtmlArtifact:
    data = _load_json(raw)
    if data is not None:
        try:
            return HtmlArtifact.model_validate(_without_kind(data))
        except ValidationError as e:
            raise GenerationFailed(f"unexpected HTML result shape: {e.error_count()} errors", partial_output=raw)
    for lang, body in _fenced_blocks(raw):
        if lang in ("html", ""):
            return HtmlArtifact(html_code=body.strip())
    if raw.lstrip().lower().startswith(("<!doctype", "<html")):
        return HtmlArtifact(html_code=raw.strip())
    raise GenerationFailed("model output contained no HTML", partial_output=raw)


def parse_multi_file_output(raw: str) -> MultiFileArtifact:
    data = _load_json(raw)
    if data is None:
        raise GenerationFailed("model output was not valid JSON", partial_output=raw)
    if "files" not in data and any(slot in data for slot, _ in _LEGACY_SLOTS):
        files = [
            ArtifactFile(path=path, content=data[slot])
            for slot, path in _LEGACY_SLOTS
            if isinstance(data.get(slot), str) and data[slot].strip()
        ]
        return MultiFileArtifact(files=files, description=data.get("description"))
    try:
        return MultiFileArtifact.model_validate(_without_kind(data))
    except ValidationError as e:
        raise GenerationFailed(f"unexpected multi-file result shape: {e.error_count()} errors", partial_output=raw)


PARSERS = {
    GenerationType.HTML: parse_html_output,
    GenerationType.MULTI_FILE: parse_multi_file_output,
}


def parse_structured_output(generation_type: GenerationType, raw: str):
    parser = PARSERS.get(generation_type)
    if parser is None:
        raise GenerationFailed(f"'{generation_type.value}' has no structured result")
    return parser(raw)
