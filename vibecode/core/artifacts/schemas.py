"""Pydantic models for generated artifacts.

A generation produces exactly one artifact variant.  The variants form a
tagged union on ``kind`` so the saver and dispatcher can select behaviour
with a single table lookup.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Structured (synchronous) artifacts
# ---------------------------------------------------------------------------

class HtmlArtifact(BaseModel):
    """A single self-contained HTML page, materialized as ``index.html``."""

    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["html"] = "html"
    html_code: str = Field("", alias="htmlCode")
    description: str | None = None


class ArtifactFile(BaseModel):
    path: str = Field(..., description="Path relative to the artifact root")
    content: str = ""


class MultiFileArtifact(BaseModel):
    """An ordered bundle of text files; the first HTML entry point is ``index.html``."""

    kind: Literal["multi_file"] = "multi_file"
    files: list[ArtifactFile] = Field(default_factory=list)
    description: str | None = None


# ---------------------------------------------------------------------------
# Streamed artifacts
# ---------------------------------------------------------------------------

class ProjectArtifact(BaseModel):
    """Summary of a project materialized incrementally from a token stream.

    There is no in-memory form of the file contents; ``files`` lists the
    relative paths written under ``deploy_key`` in the order they completed.
    """

    kind: Literal["project"] = "project"
    deploy_key: str
    files: list[str] = Field(default_factory=list)


Artifact = Annotated[
    Union[HtmlArtifact, MultiFileArtifact, ProjectArtifact],
    Field(discriminator="kind"),
]
