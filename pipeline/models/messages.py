"""
Payloads carried on the broker, one model per routing key.

Wire names are camelCase (``versionId``); attributes are snake_case.
Unknown or missing fields are decode errors.
"""

from __future__ import annotations

from typing import TypeVar

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pipeline.exceptions import MessageDecodeError


class PipelineMessage(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class GitwebCrawlMessage(PipelineMessage):
    """Crawl the project list of a Gitweb server."""

    project: str
    url: str


class GitDownloadMessage(PipelineMessage):
    """Clone or update one repository found by the Gitweb crawler."""

    project: str
    id: int


class FilesizeMessage(PipelineMessage):
    """Measure the size of a downloaded archive of a version."""

    version_id: int = Field(alias="versionId")
    filename: str


class PDependMessage(PipelineMessage):
    """Run pDepend over an extracted source directory of a version."""

    version_id: int = Field(alias="versionId")
    directory: str


M = TypeVar("M", bound=PipelineMessage)


def encode_message(message: PipelineMessage) -> bytes:
    """Serialize a message to its JSON wire form."""
    return orjson.dumps(message.model_dump(mode="json", by_alias=True))


def decode_message(model: type[M], body: bytes) -> M:
    """Parse a JSON body into ``model``; raises MessageDecodeError."""
    try:
        data = orjson.loads(body)
    except orjson.JSONDecodeError as e:
        raise MessageDecodeError(f"Body is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MessageDecodeError(f"Body must be a JSON object, got {type(data).__name__}")

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MessageDecodeError(
            f"Body does not match {model.__name__}: {e.error_count()} error(s)"
        ) from e
