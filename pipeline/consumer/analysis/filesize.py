"""
analysis.filesize: measure the size of a downloaded archive and store it
in ``versions.size_tar``.

Message (json):
    versionId: id of the versions row to update
    filename:  file to measure
"""

from __future__ import annotations

import os
from typing import Optional

from pipeline.broker.topology import QueueBinding, get_stage
from pipeline.consumer.base import (
    Outcome,
    ReceivedMessage,
    already_done,
    missing_input,
)
from pipeline.db.service.records import fetch_version, save_version_filesize
from pipeline.models.messages import FilesizeMessage
from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

STAGE = get_stage("analysis.filesize")


class FilesizeConsumer:
    name = STAGE.name
    description = STAGE.description
    message_type = FilesizeMessage

    def __init__(self, exchange: Optional[str] = None, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        self.exchange = exchange or settings.default_exchange

    def initialize(self) -> QueueBinding:
        return STAGE.binding(self.exchange)

    async def process(self, message: ReceivedMessage[FilesizeMessage]) -> Outcome:
        data = message.payload

        record = await fetch_version(data.version_id)
        if record is None:
            return missing_input(logger, "Record does not exist in version table", versionId=data.version_id)

        if record.size_tar:
            return already_done(logger, "Record marked as already analyzed", versionId=data.version_id)

        if not os.path.isfile(data.filename):
            return missing_input(logger, "File does not exist", filename=data.filename)

        logger.info("Getting filesize", filename=data.filename)
        size = os.path.getsize(data.filename)

        stored = await save_version_filesize(record.id, size)
        if not stored:
            return already_done(
                logger,
                "Filesize was stored by another consumer",
                versionId=record.id,
            )

        logger.info("Save filesize for version record", filesize=size, versionId=record.id)
        return Outcome.ACK
