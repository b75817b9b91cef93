"""
analysis.pdepend: run pDepend (https://pdepend.org/) over a source folder.

The four result files are written next to the analyzed folder, e.g. for
``/data/typo3/6.2.0``:

    /data/typo3/jdepend-chart-6.2.0.svg
    /data/typo3/jdepend-xml-6.2.0.xml
    /data/typo3/overview-pyramid-6.2.0.svg
    /data/typo3/summary-xml-6.2.0.xml

If all four exist the folder counts as analyzed.

Message (json):
    directory: absolute path of the folder to analyze
    versionId: id of the versions row the folder belongs to
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from pipeline.broker.topology import QueueBinding, get_stage
from pipeline.consumer.base import (
    Outcome,
    ReceivedMessage,
    already_done,
    execution_failed,
    missing_input,
)
from pipeline.executor import CommandExecutor, get_executor
from pipeline.models.messages import PDependMessage
from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

STAGE = get_stage("analysis.pdepend")

CODERANK_MODE = "inheritance,property,method"


@dataclass(frozen=True)
class PDependArtifacts:
    directory: str
    jdepend_chart: str
    jdepend_xml: str
    overview_pyramid: str
    summary_xml: str

    @classmethod
    def for_directory(cls, directory: str) -> "PDependArtifacts":
        directory = directory.rstrip(os.sep)
        base_path, dir_name = os.path.split(directory)
        return cls(
            directory=directory,
            jdepend_chart=os.path.join(base_path, f"jdepend-chart-{dir_name}.svg"),
            jdepend_xml=os.path.join(base_path, f"jdepend-xml-{dir_name}.xml"),
            overview_pyramid=os.path.join(base_path, f"overview-pyramid-{dir_name}.svg"),
            summary_xml=os.path.join(base_path, f"summary-xml-{dir_name}.xml"),
        )

    def files(self) -> dict[str, str]:
        return {
            "jDependChart": self.jdepend_chart,
            "jDependXml": self.jdepend_xml,
            "overviewPyramid": self.overview_pyramid,
            "summaryXml": self.summary_xml,
        }

    def missing(self) -> list[str]:
        return [path for path in self.files().values() if not os.path.isfile(path)]

    def all_exist(self) -> bool:
        return not self.missing()


def build_pdepend_command(binary: str, file_pattern: str, artifacts: PDependArtifacts) -> list[str]:
    return [
        binary,
        f"--jdepend-chart={artifacts.jdepend_chart}",
        f"--jdepend-xml={artifacts.jdepend_xml}",
        f"--overview-pyramid={artifacts.overview_pyramid}",
        f"--summary-xml={artifacts.summary_xml}",
        f"--suffix={file_pattern}",
        f"--coderank-mode={CODERANK_MODE}",
        artifacts.directory + os.sep,
    ]


class PDependConsumer:
    name = STAGE.name
    description = STAGE.description
    message_type = PDependMessage

    def __init__(
        self,
        exchange: Optional[str] = None,
        settings: Optional[Settings] = None,
        executor: Optional[CommandExecutor] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.exchange = exchange or self.settings.default_exchange
        self.executor = executor or get_executor()

    def initialize(self) -> QueueBinding:
        return STAGE.binding(self.exchange)

    async def process(self, message: ReceivedMessage[PDependMessage]) -> Outcome:
        data = message.payload

        if not os.path.isdir(data.directory):
            return missing_input(logger, "Directory does not exist", directory=data.directory)

        if not os.path.basename(data.directory.rstrip(os.sep)):
            return missing_input(
                logger, "Directory has no name to derive result files from", directory=data.directory
            )

        artifacts = PDependArtifacts.for_directory(data.directory)
        if artifacts.all_exist():
            return already_done(
                logger,
                "Directory already analyzed with pDepend",
                versionId=data.version_id,
                directory=data.directory,
            )

        command = build_pdepend_command(
            self.settings.pdepend_binary,
            self.settings.pdepend_file_pattern,
            artifacts,
        )

        logger.info("Start analyzing with pDepend", directory=artifacts.directory)
        # CommandExecutionError is turned into a reject by the runtime
        await self.executor.execute(command)

        missing = artifacts.missing()
        if missing:
            return execution_failed(
                logger,
                "pDepend analysis result files do not exist",
                directory=artifacts.directory,
                missing=missing,
            )

        return Outcome.ACK
