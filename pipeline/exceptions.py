"""
Error taxonomy of the pipeline.

Transport errors (connect, publish, topology) are fatal to the owning
process. Per-message errors (decode, command execution) end in a reject.
Producer validation errors are reported to the operator.
"""

from __future__ import annotations

import shlex
from typing import Optional, Sequence


class PipelineError(Exception):
    """Base class for every error raised by the pipeline."""


class BrokerConnectionError(PipelineError, ConnectionError):
    """The broker is unreachable or rejected the credentials."""

    def __init__(self, host: str, port: int, vhost: str, reason: str) -> None:
        self.host = host
        self.port = port
        self.vhost = vhost
        self.reason = reason
        super().__init__(f"Could not connect to broker {host}:{port}{vhost}: {reason}")


class PublishError(PipelineError):
    """A message could not be handed to the broker."""


class TopologyConflictError(PipelineError):
    """A queue or exchange already exists with different arguments."""


class DeliveryStateError(PipelineError):
    """Ack/reject of a delivery tag that is unknown or already settled."""


class MessageDecodeError(PipelineError):
    """A message body is not valid JSON or does not match its schema."""


class UnknownStageError(PipelineError):
    """A stage name that is not part of the topology table."""


class ProducerValidationError(PipelineError):
    """
    Invalid producer input or configuration.

    ``code`` is stable so operators can grep for it.
    """

    INVALID_SOURCE_URL = "invalid_source_url"
    UNKNOWN_PROJECT = "unknown_project"

    def __init__(self, message: str, code: str) -> None:
        self.code = code
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.args[0]}"


class CommandExecutionError(PipelineError):
    """An external command exited non-zero or could not be launched."""

    def __init__(
        self,
        args: Sequence[str],
        exit_code: Optional[int],
        stderr: str = "",
        stdout: str = "",
    ) -> None:
        self.command = list(args)
        self.exit_code = exit_code
        self.stderr = stderr
        self.stdout = stdout

        if exit_code is None:
            detail = f"could not be launched: {stderr}"
        else:
            detail = f"exited with status {exit_code}"
        super().__init__(f"Command `{shlex.join(self.command)}` {detail}")
