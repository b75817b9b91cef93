"""Producers that seed the pipeline."""

from pipeline.commands.base import Producer, PublishResult, validate_url
from pipeline.commands.gitweb import GitwebCommand

COMMANDS = {GitwebCommand.name: GitwebCommand}

__all__ = ["Producer", "PublishResult", "validate_url", "GitwebCommand", "COMMANDS"]
