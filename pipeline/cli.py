"""
Command line entry point.

    pipeline crawler:gitweb [--project TYPO3]
    pipeline analysis:consumer analysis.filesize [--project TYPO3]
    pipeline deadletter:replay analysis.filesize [--limit 100]
    pipeline stages
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from pipeline.broker.connection import open_channel
from pipeline.broker.replay import replay_dead_letters
from pipeline.broker.topology import TOPOLOGY, dead_letter_queue_name, validate_topology
from pipeline.commands import GitwebCommand
from pipeline.exceptions import PipelineError, ProducerValidationError
from pipeline.worker import main as worker
from shared.config import get_projects, get_settings
from shared.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

DEFAULT_PROJECT = "TYPO3"


async def _run_gitweb(project: str) -> int:
    settings = get_settings()
    command = GitwebCommand(settings, get_projects())
    prepared = command.prepare(project)
    if prepared is None:
        return 0

    async with open_channel(settings) as channel:
        await command.publish(channel, prepared)
    return 0


async def _run_replay(queue: str, limit: Optional[int]) -> int:
    async with open_channel(get_settings()) as channel:
        count = await replay_dead_letters(channel, queue, limit)
    print(f"Replayed {count} message(s) from {dead_letter_queue_name(queue)} to {queue}")
    return 0


def cmd_gitweb(args: argparse.Namespace) -> int:
    try:
        return asyncio.run(_run_gitweb(args.project))
    except ProducerValidationError as e:
        logger.error("Invalid configuration", project=args.project, code=e.code, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except PipelineError as e:
        logger.error("Publishing failed", project=args.project, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_consumer(args: argparse.Namespace) -> int:
    exchange = None
    if args.project:
        project = get_projects().get(args.project)
        if project is None:
            print(f'Error: project "{args.project}" is not configured', file=sys.stderr)
            return 1
        exchange = project.exchange
    return worker.main(args.stage, exchange)


def cmd_replay(args: argparse.Namespace) -> int:
    try:
        return asyncio.run(_run_replay(args.queue, args.limit))
    except PipelineError as e:
        logger.error("Replay failed", queue=args.queue, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_stages(args: argparse.Namespace) -> int:
    for stage in TOPOLOGY.values():
        downstream = ", ".join(stage.downstream) or "-"
        print(f"{stage.name:<20} queue={stage.queue:<20} -> {downstream:<15} {stage.description}")

    problems = validate_topology(TOPOLOGY.values())
    for problem in problems:
        print(f"Error: {problem}", file=sys.stderr)
    return 1 if problems else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pipeline",
        description="Crawl, download and analyze projects through RabbitMQ.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    gitweb = sub.add_parser("crawler:gitweb", help=GitwebCommand.description)
    gitweb.add_argument(
        "--project",
        default=DEFAULT_PROJECT,
        help="Choose the project (for configuration, etc.). Default: %(default)s",
    )
    gitweb.set_defaults(func=cmd_gitweb)

    consumer = sub.add_parser("analysis:consumer", help="Run a consumer for one pipeline stage.")
    consumer.add_argument("stage", choices=sorted(TOPOLOGY), help="Stage to consume")
    consumer.add_argument("--project", default=None, help="Bind to the exchange of this project")
    consumer.set_defaults(func=cmd_consumer)

    replay = sub.add_parser("deadletter:replay", help="Re-publish dead-lettered messages.")
    replay.add_argument("queue", choices=sorted(TOPOLOGY), help="Primary queue whose DLQ is replayed")
    replay.add_argument("--limit", type=int, default=None, help="Maximum number of messages")
    replay.set_defaults(func=cmd_replay)

    stages = sub.add_parser("stages", help="Show the pipeline topology.")
    stages.set_defaults(func=cmd_stages)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
