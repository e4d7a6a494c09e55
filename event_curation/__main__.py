# event_curation/__main__.py
"""
Operator CLI for running pipeline stages by hand:

    python -m event_curation poll
    python -m event_curation auto
    python -m event_curation classify <run_id> [--max-concurrent N]
    python -m event_curation materialize <run_id>
    python -m event_curation trigger [--kind posts|stories] [--usernames a,b] [--start-date ISO]
    python -m event_curation schedules
"""

import argparse
import asyncio
import json
import logging
import sys

from event_curation.app.config import get_settings
from event_curation.app.errors import PipelineError
from event_curation.app.services import open_services
from event_curation.app.tasks import SideEffects
from event_curation.pipeline.classifier import classify_run
from event_curation.pipeline.ingestion import poll_runs
from event_curation.pipeline.materializer import materialize_run
from event_curation.pipeline.scheduler import run_auto_pipeline
from event_curation.pipeline.schedules import process_due_schedules
from event_curation.pipeline.trigger import start_scrape

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m event_curation")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("poll", help="run one poll cycle over open scrape runs")
    sub.add_parser("auto", help="run one auto-pipeline cycle (classify, materialize, self-heal)")
    sub.add_parser("schedules", help="fire due scheduled scrapes")

    p = sub.add_parser("classify", help="classify one run")
    p.add_argument("run_id")
    p.add_argument("--max-concurrent", type=int, default=None)

    p = sub.add_parser("materialize", help="materialize positive classifications of one run")
    p.add_argument("run_id")

    p = sub.add_parser("trigger", help="start a scrape run")
    p.add_argument("--kind", choices=("posts", "stories"), default="posts")
    p.add_argument("--usernames", default=None, help="comma separated; default: venue usernames")
    p.add_argument("--start-date", default=None)
    return parser


async def run_command(args: argparse.Namespace):
    async with open_services() as services:
        side_effects = SideEffects()
        try:
            if args.command == "poll":
                log_id, entry = await poll_runs(services, side_effects)
                return {"log_id": log_id, **entry.model_dump(mode="json")}
            if args.command == "auto":
                return (await run_auto_pipeline(services)).as_dict()
            if args.command == "schedules":
                return await process_due_schedules(services)
            if args.command == "classify":
                stats = await classify_run(services, args.run_id, max_concurrent=args.max_concurrent)
                return stats.as_dict()
            if args.command == "materialize":
                return (await materialize_run(services, args.run_id)).as_dict()
            if args.command == "trigger":
                run = await start_scrape(
                    services, kind=args.kind, targets=args.usernames, newer_than=args.start_date
                )
                return run.model_dump(mode="json")
        finally:
            await side_effects.drain()
    raise ValueError(f"unknown command {args.command}")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        result = asyncio.run(run_command(args))
    except PipelineError as e:
        logger.error("%s failed: %s", args.command, e)
        return 1
    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
