"""Command-line entry point.

Usage:
    crypto-mover-tracker run        # scheduler + read API
    crypto-mover-tracker collect    # one collection run
    crypto-mover-tracker evaluate   # one evaluation run
    crypto-mover-tracker serve      # read API only
    crypto-mover-tracker init-db    # create the schema
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TYPE_CHECKING

import uvicorn
from pydantic import ValidationError
from redis.asyncio import Redis

from crypto_mover_tracker.api.app import create_app
from crypto_mover_tracker.config import get_settings
from crypto_mover_tracker.pipeline import CollectionPipeline, EvaluationPipeline, PipelineDependencies
from crypto_mover_tracker.scheduler import Scheduler
from crypto_mover_tracker.storage.database import DatabaseManager

if TYPE_CHECKING:
    from crypto_mover_tracker.config import Settings

logger = logging.getLogger(__name__)

COMMANDS = ("run", "collect", "evaluate", "serve", "init-db")


def _build_server(settings: Settings, db: DatabaseManager) -> uvicorn.Server:
    config = uvicorn.Config(
        create_app(db),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        access_log=False,
    )
    return uvicorn.Server(config)


async def _run(settings: Settings) -> None:
    db = DatabaseManager(settings.database.url)
    redis = Redis.from_url(settings.redis.url)
    deps = PipelineDependencies.from_settings(settings, db)
    server = _build_server(settings, db)
    try:
        async with Scheduler(deps, redis, settings=settings):
            await server.serve()
    finally:
        await deps.aclose()
        await redis.aclose()
        await db.dispose_async()


async def _collect(settings: Settings) -> None:
    db = DatabaseManager(settings.database.url)
    deps = PipelineDependencies.from_settings(settings, db)
    try:
        result = await CollectionPipeline(deps).run()
        logger.info(
            "Collected %d coins: %d new movers, %d alerts sent", result.coins, result.movers_new, result.alerts_sent
        )
    finally:
        await deps.aclose()
        await db.dispose_async()


async def _evaluate(settings: Settings) -> None:
    db = DatabaseManager(settings.database.url)
    deps = PipelineDependencies.from_settings(settings, db)
    try:
        result = await EvaluationPipeline(deps).run()
        logger.info(
            "Evaluated %d predictions (%d correct, %d partial, %d incorrect, %d expired)",
            result.evaluated,
            result.correct,
            result.partial,
            result.incorrect,
            result.expired,
        )
    finally:
        await deps.aclose()
        await db.dispose_async()


async def _serve(settings: Settings) -> None:
    db = DatabaseManager(settings.database.url)
    try:
        await _build_server(settings, db).serve()
    finally:
        await db.dispose_async()


async def _init_db(settings: Settings) -> None:
    db = DatabaseManager(settings.database.url)
    try:
        await db.init_schema_async()
        logger.info("Database schema created")
    finally:
        await db.dispose_async()


_HANDLERS = {
    "run": _run,
    "collect": _collect,
    "evaluate": _evaluate,
    "serve": _serve,
    "init-db": _init_db,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crypto-mover-tracker",
        description="Detect large crypto price moves, research them and track forecast accuracy",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("run", help="Run the scheduler and the read API")
    subparsers.add_parser("collect", help="Run one collection pass and exit")
    subparsers.add_parser("evaluate", help="Evaluate due predictions and exit")
    subparsers.add_parser("serve", help="Serve the read API only")
    subparsers.add_parser("init-db", help="Create database tables")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
        settings.validate_requirements(command=args.command)
    except (ValidationError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting %s with settings: %s", args.command, settings.redacted_summary())

    try:
        asyncio.run(_HANDLERS[args.command](settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
