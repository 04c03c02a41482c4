"""CLI entry point: python -m taste_machine.cli {recompute,replay,status}"""

import argparse
import asyncio
import json
import sys

import structlog

from taste_machine.config.settings import get_settings
from taste_machine.db.session import get_session_factory
from taste_machine.engine.recompute import RecomputeEngine
from taste_machine.errors import NftNotFound
from taste_machine.logging_config import configure_logging
from taste_machine.rating.config import load_rating_config
from taste_machine.store.dirty import DirtySet
from taste_machine.store.retry import RetryPolicy


def build_engine(session_factory=None) -> RecomputeEngine:
    settings = get_settings()
    config = load_rating_config(settings.rating_config_path)
    factory = session_factory or get_session_factory()
    retry = RetryPolicy(config.retry)
    return RecomputeEngine(factory, DirtySet(factory, retry), config, retry)


async def run_recompute(engine: RecomputeEngine, max_items: int | None) -> dict:
    stats = await engine.drain(max_items)
    return {
        "claimed": stats.claimed,
        "processed": stats.processed,
        "published": stats.published,
        "errors": stats.errors,
    }


async def run_replay(engine: RecomputeEngine, nft_id: str, write: bool) -> dict:
    report = await engine.replay(nft_id, write=write)
    state = report.state
    return {
        "nft_id": nft_id,
        "elo_mean": state.elo_mean,
        "elo_sigma": state.elo_sigma,
        "wins": state.wins,
        "losses": state.losses,
        "slider_count": state.slider.count,
        "slider_mean": state.slider.mean,
        "fire_count": state.fire_count,
        "elo_drift": report.elo_drift,
        "slider_drift": report.slider_drift,
        "counts_match": report.counts_match,
        "written": report.written,
    }


async def run_status(engine: RecomputeEngine) -> dict:
    status = await engine.dirty.status()
    return {
        "dirty_count": status.dirty_count,
        "high_priority_count": status.high_priority_count,
        "oldest_age_seconds": status.oldest_age_seconds,
        "mode": engine.config.recompute.mode,
    }


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="taste_machine.cli",
        description="Taste Machine operator CLI",
    )
    subparsers = parser.add_subparsers(dest="command")

    recompute_parser = subparsers.add_parser("recompute", help="Drain one batch of dirty NFTs")
    recompute_parser.add_argument(
        "--max-items",
        type=int,
        default=None,
        help="Batch size (default: recompute.batch_size from the rating config)",
    )

    replay_parser = subparsers.add_parser("replay", help="Rebuild one NFT's rating from its events")
    replay_parser.add_argument("nft_id", help="NFT to replay")
    replay_parser.add_argument(
        "--write",
        action="store_true",
        help="Replace the stored rating state with the replayed one",
    )

    subparsers.add_parser("status", help="Show dirty-set status")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    settings = get_settings()
    configure_logging(json_output=settings.log_json, log_level=settings.log_level)
    log = structlog.get_logger()
    engine = build_engine()

    if args.command == "recompute":
        result = asyncio.run(run_recompute(engine, args.max_items))
    elif args.command == "replay":
        try:
            result = asyncio.run(run_replay(engine, args.nft_id, args.write))
        except NftNotFound as exc:
            log.error("replay_failed", nft_id=exc.nft_id, error=str(exc))
            sys.exit(2)
    else:
        result = asyncio.run(run_status(engine))

    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
