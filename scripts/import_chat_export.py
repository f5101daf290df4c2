"""Import an exported chat log file through the chat sync pipeline."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Iterable, Mapping

from repositories import CareStore, InMemoryCareStore, PostgresCareStore, StorageError
from services.chat_sync.name_map import NameMapCache
from services.chat_sync.pipeline import (
    Accepted,
    EntryOutcome,
    IngestionPipeline,
    SkippedUnresolved,
    decode_envelope,
    parse_envelope,
)
from shared.config.settings import get_settings
from shared.http.errors import ProblemDetailsException


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Read a JSON chat export (an object or an array of objects), resolve "
            "resident names and upsert the resulting chat logs."
        )
    )
    parser.add_argument("file", type=Path, help="Path to the exported JSON file.")
    target = parser.add_mutually_exclusive_group()
    target.add_argument(
        "--database-url",
        dest="database_url",
        help="Async SQLAlchemy URL of the care record database (default: DATABASE_URL).",
    )
    target.add_argument(
        "--fixture",
        type=Path,
        help="Run against an in-memory store seeded from this JSON fixture instead of a database.",
    )
    parser.add_argument(
        "--bootstrap-schema",
        dest="bootstrap_schema",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Create the care record tables before importing (database runs only).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the outcome of every entry without writing anything.",
    )
    return parser


def _describe_outcome(outcome: EntryOutcome) -> Mapping[str, Any]:
    if isinstance(outcome, Accepted):
        record = outcome.record
        return {
            "status": "accepted",
            "messageId": record.id,
            "userId": record.user_id,
            "sendTime": record.send_time.isoformat(),
            "categoryTag": str(record.category_tag),
        }
    if isinstance(outcome, SkippedUnresolved):
        return {"status": "skipped", "messageId": outcome.message_id, "name": outcome.name}
    return {"status": "dropped", "messageId": outcome.message_id, "reason": outcome.reason}


def _build_store(args: argparse.Namespace) -> CareStore:
    if args.fixture is not None:
        return InMemoryCareStore.from_fixture(args.fixture)
    return PostgresCareStore(args.database_url or get_settings().database.url)


def _dump(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False)


async def _run_async(args: argparse.Namespace) -> int:
    entries = parse_envelope(decode_envelope(args.file.read_bytes()))
    store = _build_store(args)
    pipeline = IngestionPipeline(store=store, name_map=NameMapCache(store))

    try:
        if isinstance(store, PostgresCareStore) and args.bootstrap_schema and not args.dry_run:
            await store.bootstrap_schema()

        if args.dry_run:
            for outcome in await pipeline.evaluate(entries):
                print(_dump(_describe_outcome(outcome)))
            return 0

        report = await pipeline.ingest(entries)
    finally:
        if isinstance(store, PostgresCareStore):
            await store.dispose()

    print(
        _dump(
            {
                "message": report.message,
                "inserted": report.inserted,
                "skipped": report.skipped,
                "skippedNames": list(report.skipped_names),
            }
        )
    )
    return 0


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    parsed_args = parser.parse_args(None if argv is None else list(argv))
    try:
        return asyncio.run(_run_async(parsed_args))
    except KeyboardInterrupt:  # pragma: no cover - manual cancellation guard
        return 130
    except ProblemDetailsException as exc:
        print(exc.detail, file=sys.stderr)
        return 1
    except (StorageError, OSError) as exc:
        print(str(exc), file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
