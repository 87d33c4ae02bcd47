#!/usr/bin/env python3
"""
streamdb CLI Entrypoint

Commands:
    streamdb init                          Create the datastream table
    streamdb end-index STREAM [-s SUB]     Print the key's end index
    streamdb dump STREAM [-s SUB] [--from-index N | --from-time T]
                                           Print datapoints as JSON lines
    streamdb delete STREAM [-s SUB]        Delete a substream or a stream
    streamdb clear --yes                   Delete every stored batch

The backend is chosen from STREAMDB_* environment variables:

    STREAMDB_BACKEND=postgres STREAMDB_PG_HOST=db python -m streamdb end-index 7
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional, Sequence, TextIO

from streamdb import __version__
from streamdb.core.config import StreamDBConfig
from streamdb.core.errors import DatastreamError
from streamdb.core.types import Err, Result, StreamKey
from streamdb.observability.logging import LogLevel, log_context, setup_logging
from streamdb.storage.schema import DatastreamSchema
from streamdb.storage.factory import connect_backend
from streamdb.storage.store import SqlStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="streamdb",
        description="Append-only time-series batches on a relational store",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create the datastream table if missing")

    end_parser = subparsers.add_parser("end-index", help="Print a key's end index")
    _add_key_arguments(end_parser)

    dump_parser = subparsers.add_parser("dump", help="Print datapoints as JSON lines")
    _add_key_arguments(dump_parser)
    start = dump_parser.add_mutually_exclusive_group()
    start.add_argument(
        "--from-index",
        type=int,
        default=0,
        help="First sequence index to print (default: 0)",
    )
    start.add_argument(
        "--from-time",
        type=float,
        default=None,
        help="Print datapoints with timestamp >= this value",
    )

    delete_parser = subparsers.add_parser(
        "delete", help="Delete one substream, or the whole stream without -s",
    )
    delete_parser.add_argument("stream_id", type=int, help="Stream id")
    delete_parser.add_argument(
        "--substream", "-s",
        default=None,
        help="Substream name (default: every substream)",
    )

    clear_parser = subparsers.add_parser("clear", help="Delete every stored batch")
    clear_parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm the irreversible deletion",
    )

    return parser


def _add_key_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("stream_id", type=int, help="Stream id")
    parser.add_argument(
        "--substream", "-s",
        default="",
        help="Substream name (default: the stream's default substream)",
    )


def _fail(result: Result, err: TextIO) -> int:
    print(f"Error: {result.error}", file=err)
    return 1


async def run_command(
    args: argparse.Namespace,
    config: StreamDBConfig,
    out: TextIO,
    err: TextIO,
) -> int:
    """Execute one parsed command. Returns the process exit code."""
    if args.command == "clear" and not args.yes:
        print("Refusing to clear without --yes", file=err)
        return 2

    connected = await connect_backend(config)
    if connected.is_err():
        return _fail(connected, err)

    async with connected.unwrap() as backend:
        if args.command == "init":
            created = await DatastreamSchema(backend).create_all()
            if created.is_err():
                return _fail(created, err)
            print("ok", file=out)
            return 0

        opened = await SqlStore.open(backend, config.store)
        if opened.is_err():
            return _fail(opened, err)

        async with opened.unwrap() as store:
            with log_context(command=args.command, stream_id=getattr(args, "stream_id", None)):
                return await _run_store_command(store, args, out, err)


async def _run_store_command(
    store: SqlStore,
    args: argparse.Namespace,
    out: TextIO,
    err: TextIO,
) -> int:
    if args.command == "clear":
        result = await store.clear()
        if result.is_err():
            return _fail(result, err)
        print("ok", file=out)
        return 0

    if args.command == "delete":
        if args.substream is None:
            result = await store.delete_stream(args.stream_id)
        else:
            result = await store.delete_substream(StreamKey(args.stream_id, args.substream))
        if result.is_err():
            return _fail(result, err)
        print("ok", file=out)
        return 0

    key = StreamKey(args.stream_id, args.substream)

    if args.command == "end-index":
        result = await store.get_end_index(key)
        if result.is_err():
            return _fail(result, err)
        print(result.unwrap(), file=out)
        return 0

    # dump
    if args.from_time is not None:
        result = await store.get_by_time(key, args.from_time)
    else:
        result = await store.get_by_index(key, args.from_index)
    if result.is_err():
        return _fail(result, err)

    rng, _ = result.unwrap()
    try:
        async with rng:
            async for dp in rng:
                record = {"index": rng.index - 1, **dp.to_record()}
                print(json.dumps(record, default=str), file=out)
    except DatastreamError as e:
        # Lines already printed stay valid; the range stopped at the bad batch
        return _fail(Err(e), err)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entrypoint."""
    args = build_parser().parse_args(argv)

    config_result = StreamDBConfig.from_env()
    if config_result.is_err():
        print(config_result.error, file=sys.stderr)
        return 1
    config = config_result.unwrap()

    validation = config.validate()
    if validation.is_err():
        print(f"Validation error: {validation.error}", file=sys.stderr)
        return 1

    setup_logging(LogLevel.from_name(config.logging.level), json_output=config.logging.json)

    try:
        return asyncio.run(run_command(args, config, sys.stdout, sys.stderr))
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
