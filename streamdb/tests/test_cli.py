"""
CLI Tests: streamdb commands against a file-backed SQLite database
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

import pytest

from streamdb.__main__ import build_parser, main
from streamdb.codec import JsonCodec
from streamdb.core.config import SQLiteConfig
from streamdb.core.constants import TABLE_NAME
from streamdb.core.types import StreamKey
from streamdb.storage.sqlite import SQLiteBackend
from streamdb.storage.store import SqlStore
from streamdb.tests.conftest import points, run


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "streams.db"
    monkeypatch.setenv("STREAMDB_BACKEND", "sqlite")
    monkeypatch.setenv("STREAMDB_SQLITE_PATH", str(path))
    monkeypatch.setenv("STREAMDB_LOG_LEVEL", "ERROR")

    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield path
    root.handlers[:] = handlers
    root.setLevel(level)


def populate(path: Path) -> None:
    async def write():
        async with await SQLiteBackend.connect(SQLiteConfig(path=path)) as backend:
            async with (await SqlStore.open(backend)).unwrap() as store:
                (await store.append(StreamKey(7), points(1, 5, 10))).unwrap()
                (await store.append(StreamKey(7), points(12, 15))).unwrap()
                (await store.append(StreamKey(7, "b"), points(3))).unwrap()

    run(write())


def output_lines(capsys) -> list[str]:
    return capsys.readouterr().out.splitlines()


class TestParser:
    """Tests for argument parsing."""

    def test_dump_defaults(self):
        args = build_parser().parse_args(["dump", "7"])
        assert args.stream_id == 7
        assert args.substream == ""
        assert args.from_index == 0
        assert args.from_time is None

    def test_dump_start_options_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["dump", "7", "--from-index", "1", "--from-time", "2"])

    def test_delete_without_substream(self):
        assert build_parser().parse_args(["delete", "7"]).substream is None


class TestCommands:
    """Tests for end-to-end command execution."""

    def test_init_and_end_index(self, db_path, capsys):
        assert main(["init"]) == 0
        assert main(["end-index", "7"]) == 0
        assert output_lines(capsys) == ["ok", "0"]

    def test_end_index_without_table_fails(self, db_path, capsys):
        assert main(["end-index", "7"]) == 1
        assert "PREPARE_FAILED" in capsys.readouterr().err

    def test_dump_by_index(self, db_path, capsys):
        main(["init"])
        populate(db_path)
        capsys.readouterr()

        assert main(["dump", "7", "--from-index", "3"]) == 0
        records = [json.loads(line) for line in output_lines(capsys)]
        assert records == [
            {"index": 3, "t": 12, "d": 12},
            {"index": 4, "t": 15, "d": 15},
        ]

    def test_dump_by_time(self, db_path, capsys):
        main(["init"])
        populate(db_path)
        capsys.readouterr()

        assert main(["dump", "7", "--from-time", "5"]) == 0
        records = [json.loads(line) for line in output_lines(capsys)]
        assert [r["index"] for r in records] == [1, 2, 3, 4]
        assert [r["t"] for r in records] == [5, 10, 12, 15]

    def test_dump_corrupt_batch_fails_cleanly(self, db_path, capsys):
        main(["init"])
        codec = JsonCodec()
        with sqlite3.connect(db_path) as conn:
            conn.executemany(
                f"INSERT INTO {TABLE_NAME} VALUES (?,?,?,?,?,?)",
                [
                    (7, "", 3.0, 3, 1, codec.encode(points(1, 2, 3))),
                    # Claims one new point but carries three
                    (7, "", 6.0, 4, 1, codec.encode(points(4, 5, 6))),
                ],
            )
        conn.close()
        capsys.readouterr()

        assert main(["dump", "7"]) == 1
        captured = capsys.readouterr()
        assert [json.loads(line)["t"] for line in captured.out.splitlines()] == [1, 2, 3]
        assert "CORRUPTION" in captured.err
        assert "Traceback" not in captured.err

    def test_delete(self, db_path, capsys):
        main(["init"])
        populate(db_path)
        capsys.readouterr()

        assert main(["delete", "7", "-s", "b"]) == 0
        main(["end-index", "7", "-s", "b"])
        main(["end-index", "7"])
        assert output_lines(capsys) == ["ok", "0", "5"]

        assert main(["delete", "7"]) == 0
        main(["end-index", "7"])
        assert output_lines(capsys) == ["ok", "0"]

    def test_clear_requires_confirmation(self, db_path, capsys):
        main(["init"])
        populate(db_path)

        assert main(["clear"]) == 2
        assert main(["clear", "--yes"]) == 0
        capsys.readouterr()
        main(["end-index", "7"])
        assert output_lines(capsys) == ["0"]

    def test_invalid_config(self, db_path, monkeypatch, capsys):
        monkeypatch.setenv("STREAMDB_BACKEND", "oracle")
        assert main(["init"]) == 1
        assert "Unknown backend" in capsys.readouterr().err
