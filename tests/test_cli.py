"""Tests for the command-line entry point."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from cortex.__main__ import run
from cortex.config import CortexConfig


@pytest.fixture
def config(tmp_path: Path) -> CortexConfig:
    return CortexConfig(data_dir=tmp_path / "store", stores={"work": tmp_path / "work"})


class TestCli:
    def test_init(self, config: CortexConfig, capsys):
        assert run(["init"], config=config) == 0
        assert (config.data_dir / "index.yaml").is_file()
        assert "Initialized" in capsys.readouterr().out

    def test_add_show_list(self, config: CortexConfig, capsys):
        assert run(["add", "a/b", "-c", "hello", "-t", "x"], config=config) == 0
        assert run(["show", "a/b"], config=config) == 0
        out = capsys.readouterr().out
        assert "source: cli" in out
        assert "hello" in out

        assert run(["list"], config=config) == 0
        listing = yaml.safe_load(capsys.readouterr().out)
        assert [m["path"] for m in listing["memories"]] == ["a/b"]

    def test_add_from_file(self, config: CortexConfig, tmp_path: Path, capsys):
        body = tmp_path / "body.txt"
        body.write_text("from a file", encoding="utf-8")
        assert run(["add", "a/b", "-f", str(body)], config=config) == 0
        run(["show", "a/b"], config=config)
        assert "from a file" in capsys.readouterr().out

    def test_update_and_remove(self, config: CortexConfig, capsys):
        run(["add", "a/b", "-c", "v1"], config=config)
        assert run(["update", "a/b", "-c", "v2", "--expires-at", "2099-01-01T00:00:00Z"], config=config) == 0
        run(["show", "a/b"], config=config)
        out = capsys.readouterr().out
        assert "v2" in out
        assert "expires_at" in out

        assert run(["remove", "a/b"], config=config) == 0
        assert run(["show", "a/b"], config=config) == 1

    def test_error_is_json(self, config: CortexConfig, capsys):
        assert run(["show", "Bad/Path"], config=config) == 1
        error = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert error["code"] == "INVALID_PATH"

    def test_move(self, config: CortexConfig, capsys):
        run(["add", "a/b", "-c", "x"], config=config)
        assert run(["move", "a/b", "c/b"], config=config) == 1
        assert json.loads(capsys.readouterr().err.strip().splitlines()[-1])["code"] == "MOVE_FAILED"

        run(["category", "create", "c"], config=config)
        assert run(["move", "a/b", "c/b"], config=config) == 0

    def test_reindex_and_prune(self, config: CortexConfig, capsys):
        run(["add", "a/b", "-c", "x", "--expires-at", "2000-01-01T00:00:00Z"], config=config)
        capsys.readouterr()

        assert run(["prune", "--dry-run"], config=config) == 0
        report = yaml.safe_load(capsys.readouterr().out)
        assert report["dry_run"] is True

        assert run(["prune"], config=config) == 0
        assert run(["reindex"], config=config) == 0
        assert "indexed: 0" in capsys.readouterr().out

    def test_category_commands(self, config: CortexConfig):
        assert run(["category", "create", "docs"], config=config) == 0
        assert run(["category", "describe", "docs", "All docs"], config=config) == 0
        assert run(["category", "delete", "docs"], config=config) == 0
        assert not (config.data_dir / "docs").exists()

    def test_named_store(self, config: CortexConfig, tmp_path: Path):
        assert run(["--store", "work", "add", "a/b", "-c", "x"], config=config) == 0
        assert (tmp_path / "work" / "a" / "b.md").is_file()

    def test_unknown_store(self, config: CortexConfig, capsys):
        assert run(["--store", "nope", "list"], config=config) == 1
        error = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert error["code"] == "INVALID_INPUT"
