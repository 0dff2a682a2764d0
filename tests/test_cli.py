from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from click.testing import CliRunner

from scratchspace.cli import cli

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def root(tmp_path: Path, runner: CliRunner) -> str:
    result = runner.invoke(cli, ["--dir", str(tmp_path), "init", "demo"])
    assert result.exit_code == 0, result.output
    return str(tmp_path)


def _invoke(runner: CliRunner, root: str, *args: str, input: str | None = None) -> str:
    result = runner.invoke(cli, ["--dir", root, *args], input=input)
    assert result.exit_code == 0, result.output
    return result.output


def test_init_creates_config(tmp_path: Path, runner: CliRunner) -> None:
    result = runner.invoke(cli, ["--dir", str(tmp_path), "init"])
    assert result.exit_code == 0
    assert (tmp_path / "scratch.toml").exists()
    assert (tmp_path / ".scratch" / "scratchpads").is_dir()

    again = runner.invoke(cli, ["--dir", str(tmp_path), "init"])
    assert again.exit_code == 0
    assert "already exists" in again.output


def test_document_lifecycle(runner: CliRunner, root: str) -> None:
    doc_id = _invoke(runner, root, "new", "Notes", "-l", "markdown").strip()

    _invoke(runner, root, "write", doc_id, input="hello world\nsecond line\n")
    assert _invoke(runner, root, "show", doc_id) == "hello world\nsecond line\n"

    meta = _invoke(runner, root, "show", doc_id, "--meta")
    assert f"scratchpad:///{doc_id}/Notes.md" in meta

    _invoke(runner, root, "tag", doc_id, "work")
    assert "work  (1)" in _invoke(runner, root, "tags")
    assert _invoke(runner, root, "pin", doc_id).strip() == "pinned"

    listing = _invoke(runner, root, "list")
    assert doc_id in listing

    history = _invoke(runner, root, "history", doc_id)
    assert "create" in history
    assert "update" in history

    found = _invoke(runner, root, "search", "hello")
    assert doc_id in found
    assert "hello world" in found

    _invoke(runner, root, "rm", doc_id)
    assert "No documents." in _invoke(runner, root, "list")
    assert "delete" in _invoke(runner, root, "history", doc_id)


def test_restore_from_history(runner: CliRunner, root: str) -> None:
    doc_id = _invoke(runner, root, "new").strip()
    _invoke(runner, root, "write", doc_id, input="first")
    _invoke(runner, root, "write", doc_id, input="second")

    found = _invoke(runner, root, "search", "first")
    entry_id = found.split("(")[1].split(")")[0]

    assert "Restored" in _invoke(runner, root, "restore", entry_id)
    assert _invoke(runner, root, "show", doc_id).strip() == "first"


def test_missing_document_is_an_error(runner: CliRunner, root: str) -> None:
    result = runner.invoke(cli, ["--dir", root, "show", "nope"])
    assert result.exit_code != 0
    assert "nope" in result.output


def test_clear_and_session(runner: CliRunner, root: str) -> None:
    _invoke(runner, root, "new", "a")
    _invoke(runner, root, "new", "b")
    assert "Deleted 2 documents" in _invoke(runner, root, "clear", "--yes")

    status = _invoke(runner, root, "session")
    assert "recovery needed : no" in status
    assert "Session cleared." in _invoke(runner, root, "session", "--reset")
    assert "No backups." in _invoke(runner, root, "backups")
