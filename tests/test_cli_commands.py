"""
Unit tests for thread memory CLI parsing and command dispatch.

Commands run end to end over a temporary storage directory with threading
disabled (no embedding endpoint needed), except where a fake-backed
assembler is patched in.
"""

import json
from argparse import Namespace
from unittest.mock import Mock, patch

import pytest

from thread_memory.cli.main import dispatch_commands, run
from thread_memory.cli.parsers import build_parser
from thread_memory.domain.errors import StorageError


@pytest.fixture
def cli_env(tmp_path, monkeypatch, clean_environment):
    """Isolated cwd and storage dir, threads off."""
    monkeypatch.chdir(tmp_path)
    store = tmp_path / "store"
    monkeypatch.setenv("MEMORY_DIR", str(store))
    monkeypatch.setenv("THREADS_ENABLED", "0")
    return store


def _run_json(capsys, *argv):
    code = run(list(argv))
    out = capsys.readouterr().out
    return code, json.loads(out)


class TestCommandParsing:
    """Test CLI argument parsing functionality."""

    def test_build_parser_structure(self):
        parser = build_parser()
        assert "Thread memory" in parser.description
        with pytest.raises(SystemExit):
            parser.parse_args(["--help"])

    def test_record_args(self):
        args = build_parser().parse_args(["record", "--role", "user", "--text", "hi there", "--topic", "Alice"])
        assert args.cmd == "record"
        assert (args.role, args.text, args.topic) == ("user", "hi there", "Alice")

    def test_record_rejects_unknown_role(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["record", "--role", "narrator", "--text", "x"])

    def test_context_args(self):
        args = build_parser().parse_args(["--dir", "/tmp/m", "context", "--q", "what now", "--max-recent", "3"])
        assert args.dir == "/tmp/m"
        assert args.q == "what now"
        assert args.max_recent == 3
        assert args.max_from_thread is None

    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


@pytest.mark.cli
class TestCommandExecution:
    """Test commands against real storage."""

    def test_record_then_recent(self, cli_env, capsys):
        code, out = _run_json(capsys, "record", "--role", "user", "--text", "hello", "--topic", "Alice")
        assert code == 0
        assert out == {"status": "ok", "entry_id": 0, "thread_id": None}

        code, out = _run_json(capsys, "recent", "--n", "5")
        assert code == 0
        assert out["count"] == 1
        assert out["result"][0]["content"] == "hello"
        assert out["result"][0]["topic"] == "Alice"
        assert (cli_env / "memories.jsonl").exists()

    def test_record_blank_text_is_contract_error(self, cli_env, capsys):
        code, out = _run_json(capsys, "record", "--role", "user", "--text", "  ")
        assert code == 2
        assert out["status"] == "error"

    def test_context_without_threads_is_recent_window(self, cli_env, capsys):
        for i in range(4):
            run(["record", "--role", "user" if i % 2 == 0 else "assistant", "--text", f"m{i}"])
        capsys.readouterr()
        code, out = _run_json(capsys, "context", "--q", "next", "--max-recent", "2")
        assert code == 0
        assert out["result"] == [{"role": "user", "content": "m2"}, {"role": "assistant", "content": "m3"}]

    def test_search_filters(self, cli_env, capsys):
        run(["record", "--role", "user", "--text", "green tea"])
        run(["record", "--role", "assistant", "--text", "black tea"])
        run(["record", "--role", "user", "--text", "coffee"])
        capsys.readouterr()
        code, out = _run_json(capsys, "search", "--q", "TEA", "--role", "user")
        assert code == 0
        assert [r["content"] for r in out["result"]] == ["green tea"]

    def test_export_and_import(self, cli_env, tmp_path, capsys):
        run(["record", "--role", "user", "--text", "keep me"])
        capsys.readouterr()
        target = tmp_path / "dump.jsonl"
        code, out = _run_json(capsys, "export", "--out", str(target))
        assert code == 0 and out["path"] == str(target)

        code, out = _run_json(capsys, "import", "--input", str(target))
        assert code == 0
        assert out == {"status": "ok", "imported": 1, "entries": 2}

        code, out = _run_json(capsys, "import", "--input", str(target), "--replace")
        assert out["entries"] == 1

    def test_import_missing_file(self, cli_env, tmp_path, capsys):
        code, out = _run_json(capsys, "import", "--input", str(tmp_path / "nope.jsonl"))
        assert code == 2
        assert "not found" in out["error"]

    def test_clear_requires_confirmation(self, cli_env, capsys):
        run(["record", "--role", "user", "--text", "x"])
        capsys.readouterr()
        code, out = _run_json(capsys, "clear")
        assert code == 2
        code, out = _run_json(capsys, "clear", "--yes")
        assert code == 0 and out["cleared"] is True
        code, out = _run_json(capsys, "recent")
        assert out["count"] == 0

    def test_flush_threads_and_prune_report_counts(self, cli_env, capsys):
        code, out = _run_json(capsys, "flush")
        assert code == 0 and out == {"status": "ok", "entries": 0, "threads": 0}
        code, out = _run_json(capsys, "threads")
        assert code == 0 and out["result"] == []
        code, out = _run_json(capsys, "prune")
        assert code == 0 and out["removed_references"] == 0

    def test_dir_flag_overrides_env(self, cli_env, tmp_path, capsys):
        other = tmp_path / "other"
        code, _ = _run_json(capsys, "--dir", str(other), "record", "--role", "user", "--text", "hi")
        assert code == 0
        assert (other / "memories.jsonl").exists()
        assert not (cli_env / "memories.jsonl").exists()


@pytest.mark.cli
def test_threaded_record_reports_thread(make_assembler, fake_embeddings, capsys):
    asm = make_assembler()
    fake_embeddings.table["hello"] = [1.0, 0.0]
    with patch("thread_memory.cli.main.build_assembler", return_value=asm):
        code, out = _run_json(capsys, "record", "--role", "user", "--text", "hello", "--topic", "Alice")
    assert code == 0
    assert out["entry_id"] == 0
    assert out["thread_id"] == asm.index.threads()[0].id

    with patch("thread_memory.cli.main.build_assembler", return_value=asm):
        code, out = _run_json(capsys, "threads")
    assert out["result"][0]["label"] == "Alice"
    assert out["result"][0]["member_count"] == 1


class TestErrorMapping:
    """Test exit codes for failures raised by the assembler."""

    def test_storage_error_exits_2(self, capsys):
        asm = Mock()
        asm.log.export_to.side_effect = StorageError("disk gone")
        with patch("thread_memory.cli.main.build_assembler", return_value=asm):
            code, out = _run_json(capsys, "export")
        assert code == 2
        assert out["error"] == "StorageError: disk gone"
        asm.close.assert_called_once()

    def test_unexpected_error_exits_3(self, capsys):
        asm = Mock()
        asm.index.summaries.side_effect = RuntimeError("boom")
        with patch("thread_memory.cli.main.build_assembler", return_value=asm):
            code, out = _run_json(capsys, "threads")
        assert code == 3
        assert out["status"] == "error"

    def test_unknown_command_dispatch(self, capsys):
        code = dispatch_commands(Namespace(cmd="teleport"), Mock())
        assert code == 2
        assert "Unknown command" in json.loads(capsys.readouterr().out)["error"]


@pytest.mark.cli
def test_replace_import_prunes_thread_references(make_assembler, fake_embeddings, tmp_path, capsys):
    asm = make_assembler()
    fake_embeddings.table.update({"old one": [1.0, 0.0], "old two": [0.0, 1.0]})
    asm.record_turn("user", "old one")
    asm.record_turn("user", "old two")
    src = tmp_path / "fresh.jsonl"
    src.write_text(json.dumps({"role": "user", "content": "fresh start"}) + "\n", encoding="utf-8")

    with patch("thread_memory.cli.main.build_assembler", return_value=asm):
        code, out = _run_json(capsys, "import", "--input", str(src), "--replace")
    assert code == 0
    assert out == {"status": "ok", "imported": 1, "entries": 1}
    assert asm.index.threads() == []
    assert [e.id for e in asm.log.snapshot()] == [2]
