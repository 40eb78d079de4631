"""
Unit Tests for CLI Commands

Tests the CLI entry points against a temporary storage directory, with mock
embeddings so no API calls are made.

STAFF ENGINEER PATTERNS:
------------------------
1. Patch the subcommand handlers to test dispatch in isolation
2. Drive real handlers through sys.argv and the environment
3. Verify exit codes and printed output
"""

import json
import tarfile
from unittest.mock import patch

import pytest


@pytest.fixture
def env(tmp_path):
    """Environment pointing the CLI at an empty temp storage root."""
    storage = tmp_path / "vector-store"
    storage.mkdir()
    return {
        "VECTOR_STORAGE_DIR": str(storage),
        "USE_MOCK_EMBEDDINGS": "true",
        "EMBEDDING_DIM": "8",
    }


def write_namespace(storage_dir, namespace, count):
    records = [
        {
            "id": f"rag-{namespace}-faq-{i}",
            "values": [1.0] + [0.0] * 7,
            "metadata": {"namespaceId": namespace, "type": "faq", "source": "feed_ai", "content": f"faq {i}"},
        }
        for i in range(count)
    ]
    (storage_dir / f"{namespace}.json").write_text(json.dumps(records))


# ---------------------------------------------------------------------------
# LOAD_ENV TESTS
# ---------------------------------------------------------------------------


class TestLoadEnv:
    """Test environment loading."""

    def test_load_env_does_not_raise(self):
        """Should not raise without any .env file."""
        from retrieval_engine.cli.commands import _load_env
        _load_env()


# ---------------------------------------------------------------------------
# MAIN CLI DISPATCH TESTS
# ---------------------------------------------------------------------------


class TestMainCliDispatch:
    """Test main CLI dispatches to correct handlers."""

    @pytest.mark.parametrize("command,handler", [
        ("stats", "run_stats_cli"),
        ("query", "run_query_cli"),
        ("validate", "run_validate_cli"),
        ("backup", "run_backup_cli"),
        ("generate-offline", "run_generate_offline_cli"),
    ])
    def test_main_dispatches(self, command, handler):
        from retrieval_engine.cli import commands

        with patch.object(commands, handler) as mock_handler:
            mock_handler.return_value = 0
            with patch("sys.argv", ["retrieval-engine", command]):
                result = commands.main()

            mock_handler.assert_called_once()
            assert result == 0

    def test_main_passes_remaining_args_to_subcommand(self):
        """Subcommand arguments are re-injected into sys.argv."""
        import sys
        from retrieval_engine.cli import commands

        seen = {}

        def fake_query():
            seen["argv"] = list(sys.argv)
            return 0

        with patch.object(commands, "run_query_cli", side_effect=fake_query):
            with patch("sys.argv", ["retrieval-engine", "query", "B1", "hours", "--limit", "2"]):
                commands.main()

        assert seen["argv"][1:] == ["B1", "hours", "--limit", "2"]

    def test_main_handles_keyboard_interrupt(self):
        """Main should return 130 on KeyboardInterrupt."""
        from retrieval_engine.cli import commands

        with patch.object(commands, "run_stats_cli") as mock_stats:
            mock_stats.side_effect = KeyboardInterrupt()
            with patch("sys.argv", ["retrieval-engine", "stats"]):
                result = commands.main()

            assert result == 130


# ---------------------------------------------------------------------------
# STATS / QUERY
# ---------------------------------------------------------------------------


class TestStatsCli:

    def test_prints_counts(self, env, capsys):
        from pathlib import Path
        from retrieval_engine.cli.commands import run_stats_cli

        write_namespace(Path(env["VECTOR_STORAGE_DIR"]), "B1", 2)

        with patch.dict("os.environ", env, clear=True):
            with patch("sys.argv", ["stats"]):
                assert run_stats_cli() == 0

        stats = json.loads(capsys.readouterr().out)
        assert stats == {"namespaces": 1, "totalVectors": 2, "perNamespace": {"B1": 2}}


class TestQueryCli:

    def test_query_prints_documents(self, env, capsys):
        from pathlib import Path
        from retrieval_engine.cli.commands import run_query_cli

        write_namespace(Path(env["VECTOR_STORAGE_DIR"]), "B1", 3)

        with patch.dict("os.environ", env, clear=True):
            with patch("sys.argv", ["query", "B1", "faq 1", "--limit", "2"]):
                assert run_query_cli() == 0

        documents = json.loads(capsys.readouterr().out)
        assert len(documents) == 2
        assert all(doc["metadata"]["namespaceId"] == "B1" for doc in documents)

    def test_query_without_api_key_fails(self, tmp_path, capsys):
        from retrieval_engine.cli.commands import run_query_cli

        with patch.dict("os.environ", {"VECTOR_STORAGE_DIR": str(tmp_path)}, clear=True):
            with patch("sys.argv", ["query", "B1", "hours"]):
                assert run_query_cli() == 1

        assert "OPENAI_API_KEY" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# BACKUP
# ---------------------------------------------------------------------------


class TestBackup:

    def test_create_backup_archives_directory(self, tmp_path):
        from retrieval_engine.cli.commands import create_backup

        source = tmp_path / "vector-store"
        source.mkdir()
        write_namespace(source, "B1", 1)

        archive = create_backup(source, tmp_path / "backups")

        assert archive.name.startswith("vector-store-")
        with tarfile.open(archive) as tar:
            assert "vector-store/B1.json" in tar.getnames()

    def test_create_backup_keeps_newest(self, tmp_path):
        from retrieval_engine.cli.commands import create_backup

        source = tmp_path / "vector-store"
        source.mkdir()
        backups = tmp_path / "backups"
        backups.mkdir()
        for day in range(1, 5):
            (backups / f"vector-store-2000-01-0{day}T00-00-00-000000Z.tar.gz").write_bytes(b"")
        (backups / "notes.txt").write_text("keep me")

        newest = create_backup(source, backups, keep=2)

        remaining = sorted(p.name for p in backups.iterdir())
        assert remaining == sorted([
            newest.name,
            "vector-store-2000-01-04T00-00-00-000000Z.tar.gz",
            "notes.txt",
        ])

    def test_create_backup_missing_source(self, tmp_path):
        from retrieval_engine.cli.commands import create_backup

        with pytest.raises(FileNotFoundError):
            create_backup(tmp_path / "missing", tmp_path / "backups")

    def test_backup_cli_reports_failure(self, tmp_path, capsys):
        from retrieval_engine.cli.commands import run_backup_cli

        env = {"VECTOR_STORAGE_DIR": str(tmp_path / "missing")}
        with patch.dict("os.environ", env, clear=True):
            with patch("sys.argv", ["backup", "--dest", str(tmp_path / "backups")]):
                assert run_backup_cli() == 1

        assert "Backup failed" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# VALIDATE
# ---------------------------------------------------------------------------


class TestValidateCli:

    def test_passes_with_mock_embeddings_and_data(self, env, capsys):
        from pathlib import Path
        from retrieval_engine.cli.commands import run_validate_cli

        write_namespace(Path(env["VECTOR_STORAGE_DIR"]), "B1", 2)

        with patch.dict("os.environ", env, clear=True):
            with patch("sys.argv", ["validate"]):
                assert run_validate_cli() == 0

        assert "VALIDATION: PASSED" in capsys.readouterr().out

    def test_fails_on_empty_store(self, env, capsys):
        from retrieval_engine.cli.commands import run_validate_cli

        with patch.dict("os.environ", env, clear=True):
            with patch("sys.argv", ["validate"]):
                assert run_validate_cli() == 1

        assert "[FAIL] Vector search" in capsys.readouterr().out
