"""Tests for the command line entry point."""
import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from notesync import main as main_module
from notesync.config import config
from notesync.exceptions import StorageError
from notesync.storage.engine import StorageEngine
from notesync.storage.note_repository import NoteRepository


@pytest.fixture
def cli_env(test_config, monkeypatch):
    """Keep CLI overrides and logging setup inside the test."""
    monkeypatch.setattr(config, "log_level", config.log_level)
    monkeypatch.setattr(main_module, "configure_logging", MagicMock(return_value=None))
    return test_config


class TestArgs:
    """Argument parsing and config overrides."""

    def test_parse_args(self):
        args = main_module.parse_args(
            ["--database-path", "x.db", "--api-url", "http://h", "--sync-once"]
        )
        assert args.database_path == "x.db"
        assert args.api_url == "http://h"
        assert args.sync_once is True

    def test_update_config(self, cli_env, tmp_path):
        args = main_module.parse_args(
            ["--database-path", str(tmp_path / "cli.db"), "--api-url", "https://remote.test"]
        )
        main_module.update_config(args)
        assert config.database_path == tmp_path / "cli.db"
        assert config.sync_api_url == "https://remote.test"

    def test_invalid_api_url_exits(self, cli_env):
        with pytest.raises(SystemExit) as exc_info:
            main_module.main(["--api-url", "not-a-url"])
        assert exc_info.value.code == 2


class TestSyncOnce:
    """--sync-once runs one cycle and exits."""

    def test_nothing_to_sync(self, cli_env, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main_module.main(["--sync-once"])
        assert exc_info.value.code == 0
        assert json.loads(capsys.readouterr().out)["outcome"] == "nothing_to_sync"

    def test_offline_exit_code(self, cli_env, capsys):
        with StorageEngine.open(cli_env.database_path) as storage:
            storage.migrate()
            NoteRepository(storage).add("pending")

        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        real_client = httpx.Client
        with patch(
            "notesync.services.sync_service.httpx.Client",
            side_effect=lambda **kw: real_client(
                timeout=kw["timeout"], transport=httpx.MockTransport(refuse)
            ),
        ):
            with pytest.raises(SystemExit) as exc_info:
                main_module.main(["--sync-once"])

        assert exc_info.value.code == 1
        assert json.loads(capsys.readouterr().out)["offline"] is True


class TestStartup:
    """Database setup before serving."""

    def test_uncreatable_database_directory_exits(self, cli_env, tmp_path, monkeypatch, caplog):
        blocker = tmp_path / "afile"
        blocker.write_text("not a directory")
        monkeypatch.setattr(config, "database_path", blocker / "notes.db")
        with pytest.raises(SystemExit) as exc_info:
            main_module.main([])
        assert exc_info.value.code == 1
        assert "Failed to open database" in caplog.text

    def test_startup_logs_note_count(self, cli_env, caplog):
        with StorageEngine.open(cli_env.database_path) as storage:
            storage.migrate()
            NoteRepository(storage).add("existing")

        caplog.set_level("INFO", logger="notesync")
        with patch.object(main_module, "NotesMcpServer"):
            main_module.main([])

        assert f"notesync {config.server_version}: database holds 1 notes" in caplog.text

    def test_migration_failure_exits(self, cli_env):
        with patch.object(
            StorageEngine, "migrate",
            side_effect=StorageError("Failed to initialize database schema"),
        ):
            with pytest.raises(SystemExit) as exc_info:
                main_module.main([])
        assert exc_info.value.code == 1

    def test_serves_mcp_and_closes_storage(self, cli_env):
        server = MagicMock()
        opened = []
        real_open = StorageEngine.open

        def tracking_open(*args, **kwargs):
            storage = real_open(*args, **kwargs)
            opened.append(storage)
            return storage

        with patch.object(StorageEngine, "open", side_effect=tracking_open), \
                patch.object(main_module, "NotesMcpServer", return_value=server) as server_cls:
            main_module.main([])

        server_cls.assert_called_once_with(opened[0])
        server.run.assert_called_once()
        assert opened[0].closed
