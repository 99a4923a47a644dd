"""
CLI tests using click's CliRunner with configuration and collaborators mocked.
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import Mock, patch
from click.testing import CliRunner

from mailwatch.ai.claude_client import ClaudeClient
from mailwatch.core.config import LLMConfig
from mailwatch.main import build_claude_client, cli
from mailwatch.watch.manager import UnwatchResult, UnwatchStatus, WatchResult, WatchStatus
from mailwatch.gmail.parser import normalize_message
from tests.factories import GmailAPITestFactory


@pytest.fixture
def config():
    config = Mock()
    config.app.log_level = "INFO"
    config.app.log_file = None
    config.app.default_max_results = 50
    config.app.renew_threshold_hours = 24
    config.database.connection_string = "sqlite://"
    config.validate.return_value = []
    return config


@pytest.fixture
def runner(config):
    with patch("mailwatch.main.get_config", return_value=config), \
            patch("mailwatch.cli.watch_commands.get_config", return_value=config), \
            patch("mailwatch.main.setup_logging"):
        yield CliRunner()


def test_check_config_reports_errors(runner, config):
    config.validate.return_value = ["GOOGLE_CLIENT_ID not set in .env"]

    result = runner.invoke(cli, ["check-config"])

    assert result.exit_code == 1
    assert "GOOGLE_CLIENT_ID" in result.output


def test_check_config_valid(runner):
    result = runner.invoke(cli, ["check-config"])

    assert result.exit_code == 0
    assert "Configuration valid" in result.output


def test_fetch_prints_messages(runner):
    service = Mock()
    service.query_batch_messages.return_value = [
        normalize_message(GmailAPITestFactory.create_message(message_id="m1", subject="Invoice"))
    ]

    with patch("mailwatch.main.build_message_service", return_value=service):
        result = runner.invoke(cli, ["fetch", "-q", "from:x@y.com", "--max-results", "5", "--access-token", "t"])

    assert result.exit_code == 0
    assert "m1" in result.output
    assert "Invoice" in result.output
    service.query_batch_messages.assert_called_once_with(query="from:x@y.com", max_results=5)


def test_fetch_rejects_more_than_100(runner):
    result = runner.invoke(cli, ["fetch", "--max-results", "101"])

    assert result.exit_code != 0


def test_watch_start_reports_expiration(runner):
    manager = Mock()
    manager.watch.return_value = WatchResult(
        WatchStatus.WATCHED, expires_at=datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    )

    with patch("mailwatch.cli.watch_commands.DatabaseManager"), \
            patch("mailwatch.cli.watch_commands.build_watch_manager", return_value=manager):
        result = runner.invoke(cli, ["watch", "start", "--user-id", "u1", "--access-token", "t"])

    assert result.exit_code == 0
    assert "2023-11-14T22:13:20+00:00" in result.output


def test_watch_start_failure_exits_nonzero(runner):
    manager = Mock()
    manager.watch.return_value = WatchResult(WatchStatus.FAILED, error=RuntimeError("boom"))

    with patch("mailwatch.cli.watch_commands.DatabaseManager"), \
            patch("mailwatch.cli.watch_commands.build_watch_manager", return_value=manager):
        result = runner.invoke(cli, ["watch", "start", "--user-id", "u1"])

    assert result.exit_code == 1


def test_watch_stop_prints_status(runner):
    manager = Mock()
    manager.unwatch.return_value = UnwatchResult(UnwatchStatus.AUTHORIZATION_REVOKED)

    with patch("mailwatch.cli.watch_commands.DatabaseManager"), \
            patch("mailwatch.cli.watch_commands.build_watch_manager", return_value=manager):
        result = runner.invoke(cli, ["watch", "stop", "--user-id", "u1", "--refresh-token", "r"])

    assert result.exit_code == 0
    assert "authorization_revoked" in result.output
    manager.unwatch.assert_called_once_with("u1", None, "r")


def test_build_claude_client_uses_configured_cache(config):
    config.app.client_cache_size = 4
    config.app.client_cache_ttl_seconds = 120
    config.llm = LLMConfig(anthropic_api_key="k")

    with patch("mailwatch.main.Anthropic") as mock_anthropic:
        claude = build_claude_client(config)
        client = claude.cache.get("k")

    assert isinstance(claude, ClaudeClient)
    assert claude.config is config.llm
    assert claude.cache.max_size == 4
    assert claude.cache.ttl_seconds == 120
    mock_anthropic.assert_called_once_with(api_key="k")
    assert client is mock_anthropic.return_value
