# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for service wiring and the command-line entry point."""

import threading
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from bazaar.audit import NullAuditSink
from bazaar.config import BotConfig, ConfigError, SlackConfig
from bazaar.service import MarketplaceService, main
from bazaar.slack.audit import SlackAuditSink


def _config(tmp_path: Path, audit: str | None = None) -> BotConfig:
    return BotConfig(
        slack=SlackConfig(bot_token="xoxb-t", app_token="xapp-t"),
        listings_channel_id="C_LISTINGS",
        create_channel_id="C_CREATE",
        audit_channel_id=audit,
        state_dir=tmp_path,
    )


def _service(tmp_path: Path, audit: str | None = None) -> MarketplaceService:
    client = MagicMock()
    client.conversations_history.return_value = {"messages": []}
    client.chat_postMessage.return_value = {"ts": "1.0"}
    return MarketplaceService(
        _config(tmp_path, audit),
        app=MagicMock(),
        handler=MagicMock(),
        client=client,
    )


class TestMarketplaceService:
    def test_wiring_without_audit_channel(self, tmp_path: Path) -> None:
        service = _service(tmp_path)
        assert isinstance(service.engine._audit, NullAuditSink)
        assert service.engine._ctx.parent_id == "C_LISTINGS"

    def test_wiring_with_audit_channel(self, tmp_path: Path) -> None:
        service = _service(tmp_path, audit="C_AUDIT")
        assert isinstance(service.engine._audit, SlackAuditSink)

    def test_start_and_stop(self, tmp_path: Path) -> None:
        service = _service(tmp_path)
        service.scheduler = MagicMock()
        scheduling = threading.Event()
        service.scheduler.start.side_effect = scheduling.set

        runner = threading.Thread(target=service.start)
        runner.start()
        assert scheduling.wait(timeout=5)

        service.stop()
        runner.join(timeout=5)

        assert not runner.is_alive()
        service._handler.connect.assert_called_once()
        service.scheduler.stop.assert_called_once()
        service._app.action.assert_called_once()
        service._app.view.assert_called_once()
        service._handler.close.assert_called_once()

    def test_stop_is_idempotent(self, tmp_path: Path) -> None:
        service = _service(tmp_path)
        service.stop()
        service.stop()
        service._handler.close.assert_not_called()


class TestMain:
    @pytest.fixture(autouse=True)
    def _quiet(self) -> Iterator[None]:
        with (
            patch("bazaar.service.configure_logging"),
            patch("bazaar.service.signal.signal"),
        ):
            yield

    def test_config_error(self) -> None:
        with patch(
            "bazaar.service.BotConfig.from_yaml",
            side_effect=ConfigError("bad"),
        ):
            assert main([]) == 1

    def test_init_failure(self) -> None:
        with (
            patch("bazaar.service.BotConfig.from_yaml"),
            patch(
                "bazaar.service.MarketplaceService",
                side_effect=RuntimeError("boom"),
            ),
        ):
            assert main([]) == 2

    def test_runtime_failure(self) -> None:
        service = MagicMock()
        service.start.side_effect = RuntimeError("crash")
        with (
            patch("bazaar.service.BotConfig.from_yaml"),
            patch("bazaar.service.MarketplaceService", return_value=service),
        ):
            assert main([]) == 3
        service.stop.assert_called()

    def test_clean_exit(self, tmp_path: Path) -> None:
        service = MagicMock()
        config_path = tmp_path / "bazaar.yaml"
        with (
            patch("bazaar.service.BotConfig.from_yaml") as from_yaml,
            patch("bazaar.service.MarketplaceService", return_value=service),
        ):
            assert main(["--config", str(config_path), "--debug"]) == 0
        from_yaml.assert_called_once_with(config_path=config_path)
        service.stop.assert_called()
