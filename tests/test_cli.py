from unittest.mock import patch

import pytest

from chatline.cli import build_parser, main
from chatline.config import ServerConfig


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ServerConfig.model_fields:
        key = "CHATLINE_" + name.upper()
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


def discard(coro):
    coro.close()


class TestParser:
    def test_defaults_leave_config_to_environment(self):
        args = build_parser().parse_args([])

        assert args.host is None
        assert args.port is None
        assert args.idle_timeout is None
        assert args.log_level == "INFO"

    def test_parses_flags(self):
        args = build_parser().parse_args(
            ["--port", "9000", "--idle-timeout", "5", "--queue-size", "10"]
        )

        assert args.port == 9000
        assert args.idle_timeout == 5
        assert args.outbound_queue_size == 10


class TestMain:
    @patch("chatline.cli.asyncio.run", side_effect=discard)
    def test_runs_server_with_flags(self, mock_run, clean_env):
        # Act
        code = main(["--port", "0", "--idle-timeout", "5"])

        # Assert
        assert code == 0
        mock_run.assert_called_once()

    @patch("chatline.cli.asyncio.run", side_effect=discard)
    def test_invalid_config_exits_with_usage_error(self, mock_run, clean_env, capsys):
        code = main(["--idle-timeout", "0"])

        assert code == 2
        assert "Invalid configuration" in capsys.readouterr().err
        mock_run.assert_not_called()

    @patch("chatline.cli.prompt_idle_timeout", side_effect=EOFError("no input"))
    @patch("chatline.cli.asyncio.run", side_effect=discard)
    def test_missing_timeout_and_no_input(self, mock_run, mock_prompt, clean_env):
        code = main([])

        assert code == 2
        mock_prompt.assert_called_once()
        mock_run.assert_not_called()
