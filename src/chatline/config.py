"""Server configuration.

Values come from, in increasing priority: defaults, the process environment
(after loading a ``.env`` file if present), and explicit overrides such as
command-line flags.
"""

import logging
import os
import sys
from typing import Any, Callable, TextIO

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "CHATLINE_"

TIMEOUT_PROMPT = "Enter connection time limit (seconds): "


class ServerConfig(BaseModel):
    """Settings applied uniformly to every connection."""

    host: str = "localhost"
    """
    Interface the listener binds to.
    """

    port: int = Field(default=8000, ge=0, le=65535)
    """
    TCP port to listen on. 0 picks a free port.
    """

    idle_timeout: float = Field(gt=0)
    """
    Seconds of silence after which a client is disconnected.
    """

    outbound_queue_size: int = Field(default=100, gt=0)
    """
    Lines buffered per client before the oldest undelivered one is dropped.
    """

    stream_limit: int = Field(default=64 * 1024, gt=0)
    """
    Longest accepted input line in bytes. Longer lines end the session.
    """


def env_settings(environ: dict[str, str] | None = None) -> dict[str, str]:
    """Collect ``CHATLINE_*`` variables as config field values.

    Args:
        environ: Mapping to read instead of ``os.environ``

    Returns:
        Field name to raw string value, for every field that is set
    """
    environ = os.environ if environ is None else environ
    settings = {}
    for name in ServerConfig.model_fields:
        value = environ.get(ENV_PREFIX + name.upper())
        if value:
            settings[name] = value
    return settings


def load_config(
    idle_timeout_prompt: Callable[[], int] | None = None, **overrides: Any
) -> ServerConfig:
    """Build the server config from the environment and overrides.

    Args:
        idle_timeout_prompt: Called to ask for the idle timeout when neither
            the environment nor the overrides provide one
        **overrides: Field values that take precedence; ``None`` values are
            ignored

    Raises:
        ValidationError: If a value is out of range or malformed
    """
    load_dotenv(find_dotenv(usecwd=True))
    settings: dict[str, Any] = env_settings()
    settings.update({k: v for k, v in overrides.items() if v is not None})

    if "idle_timeout" not in settings and idle_timeout_prompt is not None:
        settings["idle_timeout"] = idle_timeout_prompt()

    return ServerConfig(**settings)


def prompt_idle_timeout(
    stdin: TextIO | None = None, stdout: TextIO | None = None
) -> int:
    """Ask the operator for the idle timeout in whole seconds.

    Re-prompts until a positive integer is entered.

    Raises:
        EOFError: If input ends before a valid value is read
    """
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout

    while True:
        print(TIMEOUT_PROMPT, file=stdout, flush=True)
        line = stdin.readline()
        if not line:
            raise EOFError("No connection time limit entered")
        try:
            value = int(line.strip())
        except ValueError:
            logger.error(f"Invalid time limit {line.strip()!r}: not an integer")
            continue
        if value <= 0:
            logger.error(f"Invalid time limit {value}: must be positive")
            continue
        return value
