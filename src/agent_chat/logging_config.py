import re
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from loguru import logger

from agent_chat.credentials import mask

_CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> <level>{level:<8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}"

# OpenRouter keys and any bearer header value that ends up in a message.
_SECRET_PATTERN = re.compile(r"(?P<prefix>Bearer\s+)(?P<token>[\w.~+/=-]+)|(?P<key>sk-or-[\w-]+)")


def _mask_secret(match: re.Match) -> str:
    if match.group("key"):
        return mask(match.group("key"))
    return f"{match.group('prefix')}{mask(match.group('token'))}"


def redact_secrets(record: dict) -> None:
    """loguru patcher: mask provider credentials before any sink sees the record."""
    record["message"] = _SECRET_PATTERN.sub(_mask_secret, record["message"])


def _add_console(level: str) -> str:
    logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT)
    return f"console (stderr, {level})"


def _add_file(
    level: str,
    path: str = ".agent_chat/agent-chat.log",
    rotation: str = "10 MB",
    retention: int = 5,
    serialize: bool = False,
) -> str:
    """Rotating log file; ``serialize`` writes one JSON record per line."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        path,
        level=level,
        format=_FILE_FORMAT,
        rotation=rotation,
        retention=retention,
        serialize=serialize,
        enqueue=True,
    )
    kind = "json file" if serialize else "file"
    return f"{kind} ({path}, {level})"


_SINK_BUILDERS: dict[str, Callable[..., str]] = {
    "console": _add_console,
    "file": _add_file,
}

# Replies go to stdout, so stderr only carries warnings unless configured otherwise.
_DEFAULT_CONSUMERS = [
    {"type": "console", "level": "WARNING"},
    {"type": "file"},
]


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Replace loguru's sinks with the configured ones and describe each."""
    logger.remove()
    logger.configure(patcher=redact_secrets)

    descriptions: list[str] = []
    for entry in _DEFAULT_CONSUMERS if consumers is None else consumers:
        options = dict(entry)
        sink_type = options.pop("type", "")
        sink_level = str(options.pop("level", level)).upper()
        builder = _SINK_BUILDERS.get(sink_type)
        if builder is None:
            logger.warning(f"Unknown log consumer type: {sink_type!r}")
            continue
        descriptions.append(builder(sink_level, **options))

    return descriptions
