"""Logging setup and secret masking shared by the server and the CLI."""

from __future__ import annotations

import logging
import sys
from typing import Any, MutableMapping

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(level: int | str = logging.INFO, stream=None) -> logging.Logger:  # noqa: ANN001
    """Configure the root logger once and return the package logger."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)
    logger = logging.getLogger("page-token-sync")
    logger.setLevel(level)
    return logger


def mask_sensitive(value: str | None, keep_chars: int = 4) -> str:
    """Mask all but the first *keep_chars* characters of a secret."""
    if not value:
        return ""
    if len(value) <= keep_chars * 2:
        return "*" * len(value)
    return value[:keep_chars] + "*" * (len(value) - keep_chars)


class _ContextAdapter(logging.LoggerAdapter):
    """Append ``[key=value ...]`` to every message so any formatter shows it."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        if not self.extra:
            return msg, kwargs
        context = " ".join(f"{key}={value}" for key, value in self.extra.items())
        return f"{msg} [{context}]", kwargs


def context_logger(name: str, **context: str | None) -> logging.LoggerAdapter:
    """Return a logger that tags each message with the given identifiers.

    ``None`` values are dropped.  Pass identifiers only (operation, principal
    and resource ids, correlation ids); credentials go through
    :func:`mask_sensitive` in the message itself.

    Rendered as::

        WARNING page-token-sync.core.sync Skipping resource
            [operation=sync resource_id=104738294756123]
    """
    extra = {key: value for key, value in context.items() if value is not None}
    return _ContextAdapter(logging.getLogger(name), extra)
