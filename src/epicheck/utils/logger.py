"""
███████╗██████╗ ██╗ ██████╗██╗  ██╗███████╗ ██████╗██╗  ██╗
██╔════╝██╔══██╗██║██╔════╝██║  ██║██╔════╝██╔════╝██║ ██╔╝
█████╗  ██████╔╝██║██║     ███████║█████╗  ██║     █████╔╝
██╔══╝  ██╔═══╝ ██║██║     ██╔══██║██╔══╝  ██║     ██╔═██╗
███████╗██║     ██║╚██████╗██║  ██║███████╗╚██████╗██║  ██╗
╚══════╝╚═╝     ╚═╝ ╚═════╝╚═╝  ╚═╝╚══════╝ ╚═════╝╚═╝  ╚═╝
src/epicheck/utils/logger.py
Layered logging for EpiCheck, rendered with rich.

Records carry a ``layer`` (step, success, warning, error, debug, user) that
picks the icon and style printed on the terminal. ``LOG_PROFILE`` sets the
terminal verbosity (quiet, user, debug, verbose), ``LOG_LEVEL`` overrides
it, and ``LOG_FILE`` mirrors every record into a plain-text file.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Optional, Tuple

from rich.console import Console
from rich.status import Status
from rich.text import Text

__all__ = [
    "logger",
    "step",
    "success",
    "debug_detail",
    "get_logger",
    "spinner",
    "set_log_profile",
    "RichLayerHandler",
]

BASE_LOGGER_NAME = "epicheck"

LOG_PROFILE = (os.getenv("LOG_PROFILE") or "user").lower()
LOG_FILE = os.getenv("LOG_FILE")
LOG_LEVEL_OVERRIDE = os.getenv("LOG_LEVEL")

PROFILE_LEVELS: Dict[str, int] = {
    "quiet": logging.WARNING,
    "user": logging.INFO,
    "debug": logging.DEBUG,
    "verbose": logging.DEBUG,
}

LAYER_STYLES: Dict[str, Tuple[str, str]] = {
    "step": ("▶", "bold blue"),
    "success": ("✓", "bold green"),
    "warning": ("!", "bold yellow"),
    "error": ("✗", "bold red"),
    "debug": ("·", "magenta"),
    "user": ("•", ""),
}

_LEVEL_LAYERS: Dict[int, str] = {
    logging.WARNING: "warning",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}

CONSOLE = Console(stderr=True, highlight=False, no_color=os.getenv("NO_COLOR") is not None)


class RichLayerHandler(logging.Handler):
    """Print each record as ``<icon> <message>`` on a rich console."""

    def __init__(self, console: Optional[Console] = None, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.console = console or CONSOLE

    def render(self, record: logging.LogRecord) -> Text:
        layer = getattr(record, "layer", "user")
        icon, style = LAYER_STYLES.get(layer, LAYER_STYLES["user"])
        line = Text()
        line.append(icon, style=style)
        line.append(" ")
        line.append(record.getMessage(), style="dim" if layer == "debug" else "")
        if record.exc_info:
            line.append("\n" + logging.Formatter().formatException(record.exc_info), style="red")
        return line

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.console.print(self.render(record))
        except Exception:
            self.handleError(record)


class LayeredAdapter(logging.LoggerAdapter):
    """Adapter that tags records with a layer.

    An explicit ``layer=`` wins, then the level (warnings and errors get
    their own layer), then the adapter default.
    """

    def __init__(self, logger: logging.Logger, default_layer: str = "user") -> None:
        super().__init__(logger, {"layer": default_layer})

    def log(self, level: int, msg, *args, layer: Optional[str] = None, **kwargs) -> None:
        if not self.isEnabledFor(level):
            return
        extra = dict(kwargs.pop("extra", None) or {})
        extra.setdefault("layer", layer or _LEVEL_LAYERS.get(level) or self.extra["layer"])
        self.logger.log(level, msg, *args, extra=extra, **kwargs)


def _console_level() -> int:
    level = PROFILE_LEVELS.get(LOG_PROFILE, logging.INFO)
    if LOG_LEVEL_OVERRIDE:
        override = logging.getLevelName(LOG_LEVEL_OVERRIDE.upper())
        if isinstance(override, int):
            level = override
    return level


def _configure_base_logger() -> LayeredAdapter:
    base_logger = logging.getLogger(BASE_LOGGER_NAME)
    if base_logger.handlers:
        return LayeredAdapter(base_logger)

    base_logger.setLevel(logging.DEBUG)
    base_logger.addHandler(RichLayerHandler(level=_console_level()))

    if LOG_FILE:
        try:
            file_handler = logging.FileHandler(LOG_FILE, encoding="utf-8")
        except OSError as exc:
            base_logger.warning("Cannot write log file %s: %s", LOG_FILE, exc)
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s", "%Y-%m-%d %H:%M:%S")
            )
            base_logger.addHandler(file_handler)

    return LayeredAdapter(base_logger)


logger = _configure_base_logger()


def step(message: str) -> None:
    """Announce a stage of a command."""
    logger.info(message, layer="step")


def success(message: str) -> None:
    logger.info(message, layer="success")


def debug_detail(message: str) -> None:
    """Only shown with LOG_PROFILE=debug or --debug."""
    logger.debug(message, layer="debug")


def get_logger(name: str, *, layer: str = "user") -> LayeredAdapter:
    """Child of the ``epicheck`` logger with layered output."""
    return LayeredAdapter(logging.getLogger(f"{BASE_LOGGER_NAME}.{name}"), default_layer=layer)


class _Spinner:
    """Async context manager showing a rich status line while work runs."""

    def __init__(self, message: str, console: Console) -> None:
        self.message = message
        self._console = console
        self._status: Optional[Status] = None

    async def __aenter__(self) -> "_Spinner":
        if self._console.is_terminal:
            self._status = self._console.status(self.message, spinner="dots")
            self._status.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if self._status is not None:
            self._status.stop()
        if exc_type is not None:
            logger.error("%s: %s", self.message, exc or exc_type.__name__)
        else:
            success(self.message)
        return False

    def update(self, message: str) -> None:
        self.message = message
        if self._status is not None:
            self._status.update(message)


def spinner(message: str) -> _Spinner:
    return _Spinner(message, CONSOLE)


def set_log_profile(profile: str) -> None:
    """Change terminal verbosity after start-up."""
    global LOG_PROFILE
    LOG_PROFILE = (profile or "user").lower()
    level = PROFILE_LEVELS.get(LOG_PROFILE, logging.INFO)
    for handler in logging.getLogger(BASE_LOGGER_NAME).handlers:
        if isinstance(handler, RichLayerHandler):
            handler.setLevel(level)
    os.environ["LOG_PROFILE"] = LOG_PROFILE
