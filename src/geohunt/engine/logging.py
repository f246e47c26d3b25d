from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from typing_extensions import override

from rich.highlighter import Highlighter
from rich.logging import RichHandler
from rich.markup import escape

if TYPE_CHECKING:
    from rich.text import Text

    from geohunt.core.state import LogContext

LOGGER_NAME = "geohunt"

# --- PATTERNS ---
ZONE_PATTERN = re.compile(r"\bZone\[[^\]]+\]")
TASK_PATTERN = re.compile(r"\bTask\[[^\]]+\]")
GAIN_PATTERN = re.compile(r"\+\d+ pts\b")
LOSS_PATTERN = re.compile(r"-\d+ pts\b")
GATE_PATTERN = re.compile(r"\bGate \d+/\d+")

# Captures the team prefix "alpha:Red Foxes" written by TeamState.repr
TEAM_COMPOSITE_PATTERN = re.compile(r"(?P<prefix>\b[\w-]+:)(?P<name>[^\s|]+)")

COLOR = {
    "zone": "bold #d670d6",  # magenta
    "task": "bold #29b8db",  # cyan
    "gain": "bold #23d18b",  # light green
    "loss": "bold bright_red",
    "gate": "bold #ffaf00",  # orange
    "warning": "bold bright_red",
    "prefix": "grey50",
    "team": "bold white",
    "grace": "bold #f5f543",  # yellow
}


class ContextFilter(logging.Filter):
    """Inject per-session runtime context into every log record."""

    def __init__(self, log_context: LogContext, name: str = "") -> None:
        super().__init__(name)
        self.log_context: LogContext = log_context

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        logctx = self.log_context
        record.clock_ms = logctx.clock_ms
        record.team_repr = logctx.team_repr
        record.log_count = logctx.log_count
        logctx.inc_log_count()
        return True


class RichMarkupFormatter(logging.Formatter):
    @override
    def format(self, record: logging.LogRecord) -> str:
        clock_ms = getattr(record, "clock_ms", None)
        team_repr = getattr(record, "team_repr", "_")
        log_count = getattr(record, "log_count", 0)

        if clock_ms is None:
            prefix = record.name.removeprefix(f"{LOGGER_NAME}.")
        else:
            prefix = f"t={clock_ms / 1000:>8.1f} {team_repr}.{log_count}"
        # Messages contain literal brackets such as Task[id]; only the prefix is markup.
        message = escape(record.getMessage())

        # Base grey prefix; the highlighter applies stronger colours on top.
        return f"[{COLOR['prefix']}]{prefix:<24}[/{COLOR['prefix']}]  {message}"


class GameLogHighlighter(Highlighter):
    @override
    def highlight(self, text: Text) -> None:
        text.highlight_regex(ZONE_PATTERN, COLOR["zone"])
        text.highlight_regex(TASK_PATTERN, COLOR["task"])
        text.highlight_regex(GAIN_PATTERN, COLOR["gain"])
        text.highlight_regex(LOSS_PATTERN, COLOR["loss"])
        text.highlight_regex(GATE_PATTERN, COLOR["gate"])
        text.highlight_regex(r"\bGRACE\b", COLOR["grace"])
        text.highlight_regex(r"\bPENALTY\b", COLOR["loss"])
        text.highlight_regex(r"!!!", COLOR["warning"])

        for match in TEAM_COMPOSITE_PATTERN.finditer(text.plain):
            start, end = match.span("name")
            text.stylize(COLOR["team"], start=start, end=end)


def configure_logging(level: int = logging.INFO) -> None:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    handler = RichHandler(
        markup=True,
        show_path=False,
        show_time=False,
        highlighter=GameLogHighlighter(),
    )
    handler.setFormatter(RichMarkupFormatter())
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False
