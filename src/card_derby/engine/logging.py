from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, override

from rich.highlighter import Highlighter
from rich.logging import RichHandler

from card_derby.core.palettes import get_suit_color
from card_derby.core.types import SUITS

if TYPE_CHECKING:
    from rich.text import Text

    from card_derby.engine.race import RaceController

LOGGER_NAME = "card_derby"

# --- PATTERNS ---
SUIT_PATTERN = re.compile(rf"(?P<suit>{'|'.join(map(re.escape, SUITS))})(?P<rank>10|[2-9JQKA])?")

COLOR = {
    "advance": "bold #23d18b",  # light green
    "retreat": "bold #f14c4c",  # red
    "reveal": "bold #29b8db",  # cyan
    "warning": "bold bright_red",
    "prefix": "grey50",
    "winner": "bold #f5f543",  # yellow
    "stage": "bold #d670d6",  # magenta
}


class ContextFilter(logging.Filter):
    """Inject per-race runtime context into every log record."""

    def __init__(self, race: RaceController, name: str = "") -> None:
        super().__init__(name)
        self.race: RaceController = race

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        logctx = self.race.log_context
        record.draw_number = logctx.draw_number
        record.draw_log_count = logctx.draw_log_count
        record.card_repr = logctx.current_card_repr
        record.race_id = logctx.race_id
        logctx.inc_log_count()
        return True


class RichMarkupFormatter(logging.Formatter):
    @override
    def format(self, record: logging.LogRecord) -> str:
        draw_number = getattr(record, "draw_number", 0)
        draw_log_count = getattr(record, "draw_log_count", 0)
        card_repr = getattr(record, "card_repr", "_")
        race_id = getattr(record, "race_id", 0)

        prefix = f"{race_id} {draw_number}.{card_repr}.{draw_log_count}"
        message = record.getMessage()

        # The highlighter applies stronger colours on top of the grey prefix.
        return f"[{COLOR['prefix']}]{prefix:<14}[/{COLOR['prefix']}]  {message}"


class RaceLogHighlighter(Highlighter):
    @override
    def highlight(self, text: Text) -> None:
        text.highlight_regex(r"\bAdvance\b", COLOR["advance"])
        text.highlight_regex(r"\bRetreat\b", COLOR["retreat"])
        text.highlight_regex(r"\bReveal stage \d\b", COLOR["reveal"])
        text.highlight_regex(r"\bWINS THE RACE\b", COLOR["winner"])
        text.highlight_regex(r"!!!", COLOR["warning"])
        text.highlight_regex(r"\bStages revealed: \d/\d\b", COLOR["stage"])

        for match in SUIT_PATTERN.finditer(text.plain):
            start, end = match.span()
            text.stylize(f"bold {get_suit_color(match.group('suit'))}", start=start, end=end)


def configure_logging(level: int = logging.INFO) -> None:
    logger = logging.getLogger()
    logger.setLevel(level)
    handler = RichHandler(
        markup=True,
        show_path=False,
        show_time=False,
        highlighter=RaceLogHighlighter(),
    )
    handler.setFormatter(RichMarkupFormatter())
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False
