"""Terminal box drawing used to render workflow graphs."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import IntEnum
from typing import NamedTuple, TextIO


class Style(IntEnum):
    """Line style of a drawn box."""

    DOUBLE_LINE = 0
    SINGLE_LINE = 1
    DASHED_LINE = 2
    NO_LINE = 3


class _StyleDef(NamedTuple):
    corner_tl: str
    corner_tr: str
    corner_bl: str
    corner_br: str
    line_h: str
    line_v: str


_STYLE_DEFS = {
    Style.DOUBLE_LINE: _StyleDef("\u2554", "\u2557", "\u255a", "\u255d", "\u2550", "\u2551"),
    Style.SINGLE_LINE: _StyleDef("\u256d", "\u256e", "\u2570", "\u256f", "\u2500", "\u2502"),
    Style.DASHED_LINE: _StyleDef("\u250c", "\u2510", "\u2514", "\u2518", "\u254c", "\u254e"),
    Style.NO_LINE: _StyleDef(" ", " ", " ", " ", " ", " "),
}


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


@dataclass(frozen=True)
class Drawing:
    """A rendered block of text with its nominal width."""

    text: str
    width: int

    def draw(self, writer: TextIO, center_on_width: int) -> None:
        """Write the drawing to ``writer``, centred within ``center_on_width``."""
        pad = max(0, (center_on_width - self.width) // 2)
        padding = " " * pad
        for line in self.text.split("\n"):
            if line:
                writer.write(f"{padding}{line}\n")


class Pen:
    """Draws boxes and arrows in one style and colour."""

    def __init__(self, style: Style, color: int) -> None:
        bgcolor = 49
        if os.environ.get("CLICOLOR") == "0":
            color = 0
            bgcolor = 0
        self.style = Style(style)
        self.color = color
        self.bgcolor = bgcolor

    def _row(self, labels: tuple[str, ...], render) -> str:
        parts = []
        for label in labels:
            parts.append(" ")
            parts.append(f"\x1b[{self.color};{self.bgcolor}m")
            parts.append(render(label))
            parts.append("\x1b[0m")
        parts.append("\n")
        return "".join(parts)

    def draw_arrow(self) -> Drawing:
        """Return a downward arrow drawing."""
        return Drawing(f"\x1b[{self.color}m\u2b07\x1b[0m", 1)

    def draw_boxes(self, *labels: str) -> Drawing:
        """Return a row of boxes, one around each label."""
        style = _STYLE_DEFS[self.style]
        width = sum(_byte_len(label) + 5 for label in labels)

        def bar(label: str) -> str:
            return style.line_h * (_byte_len(label) + 2)

        top = self._row(labels, lambda l: f"{style.corner_tl}{bar(l)}{style.corner_tr}")
        middle = self._row(labels, lambda l: f"{style.line_v} {l} {style.line_v}")
        bottom = self._row(labels, lambda l: f"{style.corner_bl}{bar(l)}{style.corner_br}")
        return Drawing(top + middle + bottom, width)