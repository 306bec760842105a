"""Printing a plan as a table or as a drawn graph of stages."""

from __future__ import annotations

import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TextIO

from .draw import Pen, Style

_HEADER = ("Stage", "Job ID", "Job name", "Workflow name", "Workflow file", "Events")

_DUPLICATE_NOTICE = (
    "\nDetected multiple jobs with the same job name, "
    "use `-W` to specify the path to the specific workflow.\n"
)


@dataclass(frozen=True)
class JobLine:
    """One planned job run as shown in listings."""

    job_id: str
    job_name: str
    workflow_name: str = ""
    workflow_file: str = ""
    events: tuple[str, ...] = ()


Stages = Iterable[Sequence[JobLine]]


def print_list(stages: Stages, out: TextIO | None = None) -> None:
    """Write a table of the jobs in each stage to ``out``.

    A notice follows the table when two jobs share an ID.
    """
    out = out if out is not None else sys.stdout
    rows: list[tuple[str, ...]] = []
    seen: set[str] = set()
    duplicates = False
    for index, stage in enumerate(stages):
        for job in stage:
            if job.job_id in seen:
                duplicates = True
            seen.add(job.job_id)
            rows.append(
                (
                    str(index),
                    job.job_id,
                    job.job_name,
                    job.workflow_name,
                    job.workflow_file,
                    ",".join(job.events),
                )
            )

    widths = [max(map(len, column)) for column in zip(_HEADER, *rows)]
    widths = [width + 2 for width in widths[:-1]] + widths[-1:]

    for row in (_HEADER, *rows):
        out.write("".join(f"{cell:<{width}}" for cell, width in zip(row, widths)) + "\n")
    if duplicates:
        out.write(_DUPLICATE_NOTICE)


def draw_graph(stages: Stages, out: TextIO | None = None) -> None:
    """Draw each stage as a row of boxes, with arrows between stages."""
    out = out if out is not None else sys.stdout
    job_pen = Pen(Style.SINGLE_LINE, 96)
    arrow_pen = Pen(Style.NO_LINE, 97)

    drawings = []
    for index, stage in enumerate(stages):
        if index > 0:
            drawings.append(arrow_pen.draw_arrow())
        drawings.append(job_pen.draw_boxes(*(job.job_name for job in stage)))

    max_width = max((drawing.width for drawing in drawings), default=0)
    for drawing in drawings:
        drawing.draw(out, max_width)