"""Boundary-aware splitting of oversized answers."""

from __future__ import annotations

import math

from research_relay.types import Segment

NEWLINE_WINDOW = 500


def split(text: str, target_size: int, *, newline_window: int = NEWLINE_WINDOW) -> list[Segment]:
    """Split `text` into segments of at most `target_size` characters.

    A cut is moved back to just after the closest newline found in the last
    `newline_window` characters before it, so lines stay whole where possible.
    Concatenating the segments in index order yields `text` unchanged.
    """

    if target_size <= 0:
        raise ValueError("target_size must be positive")
    if len(text) <= target_size:
        return [Segment(index=1, total_count=1, content=text)]

    pieces: list[str] = []
    position = 0
    while position < len(text):
        end = position + target_size
        if end < len(text):
            window_start = max(position, end - newline_window)
            newline = text.rfind("\n", window_start, end)
            # Window start is inclusive; a newline at the segment start is no useful cut.
            if newline > position:
                end = newline + 1
        else:
            end = len(text)
        pieces.append(text[position:end])
        position = end

    total = len(pieces)
    return [
        Segment(index=index, total_count=total, content=content)
        for index, content in enumerate(pieces, start=1)
    ]


def needs_segmenting(text: str, target_size: int) -> bool:
    return len(text) > target_size


def estimate_segment_count(text: str, target_size: int) -> int:
    return max(1, math.ceil(len(text) / target_size))
