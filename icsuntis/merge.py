"""
Merging of contiguous lessons.

Two neighbouring events are coalesced when:
    title, location and description are equal AND current.end == next.start

A short break between lessons (end < next start) keeps them separate.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from icsuntis.model import NormalizedEvent


def _continues(current: NormalizedEvent, nxt: NormalizedEvent) -> bool:
    return (
        current.title == nxt.title
        and current.location == nxt.location
        and current.description == nxt.description
        and current.end == nxt.start
    )


def merge_events(events: Iterable[NormalizedEvent]) -> list[NormalizedEvent]:
    """
    Coalesce runs of contiguous, identical events. Order is never changed.

    Expects events sorted by ascending start.
    """
    merged: list[NormalizedEvent] = []
    current: NormalizedEvent | None = None

    for ev in events:
        if current is None:
            current = ev
        elif _continues(current, ev):
            current = replace(current, end=ev.end)
        else:
            merged.append(current)
            current = ev

    if current is not None:
        merged.append(current)
    return merged
