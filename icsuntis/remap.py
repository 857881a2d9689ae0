"""
Remap table: raw WebUntis names -> display names.

Three ordered mappings (subjects, rooms, teachers). Readers take a snapshot at
the start of a transform pass, so an update applied meanwhile never produces a
calendar that mixes old and new names.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

KINDS = ("subjects", "rooms", "teachers")

DEFAULT_SUBJECTS = {
    "eng_LK_5": "Englisch LK",
    "mathe_GK_3": "Mathematik GK",
    "bio_LK_2": "Biologie LK",
}


@dataclass(frozen=True)
class RemapSnapshot:
    """Read-only copy of the remap table."""

    subjects: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    rooms: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    teachers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def lookup(self, kind: str, name: str) -> str | None:
        return getattr(self, kind).get(name)

    def as_dict(self) -> dict[str, dict[str, str]]:
        return {kind: dict(getattr(self, kind)) for kind in KINDS}


class RemapTable:
    """
    Mutable remap table shared by all requests.

    Only `apply()` and `replace()` mutate it; both are atomic with respect to `snapshot()`.
    """

    def __init__(self, tables: Mapping[str, Mapping[str, str]] | None = None) -> None:
        self._lock = threading.Lock()
        self._tables: dict[str, dict[str, str]] = {kind: {} for kind in KINDS}
        if tables:
            self.replace(tables)

    def snapshot(self) -> RemapSnapshot:
        with self._lock:
            return RemapSnapshot(**{kind: MappingProxyType(dict(self._tables[kind])) for kind in KINDS})

    def replace(self, tables: Mapping[str, Mapping[str, str]]) -> None:
        new: dict[str, dict[str, str]] = {kind: {} for kind in KINDS}
        for kind in KINDS:
            for raw, display in (tables.get(kind) or {}).items():
                raw_s, display_s = str(raw).strip(), str(display).strip()
                if raw_s and display_s:
                    new[kind][raw_s] = display_s
        with self._lock:
            self._tables = new

    def apply(self, updates: Iterable[tuple[str, str, str]]) -> int:
        """
        Apply (kind, raw, display) updates. An empty display removes the entry.

        Returns the number of entries that actually changed.
        """
        changed = 0
        with self._lock:
            for kind, raw, display in updates:
                if kind not in KINDS:
                    raise ValueError(f"Unknown remap kind: {kind!r}")
                raw = raw.strip()
                display = display.strip()
                if not raw:
                    continue
                table = self._tables[kind]
                if not display:
                    if table.pop(raw, None) is not None:
                        changed += 1
                elif table.get(raw) != display:
                    table[raw] = display
                    changed += 1
        return changed
