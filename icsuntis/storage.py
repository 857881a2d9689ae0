"""
Persistent storage for the remap table.

The file (path from REMAP_FILE) looks like:

    {"subjects": {"mat_GK_11": "Mathematik GK"}, "rooms": {}, "teachers": {}}

Only the remap table is stored; events are always fetched fresh from WebUntis.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from icsuntis.remap import DEFAULT_SUBJECTS, KINDS, RemapSnapshot

logger = logging.getLogger(__name__)


def default_tables() -> dict[str, dict[str, str]]:
    return {"subjects": dict(DEFAULT_SUBJECTS), "rooms": {}, "teachers": {}}


def load_remap_table(path: str | Path | None = None) -> dict[str, dict[str, str]]:
    """
    Load remap tables from JSON.

    Returns the built-in defaults if no path is given, and empty tables if the
    file does not exist or is invalid. Never raises.
    """
    if path is None:
        return default_tables()

    remap_path = Path(path)
    if not remap_path.exists():
        return {kind: {} for kind in KINDS}

    try:
        data = json.loads(remap_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning("Ignoring unreadable remap file %s: %s", remap_path, exc)
        return {kind: {} for kind in KINDS}

    out: dict[str, dict[str, str]] = {kind: {} for kind in KINDS}
    if not isinstance(data, dict):
        return out
    for kind in KINDS:
        table = data.get(kind, {})
        if not isinstance(table, dict):
            continue
        for raw, display in table.items():
            if isinstance(raw, str) and isinstance(display, str) and raw.strip() and display.strip():
                out[kind][raw.strip()] = display.strip()
    return out


def save_remap_table(snapshot: RemapSnapshot, path: str | Path) -> None:
    """
    Save the remap tables as JSON. Creates parent directories if needed.
    """
    remap_path = Path(path)
    remap_path.parent.mkdir(parents=True, exist_ok=True)

    payload = {kind: dict(sorted(table.items())) for kind, table in snapshot.as_dict().items()}
    remap_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
