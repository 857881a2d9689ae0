"""
HTTP surface (Flask).

    GET  /              -> page with the subscription link
    GET  /calendar.ics  -> the timetable as iCalendar file
    GET  /remap         -> edit form for the remap tables
    POST /remap         -> apply updates, invalidate cache, redirect to /remap
"""

from __future__ import annotations

import logging
from typing import Optional

from flask import Flask, Response, redirect, render_template_string, request, url_for

from icsuntis.config import Settings, get_settings, resolve_credentials
from icsuntis.errors import ConfigurationError
from icsuntis.feed import FeedAssembler
from icsuntis.remap import KINDS, RemapTable
from icsuntis.storage import load_remap_table, save_remap_table

logger = logging.getLogger(__name__)

INDEX_HTML = """<!DOCTYPE html>
<html lang="de">
<head><meta charset="utf-8"><title>ICSUntis</title></head>
<body>
  <h1>Dein Kalender-Link</h1>
  <p><a href="{{ ics_url }}">{{ ics_url }}</a></p>
  <p><a href="{{ url_for('remap_form') }}">Namen anpassen</a></p>
</body>
</html>
"""

REMAP_HTML = """<!DOCTYPE html>
<html lang="de">
<head><meta charset="utf-8"><title>ICSUntis – Remap</title></head>
<body>
  <h1>Remap</h1>
  <form method="post" action="{{ url_for('remap_update') }}">
  {% for kind, table in tables.items() %}
    <h2>{{ kind }}</h2>
    <table>
      <tr><th>WebUntis</th><th>Anzeige</th></tr>
      {% for raw, display in table.items() %}
      <tr>
        <td>{{ raw }}</td>
        <td><input type="text" name="{{ kind }}:{{ raw }}" value="{{ display }}"></td>
      </tr>
      {% endfor %}
    </table>
  {% endfor %}
    <h2>Neuer Eintrag</h2>
    <select name="new_kind">
      {% for kind in tables %}<option value="{{ kind }}">{{ kind }}</option>{% endfor %}
    </select>
    <input type="text" name="new_key" placeholder="WebUntis-Name">
    <input type="text" name="new_value" placeholder="Anzeigename">
    <button type="submit">Speichern</button>
  </form>
  <p>Leeres Feld entfernt den Eintrag.</p>
</body>
</html>
"""


def _text(body: str, status: int) -> Response:
    return Response(body, status=status, mimetype="text/plain")


def _parse_remap_form(form) -> list[tuple[str, str, str]]:
    """
    Turn form fields into (kind, raw, display) updates.

    Existing entries arrive as "<kind>:<raw>" fields, a new one as new_kind/new_key/new_value.
    """
    updates: list[tuple[str, str, str]] = []
    for field, value in form.items():
        kind, sep, raw = field.partition(":")
        if sep and kind in KINDS and raw:
            updates.append((kind, raw, value))

    new_kind = (form.get("new_kind") or "").strip()
    new_key = (form.get("new_key") or "").strip()
    new_value = (form.get("new_value") or "").strip()
    if new_kind in KINDS and new_key and new_value:
        updates.append((new_kind, new_key, new_value))
    return updates


def create_app(settings: Optional[Settings] = None, assembler: Optional[FeedAssembler] = None) -> Flask:
    """
    Build the Flask application. Tests pass their own assembler with a fake WebUntis client.
    """
    settings = settings if settings is not None else get_settings()
    if assembler is None:
        remap = RemapTable(load_remap_table(settings.remap_file))
        assembler = FeedAssembler(settings, remap=remap)

    app = Flask(__name__)
    app.config["ASSEMBLER"] = assembler

    @app.get("/")
    def index() -> str:
        ics_url = url_for("calendar_ics", _external=True)
        return render_template_string(INDEX_HTML, ics_url=ics_url)

    @app.get("/calendar.ics")
    def calendar_ics() -> Response:
        try:
            credentials = resolve_credentials(request.args)
        except ConfigurationError as exc:
            logger.warning("Rejected calendar request: %s", exc)
            return _text(str(exc), 400)

        result = assembler.get_calendar(credentials)
        if not result.ok or result.payload is None:
            return _text(result.message, result.status)

        resp = Response(result.payload, status=200, mimetype="text/calendar")
        resp.headers["Content-Disposition"] = 'attachment; filename="timetable.ics"'
        return resp

    @app.get("/remap")
    def remap_form() -> str:
        return render_template_string(REMAP_HTML, tables=assembler.remap.snapshot().as_dict())

    @app.post("/remap")
    def remap_update() -> Response:
        updates = _parse_remap_form(request.form)
        assembler.update_remap(updates)
        if settings.remap_file is not None:
            try:
                save_remap_table(assembler.remap.snapshot(), settings.remap_file)
            except OSError as exc:
                logger.error("Could not write remap file %s: %s", settings.remap_file, exc)
        return redirect(url_for("remap_form"), code=303)

    return app
