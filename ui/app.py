from __future__ import annotations

import os
import secrets
from typing import Any
from urllib.parse import quote

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from vault import (
    APP_VERSION,
    MOODS,
    BackfillExhausted,
    CooldownActive,
    DuplicateDate,
    Journal,
    MemoryEntry,
    SaveResult,
    StorageFailure,
    ValidationError,
    VaultError,
    build_timeline,
    pretty_date,
    status_hint,
    streak_line,
    workspace_root as _workspace_root,
)
from vault.journal import DAY_KEY_RE


# ── HTML helpers ──────────────────────────────────────────────

def _escape(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#39;")
    )


def _entry_card_html(e: MemoryEntry) -> str:
    category = f'<div class="muted small">{_escape(e.category)}</div>' if e.category else ""
    return f"""
    <div class="entry">
      <div class="entry-top">
        <div class="entry-date">{_escape(pretty_date(e.day_key))}</div>
        <div class="entry-mood">{_escape(e.mood_glyph)} {_escape(e.mood)}</div>
      </div>
      <img class="entry-img" src="/api/entries/{e.day_key}/photo" alt="Memory photo" />
      <div class="entry-text">{_escape(e.reflection)}</div>
      {category}
      <a class="small" href="/api/entries/{e.day_key}/card">Memory card</a>
    </div>
    """


STYLE = """
body { font-family: system-ui, sans-serif; background: #fff5f8; color: #2b2b2b; margin: 0; }
.container { max-width: 640px; margin: 0 auto; padding: 16px; }
.card, .entry { background: #fff; border-radius: 16px; padding: 16px; margin: 12px 0; }
.muted { color: #5a5a5a; } .small { font-size: 13px; }
.error { color: #b00020; }
.month { font-weight: 700; margin-top: 20px; }
.entry-top { display: flex; justify-content: space-between; }
.entry-img { width: 100%; border-radius: 12px; margin: 8px 0; }
.moods label { display: inline-block; margin: 4px 8px 4px 0; }
"""


# ── Auth ──────────────────────────────────────────────────────

app = FastAPI(title="DayVault", version=APP_VERSION)

security = HTTPBasic(auto_error=False)


def get_current_user(credentials: HTTPBasicCredentials | None = Depends(security)) -> str:
    expected_username = os.environ.get("VAULT_USERNAME", "")
    expected_password = os.environ.get("VAULT_PASSWORD", "")

    if not expected_username or not expected_password:
        return "guest"

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Basic"},
        )

    correct_username = secrets.compare_digest(credentials.username.encode("utf-8"), expected_username.encode("utf-8"))
    correct_password = secrets.compare_digest(credentials.password.encode("utf-8"), expected_password.encode("utf-8"))

    if not (correct_username and correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username


def _journal() -> Journal:
    return Journal(_workspace_root()).load()


def _require_entry(journal: Journal, day: str) -> MemoryEntry:
    entry = journal.entries.get(day) if DAY_KEY_RE.match(day) else None
    if entry is None:
        raise HTTPException(status_code=404, detail=f"No memory for {day}")
    return entry


def _error_status(err: VaultError) -> int:
    if isinstance(err, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(err, DuplicateDate):
        return status.HTTP_409_CONFLICT
    if isinstance(err, CooldownActive):
        return status.HTTP_429_TOO_MANY_REQUESTS
    if isinstance(err, BackfillExhausted):
        return status.HTTP_403_FORBIDDEN
    if isinstance(err, StorageFailure):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_400_BAD_REQUEST


def _error_detail(err: VaultError) -> dict[str, Any]:
    detail: dict[str, Any] = {"reason": getattr(err, "reason", type(err).__name__), "message": str(err)}
    if isinstance(err, CooldownActive):
        detail["remainingSeconds"] = int(err.remaining.total_seconds())
    return detail


def _save_from_form(
    journal: Journal,
    day: str | None,
    mood: str | None,
    reflection: str,
    category: str,
    photo: UploadFile | None,
) -> SaveResult:
    data = photo.file.read() if photo is not None else b""
    return journal.save(
        day_key=day or journal.now_key(),
        photo=data,
        reflection=reflection,
        mood=mood,
        category=category,
        photo_type=(photo.content_type if photo is not None else None) or "application/octet-stream",
    )


# ── Pages ─────────────────────────────────────────────────────

@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"ok": "true", "version": APP_VERSION}


@app.get("/", response_class=HTMLResponse)
def index(error: str = "", username: str = Depends(get_current_user)) -> HTMLResponse:
    journal = _journal()
    streaks = journal.streaks()
    gate = journal.status()

    timeline_html = []
    for group in build_timeline(journal.all_entries()):
        timeline_html.append(f'<div class="month">{_escape(group["month"])}</div>')
        timeline_html.extend(_entry_card_html(e) for e in group["entries"])
    if not timeline_html:
        timeline_html.append('<div class="card muted">No memories yet. Choose a moment to begin.</div>')

    mood_inputs = "".join(
        f'<label><input type="radio" name="mood" value="{m.key}" {"checked" if i == 0 else ""} /> {m.glyph} {m.key}</label>'
        for i, m in enumerate(MOODS)
    )
    error_html = f'<div class="error">{_escape(error)}</div>' if error else ""

    html = f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>DayVault</title>
  <style>{STYLE}</style>
</head>
<body>
  <div class="container">
    <header>
      <h1>DayVault</h1>
      <div>{_escape(streak_line(streaks.current))}</div>
      <div class="muted small">Best: {streaks.best} · Last run: {streaks.last_run}</div>
    </header>

    <section class="card">
      <div class="muted">{_escape(status_hint(gate))}</div>
      {error_html}
      <form method="post" action="/save_memory" enctype="multipart/form-data">
        <p><input type="file" name="photo" accept="image/*" /></p>
        <p><input type="date" name="day" value="{_escape(journal.now_key())}" /></p>
        <div class="moods">{mood_inputs}</div>
        <p><textarea name="reflection" rows="3" placeholder="A short reflection"></textarea></p>
        <p><input type="text" name="category" placeholder="Category (optional)" /></p>
        <button type="submit">Save memory</button>
      </form>
    </section>

    <section>{''.join(timeline_html)}</section>
    <footer class="muted small">v{APP_VERSION} · One memory per day. Entries are permanent once saved.</footer>
  </div>
</body>
</html>"""
    return HTMLResponse(html)


@app.post("/save_memory")
def save_memory(
    day: str = Form(""),
    mood: str = Form(""),
    reflection: str = Form(""),
    category: str = Form(""),
    photo: UploadFile | None = File(None),
    username: str = Depends(get_current_user),
) -> RedirectResponse:
    journal = _journal()
    try:
        _save_from_form(journal, day, mood, reflection, category, photo)
    except VaultError as e:
        return RedirectResponse(url=f"/?error={quote(str(e))}", status_code=303)
    return RedirectResponse(url="/", status_code=303)


# ── JSON API ──────────────────────────────────────────────────

@app.get("/api/status")
def api_status(username: str = Depends(get_current_user)) -> dict[str, Any]:
    """Gate status + streak numbers for the home screen."""
    journal = _journal()
    gate = journal.status()
    return {
        "today": journal.now_key(),
        "gate": gate.to_dict(),
        "hint": status_hint(gate),
        "streak": journal.streaks().to_dict(),
        "policy": journal.policy.to_dict(),
    }


@app.get("/api/entries")
def api_list_entries(username: str = Depends(get_current_user)) -> dict[str, Any]:
    """Timeline, newest first, grouped by month."""
    journal = _journal()
    return {
        "count": len(journal.all_entries()),
        "months": [
            {"month": g["month"], "entries": [e.to_dict() for e in g["entries"]]}
            for g in build_timeline(journal.all_entries())
        ],
    }


@app.get("/api/entries/{day}")
def api_get_entry(day: str, username: str = Depends(get_current_user)) -> dict[str, Any]:
    return _require_entry(_journal(), day).to_dict()


@app.get("/api/entries/{day}/photo")
def api_entry_photo(day: str, username: str = Depends(get_current_user)) -> Response:
    journal = _journal()
    entry = _require_entry(journal, day)
    try:
        data = journal.photo(entry)
    except StorageFailure as e:
        raise HTTPException(status_code=503, detail=str(e))
    return Response(content=data, media_type=entry.photo_type)


@app.get("/api/entries/{day}/card")
def api_entry_card(day: str, username: str = Depends(get_current_user)) -> Response:
    """Shareable PNG card; rendered on demand if the stored copy is missing."""
    journal = _journal()
    entry = _require_entry(journal, day)
    try:
        data = journal.card(entry)
    except StorageFailure as e:
        raise HTTPException(status_code=503, detail=str(e))
    filename = f"DayVault-{entry.day_key}.png"
    return Response(
        content=data,
        media_type="image/png",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


@app.post("/api/memories")
def api_create_memory(
    day: str = Form(""),
    mood: str = Form(""),
    reflection: str = Form(""),
    category: str = Form(""),
    photo: UploadFile | None = File(None),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    """Gate and save one memory (multipart form)."""
    journal = _journal()
    try:
        result = _save_from_form(journal, day, mood, reflection, category, photo)
    except VaultError as e:
        raise HTTPException(status_code=_error_status(e), detail=_error_detail(e))
    return result.to_dict()
