"""Reading session persistence, one JSON file per client session."""

import json
import os
import re
import tempfile
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

from ukraine_reader.models.session import SessionEvent, SessionRecord, SessionStart
from ukraine_reader.storage.locking import exclusive_lock

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def is_valid_session_id(session_id: str) -> bool:
    return bool(SESSION_ID_PATTERN.match(session_id))


def _session_path(sessions_dir: Path, session_id: str) -> Path:
    if not is_valid_session_id(session_id):
        raise ValueError(f"Invalid session id: {session_id!r}")
    return sessions_dir / f"{session_id}.json"


@contextmanager
def session_lock(sessions_dir: Path, session_id: str) -> Iterator[None]:
    """Hold one session exclusively while its record is rewritten."""
    with exclusive_lock(_session_path(sessions_dir, session_id).with_suffix(".json.lock")):
        yield


def save_session(sessions_dir: Path, record: SessionRecord) -> None:
    path = _session_path(sessions_dir, record.start.client_session_id)
    with tempfile.NamedTemporaryFile(
        "w", dir=sessions_dir, delete=False, suffix=".json", encoding="utf-8"
    ) as tmp:
        tmp.write(record.model_dump_json(indent=2))
    os.replace(tmp.name, path)


def read_session(sessions_dir: Path, session_id: str) -> SessionRecord | None:
    """Stored session, or None if it was never started."""
    path = _session_path(sessions_dir, session_id)
    if not path.exists():
        return None
    return SessionRecord.model_validate(json.loads(path.read_text(encoding="utf-8")))


def record_session_start(sessions_dir: Path, start: SessionStart) -> SessionRecord:
    """Store a session start; starting an existing session again keeps the first record."""
    existing = read_session(sessions_dir, start.client_session_id)
    if existing is not None:
        return existing
    record = SessionRecord(start=start)
    save_session(sessions_dir, record)
    return record



def append_session_events(
    sessions_dir: Path, session_id: str, events: Iterable[SessionEvent]
) -> tuple[SessionRecord, int] | None:
    """Append reader events to a stored session.

    Events already stored (same ``event_id``) are skipped, so a client may
    resend a batch after a failed upload.

    Returns:
        The updated record and the number of newly accepted events, or None
        if the session was never started.
    """
    with session_lock(sessions_dir, session_id):
        record = read_session(sessions_dir, session_id)
        if record is None:
            return None
        seen = {event.event_id for event in record.events}
        accepted = 0
        for event in events:
            if event.event_id in seen:
                continue
            seen.add(event.event_id)
            record.events.append(event)
            accepted += 1
        if accepted:
            save_session(sessions_dir, record)
    return record, accepted
