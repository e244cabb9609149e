"""Diagnostic run registry (JSON + atomic write)."""

import json
import os
import tempfile
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ukraine_reader.models.diagnostic import DiagnosticConfig, DiagnosticRunRecord
from ukraine_reader.storage.locking import exclusive_lock
from ukraine_reader.utils import utc_now


def is_valid_run_id(run_id: str) -> bool:
    try:
        uuid.UUID(run_id)
    except ValueError:
        return False
    return True


def _run_path(diagnostics_dir: Path, run_id: str) -> Path:
    if not is_valid_run_id(run_id):
        raise ValueError(f"Invalid run id: {run_id!r}")
    return diagnostics_dir / f"{run_id}.json"


@contextmanager
def run_lock(diagnostics_dir: Path, run_id: str) -> Iterator[None]:
    """Hold the run exclusively; every read-modify-write of a run goes through here."""
    lock_path = _run_path(diagnostics_dir, run_id).with_suffix(".json.lock")
    with exclusive_lock(lock_path):
        yield


def save_run(diagnostics_dir: Path, record: DiagnosticRunRecord) -> None:
    path = _run_path(diagnostics_dir, record.run_id)
    with tempfile.NamedTemporaryFile(
        "w", dir=diagnostics_dir, delete=False, suffix=".json", encoding="utf-8"
    ) as tmp:
        tmp.write(record.model_dump_json(indent=2))
    os.replace(tmp.name, path)


def read_run(diagnostics_dir: Path, run_id: str) -> DiagnosticRunRecord | None:
    path = _run_path(diagnostics_dir, run_id)
    if not path.exists():
        return None
    return DiagnosticRunRecord.model_validate(json.loads(path.read_text(encoding="utf-8")))


def create_run(
    diagnostics_dir: Path,
    token: str,
    languages: list[str],
    config: DiagnosticConfig,
    starting_skill_by_language: dict[str, float],
) -> DiagnosticRunRecord:
    """Register a new run for a diagnostic link token."""
    record = DiagnosticRunRecord(
        run_id=str(uuid.uuid4()),
        token=token,
        languages=languages,
        config=config,
        starting_skill_by_language=starting_skill_by_language,
        created_ts=utc_now(),
    )
    save_run(diagnostics_dir, record)
    return record
