"""Profile persistence (JSON + fcntl.flock + atomic write)."""

import fcntl
import json
import os
import tempfile
from collections.abc import Callable
from pathlib import Path

import structlog

from ukraine_reader.models.profile import (
    Language,
    Profile,
    ProfileSnapshot,
    default_profile,
    ensure_profile_shape,
)
from ukraine_reader.storage.locking import exclusive_lock
from ukraine_reader.utils import utc_now

logger = structlog.get_logger()

# Bands are recomputed on read and never persisted
DERIVED_FIELDS = {"comfort_band", "instructional_band", "frustration_band"}


class ProfileStore:
    """One JSON file per language under ``profiles_dir``.

    ``update`` serializes read-modify-write per language, both across
    threads (in-process lock) and across processes (``flock`` on a lock file).
    """

    def __init__(self, profiles_dir: Path):
        self.profiles_dir = profiles_dir
        self.profiles_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, language: Language | str) -> Path:
        return self.profiles_dir / f"{Language.parse(language).value}.json"

    def get(self, language: Language | str) -> Profile | None:
        """Stored profile (re-shaped), or None if the language was never used."""
        lang = Language.parse(language)
        path = self.path_for(lang)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            fcntl.flock(f, fcntl.LOCK_SH)
            raw = f.read()
            fcntl.flock(f, fcntl.LOCK_UN)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("profile_corrupt", language=lang.value, path=str(path))
            data = None
        return ensure_profile_shape(data, lang)

    def load(self, language: Language | str) -> Profile:
        """Stored profile, or a default one on first access."""
        profile = self.get(language)
        if profile is None:
            return default_profile(language)
        return profile

    def put(self, language: Language | str, profile: Profile) -> None:
        lang = Language.parse(language)
        path = self.path_for(lang)
        shaped = ensure_profile_shape(profile, lang)
        with tempfile.NamedTemporaryFile(
            "w", dir=path.parent, delete=False, suffix=".json", encoding="utf-8"
        ) as tmp:
            tmp.write(shaped.model_dump_json(exclude=DERIVED_FIELDS))
        os.replace(tmp.name, path)

    def update(self, language: Language | str, fn: Callable[[Profile], Profile]) -> Profile:
        """Apply ``fn`` to the current profile and persist the result atomically."""
        lang = Language.parse(language)
        path = self.path_for(lang)
        lock_path = path.with_suffix(".json.lock")
        with exclusive_lock(lock_path):
            updated = fn(self.load(lang))
            self.put(lang, updated)
        logger.info(
            "profile_saved",
            language=lang.value,
            skill_level=updated.skill_level,
            confidence=updated.confidence,
            bottleneck=updated.bottleneck.value,
        )
        return updated

    def export_snapshot(self) -> ProfileSnapshot:
        """Both languages as public profiles (history omitted)."""
        return ProfileSnapshot(
            ru=self.load(Language.RU).to_public(),
            uk=self.load(Language.UK).to_public(),
            updated_ts=utc_now(),
        )
