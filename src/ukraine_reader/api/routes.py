"""REST API routes for sessions, profiles, diagnostics and export."""

from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ukraine_reader.assessment.estimator import (
    coerce_passages,
    summarize_diagnostic,
    update_profile_from_summary,
)
from ukraine_reader.config import get_settings
from ukraine_reader.diagnostic.orchestrator import DiagnosticOutcome, apply_diagnostic_results
from ukraine_reader.models.diagnostic import (
    AdultObservation,
    DiagnosticConfig,
    DiagnosticRunRecord,
    DiagnosticStatus,
    LanguagePassages,
)
from ukraine_reader.models.profile import Language, UnsupportedLanguageError
from ukraine_reader.models.session import SessionEnd, SessionEvent, SessionStart
from ukraine_reader.selection.text_selector import choose_text_for_session, remember_recent
from ukraine_reader.storage.diagnostic_runs import (
    create_run,
    is_valid_run_id,
    read_run,
    run_lock,
    save_run,
)
from ukraine_reader.storage.profile_store import ProfileStore
from ukraine_reader.storage.session_log import (
    append_session_events,
    is_valid_session_id,
    read_session,
    record_session_start,
    save_session,
    session_lock,
)
from ukraine_reader.storage.text_library import DEFAULT_LIMIT, TextLibrary
from ukraine_reader.utils import utc_now

logger = structlog.get_logger()
router = APIRouter(prefix="/api")


class DiagnosticStartRequest(BaseModel):
    token: str


class DiagnosticCompleteRequest(BaseModel):
    token: str
    per_language_results: dict[str, Any] = Field(default_factory=dict)


class SessionEventsRequest(BaseModel):
    events: list[SessionEvent] = Field(default_factory=list)


class AdultObservationRequest(BaseModel):
    language: str
    text_id: str | None = None
    observation: AdultObservation = Field(default_factory=AdultObservation)


def parse_language(language: str) -> Language:
    try:
        return Language.parse(language)
    except UnsupportedLanguageError as e:
        raise HTTPException(status_code=400, detail=str(e))


def validate_session_id(session_id: str) -> str:
    if not is_valid_session_id(session_id):
        raise HTTPException(status_code=400, detail="Invalid session ID format")
    return session_id


def _require_token(token: str) -> str:
    token = token.strip()
    if not token:
        raise HTTPException(status_code=400, detail="Diagnostic token is required")
    return token


def _profile_store() -> ProfileStore:
    return ProfileStore(get_settings().profiles_dir)


def _diagnostic_config() -> DiagnosticConfig:
    settings = get_settings()
    return DiagnosticConfig(
        passages_per_language=settings.diagnostic_passages_per_language,
        questions_per_passage=settings.diagnostic_questions_per_passage,
    )


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/texts")
async def list_texts(
    language: str,
    min_difficulty: float | None = Query(default=None, alias="min"),
    max_difficulty: float | None = Query(default=None, alias="max"),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=500),
) -> dict:
    """Texts for one language in a difficulty range."""
    lang = parse_language(language)
    library = TextLibrary(get_settings().texts_dir)
    texts = library.fetch_texts(lang, min_difficulty, max_difficulty, limit)
    return {"texts": [t.model_dump(mode="json") for t in texts]}


@router.get("/texts/next")
async def next_text(
    language: str,
    recent: list[str] | None = Query(default=None),
) -> dict:
    """Pick the next session text from the learner's comfort or instructional band."""
    lang = parse_language(language)
    recent = recent or []
    settings = get_settings()
    texts = TextLibrary(settings.texts_dir).all_texts(lang)
    text = choose_text_for_session(texts, _profile_store().load(lang), recent)
    if text is None:
        raise HTTPException(status_code=404, detail="No texts available")
    return {
        "text": text.model_dump(mode="json"),
        "recent_ids": remember_recent(recent, text.id, settings.recent_text_limit),
    }


@router.get("/texts/{text_id}")
async def get_text(text_id: str) -> dict:
    text = TextLibrary(get_settings().texts_dir).find_text(text_id)
    if text is None:
        raise HTTPException(status_code=404, detail="Text not found")
    return {"text": text.model_dump(mode="json")}


@router.get("/profile")
async def get_profile(language: str) -> dict:
    """Public profile (no history) for one language."""
    lang = parse_language(language)
    return {"profile": _profile_store().load(lang).to_public()}


@router.get("/recommendations")
async def get_recommendations(language: str) -> dict:
    lang = parse_language(language)
    profile = _profile_store().load(lang)
    return {
        "language": lang.value,
        "bottleneck": profile.bottleneck.value,
        "confidence": profile.confidence,
        "recommended": profile.recommended.model_dump(mode="json"),
    }


@router.post("/sessions/start")
async def start_session(start: SessionStart) -> dict:
    """Register a reading session before it is read."""
    parse_language(start.language)
    validate_session_id(start.client_session_id)
    record = record_session_start(get_settings().sessions_dir, start)
    logger.info(
        "session_started",
        session_id=start.client_session_id,
        language=start.language,
        text_id=start.text_id,
    )
    return {"session_id": record.start.client_session_id, "ended": record.ended}


@router.post("/sessions/{session_id}/end")
async def end_session(session_id: str, end: SessionEnd) -> dict:
    """Apply a finished session to the profile.

    Replaying the end of an already-ended session returns the current
    profile without applying it twice.
    """
    session_id = validate_session_id(session_id)
    settings = get_settings()
    record = read_session(settings.sessions_dir, session_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Session not found")
    lang = parse_language(record.start.language)

    def _apply(profile):
        current = read_session(settings.sessions_dir, session_id)
        if current.ended:
            logger.info("session_end_replayed", session_id=session_id)
            return profile
        raw_summary = {
            "abandon_rate": 0 if end.completed else 1,
            "text_difficulty": current.start.difficulty_score,
            **end.summary,
        }
        updated = update_profile_from_summary(
            profile,
            raw_summary,
            end.end_ts,
            retention_days=settings.history_retention_days,
        )
        last = updated.history[-1] if updated.history else None
        save_session(settings.sessions_dir, current.model_copy(update={
            "ended": True,
            "completed": end.completed,
            "end_ts": end.end_ts,
            "summary": raw_summary,
            "performance": last.performance if last else None,
            "skill_after": updated.skill_level,
        }))
        return updated

    with session_lock(settings.sessions_dir, session_id):
        profile = _profile_store().update(lang, _apply)
    logger.info(
        "session_ended",
        session_id=session_id,
        language=lang.value,
        completed=end.completed,
        skill_level=profile.skill_level,
    )
    return {"profile": profile.to_public()}


@router.post("/sessions/{session_id}/events/batch")
async def save_session_events(session_id: str, body: SessionEventsRequest) -> dict:
    """Store a batch of reader events with the session (not used in scoring)."""
    session_id = validate_session_id(session_id)
    result = append_session_events(get_settings().sessions_dir, session_id, body.events)
    if result is None:
        raise HTTPException(status_code=404, detail="Session not found")
    record, accepted = result
    logger.debug("session_events_saved", session_id=session_id, accepted=accepted)
    return {"accepted": accepted, "event_count": len(record.events)}


@router.get("/diagnostics/texts")
async def list_diagnostic_texts(
    token: str,
    language: str,
    min_difficulty: float | None = Query(default=None, alias="min"),
    max_difficulty: float | None = Query(default=None, alias="max"),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=500),
) -> dict:
    """Diagnostic texts with quizzes cut to the configured question count."""
    _require_token(token)
    lang = parse_language(language)
    library = TextLibrary(get_settings().texts_dir)
    texts = library.fetch_diagnostic_texts(
        lang, _diagnostic_config().questions_per_passage, min_difficulty, max_difficulty, limit
    )
    return {"texts": [t.model_dump(mode="json") for t in texts]}


@router.post("/diagnostics/runs/start")
async def start_diagnostic_run(body: DiagnosticStartRequest) -> dict:
    token = _require_token(body.token)
    settings = get_settings()
    languages = [parse_language(lang).value for lang in settings.languages]
    store = _profile_store()
    starting_skill = {lang: store.load(lang).skill_level for lang in languages}
    record = create_run(
        settings.diagnostics_dir, token, languages, _diagnostic_config(), starting_skill
    )
    logger.info("diagnostic_run_started", run_id=record.run_id, languages=languages)
    return {
        "run_id": record.run_id,
        "languages": record.languages,
        "config": record.config.model_dump(),
        "starting_skill_by_language": record.starting_skill_by_language,
    }


def validate_run_id(run_id: str) -> str:
    if not is_valid_run_id(run_id):
        raise HTTPException(status_code=400, detail="Invalid run ID format")
    return run_id


def _load_run(run_id: str, token: str) -> DiagnosticRunRecord:
    record = read_run(get_settings().diagnostics_dir, run_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Diagnostic run not found")
    if record.token != token:
        raise HTTPException(status_code=403, detail="Token does not match this run")
    return record


@router.post("/diagnostics/runs/{run_id}/adult-observations")
async def save_adult_observation(run_id: str, body: AdultObservationRequest, token: str) -> dict:
    """Store an adult observation with the run (not used in scoring)."""
    run_id = validate_run_id(run_id)
    token = _require_token(token)
    lang = parse_language(body.language)
    settings = get_settings()
    with run_lock(settings.diagnostics_dir, run_id):
        record = _load_run(run_id, token)
        record.observations.append({
            "language": lang.value,
            "text_id": body.text_id,
            **body.observation.model_dump(mode="json"),
            "ts": utc_now().isoformat(),
        })
        save_run(settings.diagnostics_dir, record)
    return {"saved": True, "observation_count": len(record.observations)}


@router.post("/diagnostics/runs/{run_id}/complete")
async def complete_diagnostic_run(run_id: str, body: DiagnosticCompleteRequest) -> dict:
    """Apply a finished run: one profile update per language.

    The run stays locked for the whole call. Each language is recorded on the
    run as soon as its profile is saved, and the profile history carries the
    run id, so retrying after a failure never applies a language twice.
    """
    run_id = validate_run_id(run_id)
    token = _require_token(body.token)
    settings = get_settings()
    store = _profile_store()

    with run_lock(settings.diagnostics_dir, run_id):
        record = _load_run(run_id, token)
        if record.status == DiagnosticStatus.COMPLETE:
            raise HTTPException(status_code=409, detail="Diagnostic run already completed")

        end_ts = utc_now()
        for language in record.languages:
            if language in record.applied_languages:
                continue
            passages = body.per_language_results.get(language)
            outcomes: list[DiagnosticOutcome] = []

            def _apply(profile, language=language, outcomes=outcomes):
                outcome = apply_diagnostic_results(
                    {language: profile},
                    body.per_language_results,
                    end_ts,
                    languages=[language],
                    config=record.config,
                    retention_days=settings.history_retention_days,
                    run_id=run_id,
                )
                outcomes.append(outcome)
                return outcome.updated_profiles.get(language, profile)

            profile = store.update(language, _apply)
            summary = outcomes[-1].diagnostic_summary.get(language)
            if summary is None:
                # Saved by an earlier attempt that failed before the record
                start_skill = record.starting_skill_by_language.get(language, profile.skill_level)
                before = profile.model_copy(update={"skill_level": start_skill})
                summary = summarize_diagnostic(before, profile, passages)
            record.applied_languages.append(language)
            record.diagnostic_summary[language] = summary
            record.results[language] = LanguagePassages(passages=coerce_passages(passages))
            save_run(settings.diagnostics_dir, record)

        record.status = DiagnosticStatus.COMPLETE
        record.completed_ts = end_ts
        save_run(settings.diagnostics_dir, record)

    outcome = DiagnosticOutcome(
        updated_profiles={lang: store.load(lang) for lang in record.languages},
        diagnostic_summary={lang: record.diagnostic_summary[lang] for lang in record.languages},
    )
    logger.info(
        "diagnostic_run_completed",
        run_id=run_id,
        delta_skill={k: v.delta_skill for k, v in outcome.diagnostic_summary.items()},
    )
    return outcome.to_response()


@router.get("/export/profile.json")
async def export_profile() -> JSONResponse:
    """Both profiles as one downloadable JSON document."""
    snapshot = _profile_store().export_snapshot()
    return JSONResponse(
        snapshot.model_dump(mode="json"),
        headers={"Content-Disposition": 'attachment; filename="profile.json"'},
    )
