"""
Vocal Scoring HTTP API.

Endpoints:
    GET  /api/v1/health      - Health check
    GET  /api/v1/difficulty  - Current difficulty and available levels
    PUT  /api/v1/difficulty  - Change (and persist) the difficulty
    POST /api/v1/score       - Score an attempt against a reference
"""

import base64
import binascii
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from vocal_scoring.config import (
    LOG_FORMAT,
    LOG_LEVEL,
    SAMPLE_RATE,
    SCORING_TIMEOUT_S,
    JsonSettingsPresetSource,
    PresetSource,
)
from vocal_scoring.orchestrator import ScoringOrchestrator
from vocal_scoring.presets import ChallengeType, Difficulty, difficulty_catalogue
from vocal_scoring.processing import decode_audio
from vocal_scoring.scoring import StrategyNotInitializedError

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger("vocal-scoring")

SERVICE_NAME = "vocal-scoring-service"
SERVICE_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class ScoreRequest(BaseModel):
    referenceAudio: str
    attemptAudio: str
    challengeType: str = ChallengeType.FORWARD.value
    difficulty: Optional[str] = None


class DifficultyRequest(BaseModel):
    difficulty: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _decode_field(name: str, value: str, sr: int):
    """Base64 audio file -> mono float32 PCM; 400 on bad input."""
    try:
        audio_bytes = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"{name} is not valid base64") from exc
    try:
        return decode_audio(audio_bytes, sr)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"{name}: {exc}") from exc


def _parse_enum(enum_cls, name: str, value: str):
    try:
        return enum_cls(value.strip().lower())
    except ValueError as exc:
        allowed = ", ".join(e.value for e in enum_cls)
        raise HTTPException(status_code=400, detail=f"{name} must be one of: {allowed}") from exc


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(
    orchestrator: Optional[ScoringOrchestrator] = None,
    preset_source: Optional[PresetSource] = None,
    sample_rate: int = SAMPLE_RATE,
) -> FastAPI:
    """Build the FastAPI app around a scoring orchestrator.

    Preset loading runs in the lifespan hook; scoring requests arriving
    before it completes get a 503.
    """
    orchestrator = orchestrator or ScoringOrchestrator.create(timeout_s=SCORING_TIMEOUT_S)
    preset_source = preset_source or JsonSettingsPresetSource()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await orchestrator.initialize(preset_source)
        logger.info("Scoring service ready (difficulty=%s)", orchestrator.difficulty.value)
        yield

    web_app = FastAPI(title="Vocal Scoring", version=SERVICE_VERSION, lifespan=lifespan)

    @web_app.get("/api/v1/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "ready": orchestrator.is_ready,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @web_app.get("/api/v1/difficulty")
    async def get_difficulty():
        return {
            "difficulty": orchestrator.difficulty.value,
            "levels": difficulty_catalogue(),
        }

    @web_app.put("/api/v1/difficulty")
    async def put_difficulty(req: DifficultyRequest):
        difficulty = _parse_enum(Difficulty, "difficulty", req.difficulty)
        orchestrator.update_difficulty(difficulty)
        await preset_source.save_difficulty(difficulty)
        return {"difficulty": difficulty.value}

    @web_app.post("/api/v1/score")
    async def score(req: ScoreRequest):
        direction = _parse_enum(ChallengeType, "challengeType", req.challengeType)
        difficulty = _parse_enum(Difficulty, "difficulty", req.difficulty) if req.difficulty else None

        reference = _decode_field("referenceAudio", req.referenceAudio, sample_rate)
        attempt = _decode_field("attemptAudio", req.attemptAudio, sample_rate)
        logger.info(
            "Score request: ref=%.2fs attempt=%.2fs direction=%s difficulty=%s",
            len(reference) / sample_rate, len(attempt) / sample_rate,
            direction.value, difficulty.value if difficulty else "current",
        )

        try:
            result = await orchestrator.score_async(
                reference, attempt, sample_rate, difficulty=difficulty, direction=direction,
            )
        except StrategyNotInitializedError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return result.to_dict()

    return web_app


web_app = create_app()
