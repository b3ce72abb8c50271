"""
Scoring orchestration: classify the attempt, route it, score it.

The orchestrator owns no thresholds or algorithms. It sequences the
classifier, router and strategies, and turns unexpected failures into a
well-formed fallback result.
"""

import asyncio
import logging
import time
from typing import Optional

import numpy as np

from vocal_scoring import coaching
from vocal_scoring.classifier import VocalModeClassifier
from vocal_scoring.config import PresetSource
from vocal_scoring.features import FeatureExtractor, PraatLibrosaExtractor
from vocal_scoring.models import (
    EngineType,
    RoutingDecision,
    ScoringResult,
    SimilarityMetrics,
    VocalAnalysis,
)
from vocal_scoring.presets import DEFAULT_STORE, ChallengeType, Difficulty, PresetStore, VocalMode
from vocal_scoring.scoring import (
    SINGING_COEFFICIENTS,
    SPEECH_COEFFICIENTS,
    ScoringStrategy,
    StrategyNotInitializedError,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

_ENGINE_FOR_MODE = {
    VocalMode.SPEECH: EngineType.SPEECH_ENGINE,
    VocalMode.SINGING: EngineType.SINGING_ENGINE,
    VocalMode.UNKNOWN: EngineType.SPEECH_ENGINE,
}

_MODE_FOR_ENGINE = {
    EngineType.SPEECH_ENGINE: VocalMode.SPEECH,
    EngineType.SINGING_ENGINE: VocalMode.SINGING,
}


class ModeRouter:
    """Pure mapping from vocal mode to scoring engine. Unknown goes to speech."""

    @staticmethod
    def select_engine(mode: VocalMode) -> EngineType:
        return _ENGINE_FOR_MODE[mode]

    def route(self, analysis: VocalAnalysis) -> RoutingDecision:
        engine = self.select_engine(analysis.mode)
        return RoutingDecision(
            vocal_analysis=analysis,
            engine=engine,
            routed_mode=_MODE_FOR_ENGINE[engine],
        )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

def processing_error_result(vocal_analysis: Optional[VocalAnalysis] = None) -> ScoringResult:
    return ScoringResult(
        score=0,
        raw_score=0.0,
        metrics=SimilarityMetrics(),
        feedback=(coaching.PROCESSING_ERROR,),
        is_garbage=False,
        vocal_analysis=vocal_analysis,
    )


class ScoringOrchestrator:
    def __init__(
        self,
        classifier: VocalModeClassifier,
        strategies: dict[EngineType, ScoringStrategy],
        router: Optional[ModeRouter] = None,
        store: PresetStore = DEFAULT_STORE,
        timeout_s: Optional[float] = None,
    ):
        missing = set(EngineType) - set(strategies)
        if missing:
            raise ValueError(f"Missing strategies for: {sorted(e.value for e in missing)}")
        self.classifier = classifier
        self.strategies = strategies
        self.router = router or ModeRouter()
        self.store = store
        self.timeout_s = timeout_s

    @classmethod
    def create(
        cls,
        extractor: Optional[FeatureExtractor] = None,
        store: PresetStore = DEFAULT_STORE,
        timeout_s: Optional[float] = None,
    ) -> "ScoringOrchestrator":
        """Wire the default pipeline around one feature extractor."""
        extractor = extractor or PraatLibrosaExtractor()
        return cls(
            classifier=VocalModeClassifier(extractor),
            strategies={
                EngineType.SPEECH_ENGINE: ScoringStrategy.create(SPEECH_COEFFICIENTS, extractor, store=store),
                EngineType.SINGING_ENGINE: ScoringStrategy.create(SINGING_COEFFICIENTS, extractor, store=store),
            },
            store=store,
            timeout_s=timeout_s,
        )

    # -- Lifecycle -------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        return all(s.is_initialized for s in self.strategies.values())

    @property
    def difficulty(self) -> Difficulty:
        return self.strategies[EngineType.SPEECH_ENGINE].difficulty

    async def initialize(self, source: PresetSource) -> None:
        await asyncio.gather(*(s.initialize_from(source) for s in self.strategies.values()))

    def update_difficulty(self, difficulty: Difficulty) -> None:
        for strategy in self.strategies.values():
            strategy.update_difficulty(difficulty)
        logger.info("Difficulty changed to %s", Difficulty.parse(difficulty).value)

    # -- Scoring ---------------------------------------------------------

    def score(
        self,
        reference: np.ndarray,
        attempt: np.ndarray,
        sample_rate: int,
        difficulty: Optional[Difficulty] = None,
        direction: ChallengeType = ChallengeType.FORWARD,
    ) -> ScoringResult:
        """Classify the attempt, route it and score it.

        Uninitialized strategies reject the call with
        StrategyNotInitializedError; any other failure yields a score-0
        "processing error" result.
        """
        t0 = time.time()
        analysis = None
        try:
            # The human voice decides the mode, not the reference
            analysis = self.classifier.analyze(np.asarray(attempt, dtype=np.float32), sample_rate)
            decision = self.router.route(analysis)
            strategy = self.strategies[decision.engine]
            presets = (
                self.store.get(decision.routed_mode, Difficulty.parse(difficulty))
                if difficulty is not None else None
            )
            logger.info(
                "Routing %s attempt (confidence %.2f) to %s",
                analysis.mode.value, analysis.confidence, decision.engine.value,
            )
            result = strategy.score(
                reference, attempt, sample_rate,
                direction=direction, presets=presets, vocal_analysis=analysis,
            )
        except StrategyNotInitializedError:
            raise
        except Exception as exc:
            logger.error("Scoring failed: %s", exc, exc_info=True)
            return processing_error_result(analysis)

        logger.info("[PROFILE] score: %.2fs", time.time() - t0)
        return result

    async def score_async(
        self,
        reference: np.ndarray,
        attempt: np.ndarray,
        sample_rate: int,
        difficulty: Optional[Difficulty] = None,
        direction: ChallengeType = ChallengeType.FORWARD,
    ) -> ScoringResult:
        """Run ``score`` on a worker thread, bounded by ``timeout_s`` if set."""
        call = asyncio.to_thread(self.score, reference, attempt, sample_rate, difficulty, direction)
        if not self.timeout_s:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.timeout_s)
        except asyncio.TimeoutError:
            logger.error(
                "Scoring timed out after %.1fs; worker thread still running in the background",
                self.timeout_s,
            )
            return processing_error_result()
