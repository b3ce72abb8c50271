"""
Router and orchestrator tests
"""

import asyncio
import logging
import time

import pytest

from conftest import SR, FailingExtractor, melody, silence, tone
from vocal_scoring import coaching
from vocal_scoring.classifier import VocalModeClassifier
from vocal_scoring.config import StaticPresetSource
from vocal_scoring.models import EngineType, VocalAnalysis, VocalFeatures
from vocal_scoring.orchestrator import ModeRouter, ScoringOrchestrator
from vocal_scoring.presets import ChallengeType, Difficulty, ScoreScalingParameters, VocalMode
from vocal_scoring.scoring import SPEECH_COEFFICIENTS, ScoringStrategy, StrategyNotInitializedError


class FixedClassifier:
    def __init__(self, mode, confidence=0.9, delay=0.0):
        self.mode = mode
        self.confidence = confidence
        self.delay = delay

    def analyze(self, signal, sample_rate):
        if self.delay:
            time.sleep(self.delay)
        return VocalAnalysis(self.mode, self.confidence, VocalFeatures(voiced_ratio=0.8))


def _with_classifier(orchestrator, classifier, timeout_s=None):
    return ScoringOrchestrator(
        classifier=classifier,
        strategies=orchestrator.strategies,
        timeout_s=timeout_s,
    )


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("mode,engine,routed", [
    (VocalMode.SPEECH, EngineType.SPEECH_ENGINE, VocalMode.SPEECH),
    (VocalMode.SINGING, EngineType.SINGING_ENGINE, VocalMode.SINGING),
    (VocalMode.UNKNOWN, EngineType.SPEECH_ENGINE, VocalMode.SPEECH),
])
def test_router_mapping(mode, engine, routed):
    analysis = VocalAnalysis(mode, 0.5)
    decision = ModeRouter().route(analysis)
    assert ModeRouter.select_engine(mode) == engine
    assert decision.engine == engine
    assert decision.routed_mode == routed
    assert decision.vocal_analysis is analysis


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

def test_requires_both_strategies(extractor):
    with pytest.raises(ValueError):
        ScoringOrchestrator(
            classifier=VocalModeClassifier(extractor),
            strategies={EngineType.SPEECH_ENGINE: ScoringStrategy.create(SPEECH_COEFFICIENTS, extractor)},
        )


def test_initialize_readies_every_strategy(extractor):
    orchestrator = ScoringOrchestrator.create(extractor=extractor)
    assert not orchestrator.is_ready
    asyncio.run(orchestrator.initialize(StaticPresetSource(Difficulty.EASY)))
    assert orchestrator.is_ready
    assert orchestrator.difficulty == Difficulty.EASY
    assert all(s.difficulty == Difficulty.EASY for s in orchestrator.strategies.values())


def test_uninitialized_orchestrator_rejects(extractor):
    orchestrator = ScoringOrchestrator.create(extractor=extractor)
    with pytest.raises(StrategyNotInitializedError):
        orchestrator.score(melody(), melody(), SR)


@pytest.mark.parametrize("mode,engine", [
    (VocalMode.SINGING, EngineType.SINGING_ENGINE),
    (VocalMode.SPEECH, EngineType.SPEECH_ENGINE),
    (VocalMode.UNKNOWN, EngineType.SPEECH_ENGINE),
])
def test_result_carries_classification_and_engine(orchestrator, mode, engine):
    routed = _with_classifier(orchestrator, FixedClassifier(mode))
    result = routed.score(melody(), melody(), SR)
    assert result.engine == engine
    assert result.vocal_analysis.mode == mode
    assert result.vocal_analysis.confidence == pytest.approx(0.9)


def test_identical_attempt_scores_full(orchestrator):
    audio = melody()
    result = orchestrator.score(audio, audio.copy(), SR)
    assert result.score == 100
    assert not result.is_garbage
    assert result.vocal_analysis is not None
    mode = VocalMode.SINGING if result.engine == EngineType.SINGING_ENGINE else VocalMode.SPEECH
    assert result.feedback[0] == coaching.headline(mode, 100, ScoreScalingParameters())


def test_silent_attempt_goes_through_speech_gate(orchestrator):
    result = orchestrator.score(melody(), silence(1.0), SR)
    assert result.score == 0
    assert result.engine == EngineType.SPEECH_ENGINE
    assert result.feedback == coaching.silence_feedback(VocalMode.SPEECH)


def test_difficulty_override_applies_to_one_call(orchestrator):
    audio = melody()
    result = orchestrator.score(audio, audio, SR, difficulty=Difficulty.HARD)
    assert result.difficulty == Difficulty.HARD
    assert orchestrator.difficulty == Difficulty.NORMAL


def test_update_difficulty_switches_every_strategy(orchestrator):
    orchestrator.update_difficulty(Difficulty.HARD)
    assert {s.difficulty for s in orchestrator.strategies.values()} == {Difficulty.HARD}
    result = orchestrator.score(melody(), melody(), SR, direction=ChallengeType.REVERSE)
    assert result.difficulty == Difficulty.HARD


def test_extractor_failure_yields_processing_error():
    orchestrator = ScoringOrchestrator.create(extractor=FailingExtractor())
    asyncio.run(orchestrator.initialize(StaticPresetSource(Difficulty.NORMAL)))

    result = orchestrator.score(melody(), tone(220.0, 1.0), SR)

    assert result.score == 0
    assert result.feedback == (coaching.PROCESSING_ERROR,)
    assert not result.is_garbage
    assert result.vocal_analysis.mode == VocalMode.UNKNOWN


def test_score_async_matches_sync(orchestrator):
    reference = melody((220.0, 262.0, 330.0))
    attempt = melody((225.0, 250.0, 340.0))
    sync = orchestrator.score(reference, attempt, SR)
    result = asyncio.run(orchestrator.score_async(reference, attempt, SR))
    assert result == sync


def test_score_async_timeout_returns_fallback(orchestrator, caplog):
    slow = _with_classifier(orchestrator, FixedClassifier(VocalMode.SINGING, delay=0.5), timeout_s=0.05)
    with caplog.at_level(logging.ERROR, logger="vocal_scoring.orchestrator"):
        result = asyncio.run(slow.score_async(melody(), melody(), SR))
    assert "worker thread still running" in caplog.text
    assert result.score == 0
    assert result.feedback == (coaching.PROCESSING_ERROR,)
