"""
Value types shared across the scoring pipeline.

All types are frozen; results are built once per scoring call and handed to
the caller unchanged.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np

from vocal_scoring.presets import Difficulty, VocalMode


class EngineType(str, Enum):
    SPEECH_ENGINE = "speech_engine"
    SINGING_ENGINE = "singing_engine"


# ---------------------------------------------------------------------------
# Features
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FeatureFrame:
    """Features of one analysis frame. pitch_hz == 0 means unvoiced."""
    pitch_hz: float
    mfcc: np.ndarray
    energy: float


@dataclass(frozen=True)
class FeatureTrack:
    """Per-frame features of one aligned signal.

    pitches are semitones relative to the preset reference frequency on the
    pitch grid (NaN = unvoiced). frames and samples share the MFCC grid.
    """
    pitches: np.ndarray
    frames: tuple[FeatureFrame, ...]
    samples: tuple[np.ndarray, ...]

    @property
    def mfccs(self) -> np.ndarray:
        if not self.frames:
            return np.empty((0, 0))
        return np.vstack([f.mfcc for f in self.frames])

    @property
    def voiced_pitches(self) -> np.ndarray:
        return self.pitches[~np.isnan(self.pitches)]


@dataclass(frozen=True)
class VocalFeatures:
    pitch_stability: float = 0.0
    pitch_contour: float = 0.0
    mfcc_spread: float = 0.0
    voiced_ratio: float = 0.0


@dataclass(frozen=True)
class VocalAnalysis:
    mode: VocalMode
    confidence: float
    features: VocalFeatures = field(default_factory=VocalFeatures)

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "confidence": round(self.confidence, 3),
            "features": {
                "pitchStability": round(self.features.pitch_stability, 3),
                "pitchContour": round(self.features.pitch_contour, 3),
                "mfccSpread": round(self.features.mfcc_spread, 3),
                "voicedRatio": round(self.features.voiced_ratio, 3),
            },
        }


@dataclass(frozen=True)
class RoutingDecision:
    vocal_analysis: VocalAnalysis
    engine: EngineType
    routed_mode: VocalMode


# ---------------------------------------------------------------------------
# Garbage detection
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GarbageAnalysis:
    is_garbage: bool
    confidence: float
    failed_filters: tuple[str, ...] = ()
    filter_results: dict = field(default_factory=dict)

    @property
    def humming_detected(self) -> bool:
        return self.filter_results.get("humming_detected", 0.0) >= 1.0


# ---------------------------------------------------------------------------
# Scoring results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SimilarityMetrics:
    pitch: float = 0.0
    mfcc: float = 0.0


@dataclass(frozen=True)
class ScoreBreakdown:
    """Every intermediate value of one scoring pass."""
    pitch_similarity: float
    mfcc_similarity: float
    pitch_weight: float
    mfcc_weight: float
    base_weighted_score: float
    complexity_bonus: float = 0.0
    interval_bonus: float = 0.0
    harmonic_bonus: float = 0.0
    variance_penalty_triggered: bool = False
    variance_penalty_multiplier: float = 1.0
    consistency_confidence_multiplier: float = 1.0
    humming_detected: bool = False
    humming_multiplier: float = 1.0
    min_threshold: float = 0.0
    perfect_threshold: float = 1.0
    normalized_score: float = 0.0

    @property
    def total_musical_bonus(self) -> float:
        return self.complexity_bonus + self.interval_bonus + self.harmonic_bonus

    def to_dict(self) -> dict:
        return {
            "pitchSimilarity": round(self.pitch_similarity, 4),
            "mfccSimilarity": round(self.mfcc_similarity, 4),
            "pitchWeight": self.pitch_weight,
            "mfccWeight": self.mfcc_weight,
            "baseWeightedScore": round(self.base_weighted_score, 4),
            "musicalBonuses": {
                "complexity": round(self.complexity_bonus, 4),
                "interval": round(self.interval_bonus, 4),
                "harmonic": round(self.harmonic_bonus, 4),
                "total": round(self.total_musical_bonus, 4),
            },
            "variancePenalty": {
                "triggered": self.variance_penalty_triggered,
                "multiplier": round(self.variance_penalty_multiplier, 4),
            },
            "consistencyConfidenceMultiplier": round(self.consistency_confidence_multiplier, 4),
            "humming": {
                "detected": self.humming_detected,
                "multiplier": self.humming_multiplier,
            },
            "minThreshold": self.min_threshold,
            "perfectThreshold": self.perfect_threshold,
            "normalizedScore": round(self.normalized_score, 4),
        }


@dataclass(frozen=True)
class ScoringResult:
    score: int
    raw_score: float
    metrics: SimilarityMetrics
    feedback: tuple[str, ...]
    is_garbage: bool = False
    breakdown: Optional[ScoreBreakdown] = None
    vocal_analysis: Optional[VocalAnalysis] = None
    garbage: Optional[GarbageAnalysis] = None
    difficulty: Optional[Difficulty] = None
    engine: Optional[EngineType] = None

    def to_dict(self) -> dict:
        """JSON-ready view with camelCase keys."""
        return {
            "score": self.score,
            "rawScore": round(self.raw_score, 4),
            "metrics": {
                "pitch": round(self.metrics.pitch, 4),
                "mfcc": round(self.metrics.mfcc, 4),
            },
            "feedback": list(self.feedback),
            "isGarbage": self.is_garbage,
            "breakdown": self.breakdown.to_dict() if self.breakdown else None,
            "vocalAnalysis": self.vocal_analysis.to_dict() if self.vocal_analysis else None,
            "garbage": {
                "confidence": round(self.garbage.confidence, 3),
                "failedFilters": list(self.garbage.failed_filters),
            } if self.garbage else None,
            "difficulty": self.difficulty.value if self.difficulty else None,
            "engine": self.engine.value if self.engine else None,
        }
