"""
Scoring presets: immutable parameter bundles keyed by difficulty and vocal mode.

Every tunable constant used by the garbage detector and the scoring strategy
lives here. Bundles are frozen dataclasses; changing difficulty means picking
a different bundle, never editing one in place.
"""

import logging
from dataclasses import asdict, dataclass, field, replace
from enum import Enum

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class VocalMode(str, Enum):
    SPEECH = "speech"
    SINGING = "singing"
    UNKNOWN = "unknown"


class ChallengeType(str, Enum):
    FORWARD = "forward"
    REVERSE = "reverse"


class Difficulty(str, Enum):
    EASY = "easy"
    NORMAL = "normal"
    HARD = "hard"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def emoji(self) -> str:
        return _DIFFICULTY_EMOJI[self]

    @property
    def description(self) -> str:
        return _DIFFICULTY_DESCRIPTIONS[self]

    @classmethod
    def parse(cls, value, default: "Difficulty | None" = None) -> "Difficulty":
        """Parse a stored difficulty name, falling back to *default* (NORMAL)."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            fallback = default or cls.NORMAL
            logger.warning("Unknown difficulty %r, using %s", value, fallback.value)
            return fallback


_DIFFICULTY_EMOJI = {
    Difficulty.EASY: "🟢",
    Difficulty.NORMAL: "🟡",
    Difficulty.HARD: "🔴",
}

_DIFFICULTY_DESCRIPTIONS = {
    Difficulty.EASY: "Very forgiving - great for beginners",
    Difficulty.NORMAL: "Balanced scoring - the default experience",
    Difficulty.HARD: "Challenging - for experienced users",
}


# ---------------------------------------------------------------------------
# Parameter bundles
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoringParameters:
    pitch_weight: float = 0.85
    mfcc_weight: float = 0.15
    # Pitch tolerance in semitones
    pitch_tolerance: float = 15.0
    # Attempt/reference pitch-spread ratio below which flat delivery is penalised
    variance_penalty: float = 0.5
    dtw_normalization_factor: float = 35.0
    silence_threshold: float = 0.01
    min_score_threshold: float = 0.20
    perfect_score_threshold: float = 0.80
    reverse_min_score_threshold: float = 0.16
    reverse_perfect_score_threshold: float = 0.72
    score_curve: float = 2.0
    consistency_bonus: float = 0.05
    confidence_bonus: float = 0.05

    def thresholds(self, direction: ChallengeType) -> tuple[float, float]:
        """Return (min, perfect) raw-score thresholds for a challenge direction."""
        if direction == ChallengeType.REVERSE:
            return self.reverse_min_score_threshold, self.reverse_perfect_score_threshold
        return self.min_score_threshold, self.perfect_score_threshold


@dataclass(frozen=True)
class ContentDetectionParameters:
    best_threshold: float = 0.35
    average_threshold: float = 0.25
    high_melodic_threshold: float = 0.6
    medium_melodic_threshold: float = 0.4
    low_melodic_threshold: float = 0.3
    insufficient_melodic_threshold: float = 0.5
    right_content_flat_penalty: float = 0.2
    right_content_different_melody_penalty: float = 0.1
    wrong_content_flat_penalty: float = 0.75
    wrong_content_insufficient_penalty: float = 0.6
    wrong_content_standard_penalty: float = 0.5


@dataclass(frozen=True)
class MelodicAnalysisParameters:
    range_weight: float = 0.4
    transition_weight: float = 0.35
    # Logged with the preset snapshot; complexity uses range and transition only
    variance_weight: float = 0.25
    # Pitch range (semitones) and mean step (semitones) that earn a full complexity score
    complexity_range_semitones: float = 24.0
    complexity_transition_semitones: float = 6.0
    # Mean sum of |MFCC[1:7]| that counts as a fully rich voice
    harmonic_richness_scale: float = 200.0
    silence_to_silence_score: float = 0.7
    # Reference pitch std (semitones) above which flat delivery can be penalised
    monotone_detection_threshold: float = 2.0
    monotone_penalty: float = 0.3


@dataclass(frozen=True)
class MusicalSimilarityParameters:
    same_interval_threshold: float = 0.5
    close_interval_threshold: float = 1.0
    similar_interval_threshold: float = 2.0
    same_interval_score: float = 1.0
    close_interval_score: float = 0.8
    similar_interval_score: float = 0.5
    different_interval_score: float = 0.1
    # Successive-pitch deltas smaller than this are treated as sustained notes
    min_interval_semitones: float = 0.1


@dataclass(frozen=True)
class AudioProcessingParameters:
    pitch_frame_size: int = 4096
    pitch_hop_size: int = 1024
    mfcc_frame_size: int = 2048
    mfcc_hop_size: int = 1024
    semitones_per_octave: float = 12.0
    pitch_reference_freq: float = 440.0
    alignment_threshold: float = 0.01
    alignment_window: int = 1024
    alignment_step: int = 256


@dataclass(frozen=True)
class ScoreScalingParameters:
    incredible_threshold: int = 90
    great_threshold: int = 75
    good_threshold: int = 50
    minimum_curve: float = 0.1
    rms_confidence_multiplier: float = 5.0
    # Metric level under which a targeted tip is added
    tip_threshold: float = 0.6


@dataclass(frozen=True)
class GarbageDetectionParameters:
    enabled: bool = True
    mfcc_variance_threshold: float = 0.3
    pitch_monotone_threshold: float = 10.0
    pitch_oscillation_rate: float = 0.5
    # Pitch steps below this many semitones do not count as reversals
    min_oscillation_step: float = 0.3
    spectral_entropy_threshold: float = 0.5
    zcr_min: float = 0.02
    zcr_max: float = 0.2
    silence_ratio_min: float = 0.1
    silence_threshold: float = 0.01
    low_voiced_ratio: float = 0.35
    entropy_frames: int = 10
    humming_mfcc_variance_multiplier: float = 4.0
    humming_zcr_fraction: float = 0.5
    garbage_score_max: int = 10
    # Filter weights and verdict
    mfcc_variance_weight: float = 0.25
    monotone_weight: float = 0.25
    oscillation_weight: float = 0.15
    entropy_weight: float = 0.20
    zcr_weight: float = 0.15
    silence_ratio_weight: float = 0.15
    humming_weight: float = 0.10
    verdict_threshold: float = 0.6
    min_failed_filters: int = 2


@dataclass(frozen=True)
class VocalDetectionParameters:
    """Speech/singing classifier settings. Not difficulty dependent."""
    speech_threshold: float = 0.2
    singing_threshold: float = 0.4
    default_confidence: float = 0.25
    short_audio_confidence: float = 0.2
    # Normalisers for the aggregate features
    pitch_stability_hz: float = 50.0
    pitch_contour_hz: float = 15.0
    mfcc_variance_scale: float = 350.0
    min_voiced_frames: int = 3
    min_audio_length_samples: int = 2048
    frame_size: int = 2048
    hop_size: int = 1024
    leading_silence_threshold: float = 0.003
    leading_silence_window: int = 1024
    skip_onset_ms: float = 100.0


@dataclass(frozen=True)
class Presets:
    difficulty: Difficulty
    mode: VocalMode
    scoring: ScoringParameters = field(default_factory=ScoringParameters)
    content: ContentDetectionParameters = field(default_factory=ContentDetectionParameters)
    melodic: MelodicAnalysisParameters = field(default_factory=MelodicAnalysisParameters)
    musical: MusicalSimilarityParameters = field(default_factory=MusicalSimilarityParameters)
    audio: AudioProcessingParameters = field(default_factory=AudioProcessingParameters)
    scaling: ScoreScalingParameters = field(default_factory=ScoreScalingParameters)
    garbage: GarbageDetectionParameters = field(default_factory=GarbageDetectionParameters)

    def snapshot(self) -> dict:
        """Flat dict of every parameter, for debug logging."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Preset tables
# ---------------------------------------------------------------------------

def _scoring(min_score: float, perfect: float, reverse_min_adj: float,
             reverse_perfect_adj: float, **kwargs) -> ScoringParameters:
    return ScoringParameters(
        min_score_threshold=min_score,
        perfect_score_threshold=perfect,
        reverse_min_score_threshold=round(min_score * reverse_min_adj, 4),
        reverse_perfect_score_threshold=round(perfect * reverse_perfect_adj, 4),
        **kwargs,
    )


# Speech: timbre matters more, pitch tolerance is wide, silence-matching earns
# generous credit.
_SPEECH_AUDIO = AudioProcessingParameters(alignment_threshold=0.01)

_SPEECH_PRESETS = {
    Difficulty.EASY: Presets(
        difficulty=Difficulty.EASY,
        mode=VocalMode.SPEECH,
        scoring=_scoring(
            0.08, 0.75, 0.8, 1.05,
            pitch_weight=0.65, mfcc_weight=0.35, pitch_tolerance=50.0, score_curve=3.0,
        ),
        content=ContentDetectionParameters(best_threshold=0.68, average_threshold=0.37),
        melodic=MelodicAnalysisParameters(
            range_weight=0.05, transition_weight=0.05, variance_weight=0.9,
            monotone_detection_threshold=0.5, monotone_penalty=0.05,
        ),
        musical=MusicalSimilarityParameters(
            same_interval_threshold=2.0, close_interval_threshold=5.0,
            similar_interval_threshold=10.0, same_interval_score=0.8, close_interval_score=0.7,
        ),
        audio=_SPEECH_AUDIO,
        scaling=ScoreScalingParameters(incredible_threshold=75, great_threshold=55, good_threshold=35),
        garbage=GarbageDetectionParameters(
            mfcc_variance_threshold=0.10, pitch_monotone_threshold=3.0,
            pitch_oscillation_rate=1.0, spectral_entropy_threshold=0.25,
            zcr_min=0.005, zcr_max=0.45, silence_ratio_min=0.02, garbage_score_max=30,
        ),
    ),
    Difficulty.NORMAL: Presets(
        difficulty=Difficulty.NORMAL,
        mode=VocalMode.SPEECH,
        scoring=_scoring(
            0.12, 0.85, 0.8, 1.0,
            pitch_weight=0.70, mfcc_weight=0.30, pitch_tolerance=40.0, score_curve=2.8,
        ),
        content=ContentDetectionParameters(best_threshold=0.84, average_threshold=0.47),
        melodic=MelodicAnalysisParameters(
            range_weight=0.1, transition_weight=0.1, variance_weight=0.8,
            monotone_detection_threshold=0.8, monotone_penalty=0.10,
        ),
        musical=MusicalSimilarityParameters(
            same_interval_threshold=2.0, close_interval_threshold=5.0,
            similar_interval_threshold=10.0, same_interval_score=0.85, close_interval_score=0.75,
        ),
        audio=_SPEECH_AUDIO,
        scaling=ScoreScalingParameters(incredible_threshold=80, great_threshold=60, good_threshold=40),
        garbage=GarbageDetectionParameters(
            mfcc_variance_threshold=0.25, pitch_monotone_threshold=8.0,
            pitch_oscillation_rate=0.7, spectral_entropy_threshold=0.45,
            zcr_min=0.015, zcr_max=0.30, silence_ratio_min=0.08, garbage_score_max=15,
        ),
    ),
    Difficulty.HARD: Presets(
        difficulty=Difficulty.HARD,
        mode=VocalMode.SPEECH,
        scoring=_scoring(
            0.18, 0.80, 0.8, 0.98,
            pitch_weight=0.75, mfcc_weight=0.25, pitch_tolerance=30.0, score_curve=2.3,
        ),
        content=ContentDetectionParameters(best_threshold=0.92, average_threshold=0.53),
        melodic=MelodicAnalysisParameters(
            range_weight=0.2, transition_weight=0.2, variance_weight=0.6,
            monotone_detection_threshold=1.5, monotone_penalty=0.20,
        ),
        musical=MusicalSimilarityParameters(
            same_interval_threshold=2.0, close_interval_threshold=5.0,
            similar_interval_threshold=10.0, same_interval_score=0.90, close_interval_score=0.80,
        ),
        audio=_SPEECH_AUDIO,
        scaling=ScoreScalingParameters(incredible_threshold=85, great_threshold=65, good_threshold=45),
        garbage=GarbageDetectionParameters(
            mfcc_variance_threshold=0.35, pitch_monotone_threshold=10.0,
            pitch_oscillation_rate=0.6, spectral_entropy_threshold=0.55,
            zcr_min=0.018, zcr_max=0.25, silence_ratio_min=0.10, garbage_score_max=18,
        ),
    ),
}

# Singing: pitch dominates, tolerance bands are tight, matched silence earns
# less since it says little about the melody.
_SINGING_AUDIO = AudioProcessingParameters(alignment_threshold=0.015)

_SINGING_PRESETS = {
    Difficulty.EASY: Presets(
        difficulty=Difficulty.EASY,
        mode=VocalMode.SINGING,
        scoring=_scoring(
            0.15, 0.85, 0.8, 0.92,
            pitch_weight=0.85, mfcc_weight=0.15, pitch_tolerance=25.0, score_curve=2.0,
        ),
        content=ContentDetectionParameters(best_threshold=0.73, average_threshold=0.53),
        melodic=MelodicAnalysisParameters(
            range_weight=0.35, transition_weight=0.4, variance_weight=0.25,
            silence_to_silence_score=0.5,
            monotone_detection_threshold=2.5, monotone_penalty=0.5,
        ),
        musical=MusicalSimilarityParameters(
            same_interval_score=1.0,
            close_interval_score=0.85, similar_interval_score=0.6,
        ),
        audio=_SINGING_AUDIO,
        scaling=ScoreScalingParameters(incredible_threshold=85, great_threshold=65, good_threshold=45),
        garbage=GarbageDetectionParameters(
            mfcc_variance_threshold=0.35, pitch_monotone_threshold=12.0,
            pitch_oscillation_rate=0.4, spectral_entropy_threshold=0.6,
            zcr_min=0.02, zcr_max=0.18, silence_ratio_min=0.12, garbage_score_max=15,
        ),
    ),
    Difficulty.NORMAL: Presets(
        difficulty=Difficulty.NORMAL,
        mode=VocalMode.SINGING,
        scoring=_scoring(
            0.22, 0.92, 0.8, 0.95,
            pitch_weight=0.90, mfcc_weight=0.10, pitch_tolerance=20.0, score_curve=1.8,
        ),
        content=ContentDetectionParameters(best_threshold=0.79, average_threshold=0.58),
        melodic=MelodicAnalysisParameters(
            range_weight=0.35, transition_weight=0.4, variance_weight=0.25,
            silence_to_silence_score=0.5,
            monotone_detection_threshold=3.0, monotone_penalty=0.4,
        ),
        musical=MusicalSimilarityParameters(
            same_interval_score=1.0,
            close_interval_score=0.85, similar_interval_score=0.6,
        ),
        audio=_SINGING_AUDIO,
        scaling=ScoreScalingParameters(incredible_threshold=88, great_threshold=70, good_threshold=50),
        garbage=GarbageDetectionParameters(
            mfcc_variance_threshold=0.45, pitch_monotone_threshold=15.0,
            pitch_oscillation_rate=0.35, spectral_entropy_threshold=0.70,
            zcr_min=0.025, zcr_max=0.15, silence_ratio_min=0.15, garbage_score_max=12,
        ),
    ),
    Difficulty.HARD: Presets(
        difficulty=Difficulty.HARD,
        mode=VocalMode.SINGING,
        scoring=_scoring(
            0.30, 0.90, 0.8, 0.90,
            pitch_weight=0.93, mfcc_weight=0.07, pitch_tolerance=12.0, score_curve=1.5,
        ),
        content=ContentDetectionParameters(best_threshold=0.82, average_threshold=0.63),
        melodic=MelodicAnalysisParameters(
            range_weight=0.45, transition_weight=0.35, variance_weight=0.20,
            silence_to_silence_score=0.5,
            monotone_detection_threshold=5.0, monotone_penalty=0.2,
        ),
        musical=MusicalSimilarityParameters(
            same_interval_score=1.0,
            close_interval_score=0.80, similar_interval_score=0.4,
        ),
        audio=_SINGING_AUDIO,
        scaling=ScoreScalingParameters(incredible_threshold=92, great_threshold=75, good_threshold=55),
        garbage=GarbageDetectionParameters(
            mfcc_variance_threshold=0.50, pitch_monotone_threshold=18.0,
            pitch_oscillation_rate=0.30, spectral_entropy_threshold=0.75,
            zcr_min=0.028, zcr_max=0.12, silence_ratio_min=0.18, garbage_score_max=10,
        ),
    ),
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class PresetStore:
    """Lookup of preset bundles by (mode, difficulty).

    Unknown mode resolves to the speech table, matching the router's fallback.
    """

    def __init__(self, speech: dict | None = None, singing: dict | None = None):
        self._tables = {
            VocalMode.SPEECH: dict(speech or _SPEECH_PRESETS),
            VocalMode.SINGING: dict(singing or _SINGING_PRESETS),
        }

    def get(self, mode: VocalMode, difficulty: Difficulty) -> Presets:
        table = self._tables.get(mode, self._tables[VocalMode.SPEECH])
        return table[Difficulty.parse(difficulty)]

    def with_overrides(self, mode: VocalMode, difficulty: Difficulty, **sections) -> Presets:
        """Return a copy of a bundle with whole sub-bundles replaced."""
        return replace(self.get(mode, difficulty), **sections)


DEFAULT_STORE = PresetStore()


def get_presets(mode: VocalMode, difficulty: Difficulty) -> Presets:
    """Shortcut for the default preset table."""
    return DEFAULT_STORE.get(mode, difficulty)


def difficulty_catalogue() -> list[dict]:
    """Describe every difficulty level for display."""
    return [
        {
            "name": level.value,
            "displayName": level.display_name,
            "emoji": level.emoji,
            "description": level.description,
        }
        for level in Difficulty
    ]
