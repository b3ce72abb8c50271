"""
Scoring engine for reverse speech / singing attempts.

Compares an attempt against its reference in two dimensions:
  - Pitch similarity  (tolerance-banded, frame by frame)
  - Timbre similarity (DTW over MFCC frames)

One generic ScoringStrategy does the work for both vocal modes. Everything
that differs between speech and singing is either a ModeCoefficients field
(decay shapes, bonus toggles, humming discount) or a preset value.
"""

import asyncio
import logging
import math
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import librosa
import numpy as np
from scipy.spatial.distance import cdist

from vocal_scoring import coaching
from vocal_scoring.features import FeatureExtractor
from vocal_scoring.garbage import GarbageDetector
from vocal_scoring.models import (
    EngineType,
    FeatureTrack,
    GarbageAnalysis,
    ScoreBreakdown,
    ScoringResult,
    SimilarityMetrics,
    VocalAnalysis,
)
from vocal_scoring.presets import (
    DEFAULT_STORE,
    ChallengeType,
    Difficulty,
    MelodicAnalysisParameters,
    MusicalSimilarityParameters,
    Presets,
    PresetStore,
    ScoreScalingParameters,
    ScoringParameters,
    VocalMode,
)
from vocal_scoring.processing import align_signals, extract_track, signal_rms

logger = logging.getLogger(__name__)


class StrategyNotInitializedError(RuntimeError):
    """Raised when scoring is requested before presets were loaded."""


class Decay(str, Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class ModeCoefficients:
    """Structural differences between the speech and singing scorers."""
    mode: VocalMode
    engine: EngineType
    # Singing waits for a sustained note; speech starts at the first loud sample
    sustained_alignment: bool
    # Pitch bands, as fractions of the preset pitch tolerance
    pitch_inner_band: float
    pitch_decay: Decay
    pitch_decay_rate: float
    pitch_decay_floor: float
    pitch_outer_score: float
    dtw_similarity: Decay
    musical_bonuses: bool
    complexity_bonus_weight: float = 0.10
    interval_bonus_weight: float = 0.15
    harmonic_bonus_weight: float = 0.05
    humming_multiplier: float = 1.0


SPEECH_COEFFICIENTS = ModeCoefficients(
    mode=VocalMode.SPEECH,
    engine=EngineType.SPEECH_ENGINE,
    sustained_alignment=False,
    pitch_inner_band=0.5,
    pitch_decay=Decay.LINEAR,
    pitch_decay_rate=0.5,
    pitch_decay_floor=0.3,
    pitch_outer_score=0.2,
    dtw_similarity=Decay.LINEAR,
    musical_bonuses=False,
    humming_multiplier=0.7,
)

SINGING_COEFFICIENTS = ModeCoefficients(
    mode=VocalMode.SINGING,
    engine=EngineType.SINGING_ENGINE,
    sustained_alignment=True,
    pitch_inner_band=0.3,
    pitch_decay=Decay.EXPONENTIAL,
    pitch_decay_rate=0.2,
    pitch_decay_floor=0.1,
    pitch_outer_score=0.05,
    dtw_similarity=Decay.EXPONENTIAL,
    musical_bonuses=True,
    humming_multiplier=0.5,
)


# ---------------------------------------------------------------------------
# DTW
# ---------------------------------------------------------------------------

def _as_frames(seq) -> np.ndarray:
    arr = np.asarray(seq, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)
    return arr


def dtw_distance(seq_a, seq_b) -> float:
    """Cumulative cost of the optimal warping path between two frame sequences.

    Local cost is the Euclidean distance between frames. The path always
    starts at the first frames and ends at the last ones.
    """
    a = _as_frames(seq_a)
    b = _as_frames(seq_b)
    n, m = len(a), len(b)
    if n == 0 or m == 0:
        return math.inf

    cost = cdist(a, b, metric="euclidean")
    acc = librosa.sequence.dtw(C=cost, backtrack=False)
    return float(acc[-1, -1])


def dtw_similarity(distance: float, n: int, m: int, factor: float, method: Decay) -> float:
    """Convert a cumulative DTW distance into a [0, 1] similarity.

    LINEAR treats 2 * factor per step of the (n + m) budget as the worst
    case; EXPONENTIAL decays the per-frame distance with scale *factor*.
    """
    if not math.isfinite(distance) or n == 0 or m == 0 or factor <= 0:
        return 0.0
    if method == Decay.EXPONENTIAL:
        similarity = math.exp(-(distance / max(n, m)) / factor)
    else:
        similarity = 1.0 - (distance / (n + m)) / (2.0 * factor)
    return min(1.0, max(0.0, similarity))


def mfcc_similarity(ref_mfccs: np.ndarray, att_mfccs: np.ndarray, factor: float, method: Decay) -> float:
    if len(ref_mfccs) < 2 or len(att_mfccs) < 2:
        return 0.0
    distance = dtw_distance(ref_mfccs, att_mfccs)
    return dtw_similarity(distance, len(ref_mfccs), len(att_mfccs), factor, method)


# ---------------------------------------------------------------------------
# Pitch similarity
# ---------------------------------------------------------------------------

def banded_pitch_score(diff: float, tolerance: float, coefficients: ModeCoefficients) -> float:
    """Score one voiced frame pair by its pitch difference in semitones."""
    inner = tolerance * coefficients.pitch_inner_band
    if diff <= inner:
        return 1.0
    if diff <= tolerance:
        if coefficients.pitch_decay == Decay.EXPONENTIAL:
            value = math.exp(-(diff - inner) / (tolerance * coefficients.pitch_decay_rate))
        else:
            value = (tolerance - diff) / (tolerance * coefficients.pitch_decay_rate)
        return min(1.0, max(coefficients.pitch_decay_floor, value))
    return coefficients.pitch_outer_score


def pitch_similarity(
    ref_pitches: np.ndarray,
    att_pitches: np.ndarray,
    tolerance: float,
    coefficients: ModeCoefficients,
    silence_score: float,
) -> float:
    """Mean frame-pair similarity of two semitone sequences (NaN = unvoiced).

    Any pair that is not voiced on both sides earns the neutral *silence_score*.
    """
    n = min(len(ref_pitches), len(att_pitches))
    if n < 2:
        return 0.0

    scores = []
    for ref, att in zip(ref_pitches[:n], att_pitches[:n]):
        ref_voiced = not math.isnan(ref)
        att_voiced = not math.isnan(att)
        if ref_voiced and att_voiced:
            scores.append(banded_pitch_score(abs(ref - att), tolerance, coefficients))
        else:
            scores.append(silence_score)
    return float(np.mean(scores))


# ---------------------------------------------------------------------------
# Musical bonuses (singing)
# ---------------------------------------------------------------------------

def complexity_score(pitches: np.ndarray, melodic: MelodicAnalysisParameters) -> float:
    """Reward pitch range and movement; needs at least 4 voiced frames."""
    if len(pitches) < 4:
        return 0.0
    total_weight = melodic.range_weight + melodic.transition_weight
    if total_weight <= 0:
        return 0.0
    range_score = min(1.0, float(np.max(pitches) - np.min(pitches)) / melodic.complexity_range_semitones)
    transition_score = min(
        1.0, float(np.mean(np.abs(np.diff(pitches)))) / melodic.complexity_transition_semitones,
    )
    return (
        range_score * melodic.range_weight + transition_score * melodic.transition_weight
    ) / total_weight


def _intervals(pitches: np.ndarray, min_step: float) -> np.ndarray:
    steps = np.diff(pitches)
    return steps[np.abs(steps) > min_step]


def interval_accuracy(
    ref_pitches: np.ndarray,
    att_pitches: np.ndarray,
    musical: MusicalSimilarityParameters,
) -> float:
    """How closely the attempt's note-to-note intervals match the reference's."""
    if len(ref_pitches) < 3 or len(att_pitches) < 3:
        return 0.0
    ref_int = _intervals(ref_pitches, musical.min_interval_semitones)
    att_int = _intervals(att_pitches, musical.min_interval_semitones)
    n = min(len(ref_int), len(att_int))
    if n == 0:
        return 0.0

    diffs = np.abs(ref_int[:n] - att_int[:n])
    scores = np.select(
        [
            diffs <= musical.same_interval_threshold,
            diffs <= musical.close_interval_threshold,
            diffs <= musical.similar_interval_threshold,
        ],
        [
            musical.same_interval_score,
            musical.close_interval_score,
            musical.similar_interval_score,
        ],
        default=musical.different_interval_score,
    )
    return float(np.mean(scores))


def harmonic_richness(mfccs: np.ndarray, melodic: MelodicAnalysisParameters) -> float:
    """Spectral detail carried by MFCC coefficients 1-6, capped at 1."""
    mfccs = np.asarray(mfccs, dtype=np.float64)
    if mfccs.ndim != 2 or mfccs.shape[0] == 0 or mfccs.shape[1] < 2:
        return 0.0
    energy = float(np.mean(np.sum(np.abs(mfccs[:, 1:7]), axis=1)))
    return min(1.0, energy / melodic.harmonic_richness_scale)


# ---------------------------------------------------------------------------
# Penalties, bonuses & scaling
# ---------------------------------------------------------------------------

def variance_penalty(
    ref_pitches: np.ndarray,
    att_pitches: np.ndarray,
    scoring: ScoringParameters,
    melodic: MelodicAnalysisParameters,
) -> tuple[bool, float]:
    """Penalise flat delivery of an expressive reference.

    Returns:
        (triggered, multiplier). The multiplier shrinks with the attempt's
        share of the reference pitch spread and never drops below the
        preset's monotone penalty.
    """
    if len(ref_pitches) < 3:
        return False, 1.0
    ref_std = float(np.std(ref_pitches))
    if ref_std <= melodic.monotone_detection_threshold:
        return False, 1.0

    att_std = float(np.std(att_pitches)) if len(att_pitches) >= 2 else 0.0
    ratio = att_std / ref_std
    if ratio >= scoring.variance_penalty:
        return False, 1.0
    multiplier = max(melodic.monotone_penalty, ratio / scoring.variance_penalty)
    logger.debug(
        "Variance penalty: ref_std=%.2f att_std=%.2f ratio=%.2f -> x%.2f",
        ref_std, att_std, ratio, multiplier,
    )
    return True, multiplier


def consistency_confidence_multiplier(
    pitch: float,
    mfcc: float,
    attempt_rms: float,
    scoring: ScoringParameters,
    scaling: ScoreScalingParameters,
) -> float:
    consistency = (1.0 - abs(pitch - mfcc)) * scoring.consistency_bonus
    confidence = min(1.0, attempt_rms * scaling.rms_confidence_multiplier) * scoring.confidence_bonus
    return 1.0 + consistency + confidence


def scale_score(
    raw: float,
    min_threshold: float,
    perfect_threshold: float,
    curve: float,
    scaling: ScoreScalingParameters,
) -> tuple[int, float]:
    """Map a raw score onto 0-100.

    Returns:
        (score, normalized) where normalized is the clamped [0, 1] position
        between the min and perfect thresholds before curving.
    """
    span = perfect_threshold - min_threshold
    if span <= 0:
        normalized = 1.0 if raw >= perfect_threshold else 0.0
    else:
        normalized = (raw - min_threshold) / span
    normalized = min(1.0, max(0.0, normalized))
    curved = normalized ** (1.0 / max(curve, scaling.minimum_curve))
    return int(min(100, max(0, round(curved * 100)))), normalized


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------

class ScoringStrategy:
    """Scores attempts for one vocal mode.

    Lifecycle: ``create()`` builds an instance holding a default bundle but
    refusing to score; ``initialize()`` (or ``initialize_from()`` with a
    preset source) installs the chosen bundle and opens the gate. Difficulty
    changes replace the whole bundle.
    """

    def __init__(
        self,
        coefficients: ModeCoefficients,
        default_presets: Presets,
        extractor: FeatureExtractor,
        garbage_detector: Optional[GarbageDetector] = None,
        store: PresetStore = DEFAULT_STORE,
    ):
        self.coefficients = coefficients
        self.extractor = extractor
        self.garbage_detector = garbage_detector or GarbageDetector(extractor)
        self.store = store
        self._presets = default_presets
        self._ready = threading.Event()
        self._swap_lock = threading.Lock()

    @classmethod
    def create(
        cls,
        coefficients: ModeCoefficients,
        extractor: FeatureExtractor,
        default_presets: Optional[Presets] = None,
        store: PresetStore = DEFAULT_STORE,
    ) -> "ScoringStrategy":
        presets = default_presets or store.get(coefficients.mode, Difficulty.NORMAL)
        return cls(coefficients, presets, extractor, store=store)

    # -- Lifecycle -------------------------------------------------------

    @property
    def mode(self) -> VocalMode:
        return self.coefficients.mode

    @property
    def presets(self) -> Presets:
        return self._presets

    @property
    def difficulty(self) -> Difficulty:
        return self._presets.difficulty

    @property
    def is_initialized(self) -> bool:
        return self._ready.is_set()

    def initialize(self, presets: Presets) -> None:
        if presets.mode != self.mode:
            raise ValueError(
                f"{self.mode.value} strategy cannot use {presets.mode.value} presets"
            )
        with self._swap_lock:
            self._presets = presets
        self._ready.set()
        logger.info(
            "%s strategy ready: difficulty=%s tolerance=%.1f pitch_weight=%.2f",
            self.mode.value, presets.difficulty.value,
            presets.scoring.pitch_tolerance, presets.scoring.pitch_weight,
        )
        logger.debug("Preset snapshot [%s/%s]: %s", self.mode.value, presets.difficulty.value, presets.snapshot())

    async def initialize_from(self, source) -> None:
        """Read the persisted difficulty from *source* and install its bundle."""
        difficulty = await source.current_difficulty()
        self.initialize(self.store.get(self.mode, difficulty))

    async def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return await asyncio.to_thread(self._ready.wait, timeout)

    def update_difficulty(self, difficulty: Difficulty) -> None:
        self.initialize(self.store.get(self.mode, Difficulty.parse(difficulty)))

    # -- Scoring ---------------------------------------------------------

    def score(
        self,
        reference: np.ndarray,
        attempt: np.ndarray,
        sample_rate: int,
        direction: ChallengeType = ChallengeType.FORWARD,
        presets: Optional[Presets] = None,
        vocal_analysis: Optional[VocalAnalysis] = None,
    ) -> ScoringResult:
        """Score *attempt* against *reference*.

        Args:
            reference:      Reference PCM (mono float).
            attempt:        Attempt PCM (mono float, same sample rate).
            sample_rate:    Sample rate of both signals.
            direction:      Forward or reverse challenge.
            presets:        Bundle to use instead of the active one.
            vocal_analysis: Classification to carry into the result.

        Raises:
            StrategyNotInitializedError: if no preset has been installed yet.
        """
        if not self.is_initialized:
            raise StrategyNotInitializedError(f"{self.mode.value} strategy is not initialized")

        # One bundle for the whole call, even if difficulty changes meanwhile
        presets = presets or self._presets
        mode = self.mode
        reference = np.asarray(reference, dtype=np.float32)
        attempt = np.asarray(attempt, dtype=np.float32)

        attempt_rms = signal_rms(attempt)
        if attempt_rms < presets.scoring.silence_threshold:
            logger.info("Silent attempt: rms=%.4f < %.4f", attempt_rms, presets.scoring.silence_threshold)
            return self._short_circuit(0, 0.0, coaching.silence_feedback(mode), presets, vocal_analysis)

        ref_aligned, att_aligned = align_signals(
            reference, attempt, presets.audio, sustained=self.coefficients.sustained_alignment,
        )
        min_frame = min(presets.audio.mfcc_frame_size, presets.audio.pitch_frame_size)
        if len(att_aligned) < min_frame:
            logger.info("Aligned overlap too short: %d samples", len(att_aligned))
            return self._short_circuit(0, 0.0, coaching.too_short_feedback(mode), presets, vocal_analysis)

        ref_track = extract_track(ref_aligned, sample_rate, self.extractor, presets.audio)
        att_track = extract_track(att_aligned, sample_rate, self.extractor, presets.audio)

        garbage = self.garbage_detector.detect(
            list(att_track.samples), att_track.pitches, att_track.mfccs, sample_rate, presets.garbage,
        )
        if garbage.is_garbage:
            max_score = presets.garbage.garbage_score_max
            logger.info("Garbage attempt rejected: %s", ", ".join(garbage.failed_filters))
            return self._short_circuit(
                max_score,
                max_score / 100.0,
                coaching.garbage_feedback(mode, garbage.failed_filters),
                presets,
                vocal_analysis,
                garbage=garbage,
            )

        return self.score_tracks(
            ref_track, att_track, attempt_rms, direction, presets,
            garbage=garbage, vocal_analysis=vocal_analysis,
        )

    def score_tracks(
        self,
        ref_track: FeatureTrack,
        att_track: FeatureTrack,
        attempt_rms: float,
        direction: ChallengeType,
        presets: Presets,
        garbage: Optional[GarbageAnalysis] = None,
        vocal_analysis: Optional[VocalAnalysis] = None,
    ) -> ScoringResult:
        """Similarity, bonuses, penalties, scaling and feedback for two feature tracks."""
        c = self.coefficients
        s = presets.scoring

        pitch_sim = pitch_similarity(
            ref_track.pitches, att_track.pitches, s.pitch_tolerance, c,
            presets.melodic.silence_to_silence_score,
        )
        mfcc_sim = mfcc_similarity(
            ref_track.mfccs, att_track.mfccs, s.dtw_normalization_factor, c.dtw_similarity,
        )
        base = pitch_sim * s.pitch_weight + mfcc_sim * s.mfcc_weight
        raw = base

        ref_voiced = ref_track.voiced_pitches
        att_voiced = att_track.voiced_pitches

        complexity = interval = harmonic = None
        complexity_bonus = interval_bonus = harmonic_bonus = 0.0
        if c.musical_bonuses:
            complexity = complexity_score(att_voiced, presets.melodic)
            interval = interval_accuracy(ref_voiced, att_voiced, presets.musical)
            harmonic = harmonic_richness(att_track.mfccs, presets.melodic)
            complexity_bonus = complexity * c.complexity_bonus_weight
            interval_bonus = interval * c.interval_bonus_weight
            harmonic_bonus = harmonic * c.harmonic_bonus_weight
            raw += complexity_bonus + interval_bonus + harmonic_bonus

        penalised, variance_mult = variance_penalty(ref_voiced, att_voiced, s, presets.melodic)
        raw *= variance_mult

        cc_mult = consistency_confidence_multiplier(pitch_sim, mfcc_sim, attempt_rms, s, presets.scaling)
        raw *= cc_mult

        humming = garbage is not None and garbage.humming_detected
        humming_mult = c.humming_multiplier if humming else 1.0
        raw *= humming_mult

        min_threshold, perfect_threshold = s.thresholds(direction)
        score, normalized = scale_score(raw, min_threshold, perfect_threshold, s.score_curve, presets.scaling)

        metrics = SimilarityMetrics(pitch=pitch_sim, mfcc=mfcc_sim)
        feedback = coaching.generate_feedback(
            self.mode, score, metrics, direction, presets.scaling,
            complexity=complexity, interval_accuracy=interval, harmonic_richness=harmonic,
        )
        breakdown = ScoreBreakdown(
            pitch_similarity=pitch_sim,
            mfcc_similarity=mfcc_sim,
            pitch_weight=s.pitch_weight,
            mfcc_weight=s.mfcc_weight,
            base_weighted_score=base,
            complexity_bonus=complexity_bonus,
            interval_bonus=interval_bonus,
            harmonic_bonus=harmonic_bonus,
            variance_penalty_triggered=penalised,
            variance_penalty_multiplier=variance_mult,
            consistency_confidence_multiplier=cc_mult,
            humming_detected=humming,
            humming_multiplier=humming_mult,
            min_threshold=min_threshold,
            perfect_threshold=perfect_threshold,
            normalized_score=normalized,
        )
        logger.info(
            "Scored %s attempt: score=%d  raw=%.3f  pitch=%.3f  mfcc=%.3f  (%s, %s)",
            self.mode.value, score, raw, pitch_sim, mfcc_sim,
            presets.difficulty.value, direction.value,
        )
        return ScoringResult(
            score=score,
            raw_score=raw,
            metrics=metrics,
            feedback=feedback,
            is_garbage=False,
            breakdown=breakdown,
            vocal_analysis=vocal_analysis,
            garbage=garbage,
            difficulty=presets.difficulty,
            engine=c.engine,
        )

    def _short_circuit(
        self,
        score: int,
        raw: float,
        feedback: tuple[str, ...],
        presets: Presets,
        vocal_analysis: Optional[VocalAnalysis],
        garbage: Optional[GarbageAnalysis] = None,
    ) -> ScoringResult:
        return ScoringResult(
            score=score,
            raw_score=raw,
            metrics=SimilarityMetrics(),
            feedback=feedback,
            is_garbage=garbage is not None and garbage.is_garbage,
            vocal_analysis=vocal_analysis,
            garbage=garbage,
            difficulty=presets.difficulty,
            engine=self.coefficients.engine,
        )
