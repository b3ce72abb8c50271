"""
Garbage detection: reject attempts that are not genuine speech or singing.

Six independent filters each add a fixed weight to a garbage score when they
trip. An attempt is only rejected when the score clears the verdict threshold
AND at least two filters failed, so one noisy metric can never condemn an
attempt on its own. Humming reuses the filter measurements and only ever
nudges the score.
"""

import logging
from typing import Optional

import numpy as np

from vocal_scoring.features import FeatureExtractor
from vocal_scoring.models import GarbageAnalysis
from vocal_scoring.presets import GarbageDetectionParameters

logger = logging.getLogger(__name__)

FILTER_MFCC_VARIANCE = "Repetitive sound pattern detected"
FILTER_MONOTONE = "Monotone/droning detected"
FILTER_OSCILLATION = "Unnatural pitch oscillation"
FILTER_ENTROPY = "Low audio complexity (noise/hum)"
FILTER_ZCR = "Abnormal audio signature"
FILTER_SILENCE = "No natural speech pauses"


def mfcc_variance(mfccs: np.ndarray) -> Optional[float]:
    """Mean per-coefficient variance across frames, None with fewer than 2 frames."""
    mfccs = np.asarray(mfccs, dtype=np.float64)
    if mfccs.ndim != 2 or mfccs.shape[0] < 2:
        return None
    return float(np.mean(np.var(mfccs, axis=0)))


def oscillation_rate(voiced: np.ndarray, min_step: float = 0.0) -> float:
    """Fraction of successive pitch steps that reverse direction.

    Steps smaller than `min_step` semitones are tracker jitter and ignored.
    """
    steps = np.diff(voiced)
    steps = np.sign(steps[(steps != 0) & (np.abs(steps) >= min_step)])
    if len(steps) < 2:
        return 0.0
    return float(np.mean(steps[1:] != steps[:-1]))


class GarbageDetector:
    """Multi-filter heuristic verdict on one attempt."""

    def __init__(self, extractor: FeatureExtractor):
        self.extractor = extractor

    def detect(
        self,
        frames: list[np.ndarray],
        pitches: np.ndarray,
        mfccs: np.ndarray,
        sample_rate: int,
        params: GarbageDetectionParameters,
    ) -> GarbageAnalysis:
        """Run every filter over the attempt.

        Args:
            frames:      Raw sample frames of the attempt.
            pitches:     Pitch sequence (semitones, NaN = unvoiced).
            mfccs:       MFCC matrix, one row per frame.
            sample_rate: Sample rate of the frames.
            params:      Thresholds and weights for the active preset.

        Returns:
            GarbageAnalysis with the verdict, confidence and per-filter values.
        """
        if not params.enabled:
            return GarbageAnalysis(is_garbage=False, confidence=0.0)

        failed: list[str] = []
        results: dict[str, float] = {}
        score = 0.0

        # 1. Repetition
        variance = mfcc_variance(mfccs)
        if variance is not None:
            results["mfcc_variance"] = variance
            if variance < params.mfcc_variance_threshold:
                score += params.mfcc_variance_weight
                failed.append(FILTER_MFCC_VARIANCE)

        # 2. Pitch contour
        pitches = np.asarray(pitches, dtype=np.float64)
        voiced = pitches[~np.isnan(pitches)]
        voiced_ratio = len(voiced) / len(pitches) if len(pitches) else 0.0
        results["voiced_ratio"] = voiced_ratio
        if len(voiced) >= 3:
            pitch_std = float(np.std(voiced))
            rate = oscillation_rate(voiced, params.min_oscillation_step)
            results["pitch_stddev"] = pitch_std
            results["pitch_oscillation"] = rate
            # Steady singing is voiced most of the time; only sparse drones count
            if pitch_std < params.pitch_monotone_threshold and voiced_ratio < params.low_voiced_ratio:
                score += params.monotone_weight
                failed.append(FILTER_MONOTONE)
            if rate > params.pitch_oscillation_rate:
                score += params.oscillation_weight
                failed.append(FILTER_OSCILLATION)

        # 3. Spectral entropy
        entropy = None
        head = frames[:params.entropy_frames]
        if head:
            entropy = float(np.mean([self.extractor.spectral_entropy(f, sample_rate) for f in head]))
            results["spectral_entropy"] = entropy
            if entropy < params.spectral_entropy_threshold and voiced_ratio < params.low_voiced_ratio:
                score += params.entropy_weight
                failed.append(FILTER_ENTROPY)

        # 4. Zero-crossing rate
        zcr = None
        if frames:
            zcr = float(np.mean([self.extractor.zero_crossing_rate(f) for f in frames]))
            results["zero_crossing_rate"] = zcr
            if zcr < params.zcr_min or zcr > params.zcr_max:
                score += params.zcr_weight
                failed.append(FILTER_ZCR)

        # 5. Silence ratio
        if frames:
            silent = sum(1 for f in frames if self.extractor.rms(f) < params.silence_threshold)
            silence_ratio = silent / len(frames)
            results["silence_ratio"] = silence_ratio
            if silence_ratio < params.silence_ratio_min:
                score += params.silence_ratio_weight
                failed.append(FILTER_SILENCE)

        # 6. Humming: stable timbre, low entropy and low ZCR together
        humming = (
            variance is not None
            and entropy is not None
            and zcr is not None
            and variance < params.mfcc_variance_threshold * params.humming_mfcc_variance_multiplier
            and entropy < params.spectral_entropy_threshold
            and zcr < params.zcr_max * params.humming_zcr_fraction
        )
        results["humming_detected"] = 1.0 if humming else 0.0
        if humming:
            score += params.humming_weight

        is_garbage = score > params.verdict_threshold and len(failed) >= params.min_failed_filters
        analysis = GarbageAnalysis(
            is_garbage=is_garbage,
            confidence=min(1.0, score),
            failed_filters=tuple(failed),
            filter_results=results,
        )
        logger.debug(
            "Garbage check: score=%.2f failed=%s humming=%s -> %s",
            score, failed, humming, "REJECT" if is_garbage else "accept",
        )
        return analysis
