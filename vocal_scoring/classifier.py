"""
Speech vs. singing classification of a vocal attempt.

Aggregate pitch and timbre descriptors feed two weighted linear scores, one
per mode. Ambiguous attempts fall back to speech, the more forgiving scorer.
"""

import logging

import numpy as np

from vocal_scoring.features import FeatureExtractor
from vocal_scoring.models import VocalAnalysis, VocalFeatures
from vocal_scoring.presets import VocalDetectionParameters, VocalMode
from vocal_scoring.processing import frame_signal, trim_leading_silence

logger = logging.getLogger(__name__)


def _clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))


class VocalModeClassifier:
    def __init__(
        self,
        extractor: FeatureExtractor,
        params: VocalDetectionParameters | None = None,
    ):
        self.extractor = extractor
        self.params = params or VocalDetectionParameters()

    # -- Pure classification ---------------------------------------------

    def compute_features(self, pitches_hz: np.ndarray, mfccs: np.ndarray) -> VocalFeatures:
        """Aggregate descriptors of one attempt, each normalised to [0, 1]."""
        p = self.params
        pitches_hz = np.asarray(pitches_hz, dtype=np.float64)
        voiced = pitches_hz[pitches_hz > 0]

        stability = 0.0
        contour = 0.0
        if len(voiced) >= p.min_voiced_frames:
            stability = 1.0 - _clamp(float(np.std(voiced)) / p.pitch_stability_hz)
            contour = _clamp(float(np.mean(np.abs(np.diff(voiced)))) / p.pitch_contour_hz)

        mfccs = np.asarray(mfccs, dtype=np.float64)
        spread = 0.0
        if mfccs.ndim == 2 and mfccs.shape[0] >= 2:
            spread = _clamp(float(np.mean(np.var(mfccs, axis=0))) / p.mfcc_variance_scale)

        voiced_ratio = len(voiced) / len(pitches_hz) if len(pitches_hz) else 0.0
        return VocalFeatures(
            pitch_stability=stability,
            pitch_contour=contour,
            mfcc_spread=spread,
            voiced_ratio=voiced_ratio,
        )

    def classify(self, pitches_hz: np.ndarray, mfccs: np.ndarray) -> VocalAnalysis:
        """Classify an attempt from its per-frame pitch (Hz) and MFCC sequences."""
        p = self.params
        features = self.compute_features(pitches_hz, mfccs)

        speech_score = (
            0.4 * (1.0 - features.pitch_stability)
            + 0.3 * (1.0 - features.pitch_contour)
            + 0.1 * features.mfcc_spread
        )
        singing_score = (
            0.2 * features.pitch_stability
            + 0.3 * features.pitch_contour
            + 0.5 * features.voiced_ratio
        )
        is_speech = speech_score > p.speech_threshold
        is_singing = singing_score > p.singing_threshold

        if is_speech and is_singing:
            if singing_score > speech_score:
                mode, confidence = VocalMode.SINGING, singing_score
            else:
                mode, confidence = VocalMode.SPEECH, speech_score
        elif is_singing:
            mode, confidence = VocalMode.SINGING, singing_score
        elif is_speech:
            mode, confidence = VocalMode.SPEECH, speech_score
        else:
            mode, confidence = VocalMode.SPEECH, p.default_confidence

        logger.debug(
            "Vocal mode: speech=%.3f singing=%.3f -> %s (%.2f)",
            speech_score, singing_score, mode.value, confidence,
        )
        return VocalAnalysis(mode=mode, confidence=_clamp(confidence), features=features)

    # -- Audio entry point -----------------------------------------------

    def analyze(self, signal: np.ndarray, sample_rate: int) -> VocalAnalysis:
        """Classify raw attempt audio.

        Leading silence and the first 100 ms (mouth clicks, breath) are
        skipped. Audio too short to judge is treated as low-confidence speech.
        """
        p = self.params
        try:
            trimmed = trim_leading_silence(
                signal, p.leading_silence_threshold, p.leading_silence_window,
            )
            skip = int(sample_rate * p.skip_onset_ms / 1000.0)
            trimmed = trimmed[skip:]
            if len(trimmed) < p.min_audio_length_samples:
                logger.info(
                    "Attempt too short to classify (%d samples), defaulting to speech",
                    len(trimmed),
                )
                return VocalAnalysis(mode=VocalMode.SPEECH, confidence=p.short_audio_confidence)

            frames = frame_signal(trimmed, p.frame_size, p.hop_size)
            pitches = np.array([self.extractor.pitch(f, sample_rate) for f in frames])
            mfccs = np.vstack([self.extractor.mfcc(f, sample_rate) for f in frames])
            return self.classify(pitches, mfccs)
        except Exception:
            logger.exception("Vocal mode classification failed")
            return VocalAnalysis(mode=VocalMode.UNKNOWN, confidence=0.0)
