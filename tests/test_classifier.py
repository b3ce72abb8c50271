"""
Speech / singing classifier tests
"""

import numpy as np
import pytest

from conftest import SR, FailingExtractor, silence, tone
from vocal_scoring.classifier import VocalModeClassifier
from vocal_scoring.presets import VocalDetectionParameters, VocalMode


def _flat_mfccs(n):
    return np.zeros((n, 13))


def test_steady_voiced_pitch_is_singing(extractor):
    """Sustained, gently moving pitch with every frame voiced reads as singing."""
    pitches = 220.0 + 3.0 * np.sin(np.linspace(0, 4 * np.pi, 60))
    analysis = VocalModeClassifier(extractor).classify(pitches, _flat_mfccs(60))
    assert analysis.mode == VocalMode.SINGING
    assert analysis.features.voiced_ratio == pytest.approx(1.0)
    assert analysis.features.pitch_stability > 0.9
    assert 0.0 < analysis.confidence <= 1.0


def test_sparse_wandering_pitch_is_speech(extractor):
    """Mostly unvoiced frames with a wide pitch drift read as speech."""
    voiced_idx = np.sort(np.r_[0:100:5, 1:100:5])
    pitches = np.zeros(100)
    pitches[voiced_idx] = np.linspace(100.0, 250.0, 40)
    analysis = VocalModeClassifier(extractor).classify(pitches, _flat_mfccs(100))
    assert analysis.mode == VocalMode.SPEECH
    assert analysis.features.voiced_ratio == pytest.approx(0.4)
    assert analysis.confidence > 0.25


def test_ambiguous_attempt_defaults_to_low_confidence_speech(extractor):
    params = VocalDetectionParameters(speech_threshold=0.99, singing_threshold=0.99)
    pitches = 220.0 + 3.0 * np.sin(np.linspace(0, 4 * np.pi, 60))
    analysis = VocalModeClassifier(extractor, params).classify(pitches, _flat_mfccs(60))
    assert analysis.mode == VocalMode.SPEECH
    assert analysis.confidence == pytest.approx(0.25)


def test_features_need_three_voiced_frames(extractor):
    features = VocalModeClassifier(extractor).compute_features(
        np.array([0.0, 200.0, 0.0, 210.0]), _flat_mfccs(4),
    )
    assert features.pitch_stability == 0.0
    assert features.pitch_contour == 0.0
    assert features.voiced_ratio == pytest.approx(0.5)


def test_features_are_normalised(extractor):
    pitches = np.array([100.0, 400.0] * 20)
    mfccs = np.random.default_rng(0).normal(0, 100, size=(40, 13))
    features = VocalModeClassifier(extractor).compute_features(pitches, mfccs)
    for value in (features.pitch_stability, features.pitch_contour, features.mfcc_spread, features.voiced_ratio):
        assert 0.0 <= value <= 1.0
    assert features.pitch_contour == 1.0
    assert features.pitch_stability == 0.0


def test_classify_is_deterministic(extractor):
    rng = np.random.default_rng(7)
    pitches = rng.uniform(0, 300, 50)
    mfccs = rng.normal(size=(50, 13))
    classifier = VocalModeClassifier(extractor)
    assert classifier.classify(pitches, mfccs) == classifier.classify(pitches, mfccs)


def test_analyze_short_audio_is_speech(extractor):
    audio = np.concatenate([silence(0.2), tone(220.0, 0.11)])
    analysis = VocalModeClassifier(extractor).analyze(audio, SR)
    assert analysis.mode == VocalMode.SPEECH
    assert analysis.confidence == pytest.approx(0.2)


def test_analyze_sustained_tone_is_singing(extractor):
    audio = np.concatenate([silence(0.3), tone(220.0, 1.5)])
    analysis = VocalModeClassifier(extractor).analyze(audio, SR)
    assert analysis.mode == VocalMode.SINGING


def test_analyze_extractor_failure_is_unknown():
    analysis = VocalModeClassifier(FailingExtractor()).analyze(tone(220.0, 1.0), SR)
    assert analysis.mode == VocalMode.UNKNOWN
    assert analysis.confidence == 0.0
