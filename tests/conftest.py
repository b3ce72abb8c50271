"""
Shared fixtures: a deterministic numpy-only feature extractor and synthetic audio.
"""

import asyncio

import numpy as np
import pytest

from vocal_scoring.config import StaticPresetSource
from vocal_scoring.features import FeatureExtractor
from vocal_scoring.orchestrator import ScoringOrchestrator
from vocal_scoring.presets import Difficulty, VocalMode, get_presets
from vocal_scoring.scoring import SINGING_COEFFICIENTS, SPEECH_COEFFICIENTS, ScoringStrategy

SR = 44100


class StubExtractor(FeatureExtractor):
    """Cheap, exact feature primitives for tests.

    Pitch is estimated from the zero-crossing rate (exact enough for pure
    tones); MFCCs are log band energies of the magnitude spectrum.
    """

    n_bands = 13
    voicing_rms = 0.02

    def pitch(self, frame, sample_rate):
        if self.rms(frame) < self.voicing_rms:
            return 0.0
        return round(self.zero_crossing_rate(frame) * sample_rate / 2.0, 1)

    def mfcc(self, frame, sample_rate):
        spectrum = np.abs(np.fft.rfft(np.asarray(frame, dtype=np.float64) * np.hanning(len(frame))))
        bands = np.array_split(spectrum, self.n_bands)
        return np.log1p(np.array([float(np.sum(b ** 2)) for b in bands]))

    def spectral_entropy(self, frame, sample_rate):
        spectrum = np.abs(np.fft.rfft(np.asarray(frame, dtype=np.float64) * np.hanning(len(frame)))) ** 2
        total = spectrum.sum()
        if total <= 0:
            return 0.0
        p = spectrum[spectrum > 0] / total
        return float(-np.sum(p * np.log2(p)) / np.log2(len(spectrum)))

    def zero_crossing_rate(self, frame):
        frame = np.asarray(frame)
        if len(frame) < 2:
            return 0.0
        return float(np.mean(np.signbit(frame[1:]) != np.signbit(frame[:-1])))

    def rms(self, frame):
        frame = np.asarray(frame, dtype=np.float64)
        return float(np.sqrt(np.mean(frame ** 2))) if len(frame) else 0.0


class FailingExtractor(StubExtractor):
    def pitch(self, frame, sample_rate):
        raise RuntimeError("extractor exploded")


def tone(freq, seconds, amplitude=0.5, sr=SR):
    t = np.arange(int(sr * seconds)) / sr
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def silence(seconds, sr=SR):
    return np.zeros(int(sr * seconds), dtype=np.float32)


def melody(freqs=(220.0, 330.0, 440.0), note_s=0.5, gap_s=0.4, sr=SR):
    """Pure-tone notes separated by silent gaps."""
    parts = []
    for i, f in enumerate(freqs):
        if i:
            parts.append(silence(gap_s, sr))
        parts.append(tone(f, note_s, sr=sr))
    return np.concatenate(parts)


@pytest.fixture
def extractor():
    return StubExtractor()


@pytest.fixture
def singing_strategy(extractor):
    strategy = ScoringStrategy.create(SINGING_COEFFICIENTS, extractor)
    strategy.initialize(get_presets(VocalMode.SINGING, Difficulty.NORMAL))
    return strategy


@pytest.fixture
def speech_strategy(extractor):
    strategy = ScoringStrategy.create(SPEECH_COEFFICIENTS, extractor)
    strategy.initialize(get_presets(VocalMode.SPEECH, Difficulty.NORMAL))
    return strategy


@pytest.fixture
def orchestrator(extractor):
    orch = ScoringOrchestrator.create(extractor=extractor)
    asyncio.run(orch.initialize(StaticPresetSource(Difficulty.NORMAL)))
    return orch
