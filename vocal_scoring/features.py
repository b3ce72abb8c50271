"""
Per-frame feature extraction.

The scoring pipeline only talks to the FeatureExtractor interface: give it one
frame of mono PCM and a sample rate, get back a single value (or an MFCC
vector). PraatLibrosaExtractor is the production implementation:

- Pitch via Parselmouth (Praat autocorrelation)
- MFCC, zero-crossing rate and RMS via librosa
- Spectral entropy via numpy
"""

import logging
from abc import ABC, abstractmethod

import librosa
import numpy as np
import parselmouth

logger = logging.getLogger(__name__)

# Praat needs at least this many periods of the pitch floor inside a frame
_PRAAT_PERIODS_PER_WINDOW = 3.0


class FeatureExtractor(ABC):
    """Stateless single-frame feature primitives."""

    @abstractmethod
    def pitch(self, frame: np.ndarray, sample_rate: int) -> float:
        """Fundamental frequency in Hz, 0.0 when unvoiced."""

    @abstractmethod
    def mfcc(self, frame: np.ndarray, sample_rate: int) -> np.ndarray:
        """MFCC coefficient vector for the frame."""

    @abstractmethod
    def spectral_entropy(self, frame: np.ndarray, sample_rate: int) -> float:
        """Normalised spectral entropy in [0, 1]."""

    @abstractmethod
    def zero_crossing_rate(self, frame: np.ndarray) -> float:
        """Sign changes per sample."""

    @abstractmethod
    def rms(self, frame: np.ndarray) -> float:
        """Root-mean-square energy."""


class PraatLibrosaExtractor(FeatureExtractor):
    """Feature extractor backed by Parselmouth and librosa.

    Args:
        pitch_floor:   Lowest pitch (Hz) Praat will search for.
        pitch_ceiling: Highest pitch (Hz) Praat will search for.
        n_mfcc:        Number of cepstral coefficients per frame.
        n_mels:        Mel bands used to compute the MFCCs.
    """

    def __init__(
        self,
        pitch_floor: float = 75.0,
        pitch_ceiling: float = 1000.0,
        n_mfcc: int = 13,
        n_mels: int = 40,
    ):
        self.pitch_floor = pitch_floor
        self.pitch_ceiling = pitch_ceiling
        self.n_mfcc = n_mfcc
        self.n_mels = n_mels

    def pitch(self, frame: np.ndarray, sample_rate: int) -> float:
        if len(frame) == 0 or not np.any(frame):
            return 0.0

        # Short frames cannot hold three periods of a low floor: raise the floor
        # rather than fail.
        duration = len(frame) / sample_rate
        floor = max(self.pitch_floor, _PRAAT_PERIODS_PER_WINDOW / duration * 1.05)
        if floor >= self.pitch_ceiling:
            return 0.0

        snd = parselmouth.Sound(np.asarray(frame, dtype=np.float64), sampling_frequency=sample_rate)
        try:
            pitch_obj = snd.to_pitch(pitch_floor=floor, pitch_ceiling=self.pitch_ceiling)
        except parselmouth.PraatError as exc:
            logger.debug("Praat pitch failed on %d-sample frame: %s", len(frame), exc)
            return 0.0

        values = pitch_obj.selected_array["frequency"]
        voiced = values[values > 0]
        if len(voiced) == 0:
            return 0.0
        return float(np.median(voiced))

    def mfcc(self, frame: np.ndarray, sample_rate: int) -> np.ndarray:
        frame = np.asarray(frame, dtype=np.float32)
        if len(frame) == 0:
            return np.zeros(self.n_mfcc)
        coeffs = librosa.feature.mfcc(
            y=frame,
            sr=sample_rate,
            n_mfcc=self.n_mfcc,
            n_fft=len(frame),
            hop_length=len(frame),
            n_mels=self.n_mels,
            center=False,
        )
        return coeffs[:, 0].astype(np.float64)

    def spectral_entropy(self, frame: np.ndarray, sample_rate: int) -> float:
        frame = np.asarray(frame, dtype=np.float64)
        if len(frame) < 2:
            return 0.0
        spectrum = np.abs(np.fft.rfft(frame * np.hanning(len(frame)))) ** 2
        total = spectrum.sum()
        if total <= 0:
            return 0.0
        p = spectrum / total
        p = p[p > 0]
        entropy = -np.sum(p * np.log2(p))
        return float(entropy / np.log2(len(spectrum)))

    def zero_crossing_rate(self, frame: np.ndarray) -> float:
        frame = np.asarray(frame, dtype=np.float32)
        if len(frame) < 2:
            return 0.0
        zcr = librosa.feature.zero_crossing_rate(
            frame, frame_length=len(frame), hop_length=len(frame), center=False,
        )
        return float(zcr[0, 0])

    def rms(self, frame: np.ndarray) -> float:
        frame = np.asarray(frame, dtype=np.float32)
        if len(frame) == 0:
            return 0.0
        rms = librosa.feature.rms(y=frame, frame_length=len(frame), hop_length=len(frame), center=False)
        return float(rms[0, 0])
