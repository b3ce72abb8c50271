"""
Audio processing for vocal scoring.

Handles:
- Audio decoding and loading (soundfile / librosa)
- Fixed-size framing
- Onset detection and alignment of reference and attempt
- Per-frame feature tracks via a FeatureExtractor
"""

import io
import logging
import time
from typing import Optional

import librosa
import numpy as np
import soundfile as sf

from vocal_scoring.features import FeatureExtractor
from vocal_scoring.models import FeatureFrame, FeatureTrack
from vocal_scoring.presets import AudioProcessingParameters

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def load_audio(audio_path: str, sr: int) -> np.ndarray:
    """Load an audio file as mono float32 at *sr*."""
    y, _ = librosa.load(audio_path, sr=sr, mono=True)
    return y.astype(np.float32)


def decode_audio(audio_bytes: bytes, sr: int) -> np.ndarray:
    """Decode an in-memory audio file (WAV, FLAC, OGG) to mono float32 at *sr*.

    Raises:
        ValueError: if the bytes are not a readable audio file.
    """
    try:
        data, file_sr = sf.read(io.BytesIO(audio_bytes), dtype="float32", always_2d=True)
    except (sf.LibsndfileError, RuntimeError) as exc:
        raise ValueError(f"Unreadable audio: {exc}") from exc

    y = librosa.to_mono(data.T) if data.shape[1] > 1 else data[:, 0]
    if file_sr != sr:
        y = librosa.resample(y, orig_sr=file_sr, target_sr=sr)
    return np.ascontiguousarray(y, dtype=np.float32)


# ---------------------------------------------------------------------------
# Framing & energy
# ---------------------------------------------------------------------------

def signal_rms(signal: np.ndarray) -> float:
    """RMS over the whole signal as a single librosa frame."""
    signal = np.asarray(signal, dtype=np.float32)
    if len(signal) == 0:
        return 0.0
    rms = librosa.feature.rms(y=signal, frame_length=len(signal), hop_length=len(signal), center=False)
    return float(rms[0, 0])


def frame_signal(signal: np.ndarray, frame_size: int, hop_size: int) -> list[np.ndarray]:
    """Split *signal* into full-length frames. Too-short input yields no frames."""
    if frame_size <= 0 or hop_size <= 0 or len(signal) < frame_size:
        return []
    return [
        signal[start:start + frame_size]
        for start in range(0, len(signal) - frame_size + 1, hop_size)
    ]


def trim_leading_silence(signal: np.ndarray, threshold: float, window: int) -> np.ndarray:
    """Drop leading windows whose RMS does not exceed *threshold*."""
    for start in range(0, len(signal), window):
        if signal_rms(signal[start:start + window]) > threshold:
            return signal[start:]
    return signal[:0]


# ---------------------------------------------------------------------------
# Alignment
# ---------------------------------------------------------------------------

def find_energy_start(signal: np.ndarray, threshold: float) -> Optional[int]:
    """Index of the first sample whose magnitude exceeds *threshold*."""
    above = np.flatnonzero(np.abs(signal) > threshold)
    return int(above[0]) if len(above) else None


def find_sustained_start(
    signal: np.ndarray,
    threshold: float,
    window: int = 1024,
    step: int = 256,
) -> Optional[int]:
    """Start of the first *window*-sample block whose RMS exceeds *threshold*.

    Isolated clicks rarely lift a whole window, so this finds where a sung
    note actually begins.
    """
    for start in range(0, max(len(signal) - window, 0) + 1, step):
        if signal_rms(signal[start:start + window]) > threshold:
            return start
    return None


def align_signals(
    reference: np.ndarray,
    attempt: np.ndarray,
    params: AudioProcessingParameters,
    sustained: bool = False,
) -> tuple[np.ndarray, np.ndarray]:
    """Trim both signals to their onsets and cut them to the overlapping length.

    Returns two empty arrays when either signal never rises above the
    alignment threshold.
    """
    def onset(signal: np.ndarray) -> Optional[int]:
        if sustained:
            start = find_sustained_start(
                signal, params.alignment_threshold, params.alignment_window, params.alignment_step,
            )
            if start is not None:
                return start
        return find_energy_start(signal, params.alignment_threshold)

    ref_start = onset(reference)
    att_start = onset(attempt)
    if ref_start is None or att_start is None:
        logger.info("Alignment found no onset (ref=%s, attempt=%s)", ref_start, att_start)
        return reference[:0], attempt[:0]

    ref_trimmed = reference[ref_start:]
    att_trimmed = attempt[att_start:]
    overlap = min(len(ref_trimmed), len(att_trimmed))
    logger.debug(
        "Aligned: ref_start=%d att_start=%d overlap=%d samples", ref_start, att_start, overlap,
    )
    return ref_trimmed[:overlap], att_trimmed[:overlap]


# ---------------------------------------------------------------------------
# Feature tracks
# ---------------------------------------------------------------------------

def hz_to_semitones(
    pitch_hz: np.ndarray,
    reference_freq: float = 440.0,
    semitones_per_octave: float = 12.0,
) -> np.ndarray:
    """Convert Hz to semitones relative to *reference_freq*; unvoiced (<= 0) becomes NaN."""
    pitch_hz = np.asarray(pitch_hz, dtype=np.float64)
    semitones = np.full(pitch_hz.shape, np.nan)
    voiced = pitch_hz > 0
    semitones[voiced] = semitones_per_octave * np.log2(pitch_hz[voiced] / reference_freq)
    return semitones


def _nearest_idx(arr: np.ndarray, value: float) -> int:
    """Return the index of the element in *arr* closest to *value*."""
    return int(np.argmin(np.abs(arr - value)))


def extract_track(
    signal: np.ndarray,
    sample_rate: int,
    extractor: FeatureExtractor,
    params: AudioProcessingParameters,
) -> FeatureTrack:
    """Extract the pitch sequence and MFCC frames of one aligned signal.

    Pitch runs on its own (longer) frame grid; each MFCC frame borrows the
    pitch of the pitch frame whose centre is nearest.
    """
    t0 = time.time()
    pitch_frames = frame_signal(signal, params.pitch_frame_size, params.pitch_hop_size)
    pitch_hz = np.array([extractor.pitch(f, sample_rate) for f in pitch_frames], dtype=np.float64)
    pitches = hz_to_semitones(pitch_hz, params.pitch_reference_freq, params.semitones_per_octave)
    pitch_centres = (
        np.arange(len(pitch_frames)) * params.pitch_hop_size + params.pitch_frame_size / 2
    )

    samples = frame_signal(signal, params.mfcc_frame_size, params.mfcc_hop_size)
    frames = []
    for i, frame in enumerate(samples):
        centre = i * params.mfcc_hop_size + params.mfcc_frame_size / 2
        hz = float(pitch_hz[_nearest_idx(pitch_centres, centre)]) if len(pitch_hz) else 0.0
        frames.append(FeatureFrame(
            pitch_hz=hz,
            mfcc=np.asarray(extractor.mfcc(frame, sample_rate), dtype=np.float64),
            energy=extractor.rms(frame),
        ))

    logger.debug(
        "[FEAT] %d pitch frames, %d mfcc frames in %.2fs",
        len(pitches), len(frames), time.time() - t0,
    )
    return FeatureTrack(pitches=pitches, frames=tuple(frames), samples=tuple(samples))
