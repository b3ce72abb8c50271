"""
Feedback generator for scored attempts.

Picks a headline from the preset's score bands, then adds up to three
targeted tips based on the weakest metric and, for singing, the musical
bonuses that came out low.
"""

import logging
from typing import Optional

from vocal_scoring.models import SimilarityMetrics
from vocal_scoring.presets import ChallengeType, ScoreScalingParameters, VocalMode

logger = logging.getLogger(__name__)

MAX_TIPS = 3

PROCESSING_ERROR = "Processing error - please try again."

_SILENCE = {
    VocalMode.SPEECH: "🎤 Please speak more clearly - we detected silence!",
    VocalMode.SINGING: "🎵 Please sing louder - we need to hear your beautiful voice!",
}

_TOO_SHORT = {
    VocalMode.SPEECH: "Recording too short to analyze - please try again!",
    VocalMode.SINGING: "Recording too short for musical analysis - sing longer!",
}

_GARBAGE = {
    VocalMode.SPEECH: "Please speak clearly with real words - that sounded like noise!",
    VocalMode.SINGING: "Please sing with clear musical notes - that didn't sound like singing!",
}

# incredible, great, good, keep practicing
_HEADLINES = {
    VocalMode.SPEECH: (
        "🎤 Outstanding speech clarity! Your pronunciation was excellent!",
        "🗣️ Great speech attempt! Clear and understandable!",
        "👍 Good effort! Your speech patterns are improving!",
        "🎯 Keep practicing! Focus on clear pronunciation.",
    ),
    VocalMode.SINGING: (
        "🎵 Incredible musical performance! You have real singing talent!",
        "🎶 Beautiful singing! Your pitch accuracy was impressive!",
        "🎤 Good musical effort! Your singing is improving!",
        "🎼 Keep practicing! Focus on hitting the right notes.",
    ),
}

_REVERSE_TIP = {
    VocalMode.SPEECH: "🔄 Reverse speech is tricky - listen carefully to the pattern!",
    VocalMode.SINGING: "🔄 Reverse singing is musically challenging - listen for the melodic patterns!",
}


def _mode(mode: VocalMode) -> VocalMode:
    return VocalMode.SINGING if mode == VocalMode.SINGING else VocalMode.SPEECH


def silence_feedback(mode: VocalMode) -> tuple[str, ...]:
    return (_SILENCE[_mode(mode)],)


def too_short_feedback(mode: VocalMode) -> tuple[str, ...]:
    return (_TOO_SHORT[_mode(mode)],)


def garbage_feedback(mode: VocalMode, failed_filters: tuple[str, ...] = ()) -> tuple[str, ...]:
    lines = [_GARBAGE[_mode(mode)]]
    if failed_filters:
        lines.append("Detected: " + ", ".join(failed_filters))
    return tuple(lines)


def headline(mode: VocalMode, score: int, scaling: ScoreScalingParameters) -> str:
    """Headline for the score band the attempt landed in."""
    lines = _HEADLINES[_mode(mode)]
    if score >= scaling.incredible_threshold:
        return lines[0]
    if score >= scaling.great_threshold:
        return lines[1]
    if score >= scaling.good_threshold:
        return lines[2]
    return lines[3]


def generate_feedback(
    mode: VocalMode,
    score: int,
    metrics: SimilarityMetrics,
    direction: ChallengeType,
    scaling: ScoreScalingParameters,
    complexity: Optional[float] = None,
    interval_accuracy: Optional[float] = None,
    harmonic_richness: Optional[float] = None,
) -> tuple[str, ...]:
    """Build the feedback lines for a scored attempt.

    Args:
        mode:              Scoring mode the attempt was judged in.
        score:             Final 0-100 score.
        metrics:           Pitch and timbre similarity.
        direction:         Forward or reverse challenge.
        scaling:           Score bands and the tip threshold.
        complexity:        Singing complexity score in [0, 1], if computed.
        interval_accuracy: Singing interval accuracy in [0, 1], if computed.
        harmonic_richness: Singing harmonic richness in [0, 1], if computed.

    Returns:
        Headline followed by at most MAX_TIPS tips.
    """
    mode = _mode(mode)
    tips: list[str] = []

    if mode == VocalMode.SINGING:
        if complexity is not None and complexity > 0.7:
            tips.append("🎶 Excellent vocal range and musical expression!")
        if interval_accuracy is not None and interval_accuracy > 0.8:
            tips.append("🎼 Outstanding interval accuracy - you really understand the melody!")
        if harmonic_richness is not None and harmonic_richness > 0.6:
            tips.append("🎵 Beautiful harmonic richness in your voice!")
        weak = []
        if metrics.pitch < scaling.tip_threshold:
            weak.append((metrics.pitch, "💡 Focus on pitch accuracy - try to match each note precisely."))
        if metrics.mfcc < scaling.tip_threshold:
            weak.append((metrics.mfcc, "🎯 Work on matching the tone and resonance of the original voice."))
        tips.extend(text for _, text in sorted(weak, key=lambda item: item[0]))
        if complexity is not None and complexity < 0.3:
            tips.append("🎯 Try to use more vocal range and expression in your singing.")
    else:
        # Weakest metric first
        weak = []
        if metrics.pitch < scaling.tip_threshold:
            weak.append((metrics.pitch, "💡 Try to follow the rhythm and flow of the original speech."))
        if metrics.mfcc < scaling.tip_threshold:
            weak.append((metrics.mfcc, "🎯 Work on matching the vocal tone and clarity."))
        tips.extend(text for _, text in sorted(weak, key=lambda item: item[0]))

    if direction == ChallengeType.REVERSE:
        # Always keep room for the direction tip
        tips = tips[:MAX_TIPS - 1]
        tips.append(_REVERSE_TIP[mode])

    return (headline(mode, score, scaling), *tips[:MAX_TIPS])
