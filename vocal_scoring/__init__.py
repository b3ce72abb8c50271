"""Vocal performance scoring for reverse speech and singing challenges."""

from vocal_scoring.models import ScoringResult
from vocal_scoring.orchestrator import ScoringOrchestrator
from vocal_scoring.presets import ChallengeType, Difficulty, VocalMode

__all__ = ["ChallengeType", "Difficulty", "ScoringOrchestrator", "ScoringResult", "VocalMode"]
