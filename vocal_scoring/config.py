"""
Service configuration and persisted difficulty.

Settings come from environment variables with sensible defaults. The current
difficulty is read through a PresetSource, the only asynchronous step of
start-up.
"""

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

from vocal_scoring.presets import Difficulty

logger = logging.getLogger(__name__)

SAMPLE_RATE = int(os.environ.get("VOCAL_SCORING_SAMPLE_RATE", "44100"))
LOG_LEVEL = os.environ.get("VOCAL_SCORING_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
SETTINGS_PATH = os.environ.get(
    "VOCAL_SCORING_SETTINGS_PATH",
    str(Path.home() / ".vocal_scoring" / "settings.json"),
)
DEFAULT_DIFFICULTY = Difficulty.parse(os.environ.get("VOCAL_SCORING_DEFAULT_DIFFICULTY", "normal"))
# Upper bound for one scoring call at the async boundary (0 disables).
# A timed-out call still finishes on its worker thread; only the caller stops waiting.
SCORING_TIMEOUT_S = float(os.environ.get("VOCAL_SCORING_TIMEOUT_S", "30"))


class PresetSource(ABC):
    """Where the user's chosen difficulty is persisted."""

    @abstractmethod
    async def current_difficulty(self) -> Difficulty:
        ...

    @abstractmethod
    async def save_difficulty(self, difficulty: Difficulty) -> None:
        ...


class StaticPresetSource(PresetSource):
    """In-memory source, for tests and one-shot tools."""

    def __init__(self, difficulty: Difficulty = DEFAULT_DIFFICULTY):
        self._difficulty = difficulty

    async def current_difficulty(self) -> Difficulty:
        return self._difficulty

    async def save_difficulty(self, difficulty: Difficulty) -> None:
        self._difficulty = difficulty


class JsonSettingsPresetSource(PresetSource):
    """Difficulty stored as ``{"difficulty": "normal"}`` in a JSON file.

    A missing or unreadable file, or an unknown value, yields the default
    difficulty.
    """

    def __init__(self, path: str = SETTINGS_PATH, default: Difficulty = DEFAULT_DIFFICULTY):
        self.path = Path(path)
        self.default = default

    def _read(self) -> Difficulty:
        if not self.path.is_file():
            return self.default
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read settings %s: %s", self.path, exc)
            return self.default
        if not isinstance(data, dict):
            return self.default
        return Difficulty.parse(data.get("difficulty"), self.default)

    def _write(self, difficulty: Difficulty) -> None:
        data = {}
        if self.path.is_file():
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Overwriting unreadable settings %s: %s", self.path, exc)
            if not isinstance(data, dict):
                data = {}
        data["difficulty"] = difficulty.value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    async def current_difficulty(self) -> Difficulty:
        difficulty = await asyncio.to_thread(self._read)
        logger.info("Loaded difficulty %s from %s", difficulty.value, self.path)
        return difficulty

    async def save_difficulty(self, difficulty: Difficulty) -> None:
        await asyncio.to_thread(self._write, difficulty)
        logger.info("Saved difficulty %s to %s", difficulty.value, self.path)
