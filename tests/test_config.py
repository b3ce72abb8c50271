"""
Persisted difficulty tests
"""

import asyncio
import json

from vocal_scoring.config import JsonSettingsPresetSource, StaticPresetSource
from vocal_scoring.presets import Difficulty


def test_missing_settings_file_gives_default(tmp_path):
    source = JsonSettingsPresetSource(tmp_path / "settings.json", default=Difficulty.EASY)
    assert asyncio.run(source.current_difficulty()) == Difficulty.EASY


def test_save_then_read(tmp_path):
    path = tmp_path / "nested" / "settings.json"
    source = JsonSettingsPresetSource(path)
    asyncio.run(source.save_difficulty(Difficulty.HARD))
    assert json.loads(path.read_text())["difficulty"] == "hard"
    assert asyncio.run(JsonSettingsPresetSource(path).current_difficulty()) == Difficulty.HARD


def test_save_keeps_other_settings(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"difficulty": "easy", "theme": "dark"}))
    asyncio.run(JsonSettingsPresetSource(path).save_difficulty(Difficulty.NORMAL))
    assert json.loads(path.read_text()) == {"difficulty": "normal", "theme": "dark"}


def test_unreadable_or_unknown_values_fall_back(tmp_path):
    path = tmp_path / "settings.json"
    source = JsonSettingsPresetSource(path, default=Difficulty.NORMAL)
    for content in ("{not json", "[1, 2, 3]", json.dumps({"difficulty": "impossible"})):
        path.write_text(content)
        assert asyncio.run(source.current_difficulty()) == Difficulty.NORMAL


def test_static_source():
    source = StaticPresetSource(Difficulty.EASY)
    assert asyncio.run(source.current_difficulty()) == Difficulty.EASY
    asyncio.run(source.save_difficulty(Difficulty.HARD))
    assert asyncio.run(source.current_difficulty()) == Difficulty.HARD
