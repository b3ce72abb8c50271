"""
Preset table and difficulty tests
"""

import dataclasses

import pytest

from vocal_scoring.presets import (
    ChallengeType,
    Difficulty,
    PresetStore,
    ScoringParameters,
    VocalMode,
    difficulty_catalogue,
    get_presets,
)


@pytest.mark.parametrize("mode", [VocalMode.SPEECH, VocalMode.SINGING])
@pytest.mark.parametrize("difficulty", list(Difficulty))
def test_every_mode_and_difficulty_has_a_bundle(mode, difficulty):
    presets = get_presets(mode, difficulty)
    assert presets.mode == mode
    assert presets.difficulty == difficulty
    assert presets.scoring.min_score_threshold < presets.scoring.perfect_score_threshold
    assert presets.scoring.reverse_min_score_threshold < presets.scoring.reverse_perfect_score_threshold


def test_presets_are_immutable():
    presets = get_presets(VocalMode.SINGING, Difficulty.NORMAL)
    with pytest.raises(dataclasses.FrozenInstanceError):
        presets.scoring = ScoringParameters()
    with pytest.raises(dataclasses.FrozenInstanceError):
        presets.scoring.pitch_weight = 0.1


def test_unknown_mode_uses_speech_table():
    store = PresetStore()
    assert store.get(VocalMode.UNKNOWN, Difficulty.HARD) is store.get(VocalMode.SPEECH, Difficulty.HARD)


def test_singing_weights_pitch_more_than_speech():
    for difficulty in Difficulty:
        singing = get_presets(VocalMode.SINGING, difficulty).scoring
        speech = get_presets(VocalMode.SPEECH, difficulty).scoring
        assert singing.pitch_weight > speech.pitch_weight
        assert singing.mfcc_weight < speech.mfcc_weight


def test_singing_credits_matched_silence_less_than_speech():
    for difficulty in Difficulty:
        singing = get_presets(VocalMode.SINGING, difficulty).melodic
        speech = get_presets(VocalMode.SPEECH, difficulty).melodic
        assert singing.silence_to_silence_score < speech.silence_to_silence_score


def test_harder_difficulty_tightens_pitch_tolerance():
    for mode in (VocalMode.SPEECH, VocalMode.SINGING):
        tolerances = [get_presets(mode, d).scoring.pitch_tolerance for d in Difficulty]
        assert tolerances == sorted(tolerances, reverse=True)


def test_thresholds_follow_challenge_direction():
    scoring = get_presets(VocalMode.SPEECH, Difficulty.NORMAL).scoring
    assert scoring.thresholds(ChallengeType.FORWARD) == (
        scoring.min_score_threshold, scoring.perfect_score_threshold,
    )
    assert scoring.thresholds(ChallengeType.REVERSE) == (
        scoring.reverse_min_score_threshold, scoring.reverse_perfect_score_threshold,
    )


def test_difficulty_parse_falls_back_to_normal():
    assert Difficulty.parse("HARD") == Difficulty.HARD
    assert Difficulty.parse(" easy ") == Difficulty.EASY
    assert Difficulty.parse("nightmare") == Difficulty.NORMAL
    assert Difficulty.parse(None, Difficulty.EASY) == Difficulty.EASY


def test_with_overrides_leaves_table_untouched():
    store = PresetStore()
    base = store.get(VocalMode.SINGING, Difficulty.NORMAL)
    tweaked = store.with_overrides(
        VocalMode.SINGING,
        Difficulty.NORMAL,
        scoring=dataclasses.replace(base.scoring, score_curve=4.0),
    )
    assert tweaked.scoring.score_curve == 4.0
    assert store.get(VocalMode.SINGING, Difficulty.NORMAL).scoring.score_curve == base.scoring.score_curve


def test_difficulty_catalogue_describes_each_level():
    catalogue = difficulty_catalogue()
    assert [entry["name"] for entry in catalogue] == ["easy", "normal", "hard"]
    assert all(entry["description"] and entry["emoji"] for entry in catalogue)
    assert catalogue[1]["displayName"] == "Normal"


def test_snapshot_includes_content_detection_bundle():
    snapshot = get_presets(VocalMode.SPEECH, Difficulty.EASY).snapshot()
    assert snapshot["content"]["best_threshold"] == pytest.approx(0.68)
    assert snapshot["garbage"]["garbage_score_max"] == 30
