"""
Tests for the action cost table.
"""

import pytest

from core.exceptions import ValidationError
from credits.costs import (
    ACTION_COSTS,
    ActionKind,
    cost_table,
    estimate_cost,
    speech_cost,
    token_cost,
    video_cost,
)


class TestEstimateCost:
    def test_flat_action(self):
        assert estimate_cost(ActionKind.IMAGE_GENERATE) == 600

    def test_quantity_multiplies(self):
        assert estimate_cost(ActionKind.IMAGE_GENERATE, quantity=2) == 1200

    def test_accepts_plain_string(self):
        assert estimate_cost("web-search") == 150

    @pytest.mark.parametrize(
        "seconds,expected",
        [
            (5, 3000),
            (6, 4000),
            (8, 6000),
            (3, 3000),
            (7, 6000),
        ],
    )
    def test_video_uses_duration_bucket(self, seconds, expected):
        assert estimate_cost(ActionKind.VIDEO_GENERATE, duration_seconds=seconds) == expected

    def test_video_without_duration_uses_default(self):
        assert estimate_cost(ActionKind.VIDEO_GENERATE) == 6000

    def test_transcription_rounds_up_to_minutes(self):
        assert estimate_cost(ActionKind.AUDIO_TRANSCRIBE, duration_seconds=61) == 600
        assert estimate_cost(ActionKind.AUDIO_TRANSCRIBE, duration_seconds=10) == 300

    def test_speech_per_thousand_characters(self):
        assert estimate_cost(ActionKind.SPEECH_GENERATE, characters=2500) == 360

    def test_unknown_action_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            estimate_cost("teleport")

        assert exc_info.value.error_code == "UNKNOWN_ACTION"

    def test_zero_quantity_raises(self):
        with pytest.raises(ValidationError):
            estimate_cost(ActionKind.CHAT, quantity=0)


class TestMeteredCosts:
    def test_video_over_longest_bucket_raises(self):
        with pytest.raises(ValidationError):
            video_cost(9)

    def test_video_non_positive_duration_raises(self):
        with pytest.raises(ValidationError):
            video_cost(0)

    def test_token_cost_rounds_up(self):
        assert token_cost(prompt_tokens=1200, completion_tokens=800) == 36
        assert token_cost(prompt_tokens=1, completion_tokens=0) == 1

    def test_speech_cost(self):
        assert speech_cost(55) == 6


class TestCostTable:
    def test_lists_every_action(self):
        rows = cost_table()

        assert {row["action"] for row in rows} == {kind.value for kind in ActionKind}
        assert all(row["cost"] == ACTION_COSTS[row["action"]] for row in rows)
