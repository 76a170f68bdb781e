"""
Unit tests for transcript normalization.
"""

import pytest

from land_trainer.feedback.transcript import count_turns, normalize_transcript


class TestNormalizeTranscript:
    """Test turn rendering."""

    def test_basic_turns(self):
        turns = [
            {"role": "agent", "text": "Hello?"},
            {"role": "user", "text": "Hi, I'm calling about your land."},
        ]

        assert normalize_transcript(turns) == "Agent: Hello?\n\nUser: Hi, I'm calling about your land."

    def test_message_key_accepted(self):
        assert normalize_transcript([{"role": "user", "message": "Hi"}]) == "User: Hi"

    def test_missing_role(self):
        assert normalize_transcript([{"text": "Who's there?"}]) == "Unknown: Who's there?"

    def test_missing_text_still_emits_turn(self):
        assert normalize_transcript([{"role": "agent"}, {"role": "user", "text": None}]) == "Agent: \n\nUser: "

    def test_non_dict_turn(self):
        assert normalize_transcript(["garbage"]) == "Unknown: "

    @pytest.mark.parametrize("payload", [None, "not a list", {"transcript": []}, 42])
    def test_malformed_payload(self, payload):
        assert normalize_transcript(payload) == ""

    def test_empty_list(self):
        assert normalize_transcript([]) == ""


class TestTurnCount:
    """Normalizing N turns yields N blank-line separated segments."""

    @pytest.mark.parametrize("n", [0, 1, 2, 7, 50])
    def test_segment_count(self, n):
        turns = [{"role": "user" if i % 2 else "agent", "text": f"line {i}"} for i in range(n)]

        assert count_turns(normalize_transcript(turns)) == n

    def test_blank_lines_inside_a_turn(self):
        turns = [
            {"role": "user", "text": "First paragraph.\n\n\nSecond paragraph."},
            {"role": "agent\n\nbot", "text": "ok"},
            {"role": "agent", "text": ""},
        ]

        assert count_turns(normalize_transcript(turns)) == 3

    def test_malformed_counts_zero(self):
        assert count_turns(normalize_transcript("oops")) == 0
