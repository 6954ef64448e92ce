"""
Unit tests for tracker.phases module.
"""

import pytest

from tracker.phases import Phase, can_transition, is_regression, parse_phase


class TestPhaseOrdering:
    """Tests for canonical ranks."""

    def test_ranks_follow_pipeline_order(self):
        """Phases rank in pipeline order."""
        ordered = [Phase.STARTING, Phase.GENERATING, Phase.VALIDATING, Phase.IMAGING, Phase.STORING]
        ranks = [phase.rank for phase in ordered]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == len(ranks)

    def test_terminal_phases_share_top_rank(self):
        """Complete and Failed are both above every running phase."""
        assert Phase.COMPLETE.rank == Phase.FAILED.rank
        assert Phase.COMPLETE.rank > Phase.STORING.rank

    def test_is_terminal(self):
        assert Phase.COMPLETE.is_terminal
        assert Phase.FAILED.is_terminal
        assert not Phase.STORING.is_terminal

    def test_labels(self):
        assert Phase.GENERATING.label == "Generating recipes with AI..."
        assert Phase.VALIDATING.label == "Validating recipe data..."
        assert Phase.STORING.label == "Saving to database..."


class TestParsePhase:
    """Tests for boundary translation of phase names."""

    @pytest.mark.parametrize("name,expected", [
        ("planning", Phase.STARTING),
        ("images", Phase.IMAGING),
        ("saving", Phase.STORING),
        ("completed", Phase.COMPLETE),
        ("error", Phase.FAILED),
        ("generating", Phase.GENERATING),
        ("Validating", Phase.VALIDATING),
        ("  STORING ", Phase.STORING),
    ])
    def test_known_names(self, name, expected):
        assert parse_phase(name) is expected

    def test_enum_passes_through(self):
        assert parse_phase(Phase.IMAGING) is Phase.IMAGING

    def test_unknown_name_raises(self):
        with pytest.raises(ValueError, match="Unknown batch phase"):
            parse_phase("cooking")


class TestTransitions:
    """Tests for can_transition / is_regression."""

    def test_forward_and_same_phase_allowed(self):
        assert can_transition(None, Phase.GENERATING)
        assert can_transition(Phase.STARTING, Phase.GENERATING)
        assert can_transition(Phase.GENERATING, Phase.GENERATING)
        assert can_transition(Phase.GENERATING, Phase.STORING)
        assert can_transition(Phase.STORING, Phase.FAILED)

    def test_backwards_rejected(self):
        assert not can_transition(Phase.VALIDATING, Phase.GENERATING)

    def test_terminal_is_final(self):
        """Nothing leaves a terminal phase, not even the other terminal."""
        assert not can_transition(Phase.COMPLETE, Phase.STORING)
        assert not can_transition(Phase.COMPLETE, Phase.FAILED)
        assert not can_transition(Phase.FAILED, Phase.COMPLETE)
        assert can_transition(Phase.COMPLETE, Phase.COMPLETE)

    def test_is_regression(self):
        assert not is_regression(None, Phase.STARTING)
        assert is_regression(Phase.IMAGING, Phase.GENERATING)
        assert not is_regression(Phase.IMAGING, Phase.IMAGING)
        assert not is_regression(Phase.IMAGING, Phase.COMPLETE)
