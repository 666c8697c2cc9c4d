"""
Tests for the turn engine - CRITICAL: credits, level-ups and resets follow the rules
"""

import pytest

from conftest import StubEnhancer, make_config_dict
from game_config import GameConfig
from engine import (
    GameEngine, new_game, HISTORY_LIMIT,
    TurnInProgressError, NoPendingChoiceError, InvalidChoiceError, InvalidRollError,
)
from llm_provider import MockLLMProvider, ServiceTimeoutError
from narrative import Enhancement, EnhancementOption, NarrativeEnhancer
from snapshot import MemorySnapshotStore, PlayerProgress, load_progress
from stats import StatSet, initial_stats

# Level 1 path indices: 0=s, 1=f, 2=c, 3=n
START, FOOD, CLASS, NEUTRAL = 0, 1, 2, 3


def progress_at(config, position, credits=0, level=1, stats=None):
    return PlayerProgress(
        level=level,
        stats=stats or initial_stats(config),
        credits=credits,
        position=position,
    )


class TestNewGame:
    """Test engine construction."""

    def test_new_game_starts_on_start_tile(self, config):
        """Fresh game begins at the initial level's start index."""
        engine = GameEngine(config, seed=1)
        progress = engine.get_progress()

        assert progress.level == 1
        assert progress.position == engine.board.start_index()
        assert engine.current_tile().type.value == 's'
        assert progress.credits == 0
        assert progress.stats == initial_stats(config)

    def test_supplied_progress_position_is_clamped(self, config):
        """A position past the board's end is clamped into range."""
        engine = GameEngine(config, progress=progress_at(config, position=99))
        assert engine.get_progress().position == len(engine.board) - 1

    def test_new_game_resumes_from_store(self, config):
        """new_game() picks up the persisted snapshot."""
        store = MemorySnapshotStore()
        first = new_game(config, store=store, seed=3)
        first.take_turn(2)

        resumed = new_game(config, store=store)
        assert resumed.get_progress().to_dict() == first.get_progress().to_dict()

    def test_new_game_without_resume_ignores_store(self, config):
        store = MemorySnapshotStore()
        first = new_game(config, store=store, seed=3)
        first.take_turn(3)

        fresh = new_game(config, store=store, resume=False)
        assert fresh.get_progress().position == 0


class TestMovement:
    """Test stepping along the path."""

    def test_roll_advances_position(self, config):
        engine = GameEngine(config, seed=1)
        engine.take_turn(3)
        assert engine.get_progress().position == NEUTRAL

    def test_movement_wraps_around(self, config):
        """Advancing past the last tile wraps to the first."""
        engine = GameEngine(config, progress=progress_at(config, NEUTRAL), seed=1)
        result = engine.take_turn(2)

        assert engine.get_progress().position == FOOD
        assert result.start_passes == 1

    def test_zero_roll_keeps_position(self, config):
        engine = GameEngine(config, progress=progress_at(config, NEUTRAL), seed=1)
        result = engine.take_turn(0)

        assert result.steps_taken == 0
        assert engine.get_progress().position == NEUTRAL

    def test_negative_roll_rejected(self, config):
        engine = GameEngine(config, seed=1)
        with pytest.raises(InvalidRollError):
            engine.take_turn(-1)

    def test_rolled_dice_stay_in_range(self, config):
        engine = GameEngine(config, seed=5)
        rolls = {engine.roll_dice() for _ in range(200)}
        assert rolls <= set(range(config.dice_minimum, config.dice_maximum + 1))

    def test_take_turn_without_roll_uses_dice(self, config):
        engine = GameEngine(config, seed=5)
        result = engine.take_turn()
        assert config.dice_minimum <= result.roll <= config.dice_maximum


class TestStartTile:
    """Test stat resets when passing start."""

    def test_passing_start_resets_stats_before_landing(self, config):
        """Stats reset at the start tile, then the landing tile's delta applies."""
        drained = StatSet(intelligence=5, energy=1, luck=0, money=0)
        engine = GameEngine(config, progress=progress_at(config, NEUTRAL, stats=drained), seed=11)

        engine.take_turn(2)  # n -> s -> f
        stats = engine.get_progress().stats

        assert stats.intelligence == 50
        assert stats.luck == 10
        assert 83 <= stats.energy <= 88
        assert 150 <= stats.money <= 185

    def test_passing_start_with_enough_credits_levels_up(self, config):
        """Level-up at start discards the rest of the roll."""
        engine = GameEngine(config, progress=progress_at(config, NEUTRAL, credits=3), seed=1)
        result = engine.take_turn(4)

        assert result.leveled_up is True
        assert result.steps_taken == 1
        assert result.tile is None
        progress = engine.get_progress()
        assert progress.level == 2
        assert progress.position == engine.board.start_index()
        assert engine.current_level_label() == 'Year 2'

    def test_start_reset_is_reported_in_changes(self, config):
        """The reset counts as part of what the turn did to stats."""
        drained = StatSet(intelligence=5, energy=1, luck=0, money=0)
        engine = GameEngine(config, progress=progress_at(config, NEUTRAL, stats=drained), seed=1)

        result = engine.take_turn(1)  # n -> s

        assert result.changes == {'intelligence': 45, 'energy': 79, 'luck': 10, 'money': 200}
        assert engine.history[-1]['changes'] == result.changes

    def test_passing_start_without_enough_credits_keeps_level(self, config):
        engine = GameEngine(config, progress=progress_at(config, NEUTRAL, credits=2), seed=1)
        result = engine.take_turn(1)

        assert result.leveled_up is False
        assert engine.get_progress().level == 1


class TestCredits:
    """Test credit accrual and the mid-path level-up."""

    def test_credit_tile_reaching_threshold_levels_up(self, config):
        """Credits 2 + class tile gain >= 1 reaches the threshold of 3."""
        engine = GameEngine(config, progress=progress_at(config, FOOD, credits=2), seed=21)
        result = engine.take_turn(1)

        assert result.leveled_up is True
        assert result.level_before == 1
        assert result.level_after == 2
        assert engine.get_progress().position == engine.board.start_index()
        assert 'Year 2' in result.title

    def test_credits_clamped_to_threshold(self, config):
        engine = GameEngine(config, progress=progress_at(config, FOOD, credits=2), seed=21)
        engine.take_turn(1)
        # Carried over into level 2, never above level 1's threshold
        assert engine.get_progress().credits == 3

    def test_credit_tile_gain_within_range(self, config):
        engine = GameEngine(config, progress=progress_at(config, FOOD), seed=8)
        result = engine.take_turn(1)

        assert 1 <= result.changes['credits'] <= 3
        assert 1 <= result.changes['intelligence'] <= 4
        assert -5 <= result.changes['energy'] <= -1

    def test_non_credit_tiles_never_change_credits(self, config):
        engine = GameEngine(config, progress=progress_at(config, START, credits=1), seed=2)
        for _ in range(50):
            before = engine.get_progress()
            result = engine.take_turn(1 if before.position != FOOD else 2)
            if not result.leveled_up and result.tile.type.value != 'c':
                assert engine.get_progress().credits == before.credits


    def test_lower_next_threshold_chains_level_ups(self):
        """Credits carried into a level with a lower threshold advance again at once."""
        data = make_config_dict()
        data['levels'][1]['credits_to_advance'] = 6
        data['levels'][2]['credits_to_advance'] = 3
        config = GameConfig.from_dict(data)
        store = MemorySnapshotStore()
        engine = GameEngine(config, progress=progress_at(config, FOOD, credits=5), store=store, seed=21)

        result = engine.take_turn(1)
        progress = engine.get_progress()

        assert result.level_after == 3
        assert result.completed is True
        assert progress.credits == 3
        assert progress.position == engine.board.start_index()
        assert load_progress(store, config) == progress

    def test_carried_credits_clamped_to_final_cap(self):
        """Entering the final level clamps carried credits to the global cap."""
        config = GameConfig.from_dict(make_config_dict(credits={'initial': 0, 'maximum': 2}))
        # Level 2 path: 0=s, 1=c, 2=r, 3=f
        engine = GameEngine(config, progress=progress_at(config, 3, credits=6, level=2), seed=1)

        result = engine.take_turn(1)  # f -> s, level-up

        assert engine.get_progress().level == 3
        assert engine.get_progress().credits == 2
        assert result.changes['credits'] == -4


class TestCompletion:
    """Test the terminal state at the maximum level."""

    def test_reaching_max_level_completes_game(self, config):
        # Level 2 path: 0=s, 1=c, 2=r, 3=f
        engine = GameEngine(config, progress=progress_at(config, 3, credits=6, level=2), seed=1)
        result = engine.take_turn(1)

        assert result.leveled_up is True
        assert result.completed is True
        assert engine.is_completed()
        assert "complete" in result.title.lower()

    def test_rolls_after_completion_never_change_level(self, config):
        engine = GameEngine(config, progress=progress_at(config, 0, credits=30, level=3), seed=4)
        for _ in range(30):
            result = engine.take_turn()
            assert result.leveled_up is False
            assert engine.get_progress().level == 3
        assert engine.get_progress().credits == 30


class TestEnhancement:
    """Test the optional narrative overlay."""

    def test_options_replace_default_outcome(self, config, story_with_options):
        """Choosing an option applies its effects instead of the tile's delta."""
        enhancer = NarrativeEnhancer(MockLLMProvider(responses=[story_with_options]))
        engine = GameEngine(config, progress=progress_at(config, FOOD), enhancer=enhancer, seed=1)

        pending = engine.take_turn(1)
        assert pending.awaiting_choice is True
        assert pending.title == 'Exam week'
        assert [o.label for o in pending.options] == ['Study all night', 'Go to sleep']
        assert engine.get_progress().position == FOOD  # not committed yet

        result = engine.choose_option(0)
        progress = engine.get_progress()

        assert result.selected_option == 'Study all night'
        assert progress.position == CLASS
        assert progress.stats.intelligence == 55
        assert progress.stats.energy == 70
        assert progress.credits == 2

    def test_declining_applies_nothing(self, config, story_with_options):
        enhancer = NarrativeEnhancer(MockLLMProvider(responses=[story_with_options]))
        engine = GameEngine(config, progress=progress_at(config, FOOD), enhancer=enhancer, seed=1)

        engine.take_turn(1)
        engine.choose_option(None)
        progress = engine.get_progress()

        assert progress.position == CLASS
        assert progress.stats == initial_stats(config)
        assert progress.credits == 0

    def test_option_credits_forced_to_zero_off_credit_tiles(self, config):
        option = EnhancementOption('Tutor a friend', {'credits': (5, 5), 'money': (20, 20)})
        enhancer = StubEnhancer(Enhancement(title='Lunch', options=(option,)))
        engine = GameEngine(config, progress=progress_at(config, START), enhancer=enhancer, seed=1)

        engine.take_turn(1)  # lands on food
        engine.choose_option(0)

        assert engine.get_progress().credits == 0
        assert engine.get_progress().stats.money == 220

    def test_negative_option_credits_floored(self, config):
        option = EnhancementOption('Skip class', {'credits': (-3, -3)})
        enhancer = StubEnhancer(Enhancement(options=(option,)))
        engine = GameEngine(config, progress=progress_at(config, FOOD, credits=2), enhancer=enhancer, seed=1)

        engine.take_turn(1)
        engine.choose_option(0)

        assert engine.get_progress().credits == 2

    def test_roll_refused_while_choice_pending(self, config, story_with_options):
        enhancer = NarrativeEnhancer(MockLLMProvider(responses=[story_with_options]))
        engine = GameEngine(config, enhancer=enhancer, seed=1)

        engine.take_turn(1)
        assert engine.is_awaiting_choice()
        with pytest.raises(TurnInProgressError):
            engine.take_turn(1)

    def test_choose_without_pending_raises(self, config):
        engine = GameEngine(config, seed=1)
        with pytest.raises(NoPendingChoiceError):
            engine.choose_option(0)

    def test_out_of_range_choice_raises_and_keeps_turn_open(self, config, story_with_options):
        enhancer = NarrativeEnhancer(MockLLMProvider(responses=[story_with_options]))
        engine = GameEngine(config, enhancer=enhancer, seed=1)

        engine.take_turn(1)
        with pytest.raises(InvalidChoiceError):
            engine.choose_option(7)
        assert engine.is_awaiting_choice()

    def test_story_without_options_keeps_default_outcome(self, config):
        enhancer = StubEnhancer(Enhancement(title='Snack break', story='Crumbs everywhere.'))
        engine = GameEngine(config, progress=progress_at(config, START), enhancer=enhancer, seed=1)

        result = engine.take_turn(1)  # lands on food

        assert result.awaiting_choice is False
        assert result.title == 'Snack break'
        assert result.story == 'Crumbs everywhere.'
        assert result.changes['energy'] > 0

    def test_failing_service_matches_no_enhancer(self, config):
        """A timing-out service yields exactly the default game."""
        failing = NarrativeEnhancer(MockLLMProvider(error=ServiceTimeoutError("slow")))
        plain = GameEngine(config, seed=99)
        enhanced = GameEngine(config, enhancer=failing, seed=99)

        for _ in range(20):
            a = plain.take_turn()
            b = enhanced.take_turn()
            assert b.awaiting_choice is False
            assert a.progress.to_dict() == b.progress.to_dict()

    def test_enhancer_exception_falls_back(self, config):
        enhancer = StubEnhancer(error=RuntimeError("boom"))
        engine = GameEngine(config, progress=progress_at(config, START), enhancer=enhancer, seed=1)

        result = engine.take_turn(1)

        assert result.awaiting_choice is False
        assert result.changes['energy'] > 0

    def test_request_carries_label_and_excerpts(self, config, references):
        enhancer = StubEnhancer()
        engine = GameEngine(config, references=references, progress=progress_at(config, FOOD),
                            enhancer=enhancer, seed=1)

        engine.take_turn(1)
        request = enhancer.requests[0]

        assert request.tile_type == 'c'
        assert request.tile_label == 'Faculty'
        assert request.references['foods'] == ['Pizza place']


class TestPersistenceAndHistory:
    """Test per-turn snapshot writes and the turn log."""

    def test_snapshot_written_after_each_turn(self, config):
        store = MemorySnapshotStore()
        engine = GameEngine(config, store=store, seed=1)

        engine.take_turn(1)
        engine.take_turn(1)

        assert store.write_count == 2

    def test_no_snapshot_while_choice_pending(self, config, story_with_options):
        store = MemorySnapshotStore()
        enhancer = NarrativeEnhancer(MockLLMProvider(responses=[story_with_options]))
        engine = GameEngine(config, enhancer=enhancer, store=store, seed=1)

        engine.take_turn(1)
        assert store.write_count == 0
        engine.choose_option(1)
        assert store.write_count == 1

    def test_history_records_turns(self, config):
        engine = GameEngine(config, seed=1)
        engine.take_turn(1)

        entry = engine.history[-1]
        assert entry['roll'] == 1
        assert entry['tile'] == 'f'
        assert entry['level'] == 1

    def test_history_is_capped(self, config):
        engine = GameEngine(config, progress=progress_at(config, 0, level=3), seed=1)
        for _ in range(HISTORY_LIMIT + 25):
            engine.take_turn(1)
        assert len(engine.history) == HISTORY_LIMIT

    def test_turn_summary(self, config):
        engine = GameEngine(config, progress=progress_at(config, FOOD, credits=1), seed=1)
        summary = engine.get_turn_summary()

        assert summary['level_label'] == 'Year 1'
        assert summary['credits_to_advance'] == 3
        assert summary['tile'] == 'f'
        assert summary['energy'] == 80
        assert summary['completed'] is False

    def test_turn_result_serializes(self, config):
        engine = GameEngine(config, seed=1)
        data = engine.take_turn(1).to_dict()

        assert data["tile"] == {"x": 0, "y": 1, "type": "f"}
        assert data["progress"]["position"] == FOOD


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
