"""
Campus Loop - Game Engine

Core turn logic for a single-player board game: roll, step along the
board cycle, resolve the landing tile, accrue credits and advance levels.
ALL MATH IS HARD-CODED. The narrative layer can offer choices but cannot
touch stats, credits or position outside the rules below.

This module is the single source of truth for:
- Turn resolution (step-by-step movement, start-tile resets, level-ups)
- The credit rule (credits only change on faculty tiles)
- Pending player choices from the narrative layer
- Persisting progress after every completed turn
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging
import random

from board import Board, Tile, TileType, parse_board
from events import compute_event_outcome
from game_config import GameConfig, ReferenceLists, TRACKED_QUANTITIES
from narrative import Enhancement, EnhancementOption, EnhancementRequest, NarrativeEnhancer
from snapshot import (
    PlayerProgress,
    SnapshotStore,
    clamp_credits,
    load_progress,
    save_progress,
)
from stats import StatSet, clamp_stats, initial_stats

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 200


# =============================================================================
# TURN DATA
# =============================================================================

@dataclass
class _TurnContext:
    """Mutable, turn-scoped working copy. Never outlives one turn."""
    level: int
    stats: StatSet
    credits: int
    position: int
    board: Board
    roll: int
    steps_taken: int = 0
    start_passes: int = 0
    leveled_up: bool = False
    level_before: int = 0
    changes: Dict[str, int] = field(default_factory=dict)

    def progress(self) -> PlayerProgress:
        return PlayerProgress(self.level, self.stats, self.credits, self.position)


@dataclass
class _PendingChoice:
    context: _TurnContext
    tile: Tile
    title: str
    message: str
    enhancement: Enhancement


@dataclass
class TurnResult:
    """Everything a caller needs to present one roll."""
    roll: int
    steps_taken: int
    start_passes: int
    tile: Optional[Tile]
    title: str
    message: str
    story: Optional[str]
    options: List[EnhancementOption]
    changes: Dict[str, int]
    level_before: int
    level_after: int
    leveled_up: bool
    completed: bool
    awaiting_choice: bool
    progress: PlayerProgress
    selected_option: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'roll': self.roll,
            'steps_taken': self.steps_taken,
            'start_passes': self.start_passes,
            'tile': self.tile.to_dict() if self.tile else None,
            'title': self.title,
            'message': self.message,
            'story': self.story,
            'options': [o.to_dict() for o in self.options],
            'changes': dict(self.changes),
            'level_before': self.level_before,
            'level_after': self.level_after,
            'leveled_up': self.leveled_up,
            'completed': self.completed,
            'awaiting_choice': self.awaiting_choice,
            'selected_option': self.selected_option,
            'progress': self.progress.to_dict(),
        }


# =============================================================================
# GAME ENGINE CLASS
# =============================================================================

class GameEngine:
    """
    Main game engine. Resolves one dice roll into a new consistent progress.

    Not re-entrant: while a narrative choice is pending, further rolls are
    refused until choose_option() closes the turn.
    """

    def __init__(
        self,
        config: GameConfig,
        references: Optional[ReferenceLists] = None,
        progress: Optional[PlayerProgress] = None,
        enhancer: Optional[NarrativeEnhancer] = None,
        store: Optional[SnapshotStore] = None,
        seed: Optional[int] = None
    ):
        self.config = config
        self.references = references or ReferenceLists()
        self.enhancer = enhancer  # Optional narrative layer
        self.store = store
        self.rng = random.Random(seed)
        self.history: List[Dict[str, Any]] = []
        self._pending: Optional[_PendingChoice] = None

        if progress is None:
            level = config.initial_level
            self.board = parse_board(config.level(level).board)
            progress = PlayerProgress(
                level=level,
                stats=initial_stats(config),
                credits=clamp_credits(config, level, config.initial_credits),
                position=self.board.start_index(),
            )
        else:
            self.board = parse_board(config.level(progress.level).board)
            progress = progress.copy()
            progress.position = self.board.clamp_position(progress.position)
        self.progress = progress

    # -------------------------------------------------------------------------
    # TURN LOOP
    # -------------------------------------------------------------------------

    def roll_dice(self) -> int:
        return self.rng.randint(self.config.dice_minimum, self.config.dice_maximum)

    def take_turn(self, roll: Optional[int] = None) -> TurnResult:
        """
        Execute one roll.

        Args:
            roll: Dice value; drawn from the configured dice range when omitted

        Returns:
            TurnResult. If awaiting_choice is set, call choose_option() to finish.

        Raises:
            TurnInProgressError: A narrative choice from the previous roll is still open
            InvalidRollError: Negative roll
            BoardError: The next level's board cannot be parsed
        """
        if self._pending is not None:
            raise TurnInProgressError("Previous roll is waiting for a choice")
        if roll is None:
            roll = self.roll_dice()
        if isinstance(roll, bool) or not isinstance(roll, int) or roll < 0:
            raise InvalidRollError(f"Invalid roll: {roll!r}")

        ctx = _TurnContext(
            level=self.progress.level,
            stats=self.progress.stats,
            credits=self.progress.credits,
            position=self.progress.position,
            board=self.board,
            roll=roll,
            level_before=self.progress.level,
        )

        # Phase 1: Movement, one step at a time
        for _ in range(roll):
            ctx.position = ctx.board.advance(ctx.position)
            ctx.steps_taken += 1
            if ctx.board.tile_at(ctx.position).type is TileType.START:
                ctx.start_passes += 1
                before_stats = ctx.stats
                ctx.stats = initial_stats(self.config)
                self._record_stat_changes(ctx, before_stats)
                before_credits = ctx.credits
                self._advance_levels(ctx)
                if ctx.leveled_up:
                    if ctx.credits != before_credits:
                        ctx.changes['credits'] = ctx.credits - before_credits
                    break  # rest of the roll is discarded

        if ctx.leveled_up:
            return self._finish(ctx, tile=None, title=self._level_up_title(ctx), message="")

        # Phase 2: Landing event
        tile = ctx.board.tile_at(ctx.position)
        outcome = compute_event_outcome(tile.type, self.config, self.references, self.rng)
        title = outcome.message

        # Phase 3: Optional narrative overlay
        enhancement = self._enhance(tile)
        if enhancement is not None and enhancement.options:
            self._pending = _PendingChoice(
                context=ctx,
                tile=tile,
                title=enhancement.title or outcome.message,
                message=outcome.message,
                enhancement=enhancement,
            )
            return self._result(
                ctx, tile,
                title=self._pending.title,
                message=outcome.message,
                story=enhancement.story,
                options=list(enhancement.options),
                awaiting_choice=True,
            )

        # Phase 4: Default outcome
        self._apply_delta(ctx, tile, outcome.delta)
        story = None
        if enhancement is not None:
            title = enhancement.title or title
            story = enhancement.story
        return self._finish(ctx, tile, title=title, message=outcome.message, story=story)

    def choose_option(self, index: Optional[int]) -> TurnResult:
        """
        Close a turn that is waiting on a narrative choice.

        Args:
            index: Index into the offered options, or None to decline (apply nothing)

        Raises:
            NoPendingChoiceError: No turn is waiting for a choice
            InvalidChoiceError: Index out of range
        """
        pending = self._pending
        if pending is None:
            raise NoPendingChoiceError("No roll is waiting for a choice")

        options = pending.enhancement.options
        option = None
        if index is not None:
            if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(options):
                raise InvalidChoiceError(f"Choice {index!r} is not one of {len(options)} options")
            option = options[index]

        self._pending = None
        ctx = pending.context
        if option is not None:
            extra = option.sample(self.rng)
            extra['credits'] = max(0, extra['credits'])
            self._apply_delta(ctx, pending.tile, extra)

        return self._finish(
            ctx, pending.tile,
            title=pending.title,
            message=pending.message,
            story=pending.enhancement.story,
            selected_option=option.label if option else None,
        )

    # -------------------------------------------------------------------------
    # RULES
    # -------------------------------------------------------------------------

    def _apply_delta(self, ctx: _TurnContext, tile: Tile, delta: Dict[str, int]):
        """Apply a five-key delta with clamping, then re-check level-up."""
        delta = {key: int(delta.get(key, 0) or 0) for key in TRACKED_QUANTITIES}
        # Credits only move on faculty tiles, whatever produced the delta
        if tile.type is not TileType.CREDIT:
            delta['credits'] = 0

        before_stats, before_credits = ctx.stats, ctx.credits
        ctx.stats = clamp_stats(self.config, ctx.stats.plus(delta))
        ctx.credits = clamp_credits(self.config, ctx.level, ctx.credits + delta['credits'])
        self._record_stat_changes(ctx, before_stats)

        # Credits can cross the threshold mid-path, not only at start
        self._advance_levels(ctx)

        if ctx.credits != before_credits:
            ctx.changes['credits'] = ctx.changes.get('credits', 0) + ctx.credits - before_credits

    def _record_stat_changes(self, ctx: _TurnContext, before: StatSet):
        for key, value in ctx.stats.diff(before).items():
            if value:
                ctx.changes[key] = ctx.changes.get(key, 0) + value

    def _can_advance(self, ctx: _TurnContext) -> bool:
        return (
            ctx.level < self.config.maximum_level
            and ctx.credits >= self.config.credits_to_advance(ctx.level)
        )

    def _advance_levels(self, ctx: _TurnContext):
        """Transition until the carried credits sit below the current threshold."""
        while self._can_advance(ctx):
            self._level_transition(ctx)

    def _level_transition(self, ctx: _TurnContext):
        """Enter the next level at its start tile. Position does not carry over."""
        ctx.level += 1
        ctx.board = parse_board(self.config.level(ctx.level).board)
        ctx.position = ctx.board.start_index()
        ctx.credits = clamp_credits(self.config, ctx.level, ctx.credits)
        ctx.leveled_up = True
        logger.info(f"Level up: {ctx.level - 1} -> {ctx.level} ({self.config.level(ctx.level).label})")
        if ctx.level >= self.config.maximum_level:
            logger.info("Final level reached; game completed")

    def _level_up_title(self, ctx: _TurnContext) -> str:
        if ctx.level >= self.config.maximum_level:
            return "Graduated! The game is complete."
        return f"Congratulations! You advanced to {self.config.level(ctx.level).label}"

    def _enhance(self, tile: Tile) -> Optional[Enhancement]:
        """Best-effort narrative call. Failures degrade to the default outcome."""
        if self.enhancer is None:
            return None
        request = EnhancementRequest(
            tile_type=tile.type.value,
            tile_label=self.config.label_for_tile(tile.type.value),
            references=self.references.excerpt(),
        )
        try:
            return self.enhancer.enhance(request)
        except Exception as e:
            logger.warning(f"Narrative enhancement failed, using default outcome: {e}")
            return None

    # -------------------------------------------------------------------------
    # COMMIT
    # -------------------------------------------------------------------------

    def _finish(
        self,
        ctx: _TurnContext,
        tile: Optional[Tile],
        title: str,
        message: str,
        story: Optional[str] = None,
        selected_option: Optional[str] = None
    ) -> TurnResult:
        """Commit the turn, record it and persist the snapshot."""
        if ctx.leveled_up and tile is not None:
            title = self._level_up_title(ctx)

        self.progress = ctx.progress()
        self.board = ctx.board

        self.history.append({
            'roll': ctx.roll,
            'tile': tile.type.value if tile else None,
            'title': title,
            'message': message,
            'selected_option': selected_option,
            'changes': dict(ctx.changes),
            'level': ctx.level,
        })
        del self.history[:-HISTORY_LIMIT]

        if self.store is not None:
            save_progress(self.store, self.progress)

        return self._result(
            ctx, tile,
            title=title,
            message=message,
            story=story,
            selected_option=selected_option,
        )

    def _result(
        self,
        ctx: _TurnContext,
        tile: Optional[Tile],
        title: str,
        message: str,
        story: Optional[str] = None,
        options: Optional[List[EnhancementOption]] = None,
        awaiting_choice: bool = False,
        selected_option: Optional[str] = None
    ) -> TurnResult:
        return TurnResult(
            roll=ctx.roll,
            steps_taken=ctx.steps_taken,
            start_passes=ctx.start_passes,
            tile=tile,
            title=title,
            message=message,
            story=story,
            options=options or [],
            changes=dict(ctx.changes),
            level_before=ctx.level_before,
            level_after=ctx.level,
            leveled_up=ctx.leveled_up,
            completed=ctx.level >= self.config.maximum_level,
            awaiting_choice=awaiting_choice,
            progress=ctx.progress(),
            selected_option=selected_option,
        )

    # -------------------------------------------------------------------------
    # PUBLIC API
    # -------------------------------------------------------------------------

    def get_progress(self) -> PlayerProgress:
        """Return a copy of the committed progress."""
        return self.progress.copy()

    def is_completed(self) -> bool:
        return self.progress.level >= self.config.maximum_level

    def is_awaiting_choice(self) -> bool:
        return self._pending is not None

    def current_level_label(self) -> str:
        return self.config.level(self.progress.level).label

    def current_tile(self) -> Tile:
        return self.board.tile_at(self.progress.position)

    def get_turn_summary(self) -> Dict[str, Any]:
        """Get summary of current state."""
        return {
            'level': self.progress.level,
            'level_label': self.current_level_label(),
            'credits': self.progress.credits,
            'credits_to_advance': (
                None if self.is_completed()
                else self.config.credits_to_advance(self.progress.level)
            ),
            'position': self.progress.position,
            'tile': self.current_tile().type.value,
            'completed': self.is_completed(),
            **self.progress.stats.to_dict(),
        }


# =============================================================================
# EXCEPTIONS
# =============================================================================

class TurnInProgressError(Exception):
    """Raised when rolling while the previous roll still waits for a choice."""
    pass


class NoPendingChoiceError(Exception):
    """Raised when choosing an option with no roll waiting for one."""
    pass


class InvalidChoiceError(Exception):
    """Raised when the chosen option index is out of range."""
    pass


class InvalidRollError(Exception):
    """Raised when a supplied roll is not a non-negative integer."""
    pass


# =============================================================================
# NEW GAME FACTORY
# =============================================================================

def new_game(
    config: GameConfig,
    references: Optional[ReferenceLists] = None,
    enhancer: Optional[NarrativeEnhancer] = None,
    store: Optional[SnapshotStore] = None,
    seed: Optional[int] = None,
    resume: bool = True
) -> GameEngine:
    """Create an engine, resuming from the store's snapshot when present."""
    progress = load_progress(store, config) if (store is not None and resume) else None
    return GameEngine(
        config=config,
        references=references,
        progress=progress,
        enhancer=enhancer,
        store=store,
        seed=seed,
    )


# =============================================================================
# MAIN ENTRY (for testing)
# =============================================================================

if __name__ == "__main__":
    import json

    from game_config import SAMPLE_CONFIG, SAMPLE_REFERENCES
    from llm_provider import MockLLMProvider

    config = GameConfig.from_dict(SAMPLE_CONFIG)
    story = json.dumps({
        'title': 'A quiet afternoon',
        'story': 'The campus hums along while you wander between buildings.',
    })
    engine = new_game(
        config,
        references=ReferenceLists.from_dict(SAMPLE_REFERENCES),
        enhancer=NarrativeEnhancer(MockLLMProvider(responses=[story])),
        seed=42,
    )
    print("Initial state:", engine.get_turn_summary())
    print(engine.board.render())

    for turn in range(10):
        result = engine.take_turn()
        if result.awaiting_choice:
            result = engine.choose_option(0)
        print(f"\nTurn {turn + 1}: rolled {result.roll} -> {result.title}")
        print(f"  Changes: {result.changes}")
        print(f"  Summary: {engine.get_turn_summary()}")
