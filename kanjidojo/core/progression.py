from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Callable, Iterable, List, Optional, Tuple

from kanjidojo.core.config import EngineSettings
from kanjidojo.core.curriculum import CurriculumIndex, ItemId, Tier, TierId
from kanjidojo.core.mastery import LearnerState, MasteryRecord, MasteryStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierProgress:
    """Point-in-time progress of one tier, for display."""

    tier_id: TierId
    label: str
    mastered_count: int
    total_items: int
    required_mastered: int
    sessions_played: int
    required_sessions: int
    unlocked: bool

    @property
    def threshold_met(self) -> bool:
        """True once this tier has done enough to open the next one."""
        return self.mastered_count >= self.required_mastered and self.sessions_played >= self.required_sessions

    @property
    def percent(self) -> int:
        if not self.total_items:
            return 0
        return min(100, round(self.mastered_count / max(self.required_mastered, self.total_items) * 100))


@dataclass(frozen=True)
class OutcomeResult:
    state: LearnerState
    gained_xp: int
    newly_unlocked: Tuple[TierId, ...]
    newly_mastered: int
    correct_count: int
    saved: bool = False


def required_mastered(tier: Tier) -> int:
    """Mastered-item threshold, capped at the tier size so small tiers can still open the next."""
    return min(tier.threshold.min_mastered_items, tier.size)


def mastered_in_tier(state: LearnerState, tier: Tier) -> int:
    return sum(1 for item_id in tier.item_ids if state.is_mastered(item_id))


def xp_for(correct: int, tier: Tier, settings: EngineSettings) -> int:
    """XP for ``correct`` answers in ``tier``; grows with both the count and the tier weight."""
    return max(0, round(correct * settings.xp_per_correct * tier.xp_weight))


def tier_progress(
    state: LearnerState,
    tier_id: TierId,
    curriculum: CurriculumIndex,
    settings: Optional[EngineSettings] = None,
) -> TierProgress:
    """Derive a TierProgress from ``state``. Never mutates it."""
    settings = settings or EngineSettings()
    tier = curriculum.tier(tier_id)
    return TierProgress(
        tier_id=tier.id,
        label=tier.label,
        mastered_count=mastered_in_tier(state, tier),
        total_items=tier.size,
        required_mastered=required_mastered(tier),
        sessions_played=state.sessions_played(tier.id),
        required_sessions=tier.threshold.min_sessions_played,
        unlocked=settings.unlock_all or tier.id in state.unlocked_tiers,
    )


def _advance_streak(state: LearnerState, today: date) -> None:
    stats = state.stats
    today_iso = today.isoformat()
    if stats.last_active_date == today_iso:
        return
    yesterday_iso = (today - timedelta(days=1)).isoformat()
    if stats.last_active_date == yesterday_iso:
        stats.streak_days += 1
    else:
        stats.streak_days = 1
    stats.best_streak_days = max(stats.best_streak_days, stats.streak_days)
    stats.last_active_date = today_iso


def _evaluate_unlock(state: LearnerState, curriculum: CurriculumIndex) -> List[TierId]:
    # Only the tier right after the furthest unlocked tier can open, and only one per call.
    last = state.unlocked_tiers[-1]
    following = curriculum.next_tier(last)
    if following is None or following.id in state.unlocked_tiers:
        return []
    tier = curriculum.tier(last)
    if mastered_in_tier(state, tier) < required_mastered(tier):
        return []
    if state.sessions_played(tier.id) < tier.threshold.min_sessions_played:
        return []
    state.unlocked_tiers.append(following.id)
    state.current_tier = following.id
    logger.info("Unlocked %s after completing %s", following.label, tier.label)
    return [following.id]


def apply_outcome(
    state: LearnerState,
    tier_id: TierId,
    correct_item_ids: Iterable[ItemId],
    curriculum: CurriculumIndex,
    settings: Optional[EngineSettings] = None,
    today: Optional[date] = None,
) -> OutcomeResult:
    """Fold one completed quiz into a copy of ``state``.

    Steps, in order: count the session, credit each distinct correct item
    (marking it mastered the first time it reaches the threshold), award XP,
    then try to unlock the next tier. The input state is left untouched.
    """
    settings = settings or EngineSettings()
    today = today or date.today()
    tier = curriculum.tier(tier_id)
    new_state = state.copy()

    if tier.id not in new_state.unlocked_tiers:
        logger.warning("Recording a quiz for locked tier %r", tier.id)

    new_state.sessions_by_tier[tier.id] = new_state.sessions_played(tier.id) + 1

    correct = 0
    newly_mastered = 0
    for item_id in dict.fromkeys(correct_item_ids):
        if curriculum.get_item(item_id) is None:
            logger.warning("Ignoring unknown item id %r in quiz outcome", item_id)
            continue
        correct += 1
        record = new_state.mastery_by_item.get(item_id) or MasteryRecord(item_id=item_id)
        record.correct_count += 1
        if record.mastered_at is None and record.correct_count >= settings.mastery_threshold:
            record.mastered_at = today.isoformat()
            newly_mastered += 1
            logger.info("Mastered item %r after %d correct answers", item_id, record.correct_count)
        new_state.mastery_by_item[item_id] = record

    gained_xp = xp_for(correct, tier, settings)
    new_state.stats.total_xp += gained_xp
    new_state.stats.quizzes_played += 1
    _advance_streak(new_state, today)

    unlocked = _evaluate_unlock(new_state, curriculum)

    return OutcomeResult(
        state=new_state,
        gained_xp=gained_xp,
        newly_unlocked=tuple(unlocked),
        newly_mastered=newly_mastered,
        correct_count=correct,
    )


class ProgressionEngine:
    """Applies quiz outcomes to the learner's saved state.

    ``record_outcome`` holds the store's lock across load, update and save, so
    two quick submissions can never overwrite each other's increments.
    """

    def __init__(
        self,
        curriculum: CurriculumIndex,
        store: MasteryStore,
        settings: Optional[EngineSettings] = None,
        clock: Optional[Callable[[], date]] = None,
    ) -> None:
        self._curriculum = curriculum
        self._store = store
        self._settings = settings or EngineSettings()
        self._clock = clock or date.today
        self._state: Optional[LearnerState] = None
        self._unsaved = False

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def state(self) -> LearnerState:
        """Latest learner state; re-read from the store unless an outcome is waiting to be saved."""
        with self._store.lock:
            if self._state is None or not self._unsaved:
                self._state = self._store.load()
            return self._state

    def record_outcome(self, tier_id: TierId, correct_item_ids: Iterable[ItemId]) -> OutcomeResult:
        with self._store.lock:
            result = apply_outcome(
                self.state,
                tier_id,
                correct_item_ids,
                self._curriculum,
                self._settings,
                today=self._clock(),
            )
            # Keep the new state even if the write fails; save() can retry it.
            self._state = result.state
            saved = self._store.save(result.state)
            self._unsaved = not saved
            if not saved:
                logger.warning("Quiz outcome for tier %r kept in memory only", tier_id)
        return replace(result, saved=saved)

    def save(self) -> bool:
        """Persist the in-memory state (e.g. to retry after a failed write)."""
        with self._store.lock:
            saved = self._store.save(self.state)
            self._unsaved = not saved
            return saved

    def reset(self) -> LearnerState:
        with self._store.lock:
            self._state = self._store.reset()
            self._unsaved = False
            return self._state

    def tier_progress(self, tier_id: TierId) -> TierProgress:
        return tier_progress(self.state, tier_id, self._curriculum, self._settings)

    def progress_snapshot(self) -> List[TierProgress]:
        state = self.state
        return [tier_progress(state, tid, self._curriculum, self._settings) for tid in self._curriculum.tier_ids()]

    def is_unlocked(self, tier_id: TierId) -> bool:
        return self.tier_progress(tier_id).unlocked
