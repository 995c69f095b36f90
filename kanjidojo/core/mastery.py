from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from kanjidojo.core.config import default_state_dir
from kanjidojo.core.curriculum import CurriculumIndex, ItemId, TierId

logger = logging.getLogger(__name__)

STATE_VERSION = 1


@dataclass
class MasteryRecord:
    item_id: ItemId
    correct_count: int = 0
    mastered_at: Optional[str] = None

    @property
    def mastered(self) -> bool:
        return self.mastered_at is not None


@dataclass
class LearnerStats:
    streak_days: int = 0
    best_streak_days: int = 0
    last_active_date: Optional[str] = None
    total_xp: int = 0
    quizzes_played: int = 0


@dataclass
class LearnerState:
    current_tier: TierId
    unlocked_tiers: List[TierId]
    sessions_by_tier: Dict[TierId, int] = field(default_factory=dict)
    mastery_by_item: Dict[ItemId, MasteryRecord] = field(default_factory=dict)
    stats: LearnerStats = field(default_factory=LearnerStats)

    def sessions_played(self, tier_id: TierId) -> int:
        return self.sessions_by_tier.get(tier_id, 0)

    def record_for(self, item_id: ItemId) -> MasteryRecord:
        return self.mastery_by_item.get(item_id, MasteryRecord(item_id=item_id))

    def is_mastered(self, item_id: ItemId) -> bool:
        record = self.mastery_by_item.get(item_id)
        return record is not None and record.mastered

    def copy(self) -> "LearnerState":
        return LearnerState(
            current_tier=self.current_tier,
            unlocked_tiers=list(self.unlocked_tiers),
            sessions_by_tier=dict(self.sessions_by_tier),
            mastery_by_item={
                key: MasteryRecord(rec.item_id, rec.correct_count, rec.mastered_at)
                for key, rec in self.mastery_by_item.items()
            },
            stats=LearnerStats(**asdict(self.stats)),
        )


def _id_key(item_id: ItemId) -> str:
    return str(item_id)


class MasteryStore:
    """Persists one LearnerState as JSON. File: ~/.kanjidojo/progress.json by default.

    Writes go to a temporary file beside the target and are moved into place
    with ``os.replace`` so a crash never leaves a half-written document.
    Callers that load, modify and save must hold ``lock`` for the whole cycle.
    """

    def __init__(self, curriculum: CurriculumIndex, file_path: Optional[Path] = None) -> None:
        self._curriculum = curriculum
        self._file_path = file_path or default_state_dir() / "progress.json"
        self.lock = threading.RLock()

    @property
    def file_path(self) -> Path:
        return self._file_path

    def default_state(self) -> LearnerState:
        first = self._curriculum.first_tier().id
        return LearnerState(current_tier=first, unlocked_tiers=[first])

    def load(self) -> LearnerState:
        """Return the saved state, or a fresh default when nothing usable is on disk."""
        if not self._file_path.exists():
            return self.default_state()
        try:
            payload = json.loads(self._file_path.read_text(encoding="utf-8"))
            if not isinstance(payload, dict):
                raise ValueError("top-level value is not an object")
            return self._from_payload(payload)
        except (OSError, ValueError, TypeError, AttributeError) as e:
            # json.JSONDecodeError is a ValueError
            logger.warning("Could not load progress from %s: %s", self._file_path, e)
            return self.default_state()

    def save(self, state: LearnerState) -> bool:
        """Persist ``state``; returns False (and logs) when the write fails."""
        payload = self._to_payload(state)
        tmp_name: Optional[str] = None
        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._file_path.name}.", suffix=".tmp", dir=str(self._file_path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, ensure_ascii=False)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._file_path)
            tmp_name = None
        except OSError as e:
            logger.warning("Could not save progress to %s: %s", self._file_path, e)
            return False
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
        return True

    def reset(self) -> LearnerState:
        """Delete the saved state. Only called on an explicit user reset."""
        with self.lock:
            try:
                self._file_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Could not remove progress file %s: %s", self._file_path, e)
            return self.default_state()

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def _to_payload(self, state: LearnerState) -> Dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "current_tier": state.current_tier,
            "unlocked_tiers": list(state.unlocked_tiers),
            "sessions_by_tier": dict(state.sessions_by_tier),
            "mastery": {
                _id_key(item_id): {
                    "item_id": rec.item_id,
                    "correct_count": rec.correct_count,
                    "mastered_at": rec.mastered_at,
                }
                for item_id, rec in state.mastery_by_item.items()
            },
            "stats": asdict(state.stats),
        }

    def _from_payload(self, payload: Dict[str, Any]) -> LearnerState:
        curriculum = self._curriculum
        order = curriculum.tier_ids()

        saved_unlocked = [str(t) for t in payload.get("unlocked_tiers", []) if str(t) in order]
        furthest = max((order.index(t) for t in saved_unlocked), default=0)
        unlocked = order[: furthest + 1]

        current = str(payload.get("current_tier", order[0]))
        if current not in unlocked:
            current = order[0]

        sessions: Dict[TierId, int] = {}
        raw_sessions = payload.get("sessions_by_tier", {})
        if isinstance(raw_sessions, dict):
            for tier_id, count in raw_sessions.items():
                if str(tier_id) in order:
                    sessions[str(tier_id)] = max(0, int(count))

        mastery: Dict[ItemId, MasteryRecord] = {}
        raw_mastery = payload.get("mastery", {})
        if isinstance(raw_mastery, dict):
            for key, value in raw_mastery.items():
                if not isinstance(value, dict):
                    continue
                item_id = value.get("item_id", key)
                mastered_at = value.get("mastered_at")
                mastery[item_id] = MasteryRecord(
                    item_id=item_id,
                    correct_count=max(0, int(value.get("correct_count", 0))),
                    mastered_at=str(mastered_at) if mastered_at else None,
                )

        stats = LearnerStats()
        raw_stats = payload.get("stats", {})
        if isinstance(raw_stats, dict):
            last_active = raw_stats.get("last_active_date")
            stats = LearnerStats(
                streak_days=int(raw_stats.get("streak_days", 0)),
                best_streak_days=int(raw_stats.get("best_streak_days", 0)),
                last_active_date=str(last_active) if last_active else None,
                total_xp=int(raw_stats.get("total_xp", 0)),
                quizzes_played=int(raw_stats.get("quizzes_played", 0)),
            )

        return LearnerState(
            current_tier=current,
            unlocked_tiers=unlocked,
            sessions_by_tier=sessions,
            mastery_by_item=mastery,
            stats=stats,
        )
