from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from kanjidojo.core.curriculum import CurriculumIndex, Item, ItemId, TierId

logger = logging.getLogger(__name__)

DISTRACTOR_COUNT = 3


@dataclass(frozen=True)
class QuizQuestion:
    """One multiple-choice question: pick the meaning of ``glyph``."""

    item_id: ItemId
    glyph: str
    correct_answer: str
    answers: Tuple[str, ...]
    tier: TierId
    radical: Optional[str] = None
    strokes: Optional[int] = None

    @property
    def degraded(self) -> bool:
        """True when the catalog could not supply a full set of distractors."""
        return len(self.answers) < DISTRACTOR_COUNT + 1

    def is_correct(self, answer: str) -> bool:
        return answer == self.correct_answer


class QuizGenerator:
    """Samples items and builds shuffled multiple-choice questions.

    All randomness goes through ``rng`` so a seeded ``random.Random`` makes a
    quiz reproducible.
    """

    def __init__(self, curriculum: CurriculumIndex, rng: Optional[random.Random] = None) -> None:
        self._curriculum = curriculum
        self._rng = rng or random.Random()

    def generate(self, tier_id: TierId, count: int) -> List[QuizQuestion]:
        """Return up to ``count`` questions on distinct items of ``tier_id``.

        Falls back to the whole catalog when the tier has no usable item and
        returns an empty list only when no usable item exists at all.
        """
        pool = self._base_pool(tier_id)
        if not pool:
            logger.warning("No kanji with a usable meaning in the catalog; quiz is empty")
            return []
        if count <= 0:
            return []
        selected = self.sample_items(pool, count)
        return [self.build_question(item, pool) for item in selected]

    def sample_items(self, pool: Sequence[Item], count: int) -> List[Item]:
        """Uniformly pick ``min(count, len(pool))`` distinct items."""
        shuffled = list(pool)
        self._rng.shuffle(shuffled)
        return shuffled[: min(count, len(shuffled))]

    def build_question(self, item: Item, pool: Sequence[Item]) -> QuizQuestion:
        distractors = self._pick_distractors(item, pool)
        if len(distractors) < DISTRACTOR_COUNT:
            logger.warning(
                "Degraded question for %s (id=%r): only %d distractor(s) available",
                item.glyph,
                item.id,
                len(distractors),
            )
        answers = [item.meaning, *distractors]
        self._rng.shuffle(answers)
        return QuizQuestion(
            item_id=item.id,
            glyph=item.glyph,
            correct_answer=item.meaning,
            answers=tuple(answers),
            tier=item.tier,
            radical=item.radical,
            strokes=item.strokes,
        )

    def _base_pool(self, tier_id: TierId) -> List[Item]:
        pool = self._curriculum.usable_items(tier_id)
        if pool:
            return pool
        logger.info("Tier %r has no usable kanji; drawing from the full catalog", tier_id)
        return self._curriculum.usable_items()

    def _pick_distractors(self, item: Item, pool: Sequence[Item]) -> List[str]:
        candidates = self._candidate_meanings(item, pool)
        if len(candidates) >= DISTRACTOR_COUNT:
            return self._rng.sample(candidates, DISTRACTOR_COUNT)

        # Tier pool too small: keep all of it and top up from the rest of the catalog.
        chosen = list(candidates)
        extra = [m for m in self._candidate_meanings(item, self._curriculum.usable_items()) if m not in chosen]
        needed = min(DISTRACTOR_COUNT - len(chosen), len(extra))
        chosen.extend(self._rng.sample(extra, needed))
        return chosen

    @staticmethod
    def _candidate_meanings(item: Item, pool: Sequence[Item]) -> List[str]:
        meanings = (
            other.meaning
            for other in pool
            if other.id != item.id and other.has_meaning and other.meaning != item.meaning
        )
        return list(dict.fromkeys(meanings))
