from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from kanjidojo.core.config import DATA_DIR, read_yaml_mapping
from kanjidojo.core.errors import UnknownTierError

logger = logging.getLogger(__name__)

ItemId = Union[int, str]
TierId = str

PLACEHOLDER_MEANING = "Meaning not available"
TERMINAL_TIER = "S"


@dataclass(frozen=True)
class UnlockThreshold:
    """Both values must be reached in a tier before the next tier opens."""

    min_mastered_items: int = 0
    min_sessions_played: int = 0


@dataclass(frozen=True)
class Tier:
    id: TierId
    label: str
    note: str = ""
    item_ids: Tuple[ItemId, ...] = ()
    threshold: UnlockThreshold = field(default_factory=UnlockThreshold)
    xp_weight: float = 1.0

    @property
    def size(self) -> int:
        return len(self.item_ids)


@dataclass(frozen=True)
class Item:
    id: ItemId
    glyph: str
    tier: TierId
    meaning: str
    strokes: Optional[int] = None
    radical: Optional[str] = None
    old_form: Optional[str] = None
    year_added: Optional[int] = None
    meanings: Tuple[str, ...] = ()
    readings_on: Tuple[str, ...] = ()
    readings_kun: Tuple[str, ...] = ()

    @property
    def has_meaning(self) -> bool:
        """False when the catalog had no gloss and the placeholder was substituted."""
        return self.meaning != PLACEHOLDER_MEANING


def _optional_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _string_tuple(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(v).strip() for v in value if str(v).strip())


def _normalize_meaning(value: Any) -> str:
    meaning = value.strip() if isinstance(value, str) else ""
    return meaning or PLACEHOLDER_MEANING


class CurriculumIndex:
    """Read-only index of the item catalog, grouped by tier.

    Tiers keep the order they are given in; the first one is the entry tier and
    the last one collects every item whose grade is missing or unknown.
    """

    def __init__(self, tiers: Iterable[Mapping[str, Any]], records: Iterable[Mapping[str, Any]]) -> None:
        tier_specs = self._parse_tiers(tiers)
        self._items: Dict[ItemId, Item] = {}
        members: Dict[TierId, List[ItemId]] = {tid: [] for tid in tier_specs}
        terminal = list(tier_specs)[-1]

        records = list(records)
        explicit_ids = {
            r.get("id") for r in records if isinstance(r, Mapping) and r.get("id") not in (None, "")
        }

        for position, record in enumerate(records, start=1):
            fallback_id = position
            while fallback_id in explicit_ids or fallback_id in self._items:
                fallback_id += 1
            item = self._build_item(position, record, tier_specs, terminal, fallback_id)
            if item is None:
                continue
            if item.id in self._items:
                raise ValueError(f"Duplicate item id in catalog: {item.id!r}")
            self._items[item.id] = item
            members[item.tier].append(item.id)

        self._tiers: Dict[TierId, Tier] = {}
        for tid, spec in tier_specs.items():
            self._tiers[tid] = Tier(
                id=tid,
                label=spec["label"],
                note=spec["note"],
                item_ids=tuple(members[tid]),
                threshold=spec["threshold"],
                xp_weight=spec["xp_weight"],
            )
        self._order: List[TierId] = list(self._tiers)
        logger.debug("Indexed %d items across %d tiers", len(self._items), len(self._tiers))

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def tiers(self) -> List[Tier]:
        return [self._tiers[tid] for tid in self._order]

    def tier_ids(self) -> List[TierId]:
        return list(self._order)

    def has_tier(self, tier_id: Any) -> bool:
        return tier_id in self._tiers

    def tier(self, tier_id: TierId) -> Tier:
        try:
            return self._tiers[tier_id]
        except (KeyError, TypeError):
            raise UnknownTierError(tier_id) from None

    def first_tier(self) -> Tier:
        return self._tiers[self._order[0]]

    def tier_position(self, tier_id: TierId) -> int:
        self.tier(tier_id)
        return self._order.index(tier_id)

    def next_tier(self, tier_id: TierId) -> Optional[Tier]:
        """Tier following ``tier_id`` in curriculum order, or None for the last tier."""
        pos = self.tier_position(tier_id)
        if pos + 1 >= len(self._order):
            return None
        return self._tiers[self._order[pos + 1]]

    def tier_label(self, tier_id: TierId) -> str:
        tier = self._tiers.get(tier_id)
        return tier.label if tier is not None else f"Grade {tier_id}"

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def items_in_tier(self, tier_id: TierId) -> List[Item]:
        tier = self.tier(tier_id)
        return [self._items[item_id] for item_id in tier.item_ids]

    def all_items(self) -> List[Item]:
        return list(self._items.values())

    def get_item(self, item_id: ItemId) -> Optional[Item]:
        return self._items.get(item_id)

    def usable_items(self, tier_id: Optional[TierId] = None) -> List[Item]:
        """Items with a real meaning, either for one tier or for the whole catalog."""
        items = self.all_items() if tier_id is None else self.items_in_tier(tier_id)
        return [item for item in items if item.has_meaning]

    def __len__(self) -> int:
        return len(self._items)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_tiers(tiers: Iterable[Mapping[str, Any]]) -> Dict[TierId, Dict[str, Any]]:
        specs: Dict[TierId, Dict[str, Any]] = {}
        for index, raw in enumerate(tiers):
            if not isinstance(raw, Mapping):
                raise ValueError(f"tier #{index}: expected a mapping")
            tid = raw.get("id")
            if tid is None or str(tid).strip() == "":
                raise ValueError(f"tier #{index}: missing 'id'")
            tid = str(tid).strip()
            if tid in specs:
                raise ValueError(f"Duplicate tier id: {tid!r}")
            xp_weight = float(raw.get("xp_weight", 1.0))
            if xp_weight <= 0:
                raise ValueError(f"tier {tid!r}: 'xp_weight' must be positive")
            label = raw.get("label")
            specs[tid] = {
                "label": label.strip() if isinstance(label, str) and label.strip() else f"Grade {tid}",
                "note": str(raw.get("note") or "").strip(),
                "threshold": UnlockThreshold(
                    min_mastered_items=max(0, int(raw.get("min_mastered", 0))),
                    min_sessions_played=max(0, int(raw.get("min_sessions", 0))),
                ),
                "xp_weight": xp_weight,
            }
        if not specs:
            raise ValueError("No tiers defined")
        return specs

    @staticmethod
    def _build_item(
        position: int,
        record: Mapping[str, Any],
        tier_specs: Mapping[TierId, Any],
        terminal: TierId,
        fallback_id: ItemId,
    ) -> Optional[Item]:
        if not isinstance(record, Mapping):
            logger.warning("Skipping catalog record #%d: not a mapping", position)
            return None
        glyph = record.get("kanji") or record.get("glyph")
        if not glyph or not isinstance(glyph, str) or not glyph.strip():
            logger.warning("Skipping catalog record #%d: missing glyph", position)
            return None

        item_id = record.get("id")
        if item_id is None or item_id == "":
            if fallback_id != position:
                logger.warning("Catalog record #%d has no id and its position is taken; using %r", position, fallback_id)
            item_id = fallback_id

        grade = record.get("grade", record.get("tier"))
        tier = str(grade).strip() if grade not in (None, "") else terminal
        if tier not in tier_specs:
            tier = terminal

        return Item(
            id=item_id,
            glyph=glyph.strip(),
            tier=tier,
            meaning=_normalize_meaning(record.get("meaning")),
            strokes=_optional_int(record.get("strokes")),
            radical=record.get("radical") or None,
            old_form=record.get("old") or None,
            year_added=_optional_int(record.get("yearAdded")),
            meanings=_string_tuple(record.get("meanings")),
            readings_on=_string_tuple(record.get("readingsOn")),
            readings_kun=_string_tuple(record.get("readingsKun")),
        )


def load_curriculum(data_dir: Optional[Path] = None) -> CurriculumIndex:
    """Build the index from ``tiers.yaml`` and ``joyo.yaml`` in ``data_dir``."""
    base_dir = data_dir or DATA_DIR
    tier_doc = read_yaml_mapping(base_dir / "tiers.yaml")
    tiers = tier_doc.get("tiers")
    if not tiers or not isinstance(tiers, list):
        raise ValueError("tiers.yaml: missing or invalid 'tiers'")

    catalog_doc = read_yaml_mapping(base_dir / "joyo.yaml")
    records = catalog_doc.get("kanji")
    if records is None:
        raise ValueError("joyo.yaml: missing 'kanji'")
    if not isinstance(records, list):
        raise ValueError("joyo.yaml: 'kanji' must be a list")

    index = CurriculumIndex(tiers, records)
    logger.info("Loaded %d kanji in %d tiers from %s", len(index), len(index.tier_ids()), base_dir)
    return index
