"""Tests for kanjidojo.core.curriculum – catalog loading and tier index."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from kanjidojo.core.curriculum import (
    PLACEHOLDER_MEANING,
    CurriculumIndex,
    Item,
    UnlockThreshold,
    load_curriculum,
)
from kanjidojo.core.errors import UnknownTierError


TIERS = [
    {"id": "1", "label": "Grade 1", "min_mastered": 2, "min_sessions": 1},
    {"id": "2", "label": "Grade 2", "min_mastered": 2, "min_sessions": 1, "xp_weight": 1.5},
    {"id": "S", "label": "Secondary (S)"},
]


def _records() -> list[dict]:
    return [
        {"id": 1, "kanji": "一", "meaning": "one", "grade": 1, "strokes": 1, "radical": "一"},
        {"id": 2, "kanji": "二", "meaning": "two", "grade": "1"},
        {"id": 3, "kanji": "言", "meaning": "say", "grade": 2, "readingsOn": ["ゲン", "ゴン"]},
        {"id": 4, "kanji": "亜", "meaning": "Asia", "grade": "S", "old": "亞"},
        {"id": 5, "kanji": "畏", "meaning": "fear"},
        {"id": 6, "kanji": "彙", "meaning": "   ", "grade": 9},
    ]


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data, allow_unicode=True, default_flow_style=False), encoding="utf-8")


# ---------------------------------------------------------------------------
# Item / UnlockThreshold dataclasses
# ---------------------------------------------------------------------------

class TestItem:
    def test_frozen(self):
        item = Item(id=1, glyph="一", tier="1", meaning="one")
        with pytest.raises(AttributeError):
            item.meaning = "other"  # type: ignore[misc]

    def test_has_meaning(self):
        assert Item(id=1, glyph="一", tier="1", meaning="one").has_meaning
        assert not Item(id=1, glyph="一", tier="1", meaning=PLACEHOLDER_MEANING).has_meaning

    def test_threshold_defaults(self):
        t = UnlockThreshold()
        assert t.min_mastered_items == 0
        assert t.min_sessions_played == 0


# ---------------------------------------------------------------------------
# CurriculumIndex – tiers
# ---------------------------------------------------------------------------

class TestTiers:
    def test_order_preserved(self):
        index = CurriculumIndex(TIERS, _records())
        assert index.tier_ids() == ["1", "2", "S"]
        assert [t.id for t in index.tiers()] == ["1", "2", "S"]

    def test_first_and_next(self):
        index = CurriculumIndex(TIERS, _records())
        assert index.first_tier().id == "1"
        assert index.next_tier("1").id == "2"
        assert index.next_tier("S") is None

    def test_threshold_and_weight(self):
        index = CurriculumIndex(TIERS, _records())
        tier = index.tier("2")
        assert tier.threshold == UnlockThreshold(min_mastered_items=2, min_sessions_played=1)
        assert tier.xp_weight == 1.5
        assert index.tier("1").xp_weight == 1.0

    def test_label_fallback(self):
        index = CurriculumIndex([{"id": "1"}], [])
        assert index.tier("1").label == "Grade 1"
        assert index.tier_label("7") == "Grade 7"

    def test_unknown_tier(self):
        index = CurriculumIndex(TIERS, _records())
        with pytest.raises(UnknownTierError):
            index.tier("7")
        with pytest.raises(UnknownTierError):
            index.items_in_tier("7")
        with pytest.raises(KeyError):
            index.next_tier("nope")

    def test_no_tiers(self):
        with pytest.raises(ValueError, match="No tiers"):
            CurriculumIndex([], _records())

    def test_duplicate_tier(self):
        with pytest.raises(ValueError, match="Duplicate tier"):
            CurriculumIndex([{"id": "1"}, {"id": 1}], [])

    def test_non_positive_weight(self):
        with pytest.raises(ValueError, match="xp_weight"):
            CurriculumIndex([{"id": "1", "xp_weight": 0}], [])


# ---------------------------------------------------------------------------
# CurriculumIndex – items
# ---------------------------------------------------------------------------

class TestItems:
    def test_partition_covers_catalog(self):
        index = CurriculumIndex(TIERS, _records())
        seen: list = []
        for tier_id in index.tier_ids():
            seen.extend(item.id for item in index.items_in_tier(tier_id))
        assert sorted(seen) == sorted(item.id for item in index.all_items())
        assert len(seen) == len(set(seen))

    def test_int_grade_maps_to_string_tier(self):
        index = CurriculumIndex(TIERS, _records())
        assert [i.id for i in index.items_in_tier("1")] == [1, 2]

    def test_missing_or_unknown_grade_goes_to_terminal(self):
        index = CurriculumIndex(TIERS, _records())
        assert [i.id for i in index.items_in_tier("S")] == [4, 5, 6]

    def test_blank_meaning_gets_placeholder(self):
        index = CurriculumIndex(TIERS, _records())
        item = index.get_item(6)
        assert item.meaning == PLACEHOLDER_MEANING
        assert not item.has_meaning

    def test_usable_items(self):
        index = CurriculumIndex(TIERS, _records())
        assert [i.id for i in index.usable_items("S")] == [4, 5]
        assert len(index.usable_items()) == 5

    def test_metadata_carried_through(self):
        index = CurriculumIndex(TIERS, _records())
        assert index.get_item(1).strokes == 1
        assert index.get_item(1).radical == "一"
        assert index.get_item(3).readings_on == ("ゲン", "ゴン")
        assert index.get_item(4).old_form == "亞"

    def test_missing_id_uses_position(self):
        index = CurriculumIndex(TIERS, [{"kanji": "一", "meaning": "one", "grade": 1}])
        assert index.get_item(1).glyph == "一"

    def test_missing_id_skips_ids_taken_by_other_records(self):
        records = [
            {"kanji": "一", "meaning": "one", "grade": 1},
            {"id": 1, "kanji": "二", "meaning": "two", "grade": 1},
        ]
        index = CurriculumIndex(TIERS, records)
        assert len(index) == 2
        assert index.get_item(1).glyph == "二"
        assert index.get_item(2).glyph == "一"

    def test_several_missing_ids_get_distinct_ids(self):
        records = [
            {"id": 2, "kanji": "二", "meaning": "two"},
            {"kanji": "三", "meaning": "three"},
            {"kanji": "四", "meaning": "four"},
        ]
        index = CurriculumIndex(TIERS, records)
        assert sorted(i.id for i in index.all_items()) == [2, 3, 4]
        assert index.get_item(3).glyph == "三"
        assert index.get_item(4).glyph == "四"

    def test_record_without_glyph_skipped(self):
        index = CurriculumIndex(TIERS, [{"id": 1, "meaning": "one"}, {"id": 2, "kanji": "二", "meaning": "two"}])
        assert len(index) == 1
        assert index.get_item(1) is None

    def test_duplicate_item_id(self):
        with pytest.raises(ValueError, match="Duplicate item id"):
            CurriculumIndex(TIERS, [{"id": 1, "kanji": "一"}, {"id": 1, "kanji": "二"}])

    def test_get_missing_item(self):
        index = CurriculumIndex(TIERS, _records())
        assert index.get_item(999) is None


# ---------------------------------------------------------------------------
# load_curriculum
# ---------------------------------------------------------------------------

class TestLoadCurriculum:
    def test_from_directory(self, tmp_path: Path):
        _write_yaml(tmp_path / "tiers.yaml", {"tiers": TIERS})
        _write_yaml(tmp_path / "joyo.yaml", {"kanji": _records()})
        index = load_curriculum(tmp_path)
        assert index.tier_ids() == ["1", "2", "S"]
        assert len(index) == 6

    def test_missing_tiers_file(self, tmp_path: Path):
        _write_yaml(tmp_path / "joyo.yaml", {"kanji": []})
        with pytest.raises(FileNotFoundError):
            load_curriculum(tmp_path)

    def test_tiers_not_a_list(self, tmp_path: Path):
        _write_yaml(tmp_path / "tiers.yaml", {"tiers": "1,2"})
        _write_yaml(tmp_path / "joyo.yaml", {"kanji": []})
        with pytest.raises(ValueError, match="'tiers'"):
            load_curriculum(tmp_path)

    def test_catalog_not_a_mapping(self, tmp_path: Path):
        _write_yaml(tmp_path / "tiers.yaml", {"tiers": TIERS})
        (tmp_path / "joyo.yaml").write_text("- 一\n", encoding="utf-8")
        with pytest.raises(ValueError, match="expected a YAML mapping"):
            load_curriculum(tmp_path)

    def test_bundled_data(self):
        index = load_curriculum()
        assert index.tier_ids() == ["1", "2", "3", "4", "5", "6", "S"]
        assert index.first_tier().label == "Grade 1"
        for tier in index.tiers():
            assert tier.size > 0
        assert all(item.meaning for item in index.all_items())
