from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml


def _env_flag(name: str) -> bool:
    return os.environ.get(name) == "1"


def default_state_dir() -> Path:
    """Directory holding the learner's progress file (``~/.kanjidojo`` unless KANJIDOJO_HOME is set)."""
    override = os.environ.get("KANJIDOJO_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".kanjidojo"


@dataclass(frozen=True)
class EngineSettings:
    """Tunable progression policy.

    ``mastery_threshold`` is the number of correct answers after which an item
    counts as mastered. XP for a quiz is ``correct * xp_per_correct * tier weight``.
    """

    mastery_threshold: int = 3
    xp_per_correct: int = 10
    default_question_count: int = 10
    unlock_all: bool = False

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "EngineSettings":
        raw = raw or {}
        mastery_threshold = int(raw.get("mastery_threshold", cls.mastery_threshold))
        xp_per_correct = int(raw.get("xp_per_correct", cls.xp_per_correct))
        default_question_count = int(raw.get("default_question_count", cls.default_question_count))
        if mastery_threshold < 1:
            raise ValueError("'mastery_threshold' must be at least 1")
        if xp_per_correct < 0:
            raise ValueError("'xp_per_correct' must not be negative")
        return cls(
            mastery_threshold=mastery_threshold,
            xp_per_correct=xp_per_correct,
            default_question_count=default_question_count,
            unlock_all=bool(raw.get("unlock_all", _env_flag("KANJIDOJO_UNLOCK_ALL"))),
        )


DATA_DIR = Path(__file__).resolve().parent.parent / "data"


def read_yaml_mapping(path: Path) -> dict:
    """Read a YAML document that must be a mapping at the top level."""
    if not path.exists():
        raise FileNotFoundError(f"Curriculum file not found: {path}")
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not raw or not isinstance(raw, dict):
        raise ValueError(f"{path.name}: expected a YAML mapping")
    return raw


def load_settings(data_dir: Optional[Path] = None) -> EngineSettings:
    """Read the ``settings`` block of tiers.yaml."""
    raw = read_yaml_mapping((data_dir or DATA_DIR) / "tiers.yaml")
    settings = raw.get("settings")
    if settings is not None and not isinstance(settings, dict):
        raise ValueError("tiers.yaml: 'settings' must be a mapping")
    return EngineSettings.from_mapping(settings)
