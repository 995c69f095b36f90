"""Application wiring for the Kanji Dojo engine."""

import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from kanjidojo.core.config import EngineSettings, load_settings
from kanjidojo.core.curriculum import CurriculumIndex, load_curriculum
from kanjidojo.core.mastery import MasteryStore
from kanjidojo.core.progression import ProgressionEngine
from kanjidojo.core.quiz import QuizGenerator


def configure_logging() -> None:
    """Configure application-wide logging with a standard format."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@dataclass
class Services:
    """The collaborators a front end needs, built once per process."""

    curriculum: CurriculumIndex
    settings: EngineSettings
    quiz: QuizGenerator
    store: MasteryStore
    engine: ProgressionEngine


def create_services(
    data_dir: Optional[Path] = None,
    progress_path: Optional[Path] = None,
    seed: Optional[int] = None,
) -> Services:
    """Load the curriculum and build the quiz generator, store and engine around it."""
    curriculum = load_curriculum(data_dir)
    settings = load_settings(data_dir)
    store = MasteryStore(curriculum, file_path=progress_path)
    quiz = QuizGenerator(curriculum, rng=random.Random(seed))
    engine = ProgressionEngine(curriculum, store, settings=settings)
    logging.info("Progress file: %s", store.file_path)
    return Services(curriculum=curriculum, settings=settings, quiz=quiz, store=store, engine=engine)
