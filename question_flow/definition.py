"""Questionnaire definition loading (JSON file, read once at start-up)."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Union

from loguru import logger
from pydantic import ValidationError

from .errors import DefinitionLoadError
from .graph import QuestionnaireGraph
from .models import Questionnaire

QUESTIONNAIRE_PATH = os.getenv("QUESTIONNAIRE_PATH", "questionnaire.json")


def load_questionnaire(path: Union[str, Path, None] = None) -> Questionnaire:
    """Parse the questionnaire definition at *path* (default ``QUESTIONNAIRE_PATH``).

    Any failure is fatal for start-up and surfaces as ``DefinitionLoadError``.
    """
    target = Path(path or QUESTIONNAIRE_PATH)
    try:
        raw = json.loads(target.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DefinitionLoadError(f"Cannot read questionnaire definition {target}: {exc}") from exc

    try:
        questionnaire = Questionnaire.model_validate(raw)
    except ValidationError as exc:
        raise DefinitionLoadError(f"Invalid questionnaire definition {target}: {exc}") from exc

    if not questionnaire.questions:
        logger.warning("Questionnaire {} from {} has no questions", questionnaire.questionnaireId, target)
    logger.info(
        "Loaded questionnaire {} with {} questions from {}",
        questionnaire.questionnaireId,
        len(questionnaire.questions),
        target,
    )
    return questionnaire


def load_graph(path: Union[str, Path, None] = None) -> QuestionnaireGraph:
    return QuestionnaireGraph(load_questionnaire(path))
