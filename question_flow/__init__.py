"""Questionnaire flow-resolution engine."""

from .engine import FlowEngine, build_engine
from .graph import QuestionnaireGraph
from .models import END_OF_FLOW_MESSAGE

__all__ = ["FlowEngine", "QuestionnaireGraph", "END_OF_FLOW_MESSAGE", "build_engine"]
