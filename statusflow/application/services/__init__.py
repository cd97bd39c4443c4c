"""Application Services."""

from .operation_tracker import OperationTracker
from .transition_engine import TransitionEngine, ChangeResult
from .integrity_checker import IntegrityChecker

__all__ = [
    "OperationTracker",
    "TransitionEngine",
    "ChangeResult",
    "IntegrityChecker",
]
