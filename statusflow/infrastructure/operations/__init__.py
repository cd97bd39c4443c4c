"""Operation execution infrastructure."""

from .processor import OperationProcessor

__all__ = ["OperationProcessor"]
