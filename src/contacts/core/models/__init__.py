"""View-state models."""

from .view_state import OperationResult, PersonListState

__all__ = ["OperationResult", "PersonListState"]
