"""
Centralized Mock Infrastructure for StatusFlow Tests.

This module provides standardized mock implementations that:
1. Implement real interfaces (mocks are substitutable for real repositories)
2. Accept and return real domain types (Resource, Operation)
3. Are shared across all test modules

Structure:
- repositories.py: Repositories and providers injecting lost races
- services.py: Recording / failing / blocking side effects, test kinds

Usage:
    from tests.mocks import RecordingSideEffect, build_widget_kind
"""

from tests.mocks.repositories import (
    RacingResourceRepository,
    RacingUnitOfWorkProvider,
)

from tests.mocks.services import (
    SideEffectCall,
    RecordingSideEffect,
    FailingSideEffect,
    BlockingSideEffect,
    build_widget_kind,
    WIDGET,
)

__all__ = [
    # Repositories
    "RacingResourceRepository",
    "RacingUnitOfWorkProvider",
    # Side effects
    "SideEffectCall",
    "RecordingSideEffect",
    "FailingSideEffect",
    "BlockingSideEffect",
    # Kinds
    "build_widget_kind",
    "WIDGET",
]
