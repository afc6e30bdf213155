"""
Kernel Layer

Persistence foundations shared by every engine:
- ORM rows and lifecycle enums (skills, week plans, milestones)
- Store contracts with in-memory and SQL implementations
- Typed error taxonomy

Invariants:
- Engines never touch the database directly; they go through the stores
- Every conditional write is rejected, not silently applied, when stale
"""

from src.kernel.errors import (
    ErrorCode,
    InvalidStateError,
    NotFoundError,
    ProgressionError,
    StaleWriteError,
    StoreFailureError,
)

__all__ = [
    "ErrorCode",
    "ProgressionError",
    "NotFoundError",
    "InvalidStateError",
    "StoreFailureError",
    "StaleWriteError",
]
