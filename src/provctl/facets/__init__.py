"""Facet checkers, appliers and the orchestrator that runs them."""

from __future__ import annotations

from .models import (
    ActionReport,
    ApplyOutcome,
    ApplyResult,
    CheckResult,
    FacetContext,
    FacetDefinition,
    FacetId,
    FacetStatus,
)

__all__ = [
    "ActionReport",
    "ApplyOutcome",
    "ApplyResult",
    "CheckResult",
    "FacetContext",
    "FacetDefinition",
    "FacetId",
    "FacetStatus",
]
