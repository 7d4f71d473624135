"""Projection of decoded events onto derived relational state."""

from stellind.projection.engine import OPEN_PROPOSAL_STATES, ApplyOutcome, ProjectionEngine

__all__ = ["ApplyOutcome", "OPEN_PROPOSAL_STATES", "ProjectionEngine"]
