"""Workforce governance engine.

Authority, status transitions, approvals, overrides, contribution
allocation and an append-only audit trail for reports and tasks.
"""

__version__ = "1.0.0"
