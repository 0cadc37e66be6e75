"""HTTP surface for the governance engine."""

from workforce_governance.api.app import create_app

__all__ = ["create_app"]
