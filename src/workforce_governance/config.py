"""Configuration management for the governance engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache

from dotenv import load_dotenv

from workforce_governance.governance.policy import GovernancePolicy


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    database_url: str
    engine_version: str
    host: str
    port: int
    debug: bool
    max_revisions: int | None
    payout_quantum: Decimal

    @property
    def HOST(self) -> str:
        """Alias for host."""
        return self.host

    @property
    def PORT(self) -> int:
        """Alias for port."""
        return self.port

    @property
    def DEBUG(self) -> bool:
        """Alias for debug."""
        return self.debug

    def policy(self) -> GovernancePolicy:
        """Governance policy derived from these settings."""
        return GovernancePolicy(
            max_revisions=self.max_revisions,
            payout_quantum=self.payout_quantum,
        )

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        max_revisions = os.getenv("GOVERNANCE_MAX_REVISIONS", "").strip()

        return cls(
            database_url=os.getenv(
                "DATABASE_URL",
                "sqlite+aiosqlite:///./workforce_governance.db",
            ),
            engine_version=os.getenv("ENGINE_VERSION", "1.0.0"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            max_revisions=int(max_revisions) if max_revisions else None,
            payout_quantum=Decimal(os.getenv("PAYOUT_QUANTUM", "0.01")),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
