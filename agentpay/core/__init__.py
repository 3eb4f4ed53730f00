"""
Core module containing configuration, errors, persistence and key handling.

This module provides:
    - config: Application settings and environment variable management
    - database: Engine and session factories for the wallet store
    - errors: Error taxonomy and API error handlers
    - vault: Sealing of signing keys at rest
"""

from agentpay.core.config import Settings, get_settings
from agentpay.core.database import Base

__all__ = ["Settings", "get_settings", "Base"]
