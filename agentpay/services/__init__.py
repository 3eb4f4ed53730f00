"""
Business logic services package.

Services are imported on-demand to avoid circular import issues.
Individual services should be imported directly from their modules:
  from agentpay.services.wallet_manager import WalletManager
  from agentpay.services.wallet_store import WalletStore
  etc.
"""
