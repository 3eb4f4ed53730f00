"""
AgentPay - autonomous HTTP 402 payments from custodial agent wallets.
"""

__version__ = "0.1.0"
