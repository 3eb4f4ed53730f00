"""
Application-wide constants.

Default values for settings live here so that configuration, tests and
documentation agree on a single source.
"""

# Server
DEFAULT_APP_PORT = 8000

# Ledger networks (Cronos EVM)
MAINNET_RPC_URL = "https://evm.cronos.org"
MAINNET_CHAIN_ID = 25
TESTNET_RPC_URL = "https://evm-t3.cronos.org"
TESTNET_CHAIN_ID = 338
TESTNET_FAUCET_URL = "https://cronos.org/faucet"
NATIVE_ASSET = "CRO"
TRANSFER_GAS_LIMIT = 21000
LEDGER_REQUEST_TIMEOUT_SECONDS = 15.0

# Key vault
MIN_ENCRYPTION_SECRET_LENGTH = 32
DEFAULT_ENCRYPTION_SALT = "agentpay-wallet-salt"
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1
DERIVED_KEY_LENGTH = 32
NONCE_SIZE = 12
TAG_SIZE = 16

# x402 protocol
PAYMENT_REQUIRED_STATUS = 402
X402_PAYMENT_HEADER = "payment-signature"
X402_MAX_RETRIES = 3
X402_SETTLEMENT_WAIT_MS = 2000
X402_CONFIRMATION_WAIT_MS = 5000
X402_RETRY_DELAY_MS = 3000
X402_REQUEST_TIMEOUT_SECONDS = 30.0
X402_DEADLINE_SECONDS = 120.0

# Audit log pagination
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
