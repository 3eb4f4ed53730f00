"""
x402 payment protocol package.

This package provides:
    - challenge: Parsing of 402 payment terms
    - backoff: Retry delay policies
    - signing: Signing key generation and address derivation
    - client: The paying HTTP client
"""
