# ============================================================================
# Burn Bridge v1.0.0
# Ledger Integration Module - Destination Chain Connectivity
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Destination ledger boundary with simulation support
#
# Components:
#   - DecimalGateway: Raw token amounts with 6 implied decimals
#   - TokenBucket / SubmissionPacer: RPC rate limiting and mint pacing
#   - MintAuthority: Signing keypair custody
#   - LedgerClient: Abstract ledger boundary used by the settlement core
#   - SolanaRpcLedgerClient: JSON-RPC implementation (Token-2022)
#
# SOVEREIGN MANDATE:
#   - No mint authority means simulation mode
#   - One signing authority, one in-flight transaction
#
# ============================================================================

from app.ledger.decimal_gateway import DecimalGateway
from app.ledger.rate_limiter import TokenBucket, SubmissionPacer, ExponentialBackoff
from app.ledger.authority_signer import (
    MintAuthority,
    MissingAuthorityError,
    InvalidAuthorityError,
    load_authority
)
from app.ledger.ledger_client import (
    LedgerClient,
    LedgerClientError,
    LedgerUnavailableError,
    SubmissionRejectedError,
    ConfirmationTimeoutError,
    ConfirmationStatus,
    ConfirmationResult,
    SignatureStatus,
    CreateReceivingAccount,
    MintTo,
    PreparedTransaction
)

__all__ = [
    "DecimalGateway",
    "TokenBucket",
    "SubmissionPacer",
    "ExponentialBackoff",
    "MintAuthority",
    "MissingAuthorityError",
    "InvalidAuthorityError",
    "load_authority",
    "LedgerClient",
    "LedgerClientError",
    "LedgerUnavailableError",
    "SubmissionRejectedError",
    "ConfirmationTimeoutError",
    "ConfirmationStatus",
    "ConfirmationResult",
    "SignatureStatus",
    "CreateReceivingAccount",
    "MintTo",
    "PreparedTransaction",
]
