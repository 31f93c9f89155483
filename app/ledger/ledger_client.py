# ============================================================================
# Burn Bridge v1.0.0
# Ledger Client Boundary - Destination Ledger Interface
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Opaque synchronous RPC surface consumed by the Settlement Engine
#
# The settlement core only ever handles address and signature strings.
# Ledger-specific encodings live behind this interface.
#
# Error Codes:
#   - BRG-LED-001: Ledger unavailable
#   - BRG-LED-002: Submission rejected
#   - BRG-LED-003: Confirmation timeout
#
# ============================================================================

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence, Union


# ============================================================================
# Exceptions
# ============================================================================

class LedgerClientError(Exception):
    """Base exception for ledger client errors."""
    error_code = "BRG-LED-000"


class LedgerUnavailableError(LedgerClientError):
    """Raised when the ledger endpoint cannot be reached (BRG-LED-001)."""
    error_code = "BRG-LED-001"


class SubmissionRejectedError(LedgerClientError):
    """Raised when the ledger rejects a transaction (BRG-LED-002)."""
    error_code = "BRG-LED-002"


class ConfirmationTimeoutError(LedgerClientError):
    """Raised when confirmation does not arrive in time (BRG-LED-003)."""
    error_code = "BRG-LED-003"


# ============================================================================
# Enums
# ============================================================================

class ConfirmationStatus(Enum):
    """Outcome of waiting for a submitted transaction."""
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    TIMEOUT = "TIMEOUT"


class SignatureStatus(Enum):
    """Point-in-time status of a transaction id on the ledger."""
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    # Seen by the ledger, not yet at the confirmed commitment
    IN_FLIGHT = "IN_FLIGHT"
    UNKNOWN = "UNKNOWN"


# ============================================================================
# Instructions
# ============================================================================

@dataclass(frozen=True)
class CreateReceivingAccount:
    """Create the token receiving account owned by `owner`."""
    owner: str


@dataclass(frozen=True)
class MintTo:
    """Credit `amount` raw units to `receiving_account`."""
    receiving_account: str
    amount: int


MintInstruction = Union[CreateReceivingAccount, MintTo]


@dataclass(frozen=True)
class PreparedTransaction:
    """
    A signed transaction whose id is known before it is broadcast.

    `payload` is opaque to the core.
    """
    transaction_id: str
    reference: str
    payload: Any


@dataclass(frozen=True)
class ConfirmationResult:
    """Result of confirm()."""
    status: ConfirmationStatus
    transaction_id: str
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is ConfirmationStatus.SUCCESS


# ============================================================================
# Ledger Client Interface
# ============================================================================

class LedgerClient(ABC):
    """
    Abstract destination ledger client.

    Implementations must be synchronous: every call blocks until the
    remote service answers, fails, or times out.
    """

    @abstractmethod
    def check_connection(self) -> str:
        """
        Verify the endpoint is reachable.

        Returns:
            Ledger software version string

        Raises:
            LedgerUnavailableError: If the endpoint cannot be reached
        """

    @abstractmethod
    def get_latest_reference(self) -> str:
        """Opaque recent reference (blockhash) transactions are bound to."""

    @abstractmethod
    def is_reference_valid(self, reference: str) -> bool:
        """True while transactions bound to `reference` can still land."""

    @abstractmethod
    def receiving_account(self, owner: str) -> str:
        """
        Derive the receiving account address for `owner`.

        Raises:
            ValueError: If `owner` is not a valid address
        """

    @abstractmethod
    def account_exists(self, address: str) -> bool:
        """True if an account exists at `address`."""

    @abstractmethod
    def prepare(
        self,
        instructions: Sequence[MintInstruction],
        authority: Any,
        reference: str
    ) -> PreparedTransaction:
        """Build and sign a transaction without broadcasting it."""

    @abstractmethod
    def send(self, prepared: PreparedTransaction) -> str:
        """
        Broadcast a prepared transaction.

        Returns:
            Transaction id

        Raises:
            SubmissionRejectedError: If the ledger rejects it
            LedgerUnavailableError: If the endpoint cannot be reached
        """

    @abstractmethod
    def confirm(self, transaction_id: str) -> ConfirmationResult:
        """Block until the transaction succeeds, fails, or times out."""

    @abstractmethod
    def signature_status(self, transaction_id: str) -> SignatureStatus:
        """Non-blocking status lookup for a transaction id."""

    def preflight(self, authority: Any) -> None:
        """Optional startup diagnostics. Default: no-op."""
        return None

    def submit(
        self,
        instructions: Sequence[MintInstruction],
        authority: Any,
        reference: str
    ) -> str:
        """Prepare and broadcast in one step. Returns the transaction id."""
        return self.send(self.prepare(instructions, authority, reference))

    def describe(self, instructions: Sequence[MintInstruction]) -> List[str]:
        """Human-readable instruction names for logging."""
        return [type(instruction).__name__ for instruction in instructions]
