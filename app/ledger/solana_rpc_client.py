# ============================================================================
# Burn Bridge v1.0.0
# Solana JSON-RPC Ledger Client - X1 Token-2022 Minting
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Concrete LedgerClient for Solana-compatible chains (X1)
#
# SOVEREIGN MANDATE:
#   - Rate limiting via TokenBucket
#   - Exponential backoff on HTTP 429 / 5xx / timeout
#   - Transactions are signed locally; the id is known before broadcast
#   - Mint instructions target the Token-2022 program
#
# Error Codes:
#   - BRG-LED-001: Ledger unavailable (connection / retries exhausted)
#   - BRG-LED-002: Submission rejected by the RPC node
#   - BRG-LED-004: Invalid RPC response
#
# ============================================================================

import base64
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests
from requests.exceptions import Timeout, ConnectionError as RequestsConnectionError
from solders.hash import Hash
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.constants import TOKEN_2022_PROGRAM_ID
from spl.token.instructions import (
    create_associated_token_account,
    get_associated_token_address,
    mint_to,
)
from spl.token.models import MintToParams

from app.ledger.authority_signer import MintAuthority
from app.ledger.ledger_client import (
    ConfirmationResult,
    ConfirmationStatus,
    CreateReceivingAccount,
    LedgerClient,
    LedgerClientError,
    LedgerUnavailableError,
    MintInstruction,
    MintTo,
    PreparedTransaction,
    SignatureStatus,
    SubmissionRejectedError,
)
from app.ledger.rate_limiter import ExponentialBackoff, TokenBucket

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

LAMPORTS_PER_NATIVE = 1_000_000_000
LOW_BALANCE_LAMPORTS = 10_000_000     # 0.01 native units
MINT_ACCOUNT_MIN_SIZE = 82            # bytes, base SPL mint layout

CONFIRMED_LEVELS = ("confirmed", "finalized")

# sendTransaction error for a signature the node has already seen
ALREADY_PROCESSED_MARKER = "already been processed"


class InvalidRpcResponseError(LedgerClientError):
    """Raised when the RPC node returns an unexpected payload (BRG-LED-004)."""
    error_code = "BRG-LED-004"


# ============================================================================
# Solana RPC Ledger Client
# ============================================================================

class SolanaRpcLedgerClient(LedgerClient):
    """
    Solana JSON-RPC client for Token-2022 mint settlement.

    Reliability Level: SOVEREIGN TIER
    Rate Limiting: Token Bucket
    Commitment: confirmed

    Example Usage:
        client = SolanaRpcLedgerClient(
            rpc_url="https://rpc-testnet.x1.wiki",
            token_mint="2oaSsGnq1eNjMavSxh1g2XFqtV7SVYwaRJZaBznMyYJT",
        )
        version = client.check_connection()
    """

    DEFAULT_TIMEOUT = 30.0
    MAX_RETRIES = 3
    COMMITMENT = "confirmed"

    def __init__(
        self,
        rpc_url: str,
        token_mint: str,
        confirm_timeout_seconds: float = 60.0,
        poll_interval_seconds: float = 1.0,
        timeout: float = DEFAULT_TIMEOUT,
        correlation_id: Optional[str] = None,
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[TokenBucket] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the RPC client.

        Args:
            rpc_url: JSON-RPC endpoint
            token_mint: Token-2022 mint address
            confirm_timeout_seconds: Max wait for confirmation
            poll_interval_seconds: Delay between status polls
            timeout: HTTP request timeout in seconds
            correlation_id: Audit trail identifier
            session: Optional requests.Session (injectable for tests)
            rate_limiter: Optional TokenBucket
        """
        self.rpc_url = rpc_url
        self.token_mint = Pubkey.from_string(token_mint)
        self.token_program_id = TOKEN_2022_PROGRAM_ID
        self.confirm_timeout_seconds = confirm_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.timeout = timeout
        self.correlation_id = correlation_id

        self.rate_limiter = rate_limiter or TokenBucket()
        self.backoff = ExponentialBackoff()
        self._sleep = sleep
        self._clock = clock
        self._session = session or requests.Session()
        self._request_id = 0

        logger.info(
            f"[BRG-RPC] Client initialized | "
            f"rpc_url={rpc_url} | token_mint={token_mint} | "
            f"correlation_id={correlation_id}"
        )

    # ========================================================================
    # Connectivity
    # ========================================================================

    def check_connection(self) -> str:
        result = self._call("getVersion", [])
        version = result.get("solana-core", "unknown") if isinstance(result, dict) else str(result)
        logger.info(
            f"[BRG-RPC] Connected to ledger | version={version} | "
            f"correlation_id={self.correlation_id}"
        )
        return version

    def preflight(self, authority: Optional[MintAuthority]) -> None:
        """
        Log token mint ownership and authority balance.

        Warnings only; nothing here blocks settlement.
        """
        mint_account = self._get_account_info(str(self.token_mint))
        if mint_account is None:
            raise LedgerClientError(
                f"BRG-LED-000: Token mint {self.token_mint} not found on ledger"
            )

        owner = mint_account.get("owner")
        if owner == str(self.token_program_id):
            logger.info(
                f"[BRG-RPC] Token mint owned by Token-2022 program | "
                f"mint={self.token_mint} | correlation_id={self.correlation_id}"
            )
        else:
            logger.warning(
                f"[BRG-RPC] Token mint owner is not Token-2022 | "
                f"expected={self.token_program_id} | actual={owner} | "
                f"correlation_id={self.correlation_id}"
            )

        data = mint_account.get("data") or []
        if data and len(base64.b64decode(data[0])) < MINT_ACCOUNT_MIN_SIZE:
            logger.warning(
                f"[BRG-RPC] Mint account data smaller than a mint layout | "
                f"mint={self.token_mint} | correlation_id={self.correlation_id}"
            )

        if authority is None:
            return

        try:
            lamports = self.get_balance(authority.public_key)
        except LedgerClientError as e:
            logger.warning(
                f"[BRG-RPC] Could not check authority balance | error={e} | "
                f"correlation_id={self.correlation_id}"
            )
            return

        logger.info(
            f"[BRG-RPC] Mint authority balance | "
            f"authority={authority.get_redacted_key()} | "
            f"balance={lamports / LAMPORTS_PER_NATIVE:.4f} | "
            f"correlation_id={self.correlation_id}"
        )
        if lamports < LOW_BALANCE_LAMPORTS:
            logger.warning(
                f"[BRG-RPC] Low authority balance - may not cover fees | "
                f"lamports={lamports} | correlation_id={self.correlation_id}"
            )

    def get_balance(self, address: str) -> int:
        """Native balance in lamports."""
        result = self._call("getBalance", [address, {"commitment": self.COMMITMENT}])
        return int(result["value"])

    # ========================================================================
    # References & Accounts
    # ========================================================================

    def get_latest_reference(self) -> str:
        result = self._call("getLatestBlockhash", [{"commitment": self.COMMITMENT}])
        try:
            return result["value"]["blockhash"]
        except (KeyError, TypeError) as e:
            raise InvalidRpcResponseError(
                f"BRG-LED-004: getLatestBlockhash returned {result!r}"
            ) from e

    def is_reference_valid(self, reference: str) -> bool:
        result = self._call(
            "isBlockhashValid", [reference, {"commitment": "processed"}]
        )
        return bool(result.get("value")) if isinstance(result, dict) else bool(result)

    def receiving_account(self, owner: str) -> str:
        owner_key = Pubkey.from_string(owner)
        return str(get_associated_token_address(
            owner_key, self.token_mint, self.token_program_id
        ))

    def account_exists(self, address: str) -> bool:
        return self._get_account_info(address) is not None

    def _get_account_info(self, address: str) -> Optional[Dict[str, Any]]:
        result = self._call(
            "getAccountInfo",
            [address, {"encoding": "base64", "commitment": self.COMMITMENT}]
        )
        return result.get("value") if isinstance(result, dict) else None

    # ========================================================================
    # Transactions
    # ========================================================================

    def prepare(
        self,
        instructions: Sequence[MintInstruction],
        authority: MintAuthority,
        reference: str
    ) -> PreparedTransaction:
        solana_instructions = []
        for instruction in instructions:
            if isinstance(instruction, CreateReceivingAccount):
                solana_instructions.append(create_associated_token_account(
                    payer=authority.pubkey,
                    owner=Pubkey.from_string(instruction.owner),
                    mint=self.token_mint,
                    token_program_id=self.token_program_id,
                ))
            elif isinstance(instruction, MintTo):
                solana_instructions.append(mint_to(MintToParams(
                    program_id=self.token_program_id,
                    mint=self.token_mint,
                    dest=Pubkey.from_string(instruction.receiving_account),
                    mint_authority=authority.pubkey,
                    amount=instruction.amount,
                )))
            else:
                raise ValueError(f"Unsupported instruction: {instruction!r}")

        blockhash = Hash.from_string(reference)
        message = Message.new_with_blockhash(solana_instructions, authority.pubkey, blockhash)
        transaction = Transaction([authority.keypair], message, blockhash)

        return PreparedTransaction(
            transaction_id=str(transaction.signatures[0]),
            reference=reference,
            payload=base64.b64encode(bytes(transaction)).decode("ascii"),
        )

    def send(self, prepared: PreparedTransaction) -> str:
        """
        Broadcast a prepared transaction.

        A retried POST can be answered with "already been processed" when
        the first attempt reached the node; that is treated as sent.

        Raises:
            SubmissionRejectedError: Node refused the transaction
        """
        try:
            result = self._call(
                "sendTransaction",
                [prepared.payload, {
                    "encoding": "base64",
                    "preflightCommitment": self.COMMITMENT,
                }],
                rejection=True,
            )
        except SubmissionRejectedError as e:
            if ALREADY_PROCESSED_MARKER not in str(e).lower():
                raise
            logger.warning(
                f"[BRG-RPC] Transaction already processed by node | "
                f"mint_signature={prepared.transaction_id} | "
                f"correlation_id={self.correlation_id}"
            )
            return prepared.transaction_id

        if result != prepared.transaction_id:
            logger.warning(
                f"[BRG-RPC] Node returned unexpected signature | "
                f"expected={prepared.transaction_id} | returned={result} | "
                f"correlation_id={self.correlation_id}"
            )
        return prepared.transaction_id

    def confirm(self, transaction_id: str) -> ConfirmationResult:
        deadline = self._clock() + self.confirm_timeout_seconds

        while True:
            status, error = self._fetch_signature_status(transaction_id)
            if status is SignatureStatus.CONFIRMED:
                return ConfirmationResult(ConfirmationStatus.SUCCESS, transaction_id)
            if status is SignatureStatus.FAILED:
                return ConfirmationResult(
                    ConfirmationStatus.FAILURE, transaction_id, error=str(error)
                )
            if self._clock() >= deadline:
                return ConfirmationResult(
                    ConfirmationStatus.TIMEOUT,
                    transaction_id,
                    error=f"not confirmed within {self.confirm_timeout_seconds}s",
                )
            self._sleep(self.poll_interval_seconds)

    def signature_status(self, transaction_id: str) -> SignatureStatus:
        status, _ = self._fetch_signature_status(transaction_id)
        return status

    def _fetch_signature_status(self, transaction_id: str):
        result = self._call(
            "getSignatureStatuses",
            [[transaction_id], {"searchTransactionHistory": True}]
        )
        values = result.get("value") if isinstance(result, dict) else None
        if not values or values[0] is None:
            return SignatureStatus.UNKNOWN, None

        entry = values[0]
        if entry.get("err") is not None:
            return SignatureStatus.FAILED, entry["err"]
        if entry.get("confirmationStatus") in CONFIRMED_LEVELS:
            return SignatureStatus.CONFIRMED, None
        return SignatureStatus.IN_FLIGHT, None

    # ========================================================================
    # Internal Methods
    # ========================================================================

    def _call(self, method: str, params: List[Any], rejection: bool = False) -> Any:
        """
        Execute a JSON-RPC call and return its `result`.

        Raises:
            SubmissionRejectedError: RPC error on a submission call
            LedgerClientError: RPC error on any other call
            LedgerUnavailableError: After max retries exhausted
        """
        while not self.rate_limiter.consume(correlation_id=self.correlation_id):
            self._sleep(max(self.rate_limiter.seconds_until_available(), 0.05))

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }

        response = self._request_with_retry(payload)
        try:
            body = response.json()
        except ValueError as e:
            raise InvalidRpcResponseError(
                f"BRG-LED-004: {method} returned non-JSON body"
            ) from e

        if body.get("error") is not None:
            error = body["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            if rejection:
                logger.error(
                    f"[BRG-LED-002] Submission rejected | "
                    f"method={method} | error={message} | "
                    f"correlation_id={self.correlation_id}"
                )
                raise SubmissionRejectedError(f"BRG-LED-002: {message}")
            raise LedgerClientError(f"BRG-LED-000: {method} failed: {message}")

        return body.get("result")

    def _request_with_retry(self, payload: Dict[str, Any]) -> requests.Response:
        """
        POST with exponential backoff retry on 429 / 5xx / timeout.

        Raises:
            LedgerUnavailableError: After max retries exhausted
        """
        last_error: Optional[Exception] = None
        method = payload["method"]

        for attempt in range(self.MAX_RETRIES):
            try:
                response = self._session.post(
                    self.rpc_url, json=payload, timeout=self.timeout
                )

                if response.status_code == 429 or response.status_code >= 500:
                    delay = self.backoff.get_delay()
                    logger.warning(
                        f"[BRG-RPC] HTTP {response.status_code} | method={method} | "
                        f"attempt={attempt + 1}/{self.MAX_RETRIES} | "
                        f"backoff={delay:.1f}s | correlation_id={self.correlation_id}"
                    )
                    last_error = LedgerClientError(f"HTTP {response.status_code}")
                    self._sleep(delay)
                    continue

                self.backoff.reset()
                response.raise_for_status()
                return response

            except (Timeout, RequestsConnectionError) as e:
                last_error = e
                delay = self.backoff.get_delay()
                logger.warning(
                    f"[BRG-LED-001] {type(e).__name__} | method={method} | "
                    f"attempt={attempt + 1}/{self.MAX_RETRIES} | "
                    f"backoff={delay:.1f}s | correlation_id={self.correlation_id}"
                )
                self._sleep(delay)
            except requests.HTTPError as e:
                raise LedgerClientError(f"BRG-LED-000: {method} HTTP error: {e}") from e

        logger.error(
            f"[BRG-LED-001] Max retries exhausted | method={method} | "
            f"error={last_error} | correlation_id={self.correlation_id}"
        )
        raise LedgerUnavailableError(
            f"BRG-LED-001: Max retries exhausted for {method}: {last_error}"
        )

    def close(self) -> None:
        """Close HTTP session."""
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
