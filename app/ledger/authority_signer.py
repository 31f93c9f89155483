# ============================================================================
# Burn Bridge v1.0.0
# Mint Authority Signer - Signing Key Custody
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Loads the minting authority keypair used to sign mint transactions
#
# SOVEREIGN MANDATE:
#   - Key material is loaded ONLY from the configured keypair file
#   - Secret bytes NEVER appear in logs
#   - BRG-SEC-001 when the keypair is absent (selects simulation mode)
#   - BRG-SEC-002 when the keypair file is present but unreadable
#
# Keypair File Format:
#   JSON array of 64 integers (secret key + public key), as written by
#   `solana-keygen new`.
#
# ============================================================================

import json
import logging
from pathlib import Path
from typing import Optional, Union

from solders.keypair import Keypair
from solders.pubkey import Pubkey

logger = logging.getLogger(__name__)


class AuthoritySignerError(Exception):
    """Base exception for signing authority errors."""
    error_code = "BRG-SEC-000"


class MissingAuthorityError(AuthoritySignerError):
    """Raised when the mint authority keypair is missing (BRG-SEC-001)."""
    error_code = "BRG-SEC-001"


class InvalidAuthorityError(AuthoritySignerError):
    """Raised when the keypair file cannot be decoded (BRG-SEC-002)."""
    error_code = "BRG-SEC-002"


class MintAuthority:
    """
    Minting authority backed by an ed25519 keypair.

    Reliability Level: SOVEREIGN TIER
    Side Effects: Raises BRG-SEC-001 / BRG-SEC-002 on load failure

    Example Usage:
        authority = MintAuthority.from_file("~/.config/solana/id.json")
        tx = Transaction([authority.keypair], message, blockhash)
    """

    def __init__(self, keypair: Keypair, source: Optional[str] = None):
        self._keypair = keypair
        self.source = source

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        correlation_id: Optional[str] = None
    ) -> "MintAuthority":
        """
        Load the authority from a keypair file.

        Raises:
            MissingAuthorityError: If the file does not exist
            InvalidAuthorityError: If the file is not a valid keypair
        """
        keypair_path = Path(path).expanduser()

        if not keypair_path.exists():
            logger.warning(
                f"[BRG-SEC-001] Keypair file not found | "
                f"path={keypair_path} | correlation_id={correlation_id}"
            )
            raise MissingAuthorityError(
                f"BRG-SEC-001: Keypair file not found: {keypair_path}"
            )

        try:
            key_bytes = json.loads(keypair_path.read_text(encoding="utf-8"))
            keypair = Keypair.from_bytes(bytes(key_bytes))
        except Exception as e:
            logger.error(
                f"[BRG-SEC-002] Keypair file unreadable | "
                f"path={keypair_path} | error_type={type(e).__name__} | "
                f"correlation_id={correlation_id}"
            )
            raise InvalidAuthorityError(
                f"BRG-SEC-002: Invalid keypair file: {keypair_path}"
            ) from e

        authority = cls(keypair, source=str(keypair_path))
        logger.info(
            f"[BRG-SEC] Mint authority loaded | "
            f"pubkey={authority.public_key} | correlation_id={correlation_id}"
        )
        return authority

    @property
    def keypair(self) -> Keypair:
        return self._keypair

    @property
    def pubkey(self) -> Pubkey:
        return self._keypair.pubkey()

    @property
    def public_key(self) -> str:
        return str(self._keypair.pubkey())

    def get_redacted_key(self) -> str:
        """
        Redacted public key for logging.

        Returns:
            First 4 and last 4 characters (e.g., "7xKX...AsU9")
        """
        key = self.public_key
        if len(key) > 8:
            return f"{key[:4]}...{key[-4:]}"
        return "[REDACTED]"


def load_authority(
    path: Optional[Union[str, Path]],
    correlation_id: Optional[str] = None
) -> Optional[MintAuthority]:
    """
    Load the mint authority, or None when no keypair is configured.

    A missing keypair selects simulation mode; an unreadable keypair is a
    configuration fault and propagates.
    """
    if path is None:
        logger.warning(
            f"[BRG-SEC-001] No keypair configured - simulation mode | "
            f"correlation_id={correlation_id}"
        )
        return None

    try:
        return MintAuthority.from_file(path, correlation_id=correlation_id)
    except MissingAuthorityError:
        logger.warning(
            f"[BRG-SEC-001] No mint authority loaded - simulation mode | "
            f"correlation_id={correlation_id}"
        )
        return None
