# ============================================================================
# Burn Bridge v1.0.0
# Decimal Gateway - Raw Token Amount Model
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Fixed-point token amounts (6 implied decimals) with decimal.Decimal
#
# SOVEREIGN MANDATE:
#   - Raw amounts are unsigned integers scaled by 10^6
#   - Threshold comparisons operate on raw integers only
#   - Float contamination is FORBIDDEN outside the reporting boundary
#
# Error Codes:
#   - BRG-DEC-001: Amount normalization failed
#
# ============================================================================

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_EVEN, InvalidOperation
from typing import Optional, Union
import logging

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

TOKEN_DECIMALS = 6
RAW_SCALE = Decimal(10) ** TOKEN_DECIMALS      # 1_000_000 raw units per token
DISPLAY_PRECISION = Decimal('0.000001')          # 6 decimal places

# SQLite INTEGER is a signed 64-bit column
MAX_RAW_AMOUNT = 2 ** 63 - 1

TOKEN_SYMBOL = "solXEN"


class DecimalGateway:
    """
    Sovereign Tier Decimal Gateway for raw token amounts.

    Converts between raw integer units and display Decimals, and normalizes
    the heterogeneous amount encodings found in upstream stores.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: str, int, float, Decimal or None
    Side Effects: Logs BRG-DEC-001 on normalization failure

    Example Usage:
        gateway = DecimalGateway()
        gateway.to_display(420000000)          # Decimal('420.000000')
        gateway.to_raw(Decimal('420.000000'))  # 420000000
        gateway.parse_raw_amount("420690000")  # 420690000
    """

    def to_display(self, raw: int) -> Decimal:
        """
        Convert raw units to a display Decimal with 6 decimal places.

        Args:
            raw: Raw integer amount

        Returns:
            Decimal quantized to DISPLAY_PRECISION
        """
        return (Decimal(int(raw)) / RAW_SCALE).quantize(
            DISPLAY_PRECISION, rounding=ROUND_HALF_EVEN
        )

    def to_raw(self, display: Union[Decimal, str, int]) -> int:
        """
        Convert a display amount back to raw units.

        Args:
            display: Display amount (Decimal, str or int)

        Returns:
            Raw integer amount

        Raises:
            ValueError: If the amount has more than 6 decimal places or is invalid
        """
        try:
            value = Decimal(str(display))
        except InvalidOperation as e:
            raise ValueError(f"BRG-DEC-001: Cannot convert '{display}' to raw units") from e

        scaled = value * RAW_SCALE
        if scaled != scaled.to_integral_value():
            raise ValueError(
                f"BRG-DEC-001: '{display}' exceeds {TOKEN_DECIMALS} decimal places"
            )
        return int(scaled)

    def parse_raw_amount(
        self,
        value: Union[str, int, float, Decimal, None],
        correlation_id: Optional[str] = None
    ) -> int:
        """
        Normalize a stored raw amount (text, float or integer) to an int.

        Fractional raw units truncate toward zero. Values that cannot be
        parsed, are negative, or exceed MAX_RAW_AMOUNT normalize to 0 so the
        minimum-amount policy filters them downstream.

        Args:
            value: Stored amount in any supported encoding
            correlation_id: Audit trail identifier

        Returns:
            Raw integer amount (>= 0)
        """
        if value is None:
            return 0

        try:
            if isinstance(value, bool):
                raise TypeError("boolean is not an amount")
            if isinstance(value, int):
                decimal_value = Decimal(value)
            else:
                # Always convert via string to avoid binary float expansion
                decimal_value = Decimal(str(value).strip())
            if not decimal_value.is_finite():
                raise InvalidOperation(f"non-finite amount {value!r}")
        except (InvalidOperation, ValueError, TypeError) as e:
            logger.warning(
                f"[BRG-DEC-001] Amount normalization failed | "
                f"value={value!r} | type={type(value).__name__} | "
                f"error={e} | correlation_id={correlation_id}"
            )
            return 0

        raw = int(decimal_value.to_integral_value(rounding=ROUND_DOWN))
        if raw < 0 or raw > MAX_RAW_AMOUNT:
            logger.warning(
                f"[BRG-DEC-001] Amount out of range | "
                f"value={value!r} | correlation_id={correlation_id}"
            )
            return 0
        return raw

    def meets_minimum(self, raw: int, minimum_raw: int) -> bool:
        """Threshold check on raw integers."""
        return int(raw) >= int(minimum_raw)

    def format_amount(self, raw: int) -> str:
        """
        Format raw units for log lines.

        Returns:
            String like "420.690000 solXEN"
        """
        return f"{self.to_display(raw)} {TOKEN_SYMBOL}"


# ============================================================================
# Module-level convenience functions
# ============================================================================

_gateway = DecimalGateway()


def to_display(raw: int) -> Decimal:
    """Module-level convenience function for display conversion."""
    return _gateway.to_display(raw)


def to_raw(display: Union[Decimal, str, int]) -> int:
    """Module-level convenience function for raw conversion."""
    return _gateway.to_raw(display)


def parse_raw_amount(
    value: Union[str, int, float, Decimal, None],
    correlation_id: Optional[str] = None
) -> int:
    """Module-level convenience function for source amount normalization."""
    return _gateway.parse_raw_amount(value, correlation_id)


def format_amount(raw: int) -> str:
    """Module-level convenience function for log formatting."""
    return _gateway.format_amount(raw)
