"""Conversions between human amounts and on-chain base units."""

from decimal import Decimal, ROUND_DOWN


def to_base_units(amount: Decimal, decimals: int = 18) -> int:
    """Convert a human amount (e.g. 0.5 ETH) to base units (wei).

    Fractions below one base unit are truncated.
    """
    scaled = (Decimal(amount) * (Decimal(10) ** decimals)).quantize(Decimal(1), rounding=ROUND_DOWN)
    return int(scaled)


def from_base_units(amount: int, decimals: int = 18) -> Decimal:
    """Convert base units to a human amount."""
    return Decimal(amount) / (Decimal(10) ** decimals)


def format_amount(amount: int, decimals: int = 18, places: int = 6) -> str:
    """Format base units for log and progress messages."""
    value = from_base_units(amount, decimals)
    return f"{value:.{places}f}"
