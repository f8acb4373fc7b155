"""Minor-unit money helpers"""

from decimal import Decimal, ROUND_HALF_UP

HUNDRED = Decimal("100")


def round_cents(value: Decimal) -> int:
    """Round a fractional cent amount half-up to an integer number of cents"""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount_cents: int, rate: Decimal) -> Decimal:
    """Exact (unrounded) `rate` percent of an amount in cents"""
    return Decimal(amount_cents) * Decimal(rate) / HUNDRED


def format_cents(amount_cents: int, currency: str = "GHS") -> str:
    """Human readable amount, e.g. 110000 -> 'GHS 1,100.00'"""
    sign = "-" if amount_cents < 0 else ""
    whole, frac = divmod(abs(amount_cents), 100)
    return f"{sign}{currency} {whole:,}.{frac:02d}"
