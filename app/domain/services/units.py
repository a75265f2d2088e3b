from __future__ import annotations

from decimal import Decimal, InvalidOperation, localcontext

POOL_TOKEN_DECIMALS = 18


def format_units(value: int, decimals: int = POOL_TOKEN_DECIMALS) -> str:
    """Render a raw integer amount as a human decimal string ("1.5", "0.0")."""
    raw = int(value)
    if decimals <= 0:
        return str(raw)
    sign = "-" if raw < 0 else ""
    digits = str(abs(raw)).rjust(decimals + 1, "0")
    whole = digits[:-decimals]
    fraction = digits[-decimals:].rstrip("0") or "0"
    return f"{sign}{whole}.{fraction}"


def parse_units(value: str | Decimal, decimals: int = POOL_TOKEN_DECIMALS) -> int:
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid decimal amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid decimal amount: {value!r}")

    with localcontext() as ctx:
        ctx.prec = 100
        scaled = amount.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"Amount {value!r} has more than {decimals} decimals.")
        return int(scaled)
