from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
# Largest value a NUMERIC(10, 2) column holds.
MAX_AMOUNT = Decimal("99999999.99")

Number = Union[Decimal, float, int, str]


def round2(value: Number) -> Decimal:
    """Round half-up to the cent.

    Floats go through ``str`` first so that ``0.1 + 0.2`` style drift is not
    baked into the Decimal.
    """
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(value)
        if not amount.is_finite():
            raise ValueError("Invalid amount")
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc


def to_amount(value: Number) -> Decimal:
    amount = round2(value)
    if amount <= 0:
        raise ValueError("Amount must be positive")
    if amount > MAX_AMOUNT:
        raise ValueError(f"Amount must not exceed {MAX_AMOUNT}")
    return amount


def amount_to_float(value: Number) -> float:
    return float(round2(value))
