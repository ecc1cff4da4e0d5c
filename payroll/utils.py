import calendar
import re
from datetime import date
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Tuple

from .exceptions import InvalidPeriod

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
# DecimalField(max_digits=20, decimal_places=2) holds at most 18 integer digits.
MONEY_LIMIT = Decimal("1E18")

PERIOD_RE = re.compile(r"([0-9]{4})-([0-9]{2})")


def to_decimal(value, default=ZERO) -> Decimal:
    if value is None or isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default
    if not result.is_finite():
        return default
    return result


def round_money(value) -> Decimal:
    """Round to cents, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def fits_money(value: Decimal) -> bool:
    return value.is_finite() and abs(value) < MONEY_LIMIT


def parse_period(period) -> Tuple[int, int]:
    match = PERIOD_RE.fullmatch(period) if isinstance(period, str) else None
    if not match:
        raise InvalidPeriod()
    year, month = int(match.group(1)), int(match.group(2))
    if month < 1 or month > 12 or year < 1:
        raise InvalidPeriod()
    return year, month


def period_bounds(period) -> Tuple[date, date]:
    year, month = parse_period(period)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)
