"""
Numeric and date normalization for upstream Accurate values.

Upstream records are duck-typed: amounts arrive as numbers, numeric strings,
null or garbage, and dates arrive in several textual shapes. These helpers
turn them into one canonical shape without ever raising.
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

ZERO = Decimal("0")

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_DMY_DATE = re.compile(r"^(\d{2})[-/](\d{2})[-/](\d{4})$")


def to_number(value: Any) -> Decimal:
    """
    Coerce an arbitrary upstream value to a finite Decimal.

    Anything that is not a finite number (None, NaN, infinities, blank or
    non-numeric strings, booleans, containers) becomes zero.
    """
    if value is None or isinstance(value, bool):
        return ZERO

    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        try:
            number = Decimal(str(value))
        except InvalidOperation:
            return ZERO
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return ZERO
        try:
            number = Decimal(text)
        except InvalidOperation:
            return ZERO
    else:
        return ZERO

    if not number.is_finite():
        return ZERO
    return number


def is_populated(value: Any) -> bool:
    """Zero, negative and absent amounts all mean "not populated" upstream"""
    return to_number(value) > ZERO


def _valid_date(year: str, month: str, day: str) -> bool:
    try:
        date(int(year), int(month), int(day))
    except ValueError:
        return False
    return True


def to_dmy(iso_date: Any) -> Optional[str]:
    """
    Convert ``YYYY-MM-DD`` into the ``DD/MM/YYYY`` form used by Accurate
    list filters. Returns None for anything else.
    """
    if not isinstance(iso_date, str):
        return None
    match = _ISO_DATE.match(iso_date.strip())
    if not match:
        return None
    year, month, day = match.groups()
    if not _valid_date(year, month, day):
        return None
    return f"{day}/{month}/{year}"


def to_iso(value: Any) -> Any:
    """
    Normalize ``DD-MM-YYYY``, ``DD/MM/YYYY`` or ``YYYY-MM-DD`` to
    ``YYYY-MM-DD``. Unrecognized input is returned unchanged.
    """
    if not isinstance(value, str):
        return value

    text = value.strip()
    match = _ISO_DATE.match(text)
    if match:
        return text if _valid_date(*match.groups()) else value

    match = _DMY_DATE.match(text)
    if match:
        day, month, year = match.groups()
        if _valid_date(year, month, day):
            return f"{year}-{month}-{day}"

    return value


def text_or_default(value: Any, default: str = "-") -> str:
    """Upstream free-text fields are shown as "-" when blank"""
    if value is None:
        return default
    text = str(value).strip()
    return text or default
