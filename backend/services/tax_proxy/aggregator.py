"""
Line-item aggregation.

Sums a per-item amount across an invoice's ``detailItem`` list when the
document-level fields are empty.
"""

from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Optional

from backend.services.tax_proxy.normalizers import ZERO, to_number


def line_items(record: Mapping[str, Any], key: str = "detailItem") -> list:
    """Return the record's line items, or an empty list for any other shape"""
    items = record.get(key) if isinstance(record, Mapping) else None
    return items if isinstance(items, list) else []


def sum_field(
    items: Optional[Iterable[Any]],
    accessor: Callable[[Mapping[str, Any]], Any],
) -> Decimal:
    """Sum ``accessor(item)`` over mapping items; anything else counts as zero"""
    if not items or isinstance(items, (str, bytes, Mapping)):
        return ZERO

    total = ZERO
    for item in items:
        if isinstance(item, Mapping):
            total += to_number(accessor(item))
    return total


def sum_line_items(items: Optional[Iterable[Any]], field: str) -> Decimal:
    """Sum a single named field across line items"""
    return sum_field(items, lambda item: item.get(field))
