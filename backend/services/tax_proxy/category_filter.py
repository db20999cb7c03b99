"""
Category filtering over resolved records.

Works on records that already carry normalized categories; raw upstream
text is never inspected here.
"""

from typing import Callable, Iterable, List, Optional, TypeVar, Union

from backend.services.tax_proxy.tax_resolver import TaxCategory

Record = TypeVar("Record")


def _single_category(record) -> Iterable[TaxCategory]:
    return (record.tax_category,)


def filter_by_category(
    records: Iterable[Record],
    *categories: Union[TaxCategory, str],
    key: Optional[Callable[[Record], Iterable[TaxCategory]]] = None,
) -> List[Record]:
    """
    Keep records matching any of ``categories``.

    By default a record matches on its ``tax_category``; ``key`` returns every
    category a record belongs to when it can carry more than one. Order is
    preserved. With no categories every record is kept.

    Raises:
        ValueError: a category string is not a TaxCategory value
    """
    if not categories:
        return list(records)

    targets = {TaxCategory(category) for category in categories}
    key = key or _single_category
    return [record for record in records if targets.intersection(key(record))]
