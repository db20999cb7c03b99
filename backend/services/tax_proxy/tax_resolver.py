"""
Tax Field Resolver for Accurate sales-invoice records.

Accurate populates tax information inconsistently: the same invoice may carry
its taxable base (DPP) and output tax (PPN) at document level, in the first
``detailTax`` group, only on individual ``detailItem`` lines, or nowhere at
all. This module derives one canonical (category, taxable base, tax amount)
triple from such a record.

Resolution is a set of fallback chains. Each chain is an ordered tuple of
accessor functions tried by ``first_non_empty``; the tuples below are the
priority order and are the place to review or change it.

Zero is treated the same as absent: an amount field that is present but not
greater than zero does not stop the chain.

Amounts for lodging and food-service taxes that remain empty after every
source has been tried are derived from the taxable base with a single flat
statutory rate. The rate is configuration (``STATUTORY_TAX_RATE``), not a
statement of tax law.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, localcontext
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

import structlog

from backend.services.tax_proxy.aggregator import line_items, sum_field, sum_line_items
from backend.services.tax_proxy.normalizers import ZERO, is_populated, to_number

logger = structlog.get_logger(__name__)

RawRecord = Mapping[str, Any]
Accessor = Callable[[RawRecord], Any]

DEFAULT_STATUTORY_RATE = Decimal("0.10")


class TaxCategory(str, Enum):
    """Canonical tax categories"""
    PPN = "PPN"
    NON_TAXABLE = "NON_TAXABLE"
    LODGING_TAX = "LODGING_TAX"
    FOOD_SERVICE_TAX = "FOOD_SERVICE_TAX"
    UNKNOWN = "UNKNOWN"
    FETCH_FAILED = "FETCH_FAILED"


# Categories whose missing amount may be derived from the statutory rate
STATUTORY_CATEGORIES = frozenset({TaxCategory.LODGING_TAX, TaxCategory.FOOD_SERVICE_TAX})


@dataclass(frozen=True)
class TaxResolution:
    """Resolved tax triple for one record"""
    category: TaxCategory
    taxable_base: Decimal = ZERO
    tax_amount: Decimal = ZERO
    tax_label: str = "-"
    derived_amount: bool = False


FETCH_FAILED_RESOLUTION = TaxResolution(
    category=TaxCategory.FETCH_FAILED,
    taxable_base=ZERO,
    tax_amount=ZERO,
    tax_label="-",
)


# Accessors

def _dig(record: Any, path: Sequence[Any]) -> Any:
    current = record
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or not -len(current) <= key < len(current):
                return None
            current = current[key]
        else:
            if not isinstance(current, Mapping):
                return None
            current = current.get(key)
    return current


def field(*path: Any) -> Accessor:
    """Accessor for a nested path; string keys index mappings, ints index lists"""
    def accessor(record: RawRecord) -> Any:
        return _dig(record, path)

    accessor.__name__ = ".".join(str(key) for key in path)
    return accessor


def first_in(list_key: str, *path: Any, predicate: Callable[[Any], bool] = None) -> Accessor:
    """
    Accessor scanning ``record[list_key]`` in order and returning ``path`` from
    the first entry whose value satisfies ``predicate``.
    """
    check = predicate or (lambda value: value is not None)

    def accessor(record: RawRecord) -> Any:
        for entry in line_items(record, list_key):
            value = _dig(entry, path)
            if check(value):
                return value
        return None

    accessor.__name__ = f"{list_key}[*]." + ".".join(str(key) for key in path)
    return accessor


def first_non_empty(
    record: RawRecord,
    accessors: Sequence[Accessor],
    predicate: Callable[[Any], bool] = is_populated,
) -> Optional[Any]:
    """Return the first accessor value accepted by ``predicate``, else None"""
    for accessor in accessors:
        value = accessor(record)
        if predicate(value):
            return value
    return None


def has_text(value: Any) -> bool:
    return isinstance(value, str) and value.strip() not in ("", "-")


CATEGORY_TEXT_ACCESSORS: Tuple[Accessor, ...] = (
    field("tax1", "description"),
    first_in("detailTax", "tax", "description", predicate=has_text),
    first_in("detailItem", "item", "tax1", "description", predicate=has_text),
)

BASE_ACCESSORS: Tuple[Accessor, ...] = (
    field("dppAmount"),
    field("taxableAmount1"),
    field("detailTax", 0, "taxableAmount"),
)

ITEM_BASE_ACCESSORS: Tuple[Accessor, ...] = (
    field("dppAmount"),
    field("salesAmountBase"),
    field("grossAmount"),
)

GROSS_BASE_ACCESSORS: Tuple[Accessor, ...] = (
    field("salesAmountBase"),
)

AMOUNT_ACCESSORS: Tuple[Accessor, ...] = (
    field("tax1Amount"),
    field("detailTax", 0, "taxAmount"),
)

ITEM_AMOUNT_FIELD = "tax1Amount"


# Category

_PREFIX = re.compile(r"^(?:tax|pajak)\b[\s:_\-]*")

LODGING_KEYWORDS = ("hotel", "penginapan", "lodging", "hospitality")
FOOD_SERVICE_KEYWORDS = ("resto", "restoran", "restaurant", "rumah makan", "food")
NON_TAXABLE_KEYWORDS = ("non", "bebas", "exempt", "tidak kena")
VAT_KEYWORDS = ("ppn", "vat")


def normalize_category(text: Any) -> TaxCategory:
    """
    Collapse a free-text tax description into a TaxCategory.

    The text is case-folded and a leading "TAX"/"PAJAK" token is dropped
    before keyword matching, so "PAJAK HOTEL", "Tax - Hotel" and "hotel tax"
    all land on LODGING_TAX. Lodging keywords win over food-service ones,
    then non-taxable, then VAT.
    """
    return matched_categories(text)[0]


def matched_categories(text: Any) -> Tuple[TaxCategory, ...]:
    """
    Every category whose keywords occur in ``text``, in keyword-check order.

    Unlike normalize_category this does not stop at the first match, so
    "Resto Hotel Mawar" yields both LODGING_TAX and FOOD_SERVICE_TAX.
    """
    if not has_text(text):
        return (TaxCategory.NON_TAXABLE,)

    folded = _PREFIX.sub("", text.casefold().strip())
    matched = tuple(
        category for category, keywords in (
            (TaxCategory.LODGING_TAX, LODGING_KEYWORDS),
            (TaxCategory.FOOD_SERVICE_TAX, FOOD_SERVICE_KEYWORDS),
            (TaxCategory.NON_TAXABLE, NON_TAXABLE_KEYWORDS),
            (TaxCategory.PPN, VAT_KEYWORDS),
        )
        if any(keyword in folded for keyword in keywords)
    )
    return matched or (TaxCategory.UNKNOWN,)


def resolve_category(record: RawRecord) -> Tuple[TaxCategory, str]:
    """Return the record's category and the label it was derived from"""
    text = first_non_empty(record, CATEGORY_TEXT_ACCESSORS, has_text)
    if text is not None:
        return normalize_category(text), text.strip()

    taxable = record.get("taxable")
    if taxable is True:
        return TaxCategory.PPN, "PPN"
    if taxable is False:
        return TaxCategory.NON_TAXABLE, "NON-PAJAK"
    return TaxCategory.NON_TAXABLE, "-"


# Amounts

def _item_base(item: RawRecord) -> Any:
    return first_non_empty(item, ITEM_BASE_ACCESSORS)


def resolve_taxable_base(record: RawRecord) -> Decimal:
    """Document fields, then the per-item sum, then the document gross base"""
    value = first_non_empty(record, BASE_ACCESSORS)
    if value is not None:
        return to_number(value)

    items = line_items(record)
    if items:
        total = sum_field(items, _item_base)
        if total > ZERO:
            return total

    value = first_non_empty(record, GROSS_BASE_ACCESSORS)
    return to_number(value) if value is not None else ZERO


def statutory_amount(base: Decimal, rate: Decimal) -> Decimal:
    """Flat-rate tax on ``base``, rounded half-up to whole currency units"""
    with localcontext() as ctx:
        product = base * rate
        # quantize needs room for every integer digit of the product
        ctx.prec = max(ctx.prec, product.adjusted() + 2)
        return product.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def resolve_tax_amount(
    record: RawRecord,
    category: TaxCategory,
    taxable_base: Decimal,
    statutory_rate: Decimal = DEFAULT_STATUTORY_RATE,
) -> Tuple[Decimal, bool]:
    """
    Return ``(amount, derived)``; ``derived`` is True when the amount was
    computed from the statutory rate rather than read from the record.
    """
    value = first_non_empty(record, AMOUNT_ACCESSORS)
    if value is not None:
        return to_number(value), False

    items = line_items(record)
    if items:
        total = sum_line_items(items, ITEM_AMOUNT_FIELD)
        if total > ZERO:
            return total, False

    if category in STATUTORY_CATEGORIES and taxable_base > ZERO:
        return statutory_amount(taxable_base, statutory_rate), True

    return ZERO, False


def resolve_tax(
    record: Optional[RawRecord],
    statutory_rate: Decimal = DEFAULT_STATUTORY_RATE,
) -> TaxResolution:
    """Resolve category, taxable base and tax amount for one detail record"""
    if not isinstance(record, Mapping):
        record = {}

    category, label = resolve_category(record)
    taxable_base = resolve_taxable_base(record)
    tax_amount, derived = resolve_tax_amount(record, category, taxable_base, statutory_rate)

    if derived:
        logger.debug(
            "tax_amount_derived",
            record_id=record.get("id"),
            category=category.value,
            taxable_base=str(taxable_base),
            tax_amount=str(tax_amount),
        )

    return TaxResolution(
        category=category,
        taxable_base=taxable_base,
        tax_amount=tax_amount,
        tax_label=label,
        derived_amount=derived,
    )
