"""
Pydantic models for the tax gateway's responses.
"""

from decimal import Decimal
from typing import Annotated, Any, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, PlainSerializer

from backend.services.tax_proxy.normalizers import text_or_default, to_iso, to_number
from backend.services.tax_proxy.tax_resolver import TaxCategory, TaxResolution, matched_categories


def _money_json(value: Decimal) -> Union[int, float]:
    return int(value) if value == value.to_integral_value() else float(value)


# Amounts stay Decimal in Python and render as JSON numbers
Money = Annotated[Decimal, PlainSerializer(_money_json, when_used="json")]


def _name_of(value: Any) -> str:
    return text_or_default(value.get("name") if isinstance(value, Mapping) else None)


def _opt_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class NormalizedRecord(BaseModel):
    """One sales invoice with its resolved taxes"""
    id: Optional[Union[int, str]] = None
    number: Optional[str] = None
    trans_date: Optional[str] = Field(None, description="Transaction date, YYYY-MM-DD")
    customer_name: str = "-"
    description: str = "-"
    status: str = "-"
    age: int = 0
    total_amount: Money = Decimal("0")
    tax_category: TaxCategory
    tax_label: str = "-"
    taxable_base: Money = Decimal("0")
    tax_amount: Money = Decimal("0")

    @classmethod
    def from_sources(cls, row: Mapping[str, Any], resolution: TaxResolution) -> "NormalizedRecord":
        """Combine list-level fields with a TaxResolution"""
        return cls(
            id=row.get("id"),
            number=_opt_text(row.get("number")),
            trans_date=_opt_text(to_iso(row.get("transDate"))),
            customer_name=_name_of(row.get("customer")),
            description=text_or_default(row.get("description")),
            status=text_or_default(row.get("statusName") or row.get("statusOutstanding")),
            age=int(to_number(row.get("age"))),
            total_amount=to_number(row.get("totalAmount")),
            tax_category=resolution.category,
            tax_label=resolution.tax_label,
            taxable_base=resolution.taxable_base,
            tax_amount=resolution.tax_amount,
        )


class SalesReceiptRecord(BaseModel):
    """
    One sales receipt; its categories come from the receipt description.

    ``tax_categories`` lists every category the description mentions;
    ``tax_category`` is the first of them.
    """
    id: Optional[Union[int, str]] = None
    number: Optional[str] = None
    trans_date: Optional[str] = None
    cheque_date: Optional[str] = None
    customer_name: str = "-"
    bank_name: str = "-"
    description: str = "-"
    use_credit: bool = False
    total_payment: Money = Decimal("0")
    tax_category: TaxCategory
    tax_categories: List[TaxCategory] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "SalesReceiptRecord":
        description = text_or_default(row.get("description"))
        categories = matched_categories(description)
        return cls(
            id=row.get("id"),
            number=_opt_text(row.get("number")),
            trans_date=_opt_text(to_iso(row.get("transDate"))),
            cheque_date=_opt_text(to_iso(row.get("chequeDate"))),
            customer_name=_name_of(row.get("customer")),
            bank_name=_name_of(row.get("bank")),
            description=description,
            use_credit=row.get("useCredit") is True,
            total_payment=to_number(row.get("totalPayment")),
            tax_category=categories[0],
            tax_categories=list(categories),
        )


class OrdersResponse(BaseModel):
    """Invoice tax listing response"""
    orders: List[NormalizedRecord]
    count: int
    total_data: Optional[int] = None
    page: Optional[int] = None
    per_page: Optional[int] = None


class ReceiptsResponse(BaseModel):
    """Sales receipt listing response"""
    orders: List[SalesReceiptRecord]
    count: int
    total_data: Optional[int] = None
    page: Optional[int] = None
    per_page: Optional[int] = None
