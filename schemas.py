from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import MatchType


class MerchantRuleIn(BaseModel):
    user_id: Optional[str] = None
    merchant_pattern: Optional[str] = Field(default=None, max_length=200)
    match_type: MatchType = MatchType.contains
    category_id: Optional[int] = None
    is_business: bool = True
    vendor_display_name: Optional[str] = Field(default=None, max_length=200)
    priority: int = Field(default=0, ge=0, le=10_000)
    auto_created: bool = False


class MerchantRuleUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: Optional[str] = None
    merchant_pattern: Optional[str] = Field(default=None, min_length=1, max_length=200)
    match_type: Optional[MatchType] = None
    category_id: Optional[int] = None
    is_business: Optional[bool] = None
    vendor_display_name: Optional[str] = Field(default=None, max_length=200)
    priority: Optional[int] = Field(default=None, ge=0, le=10_000)
    is_active: Optional[bool] = None


class MerchantMatchIn(BaseModel):
    user_id: Optional[str] = None
    vendor: Optional[str] = None


class PriceHistoryIn(BaseModel):
    user_id: Optional[str] = None
    item_name: Optional[str] = Field(default=None, max_length=200)
    vendor: Optional[str] = Field(default=None, max_length=200)
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    unit_of_measure: Optional[str] = Field(default=None, max_length=20)
    purchase_date: Optional[date] = None
    expense_id: Optional[int] = None


class LineItemIn(BaseModel):
    item_name: str = Field(min_length=1, max_length=200)
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    line_total: Optional[Decimal] = Field(default=None, ge=0)
    unit_of_measure: Optional[str] = Field(default=None, max_length=20)
    is_taxable: bool = True


class LineItemsIn(BaseModel):
    user_id: Optional[str] = None
    expense_id: Optional[int] = None
    line_items: Optional[list[LineItemIn]] = None
    vendor: Optional[str] = Field(default=None, max_length=200)
    purchase_date: Optional[date] = None
