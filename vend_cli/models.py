"""Records returned by the Vend API.

Every field is optional because the API omits or nulls fields freely.
Unknown fields are kept so a generic export still sees them.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class VendRecord(BaseModel):
    """Base for all API records."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        """Record as a plain dict, unknown fields included."""
        return self.model_dump(by_alias=True)


class Customer(VendRecord):
    customer_code: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    company_name: Optional[str] = None
    customer_group_id: Optional[str] = None
    year_to_date: Optional[float] = None
    balance: Optional[float] = None
    loyalty_balance: Optional[float] = None
    phone: Optional[str] = None
    mobile: Optional[str] = None
    note: Optional[str] = None
    created_at: Optional[str] = None
    deleted_at: Optional[str] = None


class CustomerGroup(VendRecord):
    name: Optional[str] = None


class Tag(VendRecord):
    name: Optional[str] = None


class Product(VendRecord):
    handle: Optional[str] = None
    sku: Optional[str] = None
    name: Optional[str] = None
    variant_name: Optional[str] = None
    description: Optional[str] = None
    supplier_id: Optional[str] = None
    supply_price: Optional[float] = None
    price_including_tax: Optional[float] = None
    price_excluding_tax: Optional[float] = None
    active: Optional[bool] = None
    has_variants: Optional[bool] = None
    variant_parent_id: Optional[str] = None
    tag_ids: Optional[List[str]] = None
    created_at: Optional[str] = None
    deleted_at: Optional[str] = None
    version: Optional[int] = None


class Sale(VendRecord):
    outlet_id: Optional[str] = None
    register_id: Optional[str] = None
    user_id: Optional[str] = None
    customer_id: Optional[str] = None
    invoice_number: Optional[str] = None
    receipt_number: Optional[str] = None
    status: Optional[str] = None
    note: Optional[str] = None
    short_code: Optional[str] = None
    return_for: Optional[str] = None
    sale_date: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    deleted_at: Optional[str] = None
    total_price: Optional[float] = None
    total_tax: Optional[float] = None
    total_loyalty: Optional[float] = None
    line_items: Optional[List[Dict[str, Any]]] = None
    payments: Optional[List[Dict[str, Any]]] = None
    version: Optional[int] = None


class User(VendRecord):
    username: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None
    account_type: Optional[str] = None
    is_primary_user: Optional[bool] = None
    restricted_outlet_id: Optional[str] = None
    created_at: Optional[str] = None
    deleted_at: Optional[str] = None


class Outlet(VendRecord):
    name: Optional[str] = None
    time_zone: Optional[str] = None
    deleted_at: Optional[str] = None


class Register(VendRecord):
    name: Optional[str] = None
    outlet_id: Optional[str] = None
    is_open: Optional[bool] = None
    deleted_at: Optional[str] = None


class GiftCardTransaction(VendRecord):
    amount: Optional[float] = None
    type: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[str] = None


class GiftCard(VendRecord):
    number: Optional[str] = None
    sale_id: Optional[str] = None
    created_at: Optional[str] = None
    expires_at: Optional[str] = None
    status: Optional[str] = None
    balance: Optional[float] = None
    total_sold: Optional[float] = None
    total_redeemed: Optional[float] = None
    gift_card_transactions: List[GiftCardTransaction] = Field(default_factory=list)


class StoreCreditTransaction(VendRecord):
    amount: Optional[float] = None
    type: Optional[str] = None
    notes: Optional[str] = None
    user_id: Optional[str] = None
    sale_id: Optional[str] = None
    created_at: Optional[str] = None


class StoreCredit(VendRecord):
    customer_id: Optional[str] = None
    customer_code: Optional[str] = None
    created_at: Optional[str] = None
    balance: Optional[float] = None
    total_credit_issued: Optional[float] = None
    total_credit_redeemed: Optional[float] = None
    store_credit_transactions: List[StoreCreditTransaction] = Field(default_factory=list)


class Supplier(VendRecord):
    name: Optional[str] = None
    description: Optional[str] = None
    source: Optional[str] = None


class AuditLogEvent(VendRecord):
    user_id: Optional[str] = None
    kind: Optional[str] = Field(default=None, alias="type")
    action: Optional[str] = None
    entity_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    occurred_at: Optional[str] = None
    created_at: Optional[str] = None
