"""Pydantic schemas for fulfillment service."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator
from services.fulfillment_service.models import (
    DiscountScope,
    DiscountType,
    OrderStatus,
    PaymentMethodType,
    PaymentStatus,
)

# ============================================================================
# CART SCHEMAS
# ============================================================================


class CartItemAdd(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1)


class CartLineResponse(BaseModel):
    product_id: int
    product_name: str
    category: str
    quantity: int
    unit_price: Decimal
    discounted_price: Decimal
    discount_amount: Decimal
    total: Decimal
    discount_name: Optional[str] = None
    in_stock: bool


class CartSummaryResponse(BaseModel):
    items: list[CartLineResponse] = []
    item_count: int = 0
    total_quantity: int = 0
    sub_total: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    vat_amount: Decimal
    delivery_fee: Decimal
    final_amount: Decimal
    currency: str


# ============================================================================
# CHECKOUT SCHEMAS
# ============================================================================


class DeliveryAddressBase(BaseModel):
    full_name: str = Field(..., max_length=255)
    phone_number: str = Field(..., max_length=50)
    city: str = Field(..., max_length=100)
    street: Optional[str] = Field(None, max_length=255)
    building_number: Optional[str] = Field(None, max_length=50)
    additional_details: Optional[str] = None


class DeliveryAddressCreate(DeliveryAddressBase):
    @field_validator("full_name", "phone_number", "city")
    @classmethod
    def required_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class DeliveryAddressResponse(DeliveryAddressBase):
    model_config = ConfigDict(from_attributes=True)


class CardDetails(BaseModel):
    """Raw card input. Validated by the payment step, never stored."""

    card_number: Optional[SecretStr] = None
    expiry_date: Optional[str] = None
    cvv: Optional[SecretStr] = None


class CheckoutRequest(BaseModel):
    payment_method: PaymentMethodType
    delivery_address: DeliveryAddressCreate
    card_details: Optional[CardDetails] = None
    promo_code: Optional[str] = Field(None, max_length=50)


# ============================================================================
# ORDER SCHEMAS
# ============================================================================


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    product_name: str
    quantity: int
    original_price: Decimal
    price: Decimal
    discount_amount: Decimal
    discount_id: Optional[int] = None
    discount_name: Optional[str] = None
    total: Decimal


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payment_method: PaymentMethodType
    status: PaymentStatus
    amount: Decimal
    currency: str
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    is_refunded: bool = False
    refunded_at: Optional[datetime] = None
    refund_amount: Optional[Decimal] = None


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    status: OrderStatus
    order_date: datetime
    sub_total: Decimal
    discount_amount: Decimal
    promo_code: Optional[str] = None
    promo_discount_amount: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    delivery_fee: Decimal
    final_amount: Decimal
    invoice_path: Optional[str] = None
    items: list[OrderItemResponse] = []
    delivery_address: Optional[DeliveryAddressResponse] = None
    payment: Optional[PaymentResponse] = None


class OrderResultResponse(BaseModel):
    """An order plus any non-fatal problems (e.g. invoice rendering)."""

    order: OrderResponse
    warnings: list[str] = []


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus


# ============================================================================
# PROMO CODE SCHEMAS
# ============================================================================


class PromoCodeValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    order_total: Decimal = Field(..., ge=0)


class PromoCodeValidateResponse(BaseModel):
    valid: bool
    code: str
    discount_amount: Decimal = Decimal("0")
    message: Optional[str] = None
    reason: Optional[str] = None


class PromoCodeBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    type: DiscountType
    value: Decimal = Field(..., gt=0)
    minimum_order_amount: Optional[Decimal] = Field(None, ge=0)
    max_uses_total: Optional[int] = Field(None, ge=1)
    max_uses_per_user: Optional[int] = Field(None, ge=1)
    start_date: datetime
    end_date: datetime
    is_active: bool = True


class PromoCodeCreate(PromoCodeBase):
    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def check_window(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        if self.type == DiscountType.PERCENTAGE and self.value > 100:
            raise ValueError("percentage value cannot exceed 100")
        return self


class PromoCodeUpdate(BaseModel):
    description: Optional[str] = None
    value: Optional[Decimal] = Field(None, gt=0)
    minimum_order_amount: Optional[Decimal] = Field(None, ge=0)
    max_uses_total: Optional[int] = Field(None, ge=1)
    max_uses_per_user: Optional[int] = Field(None, ge=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None


class PromoCodeResponse(PromoCodeBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    usage_count: int = 0
    created_at: datetime


# ============================================================================
# DISCOUNT SCHEMAS
# ============================================================================


class DiscountBase(BaseModel):
    name: str = Field(..., max_length=100)
    description: Optional[str] = None
    type: DiscountType
    scope: DiscountScope
    value: Decimal = Field(..., gt=0)
    category_name: Optional[str] = Field(None, max_length=100)
    start_date: datetime
    end_date: datetime
    is_active: bool = True


class DiscountCreate(DiscountBase):
    product_ids: list[int] = []

    @model_validator(mode="after")
    def check_scope(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        if self.type == DiscountType.PERCENTAGE and self.value > 100:
            raise ValueError("percentage value cannot exceed 100")
        if self.scope == DiscountScope.CATEGORY and not self.category_name:
            raise ValueError("category_name is required for category discounts")
        if self.scope == DiscountScope.PRODUCT and not self.product_ids:
            raise ValueError("product_ids is required for product discounts")
        return self


class DiscountUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    value: Optional[Decimal] = Field(None, gt=0)
    category_name: Optional[str] = Field(None, max_length=100)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    product_ids: Optional[list[int]] = None


class DiscountResponse(DiscountBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_ids: list[int] = []
    created_at: datetime


class DiscountedProductResponse(BaseModel):
    """A product with the discount that currently gives it the lowest price."""

    product_id: int
    name: str
    category: str
    original_price: Decimal
    discounted_price: Decimal
    discount_id: int
    discount_name: str
    discount_type: DiscountType
    discount_value: Decimal


# ============================================================================
# REPORTING SCHEMAS
# ============================================================================


class OrderStatisticsResponse(BaseModel):
    total_orders: int
    orders_by_status: dict[OrderStatus, int]
    total_revenue: Decimal
    average_order_value: Decimal


class DailySalesResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day: date
    order_count: int
    revenue: Decimal
    sub_total: Decimal
    vat_amount: Decimal
    delivery_fees: Decimal


class TopCustomerResponse(BaseModel):
    user_id: str
    order_count: int
    total_spent: Decimal
    last_order_date: datetime
