"""Promotion models: automatic discounts and promo codes."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.fulfillment_service.models.enums import (
    DiscountScope,
    DiscountType,
    enum_values,
)
from sqlalchemy import Boolean, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

# ============================================================================
# DISCOUNT MODELS
# ============================================================================


class Discount(Base):
    """Time-boxed price reduction applied automatically to matching products."""

    __tablename__ = "store_discounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    type: Mapped[DiscountType] = mapped_column(
        SAEnum(
            DiscountType,
            values_callable=enum_values,
            name="store_discount_type_enum",
        ),
        nullable=False,
    )
    scope: Mapped[DiscountScope] = mapped_column(
        SAEnum(
            DiscountScope,
            values_callable=enum_values,
            name="store_discount_scope_enum",
        ),
        nullable=False,
    )
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Only meaningful for scope=category
    category_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    __table_args__ = (
        CheckConstraint("value > 0", name="discount_positive_value"),
        Index("ix_store_discounts_active_window", "is_active", "start_date", "end_date"),
    )

    # Relationships
    products = relationship(
        "DiscountProduct", back_populates="discount", cascade="all, delete-orphan"
    )

    @property
    def product_ids(self) -> list[int]:
        return [link.product_id for link in self.products]

    def __repr__(self):
        return f"<Discount {self.id} {self.type.value}={self.value} scope={self.scope.value}>"


class DiscountProduct(Base):
    """Products targeted by a product-scoped discount."""

    __tablename__ = "store_discount_products"

    discount_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("store_discounts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("store_products.id", ondelete="CASCADE"),
        primary_key=True,
    )

    # Relationships
    discount = relationship("Discount", back_populates="products")


# ============================================================================
# PROMO CODE MODELS
# ============================================================================


class PromoCode(Base):
    """Customer-entered code applied to the discounted order subtotal."""

    __tablename__ = "store_promo_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    type: Mapped[DiscountType] = mapped_column(
        SAEnum(
            DiscountType,
            values_callable=enum_values,
            name="store_discount_type_enum",
        ),
        nullable=False,
    )
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    minimum_order_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2), nullable=True
    )
    max_uses_total: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_uses_per_user: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    __table_args__ = (CheckConstraint("value > 0", name="promo_positive_value"),)

    # Relationships
    usages = relationship(
        "PromoCodeUsage", back_populates="promo_code", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<PromoCode {self.code} {self.type.value}={self.value}>"


class PromoCodeUsage(Base):
    """One redemption of a promo code, written in the order-creation unit."""

    __tablename__ = "store_promo_code_usages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    promo_code_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("store_promo_codes.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("store_orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        Index("ix_store_promo_usages_code_user", "promo_code_id", "user_id"),
    )

    # Relationships
    promo_code = relationship("PromoCode", back_populates="usages")
