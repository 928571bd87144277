import uuid
from sqlalchemy import (
    Column, Integer, String, Float, DateTime, ForeignKey, Boolean, Text, JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from src.core.database import Base
from src.core.config import DEFAULT_LOW_STOCK_THRESHOLD


def _uuid() -> str:
    return str(uuid.uuid4())


class Category(Base):
    """Catalog category; subcategories point at their parent"""
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    parent_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    parent = relationship("Category", remote_side=[id], backref="subcategories")


class Product(Base):
    """Catalog product with its inventory sub-record"""
    __tablename__ = "products"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    description = Column(Text, default="")
    price = Column(Float, nullable=False)
    compare_at_price = Column(Float, nullable=True)
    images = Column(JSON, nullable=False, default=list)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    subcategory_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    product_type = Column(String, nullable=True)
    gender = Column(String, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    sku = Column(String, unique=True, index=True, nullable=False)
    barcode = Column(String, nullable=True)
    attributes = Column(JSON, nullable=False, default=dict)

    inventory_quantity = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=False, default=DEFAULT_LOW_STOCK_THRESHOLD)
    inventory_status = Column(String, nullable=False, default="out_of_stock")  # in_stock, low_stock, out_of_stock, discontinued
    inventory_managed = Column(Boolean, nullable=False, default=True)

    version = Column(Integer, nullable=False, default=1)  # For optimistic locking
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("Category", foreign_keys=[category_id])
    subcategory = relationship("Category", foreign_keys=[subcategory_id])
    variants = relationship("ProductVariant", back_populates="product", cascade="all, delete-orphan")
    inventory_logs = relationship("InventoryLog", back_populates="product")

    @property
    def inventory(self) -> dict:
        return {
            "quantity": self.inventory_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "status": self.inventory_status,
            "managed": self.inventory_managed,
        }

    @property
    def category_slug(self):
        return self.category.slug if self.category else None

    @property
    def subcategory_slug(self):
        return self.subcategory.slug if self.subcategory else None


class ProductVariant(Base):
    """Size/color variant of a product with its own SKU and stock"""
    __tablename__ = "product_variants"
    __table_args__ = (
        UniqueConstraint("product_id", "attributes_key", name="uq_variant_attributes"),
    )

    id = Column(String, primary_key=True, default=_uuid)
    product_id = Column(String, ForeignKey("products.id"), nullable=False, index=True)
    attributes = Column(JSON, nullable=False, default=dict)
    attributes_key = Column(String, nullable=False)  # canonical "color=Red;size=M"
    sku = Column(String, unique=True, index=True, nullable=False)
    price = Column(Float, nullable=True)  # falls back to the product price

    inventory_quantity = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=False, default=DEFAULT_LOW_STOCK_THRESHOLD)
    inventory_status = Column(String, nullable=False, default="out_of_stock")
    inventory_managed = Column(Boolean, nullable=False, default=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = relationship("Product", back_populates="variants")

    @property
    def inventory(self) -> dict:
        return {
            "quantity": self.inventory_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "status": self.inventory_status,
            "managed": self.inventory_managed,
        }


class InventoryLog(Base):
    """Append-only audit trail of every inventory quantity change"""
    __tablename__ = "inventory_logs"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(String, ForeignKey("products.id"), nullable=False, index=True)
    variant_id = Column(String, ForeignKey("product_variants.id"), nullable=True)
    previous_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    reason = Column(String, nullable=False, index=True)  # order, manual, return, adjustment, product_*
    order_id = Column(String, ForeignKey("orders.id"), nullable=True, index=True)
    user_id = Column(String, nullable=True)
    admin_name = Column(String, nullable=True)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)

    product = relationship("Product", back_populates="inventory_logs")

    @property
    def product_name(self):
        return self.product.name if self.product else None


class Order(Base):
    """Customer order; items are a frozen snapshot of the cart"""
    __tablename__ = "orders"

    id = Column(String, primary_key=True)  # ORD-<base36 timestamp>-<base36 random>
    total = Column(Float, nullable=False)
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False)
    customer_cedula = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)
    customer_address = Column(String, nullable=True)
    delivery_method = Column(String, nullable=False)
    payment_method = Column(String, nullable=False)
    mrw_office = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending")  # pending, processing, completed, cancelled
    inventory_updated = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")

    @property
    def customer_info(self) -> dict:
        return {
            "name": self.customer_name,
            "email": self.customer_email,
            "cedula": self.customer_cedula,
            "phone": self.customer_phone,
            "address": self.customer_address,
            "delivery_method": self.delivery_method,
            "payment_method": self.payment_method,
            "mrw_office": self.mrw_office,
        }


class OrderItem(Base):
    """Snapshot of a cart line at checkout time"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String, nullable=False, index=True)  # not a live reference
    name = Column(String, nullable=False)
    price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False)
    image = Column(String, nullable=True)

    order = relationship("Order", back_populates="items")


class Setting(Base):
    """One row per settings section (store, shipping, notifications)"""
    __tablename__ = "settings"

    id = Column(String, primary_key=True)
    value = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
