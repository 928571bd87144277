from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime
from src.core.config import DEFAULT_LOW_STOCK_THRESHOLD
from src.models.enums import InventoryReason, InventoryStatus, OrderStatus

# ---------- Catalog ----------

class CategoryCreate(BaseModel):
    name: str
    slug: Optional[str] = None
    parent_slug: Optional[str] = None

class Category(BaseModel):
    id: int
    name: str
    slug: str
    parent_id: Optional[int] = None

    class Config:
        from_attributes = True

class InventoryRecordInput(BaseModel):
    quantity: int = 0
    low_stock_threshold: int = Field(DEFAULT_LOW_STOCK_THRESHOLD, ge=0)
    managed: bool = True

class InventoryRecord(BaseModel):
    quantity: int
    low_stock_threshold: int
    status: InventoryStatus
    managed: bool

class ProductBase(BaseModel):
    name: str
    description: Optional[str] = ""
    price: float = Field(..., ge=0)
    compare_at_price: Optional[float] = Field(None, ge=0)
    images: List[str] = Field(default_factory=list)
    product_type: Optional[str] = None
    gender: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    barcode: Optional[str] = None
    attributes: Dict[str, str] = Field(default_factory=dict)

class ProductCreate(ProductBase):
    category: str
    subcategory: Optional[str] = None
    sku: Optional[str] = None
    inventory: InventoryRecordInput = Field(default_factory=InventoryRecordInput)

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    compare_at_price: Optional[float] = Field(None, ge=0)
    images: Optional[List[str]] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    product_type: Optional[str] = None
    gender: Optional[str] = None
    tags: Optional[List[str]] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    attributes: Optional[Dict[str, str]] = None
    quantity: Optional[int] = None
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    managed: Optional[bool] = None
    user_id: Optional[str] = None
    admin_name: Optional[str] = None

class Product(ProductBase):
    id: str
    sku: str
    category_slug: Optional[str] = None
    subcategory_slug: Optional[str] = None
    inventory: InventoryRecord
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class ProductPage(BaseModel):
    products: List[Product]
    total: int
    page: int
    page_size: int

class VariantCreate(BaseModel):
    attributes: Dict[str, str]
    sku: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    inventory: InventoryRecordInput = Field(default_factory=InventoryRecordInput)

class VariantUpdate(BaseModel):
    attributes: Optional[Dict[str, str]] = None
    sku: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    managed: Optional[bool] = None

class ProductVariant(BaseModel):
    id: str
    product_id: str
    attributes: Dict[str, str]
    sku: str
    price: Optional[float] = None
    inventory: InventoryRecord
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class SkuCheck(BaseModel):
    sku: str
    exists: bool

# ---------- Inventory ledger ----------

class InventoryAdjustment(BaseModel):
    quantity: int
    reason: InventoryReason = InventoryReason.MANUAL
    details: Optional[str] = None
    user_id: Optional[str] = None
    admin_name: Optional[str] = None

class InventoryLog(BaseModel):
    id: int
    product_id: str
    product_name: Optional[str] = None
    variant_id: Optional[str] = None
    previous_quantity: int
    new_quantity: int
    reason: InventoryReason
    order_id: Optional[str] = None
    user_id: Optional[str] = None
    admin_name: Optional[str] = None
    details: Optional[str] = None
    timestamp: datetime

    class Config:
        from_attributes = True

class InventoryLogFilter(BaseModel):
    product_id: Optional[str] = None
    reason: Optional[InventoryReason] = None
    admin_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search_term: Optional[str] = None
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1, le=200)

class InventoryLogPage(BaseModel):
    logs: List[InventoryLog]
    total: int
    page: int
    page_size: int

# ---------- Orders ----------

class CartItem(BaseModel):
    id: str  # product id
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., gt=0)
    image: Optional[str] = None

class CustomerInfo(BaseModel):
    # Presence is checked by the checkout service so the caller gets one readable message
    name: Optional[str] = None
    email: Optional[str] = None
    cedula: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    delivery_method: Optional[str] = None
    payment_method: Optional[str] = None
    mrw_office: Optional[str] = None

class OrderCreate(BaseModel):
    items: List[CartItem] = Field(default_factory=list)
    customer_info: CustomerInfo

class OrderItem(BaseModel):
    product_id: str
    name: str
    price: float
    quantity: int
    image: Optional[str] = None

    class Config:
        from_attributes = True

class Order(BaseModel):
    id: str
    items: List[OrderItem] = []
    total: float
    customer_info: CustomerInfo
    status: OrderStatus
    inventory_updated: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    user_id: str = "admin"

# ---------- Settings ----------

class StoreSettings(BaseModel):
    store_name: str = "Our Store"
    store_description: Optional[str] = None
    store_email: str = ""
    store_phone: Optional[str] = None
    store_address: Optional[str] = None
    store_currency: str = "USD"
    store_time_zone: str = "America/Caracas"

class ShippingSettings(BaseModel):
    enable_free_shipping: bool = False
    free_shipping_threshold: Optional[float] = None
    enable_flat_rate: bool = False
    flat_rate_amount: Optional[float] = None
    enable_local_pickup: bool = True

class NotificationSettings(BaseModel):
    email_notifications: bool = True
    order_confirmation: bool = True
    order_status_update: bool = True
    low_stock_alert: bool = False
    admin_email: Optional[str] = None

class AllSettings(BaseModel):
    store: StoreSettings = Field(default_factory=StoreSettings)
    shipping: ShippingSettings = Field(default_factory=ShippingSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
