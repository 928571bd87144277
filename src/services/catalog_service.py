import logging
import re
from typing import Dict, List, Optional, Tuple
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from src.core.exceptions import (
    CategoryNotFoundError, DuplicateVariantError, ProductNotFoundError, SkuConflictError,
    StorageError, StorefrontError, ValidationError, VariantNotFoundError,
)
from src.core.invalidation import revalidate_path, revalidate_product
from src.models.database import Category, Product, ProductVariant
from src.models.enums import InventoryReason, InventoryStatus
from src.models.schemas import (
    CategoryCreate, ProductCreate, ProductUpdate, VariantCreate, VariantUpdate,
)
from src.services.inventory_service import InventoryLedgerService
from src.services.identifiers import generate_sku

logger = logging.getLogger(__name__)

# Catalog fields copied straight from the request onto the row
PRODUCT_FIELDS = (
    "name", "description", "price", "compare_at_price", "images", "product_type",
    "gender", "tags", "barcode", "attributes",
)


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def attributes_key(attributes: Dict[str, str]) -> str:
    """Canonical form used for the per-product uniqueness constraint"""
    return ";".join(f"{key.strip().lower()}={str(value).strip()}" for key, value in sorted(attributes.items()))


class CatalogService:
    """Products, categories and variants. Stock changes are delegated to the ledger."""

    def __init__(self, db: Session, notifier=None):
        self.db = db
        self.ledger = InventoryLedgerService(db, notifier=notifier)

    # ---------- categories ----------

    def list_categories(self) -> List[Category]:
        return self.db.query(Category).order_by(Category.name).all()

    def get_category(self, slug: str) -> Category:
        category = self.db.query(Category).filter(Category.slug == slug).first()
        if not category:
            raise CategoryNotFoundError(slug)
        return category

    def create_category(self, data: CategoryCreate) -> Category:
        slug = data.slug or slugify(data.name)
        if not slug:
            raise ValidationError("Category name must contain letters or digits")
        parent = self.get_category(data.parent_slug) if data.parent_slug else None

        category = Category(name=data.name, slug=slug, parent_id=parent.id if parent else None)
        try:
            self.db.add(category)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ValidationError(f"Category '{slug}' already exists") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError("Failed to create category") from e

        logger.info(f"Created category {slug}")
        revalidate_path("/admin/products")
        return category

    def _resolve_category(self, slug: str) -> Category:
        category = self.db.query(Category).filter(Category.slug == slug).first()
        if not category:
            raise ValidationError(f"Unknown category '{slug}'")
        return category

    # ---------- products ----------

    def get_products(
        self,
        category: Optional[str] = None,
        gender: Optional[str] = None,
        product_type: Optional[str] = None,
        status: Optional[InventoryStatus] = None,
        search: Optional[str] = None,
        include_discontinued: bool = False,
        page: int = 1,
        page_size: int = 24,
    ) -> Tuple[List[Product], int]:
        query = self.db.query(Product)

        if category:
            category_row = self.db.query(Category).filter(Category.slug == category).first()
            if not category_row:
                return [], 0
            query = query.filter(or_(
                Product.category_id == category_row.id,
                Product.subcategory_id == category_row.id,
            ))
        if gender:
            query = query.filter(Product.gender == gender)
        if product_type:
            query = query.filter(Product.product_type == product_type)
        if status:
            query = query.filter(Product.inventory_status == status.value)
        elif not include_discontinued:
            query = query.filter(Product.inventory_status != InventoryStatus.DISCONTINUED.value)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Product.name.ilike(pattern),
                Product.sku.ilike(pattern),
                Product.description.ilike(pattern),
            ))

        total = query.count()
        products = (
            query.order_by(Product.updated_at.desc(), Product.name)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return products, total

    def get_product_by_id(self, product_id: str) -> Product:
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise ProductNotFoundError(product_id)
        return product

    def check_sku_exists(self, sku: str, exclude_product_id: Optional[str] = None) -> bool:
        """Discontinued products keep their row, so their SKUs stay taken"""
        query = self.db.query(Product.id).filter(Product.sku == sku)
        if exclude_product_id:
            query = query.filter(Product.id != exclude_product_id)
        return query.first() is not None

    def create_product(self, data: ProductCreate, user_id: Optional[str] = None, admin_name: Optional[str] = None) -> Product:
        if data.inventory.quantity < 0:
            raise ValidationError("Inventory quantity cannot be negative")

        category = self._resolve_category(data.category)
        subcategory = self._resolve_category(data.subcategory) if data.subcategory else None
        sku = data.sku or generate_sku(category.name)

        product = Product(
            sku=sku,
            category_id=category.id,
            subcategory_id=subcategory.id if subcategory else None,
            inventory_quantity=0,
            low_stock_threshold=data.inventory.low_stock_threshold,
            inventory_managed=data.inventory.managed,
            inventory_status=InventoryStatus.OUT_OF_STOCK.value,
            **{field: getattr(data, field) for field in PRODUCT_FIELDS},
        )

        try:
            self.db.add(product)
            self.db.flush()
            # Opening stock goes through the ledger so it appears in the audit trail
            self.ledger.apply_inventory_change(
                product.id,
                data.inventory.quantity,
                InventoryReason.PRODUCT_CREATED,
                user_id=user_id,
                admin_name=admin_name,
                details="Product created",
            )
            self.db.commit()
        except IntegrityError as e:
            self._rollback()
            raise SkuConflictError(sku) from e
        except StorefrontError:
            self._rollback()
            raise
        except SQLAlchemyError as e:
            self._rollback()
            logger.error(f"Failed to create product: {str(e)}")
            raise StorageError("Failed to create product") from e

        logger.info(f"Created product {product.id} ({sku})")
        revalidate_product(product.id)
        self.ledger.dispatch_pending_alerts()
        return product

    def update_product(self, product_id: str, data: ProductUpdate) -> Product:
        product = self.get_product_by_id(product_id)
        changes = data.model_dump(exclude_unset=True)

        try:
            for field in PRODUCT_FIELDS:
                if field in changes:
                    setattr(product, field, changes[field])
            if "sku" in changes and changes["sku"]:
                product.sku = changes["sku"]
            if "category" in changes and changes["category"]:
                product.category_id = self._resolve_category(changes["category"]).id
            if "subcategory" in changes:
                subcategory = changes["subcategory"]
                product.subcategory_id = self._resolve_category(subcategory).id if subcategory else None
            if "managed" in changes and changes["managed"] is not None:
                product.inventory_managed = changes["managed"]
            if "low_stock_threshold" in changes and changes["low_stock_threshold"] is not None:
                product.low_stock_threshold = changes["low_stock_threshold"]
            self.db.flush()

            quantity = changes.get("quantity")
            if quantity is not None and quantity != product.inventory_quantity:
                self.ledger.apply_inventory_change(
                    product_id,
                    quantity,
                    InventoryReason.PRODUCT_UPDATED,
                    user_id=data.user_id,
                    admin_name=data.admin_name,
                    details="Quantity changed from product editor",
                )
            elif changes.get("low_stock_threshold") is not None:
                self.ledger.refresh_status(product_id)
            self.db.commit()
        except IntegrityError as e:
            self._rollback()
            raise SkuConflictError(changes.get("sku")) from e
        except StorefrontError:
            self._rollback()
            raise
        except SQLAlchemyError as e:
            self._rollback()
            logger.error(f"Failed to update product {product_id}: {str(e)}")
            raise StorageError("Failed to update product") from e

        logger.info(f"Updated product {product_id}")
        revalidate_product(product_id)
        self.ledger.dispatch_pending_alerts()
        return product

    def discontinue_product(self, product_id: str, user_id: Optional[str] = None, admin_name: Optional[str] = None) -> Product:
        """Soft delete: orders keep referencing the row"""
        return self._set_discontinued(product_id, True, user_id, admin_name)

    def reactivate_product(self, product_id: str, user_id: Optional[str] = None, admin_name: Optional[str] = None) -> Product:
        return self._set_discontinued(product_id, False, user_id, admin_name)

    def _set_discontinued(self, product_id, discontinued, user_id, admin_name) -> Product:
        try:
            product, _ = self.ledger.set_discontinued(product_id, discontinued, user_id, admin_name)
            self.db.commit()
        except StorefrontError:
            self._rollback()
            raise
        except SQLAlchemyError as e:
            self._rollback()
            raise StorageError(f"Failed to change status of product {product_id}") from e

        revalidate_product(product_id)
        self.ledger.dispatch_pending_alerts()
        return product

    # ---------- variants ----------

    def list_variants(self, product_id: str) -> List[ProductVariant]:
        product = self.db.query(Product).options(selectinload(Product.variants)).filter(
            Product.id == product_id
        ).first()
        if not product:
            raise ProductNotFoundError(product_id)
        return sorted(product.variants, key=lambda variant: variant.attributes_key)

    def get_variant(self, variant_id: str) -> ProductVariant:
        variant = self.db.query(ProductVariant).filter(ProductVariant.id == variant_id).first()
        if not variant:
            raise VariantNotFoundError(variant_id)
        return variant

    def create_variant(self, product_id: str, data: VariantCreate) -> ProductVariant:
        product = self.get_product_by_id(product_id)
        if not data.attributes:
            raise ValidationError("A variant needs at least one attribute")
        if data.inventory.quantity < 0:
            raise ValidationError("Inventory quantity cannot be negative")

        key = attributes_key(data.attributes)
        if self.db.query(ProductVariant.id).filter(
            ProductVariant.product_id == product_id,
            ProductVariant.attributes_key == key,
        ).first():
            raise DuplicateVariantError(f"Product {product_id} already has a variant {key}")

        sku = data.sku or f"{product.sku}-{'-'.join(str(v).upper() for _, v in sorted(data.attributes.items()))}"
        variant = ProductVariant(
            product_id=product_id,
            attributes=data.attributes,
            attributes_key=key,
            sku=sku,
            price=data.price,
            inventory_quantity=0,
            low_stock_threshold=data.inventory.low_stock_threshold,
            inventory_managed=data.inventory.managed,
            inventory_status=InventoryStatus.OUT_OF_STOCK.value,
        )
        try:
            self.db.add(variant)
            self.db.flush()
            self.ledger.apply_variant_inventory_change(
                variant.id,
                data.inventory.quantity,
                InventoryReason.PRODUCT_CREATED,
                details="Variant created",
            )
            self.db.commit()
        except IntegrityError as e:
            self._rollback()
            raise SkuConflictError(sku) from e
        except StorefrontError:
            self._rollback()
            raise
        except SQLAlchemyError as e:
            self._rollback()
            raise StorageError("Failed to create variant") from e

        logger.info(f"Created variant {sku} for product {product_id}")
        revalidate_product(product_id)
        self.ledger.dispatch_pending_alerts()
        return variant

    def update_variant(self, variant_id: str, data: VariantUpdate) -> ProductVariant:
        variant = self.get_variant(variant_id)
        changes = data.model_dump(exclude_unset=True)

        try:
            if changes.get("attributes"):
                variant.attributes = changes["attributes"]
                variant.attributes_key = attributes_key(changes["attributes"])
            if changes.get("sku"):
                variant.sku = changes["sku"]
            if "price" in changes:
                variant.price = changes["price"]
            if changes.get("managed") is not None:
                variant.inventory_managed = changes["managed"]
            if changes.get("low_stock_threshold") is not None:
                variant.low_stock_threshold = changes["low_stock_threshold"]
                self.db.flush()
                self.ledger.refresh_variant_status(variant_id)
            self.db.commit()
        except IntegrityError as e:
            self._rollback()
            raise DuplicateVariantError(f"Variant {variant_id} conflicts with an existing SKU or attribute set") from e
        except StorefrontError:
            self._rollback()
            raise
        except SQLAlchemyError as e:
            self._rollback()
            raise StorageError("Failed to update variant") from e

        revalidate_product(variant.product_id)
        return variant

    def _rollback(self) -> None:
        self.db.rollback()
        self.ledger.discard_pending_alerts()
