# backend/restops/services/products_service.py
"""
Product Store: product master data.

Stock levels are NOT managed here. Product.quantity is a cached value owned by
InventoryService; this service only sets it once, at creation, from the
initial stock (initial_quantity), and refuses to write it afterwards.
"""
from __future__ import annotations

import logging

from ..models import Product
from ..errors import ProductNotFoundError, ValidationError
from .transaction import atomic

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "category",
    "unit",
    "description",
    "min_stock",
    "purchase_price_cents",
    "selling_price_cents",
    "is_active",
}
STOCK_FIELDS = {"quantity", "initial_quantity"}
NON_NEGATIVE_INT_FIELDS = ("min_stock", "purchase_price_cents", "selling_price_cents")


def _require_non_negative_int(field: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", {field: value})
    if value < 0:
        raise ValidationError(f"{field} cannot be negative", {field: value})
    return value


class ProductService:
    def __init__(self, session, categories: dict[str, str]):
        self.session = session
        self.categories = categories

    def _validate(self, data: dict, *, partial: bool) -> dict:
        clean = {}

        if "name" in data or not partial:
            name = (data.get("name") or "").strip()
            if not name:
                raise ValidationError("Product name is required")
            clean["name"] = name

        if "category" in data or not partial:
            category = (data.get("category") or "").strip()
            if not category:
                raise ValidationError("Product category is required")
            if category not in self.categories:
                raise ValidationError(f"Unknown category: {category}", {"category": category})
            clean["category"] = category

        for field in NON_NEGATIVE_INT_FIELDS:
            if field in data:
                clean[field] = _require_non_negative_int(field, data[field])

        if "unit" in data:
            unit = (data.get("unit") or "").strip()
            if not unit:
                raise ValidationError("unit cannot be empty")
            clean["unit"] = unit

        if "description" in data:
            clean["description"] = data["description"]

        if "is_active" in data:
            clean["is_active"] = bool(data["is_active"])

        return clean

    def create_product(self, data: dict) -> Product:
        """
        Create a product with its opening stock.

        data["quantity"] (optional, default 0) becomes both initial_quantity and
        the cached quantity; no ledger movement is written for it.
        """
        clean = self._validate(data, partial=False)
        initial = _require_non_negative_int("quantity", data.get("quantity", 0))

        with atomic(self.session):
            product = Product(initial_quantity=initial, quantity=initial, **clean)
            self.session.add(product)

        logger.info("Product created", extra={"extra_fields": {"product_id": product.id, "name": product.name}})
        return product

    def update_product(self, product_id: int, data: dict) -> Product:
        stock_fields = STOCK_FIELDS.intersection(data)
        if stock_fields:
            raise ValidationError(
                "Stock quantity can only change through stock movements",
                {"fields": sorted(stock_fields)},
            )
        unknown = set(data) - PRODUCT_MUTABLE_FIELDS - {"id"}
        if unknown:
            raise ValidationError("Unknown product fields", {"fields": sorted(unknown)})

        clean = self._validate(data, partial=True)
        with atomic(self.session):
            product = self.get_product(product_id)
            for key, value in clean.items():
                setattr(product, key, value)
        return product

    def set_product_active(self, product_id: int, active: bool) -> Product:
        with atomic(self.session):
            product = self.get_product(product_id)
            product.is_active = bool(active)
        return product

    def get_product(self, product_id: int) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def list_products(
        self,
        *,
        category: str | None = None,
        active: bool | None = None,
        search: str | None = None,
    ) -> list[Product]:
        q = self.session.query(Product)
        if category:
            q = q.filter(Product.category == category)
        if active is not None:
            q = q.filter(Product.is_active.is_(active))
        if search:
            q = q.filter(Product.name.ilike(f"%{search.strip()}%"))
        return q.order_by(Product.name.asc(), Product.id.asc()).all()

    def list_categories(self) -> list[str]:
        """Configured categories plus any legacy category still used by a product."""
        used = {row[0] for row in self.session.query(Product.category).distinct()}
        return sorted(set(self.categories) | used)
