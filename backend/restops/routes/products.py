# backend/restops/routes/products.py
"""
Product master data routes.

Stock is not editable here: the opening quantity is accepted on create only,
every later change goes through /api/inventory.
"""
from flask import Blueprint, request

from ..errors import DomainError, ValidationError
from ..models import Product
from ..services.products_service import STOCK_FIELDS
from ..services.registry import get_services
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_product
from . import internal_error

PRODUCT_FIELDS = {
    "name",
    "category",
    "unit",
    "description",
    "min_stock",
    "purchase_price_cents",
    "selling_price_cents",
    "is_active",
}

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_FIELDS | {"quantity"},
    required_on_create={"name", "category"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(writable_fields=PRODUCT_FIELDS)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _parse_bool_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in ("1", "true", "yes")


@products_bp.get("")
def list_products():
    """
    Query params:
    - category: str (optional)
    - active: bool (optional)
    - search: str (optional) - case-insensitive name match
    """
    try:
        products = get_services().products.list_products(
            category=request.args.get("category"),
            active=_parse_bool_arg("active"),
            search=request.args.get("search"),
        )
        return {"items": [p.to_dict() for p in products], "count": len(products)}
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to list products")


@products_bp.get("/categories")
def list_categories():
    return {"items": get_services().products.list_categories()}


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)
        product = get_services().products.create_product(patch)
        return product.to_dict(), 201
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to create product")


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return get_services().products.get_product(product_id).to_dict()
    except DomainError as e:
        return e.to_dict(), e.status_code


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        stock_fields = STOCK_FIELDS.intersection(payload)
        if stock_fields:
            raise ValidationError(
                "Stock quantity can only change through stock movements",
                {"fields": sorted(stock_fields)},
            )
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch)
        product = get_services().products.update_product(product_id, patch)
        return product.to_dict()
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to update product")


@products_bp.post("/<int:product_id>/activate")
def activate_product_route(product_id: int):
    try:
        return get_services().products.set_product_active(product_id, True).to_dict()
    except DomainError as e:
        return e.to_dict(), e.status_code


@products_bp.post("/<int:product_id>/deactivate")
def deactivate_product_route(product_id: int):
    try:
        return get_services().products.set_product_active(product_id, False).to_dict()
    except DomainError as e:
        return e.to_dict(), e.status_code
