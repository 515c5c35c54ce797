import logging
from typing import Optional

from flask import Blueprint, request

from nubia.core.config import get_config
from nubia.db import session_scope
from nubia.routes.utils import parse_bool, parse_int, success_response
from nubia.services.catalog_service import CatalogService

logger = logging.getLogger(__name__)

products_bp = Blueprint("products", __name__)


@products_bp.route("/products", methods=["GET"])
def list_products():
    """List products with cursor-based pagination, filtering, and search."""
    api = get_config().api
    limit = parse_int(
        request.args.get("limit"), default=api.default_page_size, min_val=1, max_val=api.max_page_size,
        field_name="limit",
    )
    after = parse_int(request.args.get("after"), default=None, min_val=1, field_name="after")
    min_price = parse_int(request.args.get("min_price"), default=None, min_val=0, field_name="min_price")
    max_price = parse_int(request.args.get("max_price"), default=None, min_val=0, field_name="max_price")

    in_stock_raw = request.args.get("in_stock")
    in_stock: Optional[bool] = parse_bool(in_stock_raw) if in_stock_raw is not None else None

    with session_scope() as session:
        result = CatalogService(session).list_products(
            limit=limit,
            after=after,
            category=request.args.get("category") or None,
            search=request.args.get("q", "").strip() or None,
            min_price=min_price,
            max_price=max_price,
            in_stock=in_stock,
            sort=request.args.get("sort", "newest"),
        )
    return success_response(result)


@products_bp.route("/products/<ident>", methods=["GET"])
def get_product(ident: str):
    """Product detail by numeric id or slug."""
    with session_scope() as session:
        product = CatalogService(session).get_product(ident)
    return success_response(product)


@products_bp.route("/categories", methods=["GET"])
def list_categories():
    with session_scope() as session:
        categories = CatalogService(session).list_categories()
    return success_response(categories)


@products_bp.route("/search", methods=["GET"])
def search():
    with session_scope() as session:
        products = CatalogService(session).search(request.args.get("q", ""))
    return success_response({"items": products, "count": len(products)})
