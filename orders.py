"""
Order workflow: placement, listing, cancellation and administrative changes.

Every function receives the repositories, the caller identity (as produced by
`security.get_current_user`) and the translation function explicitly.

Stock is reserved with one conditional update per line item, so concurrent
orders for the same product cannot push its stock below zero. If any
reservation fails, the ones already made are released before the error is
raised and no order is stored.
"""
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId

from database import to_object_id
from errors import BusinessRuleViolation, Forbidden, NotFound, ValidationFailed
from i18n import Translator
from logging_config import get_logger
from repositories import OrderFilter, Repositories
from schemas import ORDER_STATUSES, TERMINAL_STATUSES, Order, OrderItem
from validation import DEFAULT_LIMIT, DEFAULT_PAGE, MAX_LIMIT, MAX_PAGE, validate_order_items

logger = get_logger(__name__)

USER_DETAIL_FIELDS = (
    "user_name",
    "email",
    "phone_number",
    "city",
    "postal_code",
    "address_line1",
    "address_line2",
)
PRODUCT_DETAIL_FIELDS = ("title", "price", "images", "count_in_stock", "rating", "views")


def is_admin(caller: dict) -> bool:
    return caller.get("role") == "admin"


def _parse_order_id(order_id: Any, t: Translator) -> ObjectId:
    oid = to_object_id(order_id)
    if oid is None:
        raise ValidationFailed(t("invalidOrderId"), invalidId=order_id)
    return oid


def _detail(document: Optional[dict], fields) -> Optional[dict]:
    if document is None:
        return None
    detail = {"_id": document["_id"]}
    detail.update({f: document.get(f) for f in fields})
    return detail


def enrich_order(repos: Repositories, order: dict) -> dict:
    """Replace user and product references with a subset of their current fields."""
    enriched = dict(order)
    enriched["user"] = _detail(repos.users.find_by_id(order["user"]), USER_DETAIL_FIELDS) or order["user"]

    product_ids = {item["product"] for item in order.get("order_items", [])}
    products = {p["_id"]: p for p in repos.products.find_by_ids(product_ids)}
    items = []
    for item in order.get("order_items", []):
        item = dict(item)
        item["product"] = _detail(products.get(item["product"]), PRODUCT_DETAIL_FIELDS) or item["product"]
        items.append(item)
    enriched["order_items"] = items
    return enriched


def _insufficient_stock(product: dict, requested: int, t: Translator) -> BusinessRuleViolation:
    return BusinessRuleViolation(
        t("insufficientStock"),
        product=str(product["_id"]),
        productName=product.get("title"),
        availableStock=product.get("count_in_stock", 0),
        requestedQuantity=requested,
    )


def _release_stock(repos: Repositories, line_items: List[dict]) -> None:
    for item in line_items:
        repos.products.update_stock(item["product"], item["quantity"])
    if line_items:
        logger.info("stock_released", products=[str(i["product"]) for i in line_items])


def _reserve_stock(repos: Repositories, line_items: List[dict]) -> Optional[dict]:
    """Decrement stock for each line item. Returns the first item that could not be reserved."""
    reserved = []
    for item in line_items:
        if repos.products.update_stock(item["product"], -item["quantity"]) is None:
            _release_stock(repos, reserved)
            return item
        reserved.append(item)
    return None


def create_order(repos: Repositories, caller: dict, order_items: Any, t: Translator) -> dict:
    validation = validate_order_items(order_items, t)
    if not validation.ok:
        error = validation.errors[0]
        extra = {"invalidId": error.value} if error.field == "product" else {}
        raise ValidationFailed(error.message, **extra)
    items = validation.value

    requested: Dict[ObjectId, int] = {}
    for item in items:
        requested[item.product] = requested.get(item.product, 0) + item.quantity

    products = {p["_id"]: p for p in repos.products.find_by_ids(list(requested))}
    if len(products) != len(requested):
        raise NotFound(t("productsNotFound"))

    for product_id, quantity in requested.items():
        product = products[product_id]
        if product.get("count_in_stock", 0) < quantity:
            raise _insufficient_stock(product, quantity, t)

    line_items = [
        OrderItem(product=item.product, quantity=item.quantity, price=products[item.product]["price"]).model_dump()
        for item in items
    ]
    total_price = sum(item["price"] * item["quantity"] for item in line_items)

    failed = _reserve_stock(repos, line_items)
    if failed is not None:
        current = repos.products.find_by_id(failed["product"])
        if current is None:
            raise NotFound(t("productsNotFound"))
        raise _insufficient_stock(current, requested[failed["product"]], t)

    document = Order(
        user=ObjectId(caller["id"]),
        order_items=line_items,
        total_price=total_price,
        date=datetime.utcnow(),
    ).model_dump()
    try:
        order = repos.orders.create(document)
    except Exception:
        _release_stock(repos, line_items)
        raise

    logger.info("order_created", order_id=str(order["_id"]), user_id=caller["id"], total_price=total_price)
    return enrich_order(repos, order)


def list_orders(
    repos: Repositories,
    caller: dict,
    page: int = DEFAULT_PAGE,
    limit: int = DEFAULT_LIMIT,
    search: str = "",
) -> dict:
    page = min(page, MAX_PAGE)
    limit = min(limit, MAX_LIMIT)
    order_filter = OrderFilter(search=search or "")
    if not is_admin(caller):
        order_filter.user_id = ObjectId(caller["id"])

    total_orders = repos.orders.count(order_filter)
    orders = repos.orders.find_by_filter(order_filter, skip=(page - 1) * limit, limit=limit)

    return {
        "data": orders,
        "pagination": {
            "currentPage": page,
            "totalPages": math.ceil(total_orders / limit),
            "totalOrders": total_orders,
            "limit": limit,
        },
    }


def get_order(repos: Repositories, caller: dict, order_id: Any, t: Translator) -> dict:
    order = repos.orders.find_by_id(_parse_order_id(order_id, t))
    if order is None:
        raise NotFound(t("orderNotFound"))
    if not is_admin(caller) and str(order["user"]) != caller["id"]:
        raise Forbidden(t("accessDeniedOwnOrdersOnly"))
    return enrich_order(repos, order)


def delete_order(repos: Repositories, order_id: Any, t: Translator) -> dict:
    order = repos.orders.delete(_parse_order_id(order_id, t))
    if order is None:
        raise NotFound(t("orderNotFound"))
    logger.info("order_deleted", order_id=str(order["_id"]))
    return order


def change_status(repos: Repositories, order_id: Any, status: Any, t: Translator) -> dict:
    if not status:
        raise ValidationFailed(t("statusRequired"))
    if status not in ORDER_STATUSES:
        raise ValidationFailed(t("invalidStatus"), allowedStatuses=list(ORDER_STATUSES))

    order = repos.orders.set_status(_parse_order_id(order_id, t), status)
    if order is None:
        raise NotFound(t("orderNotFound"))
    logger.info("order_status_changed", order_id=str(order["_id"]), status=status)
    return order


def cancel_order(repos: Repositories, caller: dict, order_id: Any, t: Translator) -> dict:
    oid = _parse_order_id(order_id, t)
    order = repos.orders.find_by_id(oid)
    if order is None:
        raise NotFound(t("orderNotFound"))
    if str(order["user"]) != caller["id"]:
        raise Forbidden(t("accessDeniedOwnOrdersOnly"))

    if order["status"] == "cancelled":
        raise BusinessRuleViolation(t("orderAlreadyCancelled"))
    if order["status"] in TERMINAL_STATUSES:
        raise BusinessRuleViolation(t("cannotCancelOrder"))

    updated = repos.orders.mark_cancelled(oid)
    if updated is None:
        # Status moved between the read and the update.
        current = repos.orders.find_by_id(oid)
        if current is None:
            raise NotFound(t("orderNotFound"))
        if current["status"] == "cancelled":
            raise BusinessRuleViolation(t("orderAlreadyCancelled"))
        raise BusinessRuleViolation(t("cannotCancelOrder"))

    for item in updated["order_items"]:
        repos.products.update_stock(item["product"], item["quantity"])

    logger.info("order_cancelled", order_id=str(oid), user_id=caller["id"])
    return updated
