"""
Order ledger stored as a single JSON array in orders.json.

Orders are appended in pending status, either from a user's cart or from a
direct form submission, and later updated in place (delivery details, status).
Placing an order from a cart is two separate writes: the ledger first, then the
cart. If the second write fails the order stands and the cart keeps its lines.
"""

import json
import math
import uuid
from datetime import datetime, timezone
from numbers import Number
from typing import Callable, List, Optional

import structlog

from cart import CartStore
from errors import (
    EmptyCart,
    InvalidStatus,
    InvalidTotal,
    ItemsInvalid,
    MissingField,
    OrderNotFound,
    StorageError,
    TotalMismatch,
)
from file_store import MISSING, ORDERS_DOCUMENT, FileStore
from menu import MenuRepository
from schemas import DELIVERY_FIELDS, ORDER_STATUSES, Order

logger = structlog.get_logger()

TOTAL_TOLERANCE = 0.01


def generate_order_id() -> str:
    return uuid.uuid4().hex[:10]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def order_total(items) -> float:
    return sum(item["price"] * item["quantity"] for item in items)


def _present(value) -> bool:
    return value is not None and value != ""


def require_details(payload: dict) -> None:
    """Raise MissingField for the first delivery field that is absent or blank."""
    for field in DELIVERY_FIELDS:
        if not _present(payload.get(field)):
            raise MissingField(field)


def parse_items(items) -> list:
    """Accept either a list of item mappings or the same list encoded as JSON."""
    if isinstance(items, str):
        try:
            items = json.loads(items)
        except ValueError:
            raise ItemsInvalid("Invalid items JSON format")
    if not isinstance(items, list) or not items:
        raise ItemsInvalid("Items must be a non-empty array")
    return items


def _same_price(menu_price, item_price) -> bool:
    try:
        return float(menu_price) == float(item_price)
    except (TypeError, ValueError):
        return False


def _finite(value) -> bool:
    if not isinstance(value, Number) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _well_formed(item) -> bool:
    return (
        isinstance(item, dict)
        and isinstance(item.get("itemId"), str)
        and isinstance(item.get("name"), str)
        and _finite(item.get("price"))
        and _finite(item.get("quantity"))
    )


class OrderLedger:
    def __init__(
        self,
        store: FileStore,
        menu: MenuRepository,
        carts: CartStore,
        id_factory: Callable[[], str] = generate_order_id,
        total_tolerance: float = TOTAL_TOLERANCE,
    ):
        self.store = store
        self.menu = menu
        self.carts = carts
        self.id_factory = id_factory
        self.total_tolerance = total_tolerance

    def load(self) -> List[dict]:
        orders = self.store.read(ORDERS_DOCUMENT)
        if orders is MISSING:
            return []
        if not isinstance(orders, list):
            raise StorageError(f"{ORDERS_DOCUMENT} is not an array")
        return orders

    def save(self, orders: List[dict]) -> None:
        self.store.write(ORDERS_DOCUMENT, orders)

    def new_order_id(self, orders: List[dict]) -> str:
        taken = {order.get("orderId") for order in orders if isinstance(order, dict)}
        order_id = self.id_factory()
        while order_id in taken:
            logger.debug("order_id_collision", order_id=order_id)
            order_id = self.id_factory()
        return order_id

    @staticmethod
    def _index(orders: List[dict], order_id: str) -> int:
        for i, order in enumerate(orders):
            if isinstance(order, dict) and order.get("orderId") == order_id:
                return i
        raise OrderNotFound(order_id)

    def list_orders(self) -> List[dict]:
        return self.load()

    def get_order(self, order_id: str) -> dict:
        orders = self.load()
        return orders[self._index(orders, order_id)]

    def place_from_cart(self, user_id: str) -> dict:
        lines = self.carts.get_cart(user_id)
        if not lines:
            raise EmptyCart()

        orders = self.load()
        order = Order(
            orderId=self.new_order_id(orders),
            userId=user_id,
            items=lines,
            total=order_total(lines),
            timestamp=utc_now(),
        ).model_dump(exclude_none=True)
        orders.append(order)
        self.save(orders)
        logger.info("order_placed_from_cart", order_id=order["orderId"], user_id=user_id, total=order["total"])

        self.carts.clear_cart(user_id)
        return order

    def submit_direct(self, payload: dict, payment_image: Optional[str] = None) -> dict:
        """
        Create an order from a complete form submission.

        Every item must match its menu record by id, name and price, and the
        client's total must agree with the recomputed total.
        """
        for field in ("userId", "items", "total") + DELIVERY_FIELDS:
            if not _present(payload.get(field)):
                raise MissingField(field)

        items = parse_items(payload["items"])
        valid_items = []
        for item in items:
            if not _well_formed(item):
                raise ItemsInvalid("Invalid item structure")
            menu_item = self.menu.find_item(item["itemId"])
            if (
                menu_item is not None
                and menu_item.get("name") == item["name"]
                and _same_price(menu_item.get("price"), item["price"])
                and item["quantity"] > 0
            ):
                valid_items.append(item)

        if len(valid_items) != len(items):
            logger.warning("order_items_rejected", submitted=len(items), valid=len(valid_items))
            raise ItemsInvalid()

        server_total = order_total(valid_items)
        if not _finite(server_total):
            logger.warning("order_total_overflow", items_count=len(valid_items))
            raise ItemsInvalid("Order total is out of range")

        try:
            client_total = float(payload["total"])
        except (TypeError, ValueError):
            raise InvalidTotal()
        if not math.isfinite(client_total):
            raise InvalidTotal()
        if abs(server_total - client_total) > self.total_tolerance:
            logger.warning("order_total_mismatch", expected=server_total, received=client_total)
            raise TotalMismatch(server_total, client_total)

        orders = self.load()
        order = Order(
            orderId=self.new_order_id(orders),
            userId=payload["userId"],
            items=valid_items,
            total=server_total,
            paymentImage=payment_image,
            timestamp=utc_now(),
            **{field: str(payload[field]) for field in DELIVERY_FIELDS},
        ).model_dump(exclude={"updatedAt"})
        orders.append(order)
        self.save(orders)

        logger.info(
            "order_submitted",
            order_id=order["orderId"],
            user_id=order["userId"],
            total=server_total,
            items_count=len(valid_items),
        )
        return order

    def attach_details(self, order_id: str, payload: dict, payment_image: Optional[str] = None) -> dict:
        orders = self.load()
        idx = self._index(orders, order_id)
        target = orders[idx]

        client_user_id = payload.get("userId")
        if client_user_id and target.get("userId") and client_user_id != target["userId"]:
            logger.warning(
                "order_details_user_mismatch",
                order_id=order_id,
                request_user=client_user_id,
                order_user=target["userId"],
            )

        require_details(payload)

        updated = dict(target)
        updated.update({field: str(payload[field]) for field in DELIVERY_FIELDS})
        updated["paymentImage"] = payment_image or target.get("paymentImage")
        updated["updatedAt"] = utc_now()
        orders[idx] = updated
        self.save(orders)

        logger.info("order_details_attached", order_id=order_id)
        return updated

    def update_status(self, order_id: str, status: str) -> dict:
        if status not in ORDER_STATUSES:
            raise InvalidStatus(status)

        orders = self.load()
        idx = self._index(orders, order_id)
        orders[idx] = dict(orders[idx], status=status, updatedAt=utc_now())
        self.save(orders)

        logger.info("order_status_updated", order_id=order_id, status=status)
        return orders[idx]

    def dashboard(self) -> dict:
        orders = self.load()
        stats = {
            "totalOrders": len(orders),
            "pendingOrders": sum(1 for o in orders if o.get("status") == "pending"),
            "completedOrders": sum(1 for o in orders if o.get("status") == "completed"),
            "totalRevenue": sum(o.get("total") or 0 for o in orders),
        }
        logger.info("dashboard_computed", **stats)
        return {"orders": orders, "stats": stats}
