"""
Per-user carts kept together in cart.json.

The document maps a user id to a list of cart lines. Every operation loads the
whole document, changes one user's list and writes the whole document back.
"""

from typing import Dict, List

import structlog

from errors import InvalidItem, InvalidQuantity, StorageError
from file_store import CART_DOCUMENT, MISSING, FileStore
from menu import MenuRepository
from schemas import CartLine

logger = structlog.get_logger()

MAX_QUANTITY = 50


def migrate_cart_document(store: FileStore) -> None:
    """
    Bring cart.json to its object form. Run once at startup.

    Older deployments stored the cart as a bare array; that shape carries no
    user ids so it is replaced with an empty object.
    """
    carts = store.read(CART_DOCUMENT)
    if carts is MISSING:
        logger.info("cart_document_created")
        store.write(CART_DOCUMENT, {})
    elif isinstance(carts, list):
        logger.warning("cart_document_converted", legacy_lines=len(carts))
        store.write(CART_DOCUMENT, {})
    elif not isinstance(carts, dict):
        raise StorageError(
            f"{CART_DOCUMENT} holds a {type(carts).__name__}, expected an object"
        )


def _is_quantity(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class CartStore:
    def __init__(self, store: FileStore, menu: MenuRepository, max_quantity: int = MAX_QUANTITY):
        self.store = store
        self.menu = menu
        self.max_quantity = max_quantity

    def load(self) -> Dict[str, List[dict]]:
        carts = self.store.read(CART_DOCUMENT)
        if carts is MISSING:
            return {}
        if not isinstance(carts, dict):
            raise StorageError(
                f"{CART_DOCUMENT} is not an object; run the cart migration"
            )
        return carts

    def save(self, carts: Dict[str, List[dict]]) -> None:
        self.store.write(CART_DOCUMENT, carts)

    @staticmethod
    def _lines(carts, user_id) -> List[dict]:
        lines = carts.get(user_id)
        return lines if isinstance(lines, list) else []

    def get_cart(self, user_id: str) -> List[dict]:
        return self._lines(self.load(), user_id)

    def add_item(self, user_id: str, item_id: str, quantity: int) -> List[dict]:
        menu_item = self.menu.find_item(item_id)
        if menu_item is None:
            raise InvalidItem()
        if not _is_quantity(quantity) or not 1 <= quantity <= self.max_quantity:
            raise InvalidQuantity()

        carts = self.load()
        lines = self._lines(carts, user_id)
        existing = next((line for line in lines if line.get("itemId") == item_id), None)
        if existing is not None:
            # The cap is only checked on the requested amount, not the sum
            existing["quantity"] += quantity
        else:
            lines.append(
                CartLine(
                    itemId=item_id,
                    name=menu_item["name"],
                    price=menu_item["price"],
                    quantity=quantity,
                ).model_dump()
            )
        carts[user_id] = lines
        self.save(carts)

        logger.info("cart_item_added", user_id=user_id, item_id=item_id, quantity=quantity)
        return lines

    def update_item(self, user_id: str, item_id: str, quantity: int) -> List[dict]:
        if not _is_quantity(quantity):
            raise InvalidQuantity()
        if quantity > self.max_quantity:
            raise InvalidQuantity("Quantity exceeds limit")

        if quantity <= 0:
            carts = self.load()
            lines = [line for line in self._lines(carts, user_id) if line.get("itemId") != item_id]
        else:
            menu_item = self.menu.find_item(item_id)
            if menu_item is None:
                raise InvalidItem()

            carts = self.load()
            lines = self._lines(carts, user_id)
            existing = next((line for line in lines if line.get("itemId") == item_id), None)
            if existing is not None:
                existing["quantity"] = quantity
            else:
                lines.append(
                    CartLine(
                        itemId=item_id,
                        name=menu_item["name"],
                        price=menu_item["price"],
                        quantity=quantity,
                    ).model_dump()
                )

        carts[user_id] = lines
        self.save(carts)

        logger.info("cart_item_updated", user_id=user_id, item_id=item_id, quantity=quantity)
        return lines

    def remove_item(self, user_id: str, item_id: str) -> List[dict]:
        carts = self.load()
        lines = [line for line in self._lines(carts, user_id) if line.get("itemId") != item_id]
        carts[user_id] = lines
        self.save(carts)

        logger.info("cart_item_removed", user_id=user_id, item_id=item_id)
        return lines

    def clear_cart(self, user_id: str) -> None:
        carts = self.load()
        carts[user_id] = []
        self.save(carts)
        logger.info("cart_cleared", user_id=user_id)
