"""
Menu categories, one JSON array of items per category document.
"""

from typing import Dict, List, Optional, Sequence

import structlog

from errors import DuplicateMenuItem, InvalidDocumentName, MenuItemNotFound
from file_store import MISSING, RESERVED_DOCUMENTS, FileStore
from schemas import MenuItem

logger = structlog.get_logger()

DEFAULT_CATEGORIES = ("home", "value-pack", "yummy", "special", "promo")


def _filename(category: str) -> str:
    filename = f"{category}.json"
    if filename in RESERVED_DOCUMENTS:
        raise InvalidDocumentName(category)
    return filename


class MenuRepository:
    def __init__(self, store: FileStore, categories: Sequence[str] = DEFAULT_CATEGORIES):
        self.store = store
        self.categories = list(categories)

    def list_categories(self) -> List[str]:
        categories = self.store.list(".json", RESERVED_DOCUMENTS)
        logger.info("categories_listed", count=len(categories))
        return categories

    def get_category(self, category: str) -> List[dict]:
        items = self.store.read(_filename(category))
        if items is MISSING or not isinstance(items, list):
            return []
        return items

    def all_menus(self) -> Dict[str, List[dict]]:
        return {category: self.get_category(category) for category in self.categories}

    def find_item(self, item_id: str) -> Optional[dict]:
        """First item with this id, scanning the configured categories in order."""
        for category in self.categories:
            for item in self.get_category(category):
                if isinstance(item, dict) and item.get("id") == item_id:
                    return item
        return None

    # Vendor maintenance

    def create_item(self, category: str, item: MenuItem) -> dict:
        items = self.get_category(category)
        if any(isinstance(i, dict) and i.get("id") == item.id for i in items):
            raise DuplicateMenuItem(category, item.id)

        new_item = item.model_dump()
        items.append(new_item)
        self.store.write(_filename(category), items)
        logger.info("menu_item_created", category=category, item_id=item.id)
        return new_item

    def update_item(self, category: str, index: int, item: MenuItem) -> dict:
        items = self.get_category(category)
        if not 0 <= index < len(items):
            raise MenuItemNotFound(category, index)

        updated = item.model_dump()
        if updated["image"] is None and isinstance(items[index], dict):
            updated["image"] = items[index].get("image")
        items[index] = updated
        self.store.write(_filename(category), items)
        logger.info("menu_item_updated", category=category, index=index)
        return updated

    def delete_item(self, category: str, index: int) -> dict:
        items = self.get_category(category)
        if not 0 <= index < len(items):
            raise MenuItemNotFound(category, index)

        deleted = items.pop(index)
        self.store.write(_filename(category), items)
        logger.info("menu_item_deleted", category=category, index=index)
        return deleted
