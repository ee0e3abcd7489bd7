from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio

from app import app
from cart import CartStore
from config import Settings, get_settings
from file_store import FileStore
from menu import MenuRepository
from orders import OrderLedger

MENU = {
    "home": [
        {"id": "h1", "name": "Nasi Goreng", "price": 10000, "image": "/images/h1.png", "description": "Fried rice"},
        {"id": "h2", "name": "Mie Ayam", "price": 12500, "image": "/images/h2.png", "description": "Chicken noodles"},
    ],
    "value-pack": [
        {"id": "v1", "name": "Family Pack", "price": 45000, "image": "/images/v1.png", "description": "Feeds four"},
    ],
    "yummy": [
        {"id": "y1", "name": "Es Teh", "price": 3000.5, "image": "/images/y1.png", "description": "Iced tea"},
    ],
    "special": [],
    # Same id as a home item; home is scanned first
    "promo": [
        {"id": "h1", "name": "Promo Rice", "price": 5000, "image": "/images/p1.png", "description": "Shadowed"},
    ],
}


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        data_dir=str(tmp_path / "data"),
        uploads_dir=str(tmp_path / "uploads"),
        images_dir=str(tmp_path / "images"),
    )


@pytest.fixture
def store(settings) -> FileStore:
    store = FileStore(settings.data_dir)
    for category, items in MENU.items():
        store.write(f"{category}.json", items)
    return store


@pytest.fixture
def menu(store, settings) -> MenuRepository:
    return MenuRepository(store, settings.menu_categories)


@pytest.fixture
def carts(store, menu) -> CartStore:
    return CartStore(store, menu)


@pytest.fixture
def ledger(store, menu, carts) -> OrderLedger:
    return OrderLedger(store, menu, carts)


@pytest_asyncio.fixture
async def client(settings, store) -> AsyncGenerator[httpx.AsyncClient, None]:
    app.dependency_overrides[get_settings] = lambda: settings
    try:
        # ASGITransport does not send lifespan events, so run startup here
        async with app.router.lifespan_context(app):
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
                yield ac
    finally:
        app.dependency_overrides.clear()
