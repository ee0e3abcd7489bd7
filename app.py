"""
Delish - food ordering API
FastAPI backend over JSON documents in a data directory
"""

import os
import secrets
import shutil
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, File, Form, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

import errors
from cart import CartStore, migrate_cart_document
from config import Settings, get_settings
from file_store import CART_DOCUMENT, MISSING, PRODUCTS_DOCUMENT, USERS_DOCUMENT, FileStore
from menu import MenuRepository
from orders import OrderLedger, require_details
from schemas import CartItemIn, CartQuantityIn, CartUserIn, MenuItem, StatusUpdate

# Configure structured logging
structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
    ]
)
logger = structlog.get_logger()


# Store handles, built per request from settings

def get_store(settings: Settings = Depends(get_settings)) -> FileStore:
    return FileStore(settings.data_dir)


def get_menu(
    store: FileStore = Depends(get_store),
    settings: Settings = Depends(get_settings)
) -> MenuRepository:
    return MenuRepository(store, settings.menu_categories)


def get_carts(
    store: FileStore = Depends(get_store),
    menu: MenuRepository = Depends(get_menu),
    settings: Settings = Depends(get_settings)
) -> CartStore:
    return CartStore(store, menu, max_quantity=settings.max_cart_quantity)


def get_ledger(
    store: FileStore = Depends(get_store),
    menu: MenuRepository = Depends(get_menu),
    carts: CartStore = Depends(get_carts),
    settings: Settings = Depends(get_settings)
) -> OrderLedger:
    return OrderLedger(store, menu, carts, total_tolerance=settings.total_tolerance)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    settings = app.dependency_overrides.get(get_settings, get_settings)()
    migrate_cart_document(FileStore(settings.data_dir))
    logger.info("application_startup", version="1.0.0", data_dir=settings.data_dir)
    yield
    logger.info("application_shutdown")


app = FastAPI(
    title="Delish API",
    description="Menu, cart and order API backed by JSON documents",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
    max_age=600,
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


@app.middleware("http")
async def assign_user_id(request: Request, call_next):
    """Give every browser a stable userId cookie"""
    user_id = request.cookies.get("userId")
    issued = user_id is None
    if issued:
        user_id = str(uuid.uuid4())
    request.state.user_id = user_id

    response = await call_next(request)
    if issued:
        response.set_cookie(
            "userId",
            user_id,
            max_age=get_settings().user_cookie_max_age,
            httponly=True,
        )
    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    response = await call_next(request)
    logger.info(
        "request",
        method=request.method,
        path=request.url.path,
        status=response.status_code
    )
    return response


def resolve_user_id(request: Request, body_user_id: Optional[str] = None) -> str:
    return (
        body_user_id
        or request.query_params.get("userId")
        or request.cookies.get("userId")
        or getattr(request.state, "user_id", None)
        or "guest"
    )


def save_upload(upload: Optional[UploadFile], directory: str, url_prefix: str) -> Optional[str]:
    """Store an uploaded file under a unique name and return its public path"""
    if upload is None or not upload.filename:
        return None
    os.makedirs(directory, exist_ok=True)
    filename = "%d-%d-%s" % (
        int(time.time() * 1000),
        secrets.randbelow(10 ** 9),
        os.path.basename(upload.filename),
    )
    with open(os.path.join(directory, filename), "wb") as f:
        shutil.copyfileobj(upload.file, f)
    logger.info("upload_saved", filename=filename)
    return f"{url_prefix}/{filename}"


def discard_upload(public_path: Optional[str], directory: str) -> None:
    if public_path is None:
        return
    filename = os.path.basename(public_path)
    try:
        os.remove(os.path.join(directory, filename))
    except FileNotFoundError:
        return
    logger.info("upload_discarded", filename=filename)


def describe_error(error: dict) -> str:
    """Flatten one pydantic error into "field: message"."""
    loc = list(error["loc"])
    if len(loc) > 1 and loc[0] in ("body", "query", "path", "header", "cookie"):
        loc = loc[1:]
    field = ".".join(str(part) for part in loc)
    return f"{field}: {error['msg']}"


def build_menu_item(**fields) -> MenuItem:
    try:
        return MenuItem(**fields)
    except PydanticValidationError as e:
        raise errors.ValidationError(describe_error(e.errors()[0]))


# API Routes

@app.get("/health")
def health_check(
    ledger: OrderLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings)
):
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "data_dir": settings.data_dir,
        "orders_count": len(ledger.list_orders()),
        "timestamp": datetime.utcnow().isoformat()
    }


# Menu

@app.get("/api/menu")
def get_all_menus(menu: MenuRepository = Depends(get_menu)):
    return menu.all_menus()


@app.get("/api/menu/{category}")
def get_menu_category(category: str, menu: MenuRepository = Depends(get_menu)):
    return {"menu": menu.get_category(category)}


# Cart

@app.get("/api/cart")
def get_cart(request: Request, carts: CartStore = Depends(get_carts)):
    return carts.get_cart(resolve_user_id(request))


@app.post("/api/cart")
def add_cart_item(body: CartItemIn, request: Request, carts: CartStore = Depends(get_carts)):
    return carts.add_item(resolve_user_id(request, body.userId), body.itemId, body.quantity)


@app.post("/api/cart/clear")
def clear_cart(
    request: Request,
    body: Optional[CartUserIn] = None,
    carts: CartStore = Depends(get_carts)
):
    carts.clear_cart(resolve_user_id(request, body.userId if body else None))
    return {"message": "Cart cleared"}


@app.put("/api/cart/{item_id}")
def update_cart_item(
    item_id: str,
    body: CartQuantityIn,
    request: Request,
    carts: CartStore = Depends(get_carts)
):
    return carts.update_item(resolve_user_id(request, body.userId), item_id, body.quantity)


@app.delete("/api/cart/{item_id}")
def remove_cart_item(item_id: str, request: Request, carts: CartStore = Depends(get_carts)):
    return carts.remove_item(resolve_user_id(request), item_id)


# Orders

@app.post("/orders/submit", status_code=status.HTTP_201_CREATED)
def submit_order(
    userId: Optional[str] = Form(None),
    items: Optional[str] = Form(None),
    total: Optional[str] = Form(None),
    clientName: Optional[str] = Form(None),
    clientContact: Optional[str] = Form(None),
    clientEmail: Optional[str] = Form(None),
    clientAddress: Optional[str] = Form(None),
    clientBuilding: Optional[str] = Form(None),
    clientFloor: Optional[str] = Form(None),
    paymentImage: Optional[UploadFile] = File(None),
    ledger: OrderLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings)
):
    payload = {
        "userId": userId,
        "items": items,
        "total": total,
        "clientName": clientName,
        "clientContact": clientContact,
        "clientEmail": clientEmail,
        "clientAddress": clientAddress,
        "clientBuilding": clientBuilding,
        "clientFloor": clientFloor,
    }
    payment_path = save_upload(paymentImage, settings.uploads_dir, "/uploads")
    try:
        order = ledger.submit_direct(payload, payment_path)
    except errors.DelishError:
        discard_upload(payment_path, settings.uploads_dir)
        raise
    return {"message": "Order placed successfully", "orderId": order["orderId"], "total": order["total"]}


@app.post("/orders/from-cart", status_code=status.HTTP_201_CREATED)
def place_order_from_cart(
    request: Request,
    body: Optional[CartUserIn] = None,
    ledger: OrderLedger = Depends(get_ledger)
):
    user_id = resolve_user_id(request, body.userId if body else None)
    order = ledger.place_from_cart(user_id)
    return {"message": "Order placed from cart", "orderId": order["orderId"], "total": order["total"]}


@app.post("/orders/{order_id}/details")
def attach_order_details(
    order_id: str,
    userId: Optional[str] = Form(None),
    clientName: Optional[str] = Form(None),
    clientContact: Optional[str] = Form(None),
    clientEmail: Optional[str] = Form(None),
    clientAddress: Optional[str] = Form(None),
    clientBuilding: Optional[str] = Form(None),
    clientFloor: Optional[str] = Form(None),
    paymentImage: Optional[UploadFile] = File(None),
    ledger: OrderLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings)
):
    payload = {
        "userId": userId,
        "clientName": clientName,
        "clientContact": clientContact,
        "clientEmail": clientEmail,
        "clientAddress": clientAddress,
        "clientBuilding": clientBuilding,
        "clientFloor": clientFloor,
    }
    # Reject before storing the upload so a bad request leaves no file behind
    ledger.get_order(order_id)
    require_details(payload)
    payment_path = save_upload(paymentImage, settings.uploads_dir, "/uploads")
    ledger.attach_details(order_id, payload, payment_path)
    return {"message": "Order details attached", "orderId": order_id}


@app.patch("/orders/{order_id}/status")
def update_order_status(
    order_id: str,
    body: StatusUpdate,
    ledger: OrderLedger = Depends(get_ledger)
):
    order = ledger.update_status(order_id, body.status)
    return {"message": "Order status updated", "order": order}


# Admin

@app.get("/admin/orders")
def list_orders(ledger: OrderLedger = Depends(get_ledger)):
    return ledger.list_orders()


@app.get("/admin/dashboard")
def dashboard(ledger: OrderLedger = Depends(get_ledger)):
    return ledger.dashboard()


# Vendor

@app.get("/vendor/categories")
def list_categories(menu: MenuRepository = Depends(get_menu)):
    return menu.list_categories()


@app.get("/vendor/menu/{category}")
def get_menu_items(category: str, menu: MenuRepository = Depends(get_menu)):
    return menu.get_category(category)


@app.post("/vendor/menu/{category}", status_code=status.HTTP_201_CREATED)
def create_menu_item(
    category: str,
    id: Optional[str] = Form(None),
    name: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    menu: MenuRepository = Depends(get_menu),
    settings: Settings = Depends(get_settings)
):
    if image is None or not image.filename:
        raise errors.MissingField("image")
    item = build_menu_item(id=id, name=name, price=price, description=description)
    item.image = save_upload(image, settings.images_dir, "/images")
    return {"message": "Item added to category", "item": menu.create_item(category, item)}


@app.put("/vendor/menu/{category}/{index}")
def update_menu_item(
    category: str,
    index: int,
    id: Optional[str] = Form(None),
    name: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    menu: MenuRepository = Depends(get_menu),
    settings: Settings = Depends(get_settings)
):
    item = build_menu_item(id=id, name=name, price=price, description=description)
    item.image = save_upload(image, settings.images_dir, "/images")
    return {"message": "Item updated", "item": menu.update_item(category, index, item)}


@app.delete("/vendor/menu/{category}/{index}")
def delete_menu_item(category: str, index: int, menu: MenuRepository = Depends(get_menu)):
    return {"message": "Item deleted", "item": menu.delete_item(category, index)}


# Read-only catalogs

@app.get("/api/products")
def get_products(store: FileStore = Depends(get_store)):
    products = store.read(PRODUCTS_DOCUMENT)
    return [] if products is MISSING else products


@app.get("/api/users")
def get_users(store: FileStore = Depends(get_store)):
    users = store.read(USERS_DOCUMENT)
    return [] if users is MISSING else users


@app.get("/debug/cart-state")
def cart_state(request: Request, store: FileStore = Depends(get_store)):
    """Raw view of cart.json for troubleshooting"""
    path = store.path(CART_DOCUMENT)
    current_user = request.cookies.get("userId")
    try:
        stats = os.stat(path)
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        return {"exists": False, "error": str(e), "currentUser": current_user}

    try:
        parsed = store.read(CART_DOCUMENT)
    except errors.ReadFailure:
        parsed = None
    return {
        "exists": True,
        "path": path,
        "size": stats.st_size,
        "lastModified": datetime.fromtimestamp(stats.st_mtime, timezone.utc).isoformat(),
        "content": content,
        "parsed": parsed,
        "currentUser": current_user,
    }


# Error handlers

def _error_response(status_code: int, exc: errors.DelishError, request: Request) -> JSONResponse:
    logger.warning(
        "request_failed",
        error=exc.message,
        kind=type(exc).__name__,
        path=request.url.path
    )
    return JSONResponse(status_code=status_code, content={"error": exc.message})


@app.exception_handler(errors.NotFoundError)
async def not_found_handler(request: Request, exc: errors.NotFoundError):
    return _error_response(status.HTTP_404_NOT_FOUND, exc, request)


@app.exception_handler(errors.ValidationError)
async def validation_handler(request: Request, exc: errors.ValidationError):
    return _error_response(status.HTTP_400_BAD_REQUEST, exc, request)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    message = describe_error(exc.errors()[0])
    logger.warning("request_invalid", error=message, path=request.url.path)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


@app.exception_handler(errors.StorageError)
async def storage_handler(request: Request, exc: errors.StorageError):
    logger.error("storage_failure", error=exc.message, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Storage failure. Please try again later."}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled_exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error. Please try again later."}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", get_settings().port)),
        workers=1,
        reload=False,
        log_level="info"
    )
