"""
Pydantic models for persisted records and request bodies.

Field names are camelCase because they are the on-disk JSON keys shared with
the browser frontend.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

ORDER_STATUSES = ("pending", "confirmed", "delivered", "cancelled", "completed")

DELIVERY_FIELDS = (
    "clientName",
    "clientContact",
    "clientEmail",
    "clientAddress",
    "clientBuilding",
    "clientFloor",
)


class CartLine(BaseModel):
    itemId: str
    name: str
    price: float
    quantity: int = Field(..., ge=1)


class MenuItem(BaseModel):
    id: str
    name: str
    price: float = Field(..., gt=0)
    image: Optional[str] = None
    description: str

    @field_validator("id", "name", "description")
    @classmethod
    def not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class Order(BaseModel):
    orderId: str
    userId: str
    clientName: Optional[str] = None
    clientContact: Optional[str] = None
    clientEmail: Optional[str] = None
    clientAddress: Optional[str] = None
    clientBuilding: Optional[str] = None
    clientFloor: Optional[str] = None
    items: List[Dict[str, Any]]
    total: float
    paymentImage: Optional[str] = None
    timestamp: str
    status: str = "pending"
    updatedAt: Optional[str] = None

    @field_validator("items")
    @classmethod
    def validate_items(cls, v):
        if not v:
            raise ValueError("Order must contain at least one item")
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in ORDER_STATUSES:
            raise ValueError(f"status must be one of {', '.join(ORDER_STATUSES)}")
        return v


# Request bodies

class CartItemIn(BaseModel):
    itemId: str
    quantity: int
    userId: Optional[str] = None


class CartQuantityIn(BaseModel):
    quantity: int
    userId: Optional[str] = None


class CartUserIn(BaseModel):
    userId: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str
