from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from .errors import InvalidRequest


class OrderStatus(str, Enum):
    PENDING = "PENDING"


@dataclass(frozen=True)
class Order:
    id: int
    product_id: str
    quantity: int
    status: str
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "quantity": self.quantity,
            "status": self.status,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Product:
    id: Any
    name: Optional[str]
    extra: dict = field(default_factory=dict, compare=False)

    @classmethod
    def from_payload(cls, payload: dict) -> "Product":
        extra = {k: v for k, v in payload.items() if k not in ("id", "name")}
        return cls(id=payload.get("id"), name=payload.get("name"), extra=extra)


def validate_new_order(product_id: Union[str, int, None], quantity: Optional[int]) -> None:
    if product_id is None or product_id == "":
        raise InvalidRequest("productId is required")
    if quantity is None or isinstance(quantity, bool) or quantity <= 0:
        raise InvalidRequest("quantity must be a positive number")
