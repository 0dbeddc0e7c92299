import logging
from typing import List, Optional, Union

from .domain import Order, OrderStatus, Product, validate_new_order
from .errors import InternalError, OrderNotFound, OrderServiceError
from .products import ProductLookupClient
from .publisher import ORDERS_TOPIC, EventPublisher, build_order_created_event, publish_best_effort
from .store import OrderStore

logger = logging.getLogger(__name__)

# orders.id is a 32 bit SERIAL
_MAX_ORDER_ID = 2**31 - 1


class OrderService:
    """Create/list/get orders on top of the store, product lookup and publisher."""

    def __init__(self, store: OrderStore, products: ProductLookupClient, publisher: EventPublisher):
        self.store = store
        self.products = products
        self.publisher = publisher

    def create_order(self, product_id: Union[str, int, None], quantity: Optional[int]) -> dict:
        try:
            validate_new_order(product_id, quantity)
            product = self.products.get_product(product_id)
            order = self.store.insert(product_id, quantity, OrderStatus.PENDING.value)
            self._notify_created(order, product)
        except OrderServiceError:
            raise
        except Exception:
            logger.exception("Error creating order")
            raise InternalError()

        return {
            "id": order.id,
            "productId": order.product_id,
            "productName": product.name,
            "quantity": order.quantity,
            "status": order.status,
            "createdAt": order.created_at.isoformat(),
        }

    def _notify_created(self, order: Order, product: Product) -> bool:
        try:
            event = build_order_created_event(order, product)
        except Exception as e:
            logger.error("Could not build ORDER_CREATED event for order %s: %s", order.id, e)
            return False

        published = publish_best_effort(self.publisher, ORDERS_TOPIC, event)
        if published:
            logger.info("Published ORDER_CREATED event for order %s", order.id)
        return published

    def list_orders(self) -> List[dict]:
        return [o.to_dict() for o in self.store.list_all()]

    def get_order(self, raw_id: str) -> dict:
        try:
            order_id = int(raw_id)
        except (TypeError, ValueError):
            raise OrderNotFound()
        if not 0 < order_id <= _MAX_ORDER_ID:
            raise OrderNotFound()

        order = self.store.get_by_id(order_id)
        if order is None:
            raise OrderNotFound()
        return order.to_dict()
