import logging
import threading
from contextlib import asynccontextmanager
from typing import Optional, Union

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StrictInt, StrictStr

from .config import Settings, configure_logging
from .errors import InternalError, InvalidRequest, OrderServiceError
from .products import ProductLookupClient
from .publisher import EventPublisher, build_publisher
from .service import OrderService
from .store import OrderStore, create_store

logger = logging.getLogger(__name__)


class CreateOrderRequest(BaseModel):
    # strict so JSON booleans are rejected instead of coerced to 1
    product_id: Optional[Union[StrictStr, StrictInt]] = Field(default=None, alias="productId")
    quantity: Optional[StrictInt] = None


router = APIRouter()


def get_service(request: Request) -> OrderService:
    return request.app.state.order_service


@router.get("/health")
def health():
    return {"status": "ok"}


@router.post("/", status_code=201)
def post_order(req: CreateOrderRequest, service: OrderService = Depends(get_service)):
    return service.create_order(req.product_id, req.quantity)


@router.get("/")
def list_orders(service: OrderService = Depends(get_service)):
    return service.list_orders()


@router.get("/{order_id}")
def get_order(order_id: str, service: OrderService = Depends(get_service)):
    return service.get_order(order_id)


def _error(exc: OrderServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def _validation_message(exc: RequestValidationError) -> str:
    for err in exc.errors():
        loc = err.get("loc", ())
        if "quantity" in loc:
            return "quantity must be a positive number"
        if "productId" in loc:
            return "productId must be a string or an integer"
    return "Invalid request body"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(OrderServiceError)
    async def handle_order_error(_request: Request, exc: OrderServiceError):
        return _error(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_request: Request, exc: RequestValidationError):
        return _error(InvalidRequest(_validation_message(exc)))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return _error(InternalError())


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[OrderStore] = None,
    products: Optional[ProductLookupClient] = None,
    publisher: Optional[EventPublisher] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    store = store or create_store(settings.database_url)
    products = products or ProductLookupClient(
        settings.product_service_url, timeout=settings.product_lookup_timeout
    )
    publisher = publisher or build_publisher(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        store.create_schema()
        # broker connection must not hold up or abort startup
        threading.Thread(target=publisher.connect, name="broker-connect", daemon=True).start()
        yield
        publisher.close()
        products.close()
        store.close()

    app = FastAPI(title="orders-service", lifespan=lifespan)
    app.state.settings = settings
    app.state.order_service = OrderService(store, products, publisher)
    app.include_router(router)
    register_exception_handlers(app)
    return app


settings = Settings.from_env()
configure_logging(settings.log_level)
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    logger.info("Order Service running on %s", settings.port)
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
