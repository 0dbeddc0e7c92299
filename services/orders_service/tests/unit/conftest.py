import threading

import pytest
from fastapi.testclient import TestClient

from services.orders_service.app.config import Settings
from services.orders_service.app.domain import Product
from services.orders_service.app.errors import ProductNotFound, UpstreamUnavailable
from services.orders_service.app.main import create_app
from services.orders_service.app.publisher import EventPublisher
from services.orders_service.app.store import create_store


class FakeProducts:
    def __init__(self, products=None, error=None):
        self.products = {str(p.id): p for p in products or []}
        self.error = error
        self.calls = []

    def get_product(self, product_id):
        self.calls.append(product_id)
        if self.error is not None:
            raise self.error
        try:
            return self.products[str(product_id)]
        except KeyError:
            raise ProductNotFound()

    def close(self):
        pass


class RecordingPublisher(EventPublisher):
    def __init__(self, error=None):
        self.error = error
        self.published = []
        self.connected = threading.Event()
        self.closed = False

    def connect(self):
        self.connected.set()

    def publish(self, topic, payload):
        if self.error is not None:
            raise self.error
        self.published.append((topic, payload))

    def close(self):
        self.closed = True


@pytest.fixture
def store():
    s = create_store("sqlite://")
    s.create_schema()
    yield s
    s.close()


@pytest.fixture
def products():
    return FakeProducts([Product(id="p-1", name="Widget"), Product(id="p-2", name="Gadget")])


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def unavailable_products():
    return FakeProducts(error=UpstreamUnavailable())


@pytest.fixture
def failing_publisher():
    return RecordingPublisher(error=RuntimeError("broker down"))


@pytest.fixture
def make_client(store, products, publisher):
    def _make(products=products, publisher=publisher):
        app = create_app(Settings(), store=store, products=products, publisher=publisher)
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client):
    return make_client()
