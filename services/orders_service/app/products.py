import logging
from typing import Optional, Union
from urllib.parse import quote

import httpx

from .domain import Product
from .errors import ProductNotFound, UpstreamUnavailable

logger = logging.getLogger(__name__)


class ProductLookupClient:
    """Verifies product ids against the product service.

    A 404 from the product service means the product does not exist; every
    other failure (timeout, connection error, 5xx, garbage body) means we could
    not tell, and is reported as the service being unavailable.
    """

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def get_product(self, product_id: Union[str, int]) -> Product:
        url = f"{self.base_url}/{quote(str(product_id), safe='')}"
        try:
            r = self._client.get(url, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.error("Error calling product service for %s: %r", product_id, e)
            raise UpstreamUnavailable()

        if r.status_code == 404:
            raise ProductNotFound()

        try:
            r.raise_for_status()
            payload = r.json()
        except (httpx.HTTPStatusError, ValueError) as e:
            logger.error("Error calling product service for %s: %r", product_id, e)
            raise UpstreamUnavailable()

        if not isinstance(payload, dict):
            logger.error("Unexpected product payload for %s: %r", product_id, payload)
            raise UpstreamUnavailable()

        return Product.from_payload(payload)

    def close(self) -> None:
        self._client.close()
