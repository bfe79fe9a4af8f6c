# ordercore/services/product_client.py
import requests
from requests import RequestException

from ordercore.domain.errors import CatalogError
from ordercore.domain.schemas import ProductInfo, VariantInfo
from ordercore.utils.retry import http_retry
from ordercore.utils.settings import PRODUCT_SERVICE_URL
from ordercore.utils.logging import get_logger

logger = get_logger(__name__)


class ProductClient:
    """Odczyt katalogu/stanu magazynu z product-service. 404 -> None."""

    def __init__(self, base_url: str | None = None, timeout: int = 2):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def _get(self, path: str) -> dict | None:
        url = f"{self.base_url}{path}"
        logger.info(f"ProductClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    def _fetch(self, path: str) -> dict | None:
        try:
            return self._get(path)
        except RequestException as e:
            logger.error(f"Catalog lookup {path} failed: {e}")
            raise CatalogError(f"Catalog unavailable: {e}") from e

    def fetch_product(self, product_id: int) -> ProductInfo | None:
        data = self._fetch(f"/products/{product_id}")
        return ProductInfo.model_validate(data) if data is not None else None

    def fetch_variant(self, variant_id: int) -> VariantInfo | None:
        data = self._fetch(f"/variants/{variant_id}")
        return VariantInfo.model_validate(data) if data is not None else None
