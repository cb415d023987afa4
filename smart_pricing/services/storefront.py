"""
Storefront Service - Client for the store's Admin REST API.

Provides:
- set_price for a variant (or the first variant of a product when the
  variant id is unknown)
- explicit failure reporting: any non-2xx, timeout or malformed payload
  raises StorefrontAPIError, there is no silent partial success

Every request first takes a token from the store's shared rate limiter.
"""
import logging
from typing import Any, Dict, Optional

import requests
from sqlalchemy.orm import Session

from smart_pricing.config import settings
from smart_pricing.services.credentials import StorefrontCredentials, get_storefront_credentials
from smart_pricing.services.errors import ExternalApiFailure
from smart_pricing.services.rate_limiter import TokenBucket, get_store_rate_limiter

logger = logging.getLogger(__name__)


class StorefrontAPIError(ExternalApiFailure):
    """Raised when the storefront rejects a request or cannot be reached."""
    pass


class StorefrontClient:
    def __init__(
        self,
        credentials: StorefrontCredentials,
        rate_limiter: Optional[TokenBucket] = None,
        session: Optional[requests.Session] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.credentials = credentials
        self.rate_limiter = rate_limiter
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.api_version = api_version or settings.STOREFRONT_API_VERSION
        self.timeout = timeout if timeout is not None else settings.STOREFRONT_TIMEOUT_SECONDS

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def base_url(self) -> str:
        return f"https://{self.credentials.shop_domain}/admin/api/{self.api_version}"

    def _headers(self) -> Dict[str, str]:
        return {
            "X-Shopify-Access-Token": self.credentials.access_token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if self.rate_limiter is not None:
            self.rate_limiter.acquire()

        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(),
                json=payload,
                timeout=self.timeout,
            )
        except requests.Timeout:
            raise StorefrontAPIError(f"Storefront request timed out after {self.timeout}s: {method} {path}")
        except requests.RequestException as e:
            raise StorefrontAPIError(f"Storefront request failed: {method} {path}: {e}")

        if not response.ok:
            raise StorefrontAPIError(
                f"Storefront returned {response.status_code} for {method} {path}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            raise StorefrontAPIError(f"Storefront returned invalid JSON for {method} {path}", status_code=response.status_code)

    def resolve_first_variant_id(self, external_product_id: str) -> str:
        data = self._request("GET", f"/products/{external_product_id}.json")
        variants = (data.get("product") or {}).get("variants") or []
        if not variants or not variants[0].get("id"):
            raise StorefrontAPIError(f"Product {external_product_id} has no variants in storefront")
        return str(variants[0]["id"])

    def set_price(self, external_id: Optional[str], price: float, external_product_id: Optional[str] = None) -> None:
        """
        Set the price of one variant. Clears compare_at_price so the storefront
        does not show a crossed-out price.

        Raises:
            StorefrontAPIError: on any failure
        """
        variant_id = external_id
        if not variant_id:
            if not external_product_id:
                raise StorefrontAPIError("No storefront variant or product id to update")
            variant_id = self.resolve_first_variant_id(external_product_id)

        payload = {
            "variant": {
                "id": variant_id,
                "price": f"{price:.2f}",
                "compare_at_price": None,
            }
        }
        data = self._request("PUT", f"/variants/{variant_id}.json", payload)

        returned = (data.get("variant") or {}).get("price")
        if returned is None:
            raise StorefrontAPIError(f"Storefront did not confirm price for variant {variant_id}")
        logger.info(f"[STOREFRONT] {self.credentials.shop_domain} variant {variant_id} -> {price:.2f}")


def build_storefront_client(db: Session, store_id: int) -> StorefrontClient:
    """Client for a store, bound to the store's shared rate limiter."""
    credentials = get_storefront_credentials(db, store_id)
    return StorefrontClient(credentials, rate_limiter=get_store_rate_limiter(store_id))
