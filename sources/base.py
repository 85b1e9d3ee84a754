# sources/base.py
from typing import Any, List, Optional

import requests
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_any,
    wait_exponential_jitter,
)

from inventory.config import Settings
from inventory.deadline import Deadline
from inventory.errors import AuthError, MalformedResponse, SourceUnavailable, SyncTimeout
from inventory.images import normalize_image_ref
from inventory.logger import get_logger
from inventory.models import CatalogItem

logger = get_logger(__name__)

USER_AGENT = "storefront-catalog-sync/1.0"


class TransientSourceError(Exception):
    """Raised for responses worth retrying (429, 5xx)."""


class CatalogSource:
    """
    Fetch contract shared by every catalog provider. Subclasses implement
    _fetch_items(); every CatalogItem they return must be built with
    make_item() so its image reference is normalized.
    """

    name = "base"

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})
        self.retry_wait = wait_exponential_jitter(initial=1, max=30)

    def fetch_all(self, deadline: Optional[Deadline] = None) -> List[CatalogItem]:
        deadline = deadline or Deadline()
        items = self._fetch_items(deadline)
        logger.info("%s: fetched %d catalog items.", self.name, len(items))
        return items

    def _fetch_items(self, deadline: Deadline) -> List[CatalogItem]:
        raise NotImplementedError

    @staticmethod
    def make_item(
        external_id: str,
        name: str,
        price_cents: Optional[int],
        category: Optional[str] = None,
        raw_image_ref: Optional[str] = "",
        stock_quantity: Optional[int] = None,
    ) -> CatalogItem:
        raw = (raw_image_ref or "").strip()
        return CatalogItem(
            external_id=str(external_id),
            name=name,
            price_cents=price_cents,
            category=category,
            raw_image_ref=raw,
            image_url=normalize_image_ref(raw),
            stock_quantity=stock_quantity,
        )

    def _send(self, method: str, url: str, deadline: Deadline, **kwargs) -> requests.Response:
        timeout = deadline.timeout(self.settings.http_timeout)
        try:
            resp = self.session.request(method, url, timeout=timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            if deadline.expired():
                raise SyncTimeout(f"{self.name}: deadline exceeded calling {url}") from e
            raise TransientSourceError(f"{method} {url} failed: {e}") from e
        except requests.RequestException as e:
            raise SourceUnavailable(f"{self.name}: {method} {url} failed: {e}") from e

        status = resp.status_code
        if status in (401, 403):
            raise AuthError(f"{self.name}: {url} rejected credentials (HTTP {status})")
        if status == 429 or status >= 500:
            raise TransientSourceError(f"{method} {url} returned HTTP {status}")
        if status >= 400:
            raise SourceUnavailable(f"{self.name}: {url} returned HTTP {status}: {resp.text[:200]}")
        return resp

    def _bounded_wait(self, deadline: Deadline):
        """Backoff from retry_wait, never sleeping past the run deadline."""
        def wait(retry_state) -> float:
            delay = self.retry_wait(retry_state)
            remaining = deadline.remaining()
            if remaining is None:
                return delay
            return max(0.0, min(delay, remaining))
        return wait

    def request(self, method: str, url: str, deadline: Deadline, **kwargs) -> requests.Response:
        """
        Issue one HTTP call, retrying transient failures within the attempt
        budget and the run deadline.
        """
        retrying = Retrying(
            retry=retry_if_exception_type(TransientSourceError),
            wait=self._bounded_wait(deadline),
            stop=stop_any(
                stop_after_attempt(self.settings.http_retries),
                lambda retry_state: deadline.expired(),
            ),
        )
        try:
            return retrying(self._send, method, url, deadline, **kwargs)
        except RetryError as e:
            cause = e.last_attempt.exception()
            if deadline.expired():
                raise SyncTimeout(f"{self.name}: deadline exceeded calling {url}") from cause
            logger.error("%s fetch failed for %s after retries: %s", self.name, url, cause)
            raise SourceUnavailable(f"{self.name}: {cause}") from cause

    def parse_json(self, resp: requests.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            sample = resp.text[:500]
            logger.error("%s returned non-JSON from %s. Sample: %r", self.name, resp.url, sample)
            raise MalformedResponse(f"{self.name}: response is not JSON", sample=sample) from e
