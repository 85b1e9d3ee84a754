"""Test configuration helpers."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from inventory.config import Settings  # noqa: E402
from inventory.models import CatalogItem  # noqa: E402
from inventory.storage import ProductStore  # noqa: E402


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        text: str | None = None,
        headers: Dict[str, str] | None = None,
        url: str = "https://example.test/",
    ) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)
        self.headers = headers or {}
        self.url = url

    def json(self) -> Any:
        if self._payload is None:
            return json.loads(self.text)
        return self._payload


Handler = Callable[..., FakeResponse]


class FakeSession:
    """Routes requests by (method, url-substring) to canned responses."""

    def __init__(self) -> None:
        self.headers: Dict[str, str] = {}
        self.routes: List[Tuple[str, str, Any]] = []
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def add(self, method: str, fragment: str, response: Any) -> None:
        self.routes.append((method.upper(), fragment, response))

    def request(self, method: str, url: str, timeout: float | None = None, **kwargs: Any) -> FakeResponse:
        self.calls.append((method.upper(), url, kwargs))
        for route_method, fragment, response in self.routes:
            if route_method == method.upper() and fragment in url:
                if isinstance(response, BaseException):
                    raise response
                if callable(response):
                    return response(url=url, **kwargs)
                return response
        raise AssertionError(f"Unexpected request {method} {url}")


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        square_access_token="token",
        square_location_id="LOC1",
        google_sheet_id="sheet123",
        sync_api_key="secret-key",
        cron_secret="cron-secret",
        http_retries=1,
        http_timeout=5.0,
        db_path=str(tmp_path / "catalog.sqlite3"),
    )


@pytest.fixture
def store(settings: Settings) -> ProductStore:
    s = ProductStore(settings.db_path)
    s.ensure_db()
    return s


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


def make_item(external_id: str, price_cents: int = 500, **kwargs: Any) -> CatalogItem:
    fields: Dict[str, Any] = {"name": f"Item {external_id}", "category": "snacks"}
    fields.update(kwargs)
    return CatalogItem(external_id=external_id, price_cents=price_cents, **fields)
