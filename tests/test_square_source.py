import time

import pytest
import requests

from conftest import FakeResponse
from inventory.deadline import Deadline
from inventory.errors import AuthError, MalformedResponse, SourceUnavailable, SyncTimeout
from inventory.images import CANONICAL_TEMPLATE
from inventory.models import PLACEHOLDER_IMAGE
from sources import build_source
from sources.square import SquareCatalogSource


def _item(item_id, name, amount, variation_id, category_id=None, image_ids=None):
    data = {
        "name": name,
        "variations": [
            {
                "id": variation_id,
                "type": "ITEM_VARIATION",
                "item_variation_data": {"price_money": {"amount": amount, "currency": "USD"}},
            }
        ],
    }
    if category_id:
        data["category_id"] = category_id
    if image_ids:
        data["image_ids"] = image_ids
    return {"type": "ITEM", "id": item_id, "item_data": data}


CATALOG_PAGE_1 = {
    "objects": [
        {"type": "CATEGORY", "id": "CAT1", "category_data": {"name": "Frozen  Foods"}},
        {"type": "IMAGE", "id": "IMG1", "image_data": {"url": "https://drive.google.com/file/d/IMGFILE/view"}},
        _item("ITEM1", "Paneer", 499, "VAR1", category_id="CAT1", image_ids=["IMG1"]),
    ],
    "cursor": "page2",
}
CATALOG_PAGE_2 = {
    "objects": [
        _item("ITEM2", "Naan", 300, "VAR2"),
        {"type": "ITEM", "id": "GONE", "is_deleted": True, "item_data": {"name": "Old"}},
    ]
}
INVENTORY = {
    "counts": [
        {"catalog_object_id": "VAR1", "state": "IN_STOCK", "location_id": "LOC1", "quantity": "7"},
        {"catalog_object_id": "VAR1", "state": "SOLD", "location_id": "LOC1", "quantity": "2"},
    ]
}


def _catalog(url, params=None, **kwargs):
    if params and params.get("cursor") == "page2":
        return FakeResponse(payload=CATALOG_PAGE_2, url=url)
    return FakeResponse(payload=CATALOG_PAGE_1, url=url)


def test_fetch_joins_catalog_and_inventory(settings, fake_session):
    fake_session.add("GET", "/catalog/list", _catalog)
    fake_session.add("POST", "/inventory/counts/batch-retrieve", FakeResponse(payload=INVENTORY))

    source = build_source(settings, session=fake_session)
    assert isinstance(source, SquareCatalogSource)
    items = {it.external_id: it for it in source.fetch_all()}

    assert set(items) == {"ITEM1", "ITEM2"}
    paneer = items["ITEM1"]
    assert paneer.price_cents == 499
    assert paneer.category == "frozen-foods"
    assert paneer.stock_quantity == 7
    assert paneer.image_url == CANONICAL_TEMPLATE.format(file_id="IMGFILE")

    naan = items["ITEM2"]
    # Absent from the inventory response: unknown, not zero
    assert naan.stock_quantity is None
    assert naan.category is None
    assert naan.image_url == PLACEHOLDER_IMAGE


def test_inventory_request_is_scoped_to_location(settings, fake_session):
    fake_session.add("GET", "/catalog/list", FakeResponse(payload={"objects": []}))
    fake_session.add("POST", "/inventory/counts/batch-retrieve", FakeResponse(payload={}))

    assert build_source(settings, session=fake_session).fetch_all() == []

    inventory_calls = [c for c in fake_session.calls if c[0] == "POST"]
    assert inventory_calls[0][2]["json"]["location_ids"] == ["LOC1"]
    assert fake_session.headers["Authorization"] == "Bearer token"


def test_rejected_token_is_auth_error(settings, fake_session):
    fake_session.add("GET", "/catalog/list", FakeResponse(status_code=401, payload={"errors": []}))
    fake_session.add("POST", "/inventory/counts/batch-retrieve", FakeResponse(payload={}))

    with pytest.raises(AuthError):
        build_source(settings, session=fake_session).fetch_all()


def test_non_json_body_is_malformed(settings, fake_session):
    fake_session.add("GET", "/catalog/list", FakeResponse(text="<html>oops</html>"))
    fake_session.add("POST", "/inventory/counts/batch-retrieve", FakeResponse(payload={}))

    with pytest.raises(MalformedResponse) as exc_info:
        build_source(settings, session=fake_session).fetch_all()
    assert "oops" in exc_info.value.sample


def test_unexpected_shape_is_malformed(settings, fake_session):
    fake_session.add("GET", "/catalog/list", FakeResponse(payload=["not", "an", "object"]))
    fake_session.add("POST", "/inventory/counts/batch-retrieve", FakeResponse(payload={}))

    with pytest.raises(MalformedResponse):
        build_source(settings, session=fake_session).fetch_all()


def test_connection_failure_is_source_unavailable(settings, fake_session):
    fake_session.add("GET", "/catalog/list", requests.ConnectionError("no route to host"))
    fake_session.add("POST", "/inventory/counts/batch-retrieve", FakeResponse(payload={}))

    with pytest.raises(SourceUnavailable):
        build_source(settings, session=fake_session).fetch_all()


def test_other_transport_errors_are_source_unavailable(settings, fake_session):
    fake_session.add("GET", "/catalog/list", requests.exceptions.ChunkedEncodingError("connection broken"))
    fake_session.add("POST", "/inventory/counts/batch-retrieve", FakeResponse(payload={}))

    with pytest.raises(SourceUnavailable):
        build_source(settings, session=fake_session).fetch_all()


def test_transient_errors_are_retried(settings, fake_session):
    settings.http_retries = 3
    responses = [FakeResponse(status_code=503, text="busy"), FakeResponse(payload={"objects": []})]

    def flaky(url, **kwargs):
        return responses.pop(0)

    fake_session.add("GET", "/catalog/list", flaky)
    fake_session.add("POST", "/inventory/counts/batch-retrieve", FakeResponse(payload={}))

    source = build_source(settings, session=fake_session)
    source.retry_wait = lambda retry_state: 0
    assert source.fetch_all() == []
    assert len([c for c in fake_session.calls if c[0] == "GET"]) == 2


def test_retry_backoff_stops_at_deadline(settings, fake_session):
    settings.http_retries = 10
    fake_session.add("GET", "/catalog/list", FakeResponse(status_code=503, text="busy"))

    source = build_source(settings, session=fake_session)
    source.retry_wait = lambda retry_state: 30
    started = time.monotonic()

    with pytest.raises(SyncTimeout):
        source.request("GET", source.settings.square_base_url + "/catalog/list", Deadline(0.2))
    assert time.monotonic() - started < 5
