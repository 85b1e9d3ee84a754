# sources/square.py
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from inventory.deadline import Deadline
from inventory.errors import MalformedResponse, SourceUnavailable
from inventory.logger import get_logger
from inventory.models import CatalogItem, slugify_category

from .base import CatalogSource

logger = get_logger(__name__)

MAX_PAGES = 200


class SquareCatalogSource(CatalogSource):
    """
    Point-of-sale catalog: items, categories and images from the catalog
    listing, joined with per-variation stock counts for one location.
    """

    name = "square"

    def __init__(self, settings, session=None):
        super().__init__(settings, session)
        if not settings.square_access_token:
            logger.warning("SQUARE_ACCESS_TOKEN is not set; Square requests will be rejected.")
        self.session.headers.update(
            {
                "Authorization": f"Bearer {settings.square_access_token}",
                "Square-Version": settings.square_api_version,
                "Content-Type": "application/json",
            }
        )
        logger.debug(
            "Square source: environment=%s, application=%s, location=%s",
            settings.square_environment,
            settings.square_application_id or "<unset>",
            settings.square_location_id or "<unset>",
        )

    def _url(self, path: str) -> str:
        return f"{self.settings.square_base_url}{path}"

    def _expect_dict(self, data: Any, what: str) -> Dict[str, Any]:
        if not isinstance(data, dict):
            sample = repr(data)[:500]
            logger.error("Square %s response is not an object. Sample: %s", what, sample)
            raise MalformedResponse(f"square: {what} response is not an object", sample=sample)
        return data

    def list_catalog(self, deadline: Deadline) -> List[Dict[str, Any]]:
        objects: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        for _ in range(MAX_PAGES):
            params = {"types": "ITEM,CATEGORY,IMAGE"}
            if cursor:
                params["cursor"] = cursor
            resp = self.request("GET", self._url("/catalog/list"), deadline, params=params)
            data = self._expect_dict(self.parse_json(resp), "catalog")
            page = data.get("objects") or []
            if not isinstance(page, list):
                raise MalformedResponse("square: catalog 'objects' is not a list", sample=repr(page)[:500])
            objects.extend(page)
            cursor = data.get("cursor")
            if not cursor:
                return objects
        raise SourceUnavailable(f"square: catalog listing exceeded {MAX_PAGES} pages")

    def inventory_counts(self, deadline: Deadline) -> Dict[str, int]:
        """Map catalog_object_id -> summed IN_STOCK quantity."""
        counts: Dict[str, int] = {}
        cursor: Optional[str] = None
        for _ in range(MAX_PAGES):
            body: Dict[str, Any] = {"states": ["IN_STOCK"]}
            if self.settings.square_location_id:
                body["location_ids"] = [self.settings.square_location_id]
            if cursor:
                body["cursor"] = cursor
            resp = self.request(
                "POST", self._url("/inventory/counts/batch-retrieve"), deadline, json=body
            )
            data = self._expect_dict(self.parse_json(resp), "inventory")
            for count in data.get("counts") or []:
                if not isinstance(count, dict):
                    continue
                if count.get("state", "IN_STOCK") != "IN_STOCK":
                    continue
                object_id = count.get("catalog_object_id")
                qty = _parse_quantity(count.get("quantity"))
                if not object_id or qty is None:
                    continue
                counts[object_id] = counts.get(object_id, 0) + qty
            cursor = data.get("cursor")
            if not cursor:
                return counts
        raise SourceUnavailable(f"square: inventory listing exceeded {MAX_PAGES} pages")

    def _fetch_items(self, deadline: Deadline) -> List[CatalogItem]:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="square-fetch") as pool:
            catalog_future = pool.submit(self.list_catalog, deadline)
            inventory_future = pool.submit(self.inventory_counts, deadline)
            objects = catalog_future.result()
            counts = inventory_future.result()
        return self.build_items(objects, counts)

    def build_items(self, objects: List[Dict[str, Any]], counts: Dict[str, int]) -> List[CatalogItem]:
        categories: Dict[str, str] = {}
        images: Dict[str, str] = {}
        for obj in objects:
            if not isinstance(obj, dict) or obj.get("is_deleted"):
                continue
            if obj.get("type") == "CATEGORY":
                categories[obj.get("id", "")] = (obj.get("category_data") or {}).get("name", "")
            elif obj.get("type") == "IMAGE":
                images[obj.get("id", "")] = (obj.get("image_data") or {}).get("url", "")

        items: List[CatalogItem] = []
        for obj in objects:
            if not isinstance(obj, dict) or obj.get("type") != "ITEM" or obj.get("is_deleted"):
                continue
            data = obj.get("item_data")
            if not isinstance(data, dict) or not obj.get("id"):
                logger.warning("Skipping Square item without id/item_data: %r", obj)
                continue

            price_cents, variation_ids = _variation_summary(data.get("variations") or [])
            stock = _join_stock(variation_ids, counts)
            category_id = _category_id(data)
            image_ids = data.get("image_ids") or []
            raw_image = images.get(image_ids[0], "") if image_ids else ""

            items.append(
                self.make_item(
                    external_id=obj["id"],
                    name=str(data.get("name") or "Unnamed Product"),
                    price_cents=price_cents,
                    category=slugify_category(categories.get(category_id)) if category_id else None,
                    raw_image_ref=raw_image,
                    stock_quantity=stock,
                )
            )
        return items


def _parse_quantity(value: Any) -> Optional[int]:
    # Square sends quantities as decimal strings ("12", "3.5")
    try:
        return int(Decimal(str(value)))
    except (InvalidOperation, ValueError, TypeError):
        return None


def _variation_summary(variations: List[Any]) -> Tuple[int, List[str]]:
    price_cents: Optional[int] = None
    ids: List[str] = []
    for var in variations:
        if not isinstance(var, dict):
            continue
        if var.get("id"):
            ids.append(var["id"])
        money = (var.get("item_variation_data") or {}).get("price_money") or {}
        amount = money.get("amount")
        if price_cents is None and isinstance(amount, int):
            price_cents = amount
    return (price_cents if price_cents is not None else 0), ids


def _join_stock(variation_ids: List[str], counts: Dict[str, int]) -> Optional[int]:
    """Sum counts across variations; no count at all means unknown, not zero."""
    known = [counts[v] for v in variation_ids if v in counts]
    if not known:
        return None
    return sum(known)


def _category_id(item_data: Dict[str, Any]) -> Optional[str]:
    if item_data.get("category_id"):
        return item_data["category_id"]
    reporting = item_data.get("reporting_category") or {}
    if reporting.get("id"):
        return reporting["id"]
    for cat in item_data.get("categories") or []:
        if isinstance(cat, dict) and cat.get("id"):
            return cat["id"]
    return None
