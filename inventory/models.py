# inventory/models.py
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

PLACEHOLDER_IMAGE = "/images/placeholder.svg"

# Fields whose change makes a persisted product stale
TRACKED_FIELDS = ("name", "price_cents", "category", "image_url", "stock_quantity")


def slugify_category(value: Optional[str]) -> Optional[str]:
    """'  Snacks  and Sweets ' -> 'snacks-and-sweets'; blank -> None."""
    if value is None:
        return None
    slug = re.sub(r"\s+", "-", str(value).strip().lower())
    return slug or None


def format_price(cents: int) -> str:
    return f"{cents / 100:.2f}"


@dataclass(frozen=True)
class CatalogItem:
    """
    One sellable item as reported by the external catalog.
    Prices are integer cents. price_cents None means the source price was
    unreadable; stock_quantity None means unknown/unlimited.
    """
    external_id: str
    name: str
    price_cents: Optional[int] = 0
    category: Optional[str] = None
    raw_image_ref: str = ""
    image_url: str = PLACEHOLDER_IMAGE
    stock_quantity: Optional[int] = None


@dataclass
class PersistedProduct:
    external_id: str
    name: str
    price_cents: int = 0
    category: Optional[str] = None
    raw_image_ref: str = ""
    image_url: str = PLACEHOLDER_IMAGE
    stock_quantity: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def in_stock(self) -> bool:
        return self.stock_quantity is None or self.stock_quantity > 0


@dataclass
class ProductUpdate:
    item: CatalogItem
    changes: Dict[str, Tuple[Any, Any]]


@dataclass
class ReconciliationPlan:
    to_create: List[CatalogItem] = field(default_factory=list)
    to_update: List[ProductUpdate] = field(default_factory=list)
    to_delete: List[PersistedProduct] = field(default_factory=list)
    unchanged: int = 0
    empty_fetch_suspected: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.to_create or self.to_update or self.to_delete)

    def summary(self) -> str:
        return (
            f"{len(self.to_create)} to create, {len(self.to_update)} to update, "
            f"{len(self.to_delete)} to delete, {self.unchanged} unchanged"
        )


@dataclass
class ItemFailure:
    external_id: str
    operation: str  # create|update|delete
    kind: str
    reason: str


@dataclass
class SyncResult:
    created: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    failed: int = 0
    failures: List[ItemFailure] = field(default_factory=list)
    duration_seconds: float = 0.0
    synced_at: str = ""
    source: str = ""
    trigger: str = ""
    empty_fetch_suspected: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["duration_seconds"] = round(self.duration_seconds, 3)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncResult":
        payload = dict(data)
        payload["failures"] = [ItemFailure(**f) for f in payload.get("failures", [])]
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in payload.items() if k in known})
