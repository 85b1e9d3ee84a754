# inventory/storage.py
import datetime
import json
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator, List, Optional

import pytz

from .errors import StoreUnavailable
from .logger import get_logger
from .models import CatalogItem, PersistedProduct, SyncResult, format_price

logger = get_logger(__name__)


def now_utc_iso() -> str:
    return datetime.datetime.now(tz=pytz.UTC).isoformat()


_PRODUCT_COLUMNS = (
    "external_id, name, price_cents, category, raw_image_ref, "
    "image_url, stock_quantity, created_at, updated_at"
)


def _row_to_product(row) -> PersistedProduct:
    (
        external_id, name, price_cents, category, raw_image_ref,
        image_url, stock_quantity, created_at, updated_at,
    ) = row
    return PersistedProduct(
        external_id=external_id,
        name=name,
        price_cents=price_cents,
        category=category,
        raw_image_ref=raw_image_ref or "",
        image_url=image_url or "",
        stock_quantity=stock_quantity,
        created_at=created_at or "",
        updated_at=updated_at or "",
    )


class ProductStore:
    """
    SQLite-backed product collection read by the storefront.

    Exposes only per-document primitives (read all, upsert by key, delete by
    key). The sync engine never relies on a multi-row transaction.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        con = sqlite3.connect(self.db_path, timeout=30)
        try:
            with con:
                yield con
        finally:
            con.close()

    def ensure_db(self):
        with self._connect() as con:
            cur = con.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS products (
                    external_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    price_cents INTEGER NOT NULL,
                    price_display TEXT,
                    category TEXT,
                    raw_image_ref TEXT,
                    image_url TEXT,
                    stock_quantity INTEGER,   -- NULL = unknown/unlimited
                    in_stock INTEGER,
                    created_at TEXT,
                    updated_at TEXT
                )
            """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS sync_state (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    updated_at TEXT
                )
            """
            )

    def ping(self):
        """Raise StoreUnavailable unless the products table can be queried."""
        try:
            self.ensure_db()
            with self._connect() as con:
                con.execute("SELECT 1 FROM products LIMIT 1").fetchall()
        except (sqlite3.Error, OSError) as e:
            raise StoreUnavailable(f"Product store at {self.db_path} is unreachable: {e}") from e

    def read_all(self) -> List[PersistedProduct]:
        try:
            with self._connect() as con:
                rows = con.execute(f"SELECT {_PRODUCT_COLUMNS} FROM products").fetchall()
        except (sqlite3.Error, OSError) as e:
            raise StoreUnavailable(f"Failed to read products from {self.db_path}: {e}") from e
        return [_row_to_product(row) for row in rows]

    def get(self, external_id: str) -> Optional[PersistedProduct]:
        with self._connect() as con:
            row = con.execute(
                f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE external_id=?",
                (external_id,),
            ).fetchone()
        return _row_to_product(row) if row else None

    def upsert(self, item: CatalogItem) -> None:
        """
        Insert or update one product by external_id. Re-applying an identical
        item leaves the row (including updated_at) untouched.
        """
        ts = now_utc_iso()
        in_stock = item.stock_quantity is None or item.stock_quantity > 0
        with self._connect() as con:
            con.execute(
                """
                INSERT INTO products (
                    external_id, name, price_cents, price_display, category,
                    raw_image_ref, image_url, stock_quantity, in_stock,
                    created_at, updated_at
                )
                VALUES (?,?,?,?,?,?,?,?,?,?,?)
                ON CONFLICT(external_id) DO UPDATE SET
                    name=excluded.name,
                    price_cents=excluded.price_cents,
                    price_display=excluded.price_display,
                    category=excluded.category,
                    raw_image_ref=excluded.raw_image_ref,
                    image_url=excluded.image_url,
                    stock_quantity=excluded.stock_quantity,
                    in_stock=excluded.in_stock,
                    updated_at=excluded.updated_at
                WHERE products.name IS NOT excluded.name
                   OR products.price_cents IS NOT excluded.price_cents
                   OR products.category IS NOT excluded.category
                   OR products.raw_image_ref IS NOT excluded.raw_image_ref
                   OR products.image_url IS NOT excluded.image_url
                   OR products.stock_quantity IS NOT excluded.stock_quantity
            """,
                (
                    item.external_id,
                    item.name,
                    item.price_cents,
                    format_price(item.price_cents),
                    item.category,
                    item.raw_image_ref,
                    item.image_url,
                    item.stock_quantity,
                    1 if in_stock else 0,
                    ts,
                    ts,
                ),
            )

    def delete(self, external_id: str) -> None:
        with self._connect() as con:
            con.execute("DELETE FROM products WHERE external_id=?", (external_id,))

    def save_last_sync(self, result: SyncResult) -> None:
        with self._connect() as con:
            con.execute(
                """
                INSERT INTO sync_state (key, value, updated_at) VALUES (?,?,?)
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    updated_at=excluded.updated_at
            """,
                ("last_successful_sync", json.dumps(result.to_dict()), now_utc_iso()),
            )

    def get_last_sync(self) -> Optional[SyncResult]:
        try:
            with self._connect() as con:
                row = con.execute(
                    "SELECT value FROM sync_state WHERE key=?",
                    ("last_successful_sync",),
                ).fetchone()
        except sqlite3.OperationalError:
            # Table not created yet
            return None
        if not row or not row[0]:
            return None
        try:
            return SyncResult.from_dict(json.loads(row[0]))
        except (ValueError, TypeError) as e:
            logger.warning("Ignoring unreadable last sync marker: %s", e)
            return None
