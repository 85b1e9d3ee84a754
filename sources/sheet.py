# sources/sheet.py
"""
Legacy spreadsheet catalog, read from the sheet's public CSV export.

Column layout of the export (0-based):
  0 id, 1 name, 2 description, 3 price, 4 category, 5 image, 6 stock
Further columns (brand, featured, minimum order) are ignored.
"""
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import List, Optional

from inventory.deadline import Deadline
from inventory.errors import AuthError
from inventory.logger import get_logger
from inventory.models import CatalogItem, slugify_category

from .base import CatalogSource

logger = get_logger(__name__)

COL_ID = 0
COL_NAME = 1
COL_PRICE = 3
COL_CATEGORY = 4
COL_IMAGE = 5
COL_STOCK = 6
MIN_COLUMNS = COL_STOCK + 1


def split_row(line: str, delimiter: str = ",") -> List[str]:
    """
    Split one export line into trimmed fields. A delimiter only separates
    fields outside a quoted span; each quote toggles the span, except a
    doubled quote inside a span, which is a literal quote.
    """
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif ch == delimiter and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1
    fields.append("".join(current).strip())
    return fields


def parse_price_cents(value: str) -> Optional[int]:
    cleaned = re.sub(r"[$,\s]", "", value or "")
    if not cleaned:
        return None
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_stock(value: str) -> Optional[int]:
    m = re.search(r"-?\d+", value or "")
    return int(m.group(0)) if m else None


def parse_rows(text: str) -> List[CatalogItem]:
    lines = [ln for ln in text.splitlines() if ln.strip()]
    if len(lines) <= 1:
        return []

    items: List[CatalogItem] = []
    for lineno, line in enumerate(lines[1:], start=2):
        cols = split_row(line)
        if len(cols) < MIN_COLUMNS:
            logger.warning(
                "Sheet row %d has %d columns, expected at least %d; skipping.",
                lineno, len(cols), MIN_COLUMNS,
            )
            continue
        if not cols[COL_ID] or not cols[COL_NAME]:
            logger.warning("Sheet row %d is missing an id or name; skipping.", lineno)
            continue
        price_cents = parse_price_cents(cols[COL_PRICE])
        if price_cents is None:
            logger.warning(
                "Sheet row %d (%s) has unreadable price %r; keeping the stored price.",
                lineno, cols[COL_ID], cols[COL_PRICE],
            )

        items.append(
            CatalogSource.make_item(
                external_id=cols[COL_ID],
                name=cols[COL_NAME],
                price_cents=price_cents,
                category=slugify_category(cols[COL_CATEGORY]),
                raw_image_ref=cols[COL_IMAGE],
                stock_quantity=parse_stock(cols[COL_STOCK]),
            )
        )
    return items


class SheetCatalogSource(CatalogSource):
    name = "sheet"

    def _fetch_items(self, deadline: Deadline) -> List[CatalogItem]:
        url = self.settings.sheet_url
        logger.info("Fetching sheet export from %s", url)
        resp = self.request("GET", url, deadline)

        content_type = resp.headers.get("Content-Type", "")
        body = resp.text
        if "text/html" in content_type or body.lstrip().lower().startswith("<!doctype html"):
            # A private sheet answers with the sign-in page instead of CSV
            raise AuthError("sheet: export returned an HTML page; is the sheet shared publicly?")

        return parse_rows(body)
