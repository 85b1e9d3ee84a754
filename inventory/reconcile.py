# inventory/reconcile.py
import dataclasses
from typing import Any, Dict, List, Sequence, Tuple

from .logger import get_logger
from .models import (
    TRACKED_FIELDS,
    CatalogItem,
    PersistedProduct,
    ProductUpdate,
    ReconciliationPlan,
    slugify_category,
)

logger = get_logger(__name__)


def prepare_item(item: CatalogItem) -> CatalogItem:
    """Apply storefront rules to a fetched item before it is compared."""
    stock = item.stock_quantity
    if stock is not None and stock < 0:
        # The point-of-sale reports oversold items as negative counts
        stock = 0
    return dataclasses.replace(
        item,
        name=item.name.strip(),
        price_cents=None if item.price_cents is None else max(0, int(item.price_cents)),
        category=slugify_category(item.category),
        stock_quantity=stock,
    )


def diff_fields(
    persisted: PersistedProduct, item: CatalogItem
) -> Tuple[CatalogItem, Dict[str, Tuple[Any, Any]]]:
    """
    Compare tracked fields and return (item_to_write, changes).

    Unknown stock or an unreadable price on the fetched side carries no
    information: the persisted value is kept on the item to write and is
    never reported as a change.
    """
    if item.price_cents is None:
        item = dataclasses.replace(item, price_cents=persisted.price_cents)
    if item.stock_quantity is None and persisted.stock_quantity is not None:
        item = dataclasses.replace(item, stock_quantity=persisted.stock_quantity)

    changes: Dict[str, Tuple[Any, Any]] = {}
    for name in TRACKED_FIELDS:
        before = getattr(persisted, name)
        after = getattr(item, name)
        if before != after:
            changes[name] = (before, after)
    return item, changes


def plan_sync(
    fetched: Sequence[CatalogItem], persisted: Sequence[PersistedProduct]
) -> ReconciliationPlan:
    """
    Compute the creates, updates and deletes that bring the persisted store in
    line with a fresh catalog fetch.
    """
    new_map: Dict[str, CatalogItem] = {}
    for it in fetched:
        if it.external_id in new_map:
            logger.warning("Duplicate external id %s in fetch; keeping the last one.", it.external_id)
        new_map[it.external_id] = prepare_item(it)
    old_map = {p.external_id: p for p in persisted}

    if not new_map and old_map:
        logger.error(
            "Fetch returned zero items but the store holds %d products; "
            "treating this as a source outage and skipping deletions.",
            len(old_map),
        )
        return ReconciliationPlan(empty_fetch_suspected=True)

    plan = ReconciliationPlan()
    for eid, item in new_map.items():
        previous = old_map.get(eid)
        if previous is None:
            if item.price_cents is None:
                logger.warning("New item %s has no readable price; creating it at 0.", eid)
                item = dataclasses.replace(item, price_cents=0)
            plan.to_create.append(item)
            continue
        to_write, changes = diff_fields(previous, item)
        if changes:
            plan.to_update.append(ProductUpdate(item=to_write, changes=changes))
        else:
            plan.unchanged += 1

    plan.to_delete = [p for eid, p in old_map.items() if eid not in new_map]

    logger.info("Reconciliation plan: %s", plan.summary())
    return plan


def describe_changes(plan: ReconciliationPlan, limit: int = 20) -> List[str]:
    """Human-readable lines for the first ``limit`` updates, for debug logs."""
    lines = []
    for upd in plan.to_update[:limit]:
        parts = [f"{k}: {before!r} -> {after!r}" for k, (before, after) in upd.changes.items()]
        lines.append(f"{upd.item.external_id}: " + ", ".join(parts))
    return lines
