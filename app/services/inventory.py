"""
Inventory merge collaborator.

The pipeline never touches storage; it hands its ProductCandidate list to an
InventoryStore together with a mode: ``append`` inserts alongside what the
shop already has, ``replace`` clears the shop's inventory first. Duplicate
names are stored as separate rows, same as the parser emits them.

InMemoryInventoryStore is the process-local implementation used by the API.
"""

from __future__ import annotations

import itertools
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, Sequence

from app.core.errors import InvalidMergeMode
from app.core.logger import get_logger
from app.schemas.products import InventoryItem, ProductCandidate

log = get_logger(__name__)

MERGE_MODES = ("append", "replace")


class InventoryStore(Protocol):
    def merge(self, shop_id: str, products: Sequence[ProductCandidate], mode: str = "append") -> int: ...

    def list(self, shop_id: str) -> List[InventoryItem]: ...


def validate_mode(mode: Optional[str]) -> str:
    mode = (mode or "append").strip().lower()
    if mode not in MERGE_MODES:
        raise InvalidMergeMode(mode)
    return mode


class InMemoryInventoryStore:
    def __init__(self) -> None:
        self._items: Dict[str, List[InventoryItem]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def merge(self, shop_id: str, products: Sequence[ProductCandidate], mode: str = "append") -> int:
        mode = validate_mode(mode)
        with self._lock:
            rows = self._items.setdefault(shop_id, [])
            if mode == "replace":
                rows.clear()
            for p in products:
                rows.append(
                    InventoryItem(
                        id=next(self._ids),
                        shop_id=shop_id,
                        product_name=p.name,
                        price=p.price,
                        stock=p.stock,
                        created_at=p.added or datetime.now(timezone.utc),
                    )
                )
        log.info("Inventory %s: %s %d products", shop_id, mode, len(products))
        return len(products)

    def list(self, shop_id: str) -> List[InventoryItem]:
        with self._lock:
            rows = list(self._items.get(shop_id, []))
        # newest first
        return sorted(rows, key=lambda r: (r.created_at, r.id), reverse=True)


_store: Optional[InMemoryInventoryStore] = None


def get_inventory_store() -> InMemoryInventoryStore:
    global _store
    if _store is None:
        _store = InMemoryInventoryStore()
    return _store
