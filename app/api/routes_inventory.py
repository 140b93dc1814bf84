from typing import List

from fastapi import APIRouter, Depends, Query

from app.schemas.products import InventoryItem
from app.services.inventory import InMemoryInventoryStore, get_inventory_store

router = APIRouter()


@router.get("", response_model=List[InventoryItem])
def list_inventory(
    shop_id: str = Query("default"),
    store: InMemoryInventoryStore = Depends(get_inventory_store),
):
    """Return a shop's inventory, newest first."""
    return store.list(shop_id)
