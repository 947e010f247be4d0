"""Menu catalog: read-mostly item lookup used for pricing and reports."""

import logging
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from posengine.core.config import settings
from posengine.schemas.menu import MenuItem, MenuItemCreate, MenuItemUpdate
from posengine.services.document_store import MENU_ITEMS, DocumentStore

logger = logging.getLogger(__name__)


class CatalogSnapshot(Mapping[int, MenuItem]):
    """Immutable id -> MenuItem view of the menu at one point in time.

    Lookups for unknown ids degrade instead of failing so reports over old
    orders stay renderable after an item is removed from the menu.
    """

    def __init__(self, items: Iterable[MenuItem] = ()):
        self._items: Dict[int, MenuItem] = {item.id: item for item in items}

    def __getitem__(self, item_id: int) -> MenuItem:
        return self._items[item_id]

    def __iter__(self) -> Iterator[int]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def price_of(self, item_id: int) -> Decimal:
        item = self._items.get(item_id)
        return item.price if item else Decimal("0")

    def cost_of(self, item_id: int) -> Decimal:
        item = self._items.get(item_id)
        if item is None or item.cost is None:
            return Decimal("0")
        return item.cost

    def name_of(self, item_id: int) -> str:
        item = self._items.get(item_id)
        return item.name if item else f"Item {item_id}"

    def unknown_ids(self, item_ids: Iterable[int]) -> List[int]:
        return [item_id for item_id in item_ids if item_id not in self._items]


class Catalog:
    """Reads menu items from the document store.

    Writes belong to menu management; ``create_menu_item`` and
    ``update_menu_item`` exist so that subsystem (and seed scripts) can
    publish changes through the same store.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get_menu_items(self) -> List[MenuItem]:
        docs = await self.store.list_all(MENU_ITEMS)
        return [MenuItem.model_validate(doc) for doc in docs]

    async def snapshot(self) -> CatalogSnapshot:
        return CatalogSnapshot(await self.get_menu_items())

    async def create_menu_item(self, payload: MenuItemCreate) -> MenuItem:
        doc = await self.store.create(MENU_ITEMS, payload.model_dump(mode="json"))
        item = MenuItem.model_validate(doc)
        logger.info(f"Menu item {item.id} '{item.name}' created at {settings.currency_symbol}{item.price}")
        return item

    async def update_menu_item(self, item_id: int, payload: MenuItemUpdate) -> Optional[MenuItem]:
        snapshot = await self.snapshot()
        current = snapshot.get(item_id)
        if current is None:
            return None
        changes = payload.model_dump(exclude_unset=True)
        updated = MenuItem.model_validate({**current.model_dump(), **changes})
        doc = await self.store.update(
            MENU_ITEMS, item_id, updated.model_dump(mode="json")
        )
        if doc is None:
            return None
        logger.info(f"Menu item {item_id} updated: {sorted(changes)}")
        return MenuItem.model_validate(doc)
