"""Point-in-time view of the order store handed to dashboards."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from posengine.core.clock import utcnow
from posengine.schemas.order import Order
from posengine.services.catalog import CatalogSnapshot


@dataclass(frozen=True)
class StoreSnapshot:
    """Immutable orders + catalog pair that aggregations run against."""

    orders: Tuple[Order, ...] = ()
    catalog: CatalogSnapshot = field(default_factory=CatalogSnapshot)
    taken_at: datetime = field(default_factory=utcnow)
    generation: int = 0

    def find(self, order_id: int) -> Optional[Order]:
        for order in self.orders:
            if order.id == order_id:
                return order
        return None
