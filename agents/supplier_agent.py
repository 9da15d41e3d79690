"""
Supplier Feed Agent
Simulates reading stock levels from third-party supplier APIs
"""

import logging
import asyncio
from typing import Optional

from models.schemas import ExternalInventoryMapping, InventoryLevel
from utils.monitoring import monitor_agent_operation
from config import settings

logger = logging.getLogger(__name__)

class SupplierAgent:
    """Agent for external supplier stock feeds"""

    def __init__(self, delay_seconds: Optional[float] = None, mock_stock: Optional[int] = None):
        self.delay_seconds = settings.supplier_delay_seconds if delay_seconds is None else delay_seconds
        self.mock_stock = settings.supplier_mock_stock if mock_stock is None else mock_stock

    @monitor_agent_operation("supplier", "fetch_external_stock")
    async def fetch_external_supplier_stock(self, mapping: ExternalInventoryMapping) -> int:
        """
        Fetch the supplier's available units for a mapped variant

        Args:
            mapping: Supplier link for the variant

        Returns:
            Units the supplier reports on hand
        """
        logger.info(f"Fetching external stock for {mapping.supplier_sku} from {mapping.supplier_name}")
        # No real request is made; the feed always reports the configured stock.
        await asyncio.sleep(self.delay_seconds)
        logger.info(f"Received external stock for {mapping.supplier_sku}: {self.mock_stock}")
        return self.mock_stock

    async def supplier_inventory_level(self, mapping: ExternalInventoryMapping) -> InventoryLevel:
        """Supplier stock expressed as a pseudo fulfillment center"""
        stock = await self.fetch_external_supplier_stock(mapping)
        return InventoryLevel(
            variant_id=mapping.variant_id,
            center_id=supplier_center_id(mapping.supplier_name),
            center_name=f"Supplier: {mapping.supplier_name}",
            stock=stock,
        )

def supplier_center_id(supplier_name: str) -> str:
    return "supplier_" + "".join(supplier_name.split())

def is_supplier_center(center_id: str) -> bool:
    return center_id.startswith("supplier_")
