"""
Inventory Orchestrator
Composes the mock tables into processed products, coordinating the supplier
and forecast agents
"""

import logging
import asyncio
from typing import List, Optional

from agents.forecast_agent import ForecastAgent
from agents.supplier_agent import SupplierAgent
from data.mock_store import MockDataStore
from models.schemas import (
    InventoryStatus, ProcessedProduct, ProductVariant, PurchaseOrder,
    PurchaseOrderStatus, SubscriptionTier
)
from utils.inventory_calculations import (
    calculate_sales_velocity, calculate_total_stock, derive_stock_figures,
    reconstruct_stock_history
)
from utils.monitoring import metrics_collector, monitor_agent_operation, trace_operation
from config import settings

logger = logging.getLogger(__name__)

class InventoryOrchestrator:
    """Joins variants, stock, settings and sales into ProcessedProducts"""

    def __init__(
        self,
        store: MockDataStore,
        forecast_agent: ForecastAgent,
        supplier_agent: Optional[SupplierAgent] = None,
        delay_seconds: Optional[float] = None
    ):
        self.store = store
        self.forecast_agent = forecast_agent
        self.supplier_agent = supplier_agent or SupplierAgent()
        self.delay_seconds = settings.api_delay_seconds if delay_seconds is None else delay_seconds

        logger.info("Orchestrator initialized successfully")

    @monitor_agent_operation("orchestrator", "fetch_processed_products")
    async def fetch_processed_products(self, tier: SubscriptionTier) -> List[ProcessedProduct]:
        """
        Fetch and compose every product, as a storefront backend would

        Args:
            tier: Subscription tier; Pro adds supplier stock and AI forecasts

        Returns:
            One processed product per variant, in catalogue order
        """
        tier = SubscriptionTier(tier)
        logger.info(f"Fetching and processing product data for {tier.value} tier")

        async with trace_operation("orchestrator.compose", {"tier": tier.value}):
            await asyncio.sleep(self.delay_seconds)
            products = await asyncio.gather(
                *(self.compose_product(variant, tier) for variant in self.store.get_variants())
            )

        metrics_collector.record_status_counts([p.status for p in products])
        logger.info(f"Finished processing {len(products)} products")
        return list(products)

    async def compose_product(self, variant: ProductVariant, tier: SubscriptionTier) -> ProcessedProduct:
        """
        Build a single ProcessedProduct

        Args:
            variant: Variant to compose
            tier: Subscription tier

        Returns:
            Variant joined with its tables and derived figures
        """
        inventory = self.store.get_inventory_levels(variant.id)
        alert_setting = self.store.get_alert_setting(variant.id)
        sales_history = self.store.get_sales_history(variant.id)
        promotions = self.store.get_promotions(variant.id)
        mapping = self.store.get_supplier_mapping(variant.id)

        if tier == SubscriptionTier.PRO and mapping:
            inventory.append(await self.supplier_agent.supplier_inventory_level(mapping))

        total_stock = calculate_total_stock(inventory)

        stock_history = reconstruct_stock_history(
            variant.id,
            total_stock,
            sales_history,
            adjustments=self.store.get_stock_adjustments(variant.id),
            recent_sales=settings.recent_sales_in_stock_log,
            history_days=settings.sales_history_days,
        )

        recent_sales = sales_history[-settings.sales_window_days:]
        analysis = None
        if tier == SubscriptionTier.PRO:
            forecast = await self.forecast_agent.fetch_advanced_forecast(variant, recent_sales, promotions)
            sales_velocity = forecast.sales_velocity
            analysis = forecast.analysis
        else:
            sales_velocity = calculate_sales_velocity(recent_sales, settings.sales_window_days)

        return ProcessedProduct(
            **variant.model_dump(),
            inventory=inventory,
            alert_setting=alert_setting,
            sales_history=sales_history,
            stock_history=stock_history,
            promotions=promotions,
            external_inventory_mapping=mapping,
            total_stock=total_stock,
            analysis=analysis,
            **derive_stock_figures(total_stock, sales_velocity, alert_setting),
        )

    def build_purchase_orders(self, products: List[ProcessedProduct]) -> List[PurchaseOrder]:
        """
        Draft an order for every Critical product and attach orders already sent

        Args:
            products: Freshly composed products

        Returns:
            Draft orders followed by sent orders
        """
        by_id = {p.id: p for p in products}

        drafts = [
            PurchaseOrder(
                id=f"po_draft_{p.id}",
                product=p,
                quantity=p.alert_setting.reorder_quantity,
                status=PurchaseOrderStatus.DRAFT,
            )
            for p in products
            if p.status == InventoryStatus.CRITICAL
        ]

        sent = [
            PurchaseOrder(
                id=f"po_sent_{row['variant_id']}",
                product=by_id[row["variant_id"]],
                quantity=row["quantity"],
                status=PurchaseOrderStatus.SENT,
            )
            for row in self.store.get_sent_purchase_orders()
            if row["variant_id"] in by_id
        ]

        return drafts + sent
