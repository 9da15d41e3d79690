"""
Inventory Agent
Holds the composed product list and applies merchant actions to it
"""

import logging
import asyncio
from typing import List, Dict, Any, Optional
from datetime import date, datetime
from uuid import uuid4

from agents.account_agent import AccountAgent
from agents.alert_agent import AlertAgent, CHANNEL_FIELDS, validate_recipient
from agents.orchestrator import InventoryOrchestrator
from agents.supplier_agent import is_supplier_center
from models.schemas import (
    AlertChannel, ExternalInventoryMapping, InventoryLevel, InventoryStatus,
    ProcessedProduct, PurchaseOrder, PurchaseOrderStatus, SalesHistoryEntry,
    StockEventType, StockHistoryLogEntry
)
from utils.inventory_calculations import calculate_total_stock, recalculate_product_state
from utils.logging_config import log_operation
from utils.monitoring import alert_manager, metrics_collector, monitor_agent_operation
from config import settings

logger = logging.getLogger(__name__)

FETCH_ERROR = "Failed to fetch inventory data from the server."

class ProductNotFoundError(LookupError):
    def __init__(self, variant_id: str):
        self.variant_id = variant_id
        super().__init__(f"Product not found: {variant_id}")

class PurchaseOrderNotFoundError(LookupError):
    def __init__(self, po_id: str):
        self.po_id = po_id
        super().__init__(f"Purchase order not found: {po_id}")

class InventoryAgent:
    """Agent for inventory state and stock operations"""

    def __init__(
        self,
        orchestrator: InventoryOrchestrator,
        account: AccountAgent,
        alert_agent: Optional[AlertAgent] = None
    ):
        """Initialize Inventory Agent"""
        self.orchestrator = orchestrator
        self.store = orchestrator.store
        self.forecast_agent = orchestrator.forecast_agent
        self.account = account
        self.alert_agent = alert_agent or AlertAgent()

        self.products: List[ProcessedProduct] = []
        self.purchase_orders: List[PurchaseOrder] = []
        self.loading = False
        self.error: Optional[str] = None
        self.last_fetched_at: Optional[datetime] = None

        self._lock = asyncio.Lock()

    # Reads

    def get_products(self) -> List[ProcessedProduct]:
        return list(self.products)

    def get_product(self, variant_id: str) -> ProcessedProduct:
        for product in self.products:
            if product.id == variant_id:
                return product
        raise ProductNotFoundError(variant_id)

    def get_purchase_order(self, po_id: str) -> PurchaseOrder:
        for po in self.purchase_orders:
            if po.id == po_id:
                return po
        raise PurchaseOrderNotFoundError(po_id)

    def get_purchase_orders(self, status: Optional[PurchaseOrderStatus] = None) -> List[PurchaseOrder]:
        if status is None:
            return list(self.purchase_orders)
        status = PurchaseOrderStatus(status)
        return [po for po in self.purchase_orders if po.status == status]

    def state(self) -> Dict[str, Any]:
        return {
            "loading": self.loading,
            "error": self.error,
            "tier": self.account.tier.value,
            "last_fetched_at": self.last_fetched_at.isoformat() if self.last_fetched_at else None,
            "product_count": len(self.products),
        }

    # Fetching

    async def refetch_data(self) -> Dict[str, Any]:
        """
        Recompose every product for the current tier

        Local changes to stock and sales are discarded; alert settings and
        supplier mappings survive because they are saved to the store.

        Returns:
            Result with the fresh product count, or the fetch error
        """
        async with self._lock:
            return await self._refetch()

    @monitor_agent_operation("inventory", "refetch")
    async def _refetch(self) -> Dict[str, Any]:
        self.loading = True
        self.error = None
        try:
            previous = {p.id: p.status for p in self.products}
            products = await self.orchestrator.fetch_processed_products(self.account.tier)

            self.products = products
            self.purchase_orders = self.orchestrator.build_purchase_orders(products)
            self.last_fetched_at = datetime.now()

            for product in products:
                await self._notify_status_change(previous.get(product.id), product)

            return {"success": True, "product_count": len(products)}

        except Exception as e:
            logger.error(f"Error fetching inventory data: {str(e)}")
            self.error = FETCH_ERROR
            return {"success": False, "error": FETCH_ERROR}

        finally:
            self.loading = False

    # Stock movements

    async def simulate_sale(self, variant_id: str, quantity: int) -> Dict[str, Any]:
        """
        Record a sale made today

        Args:
            variant_id: Product sold
            quantity: Units sold

        Returns:
            Result with the updated product
        """
        async with self._lock:
            product = self.get_product(variant_id)

            if quantity <= 0:
                return {"success": False, "error": "Quantity must be a positive number"}
            if quantity > product.total_stock:
                return {
                    "success": False,
                    "error": f"Insufficient stock: {product.total_stock} units available"
                }

            sales_history = _record_sale(product.sales_history, variant_id, quantity)
            updated = self._apply_stock_movement(
                product, -quantity, StockEventType.SALE, user="System"
            )
            updated = recalculate_product_state(updated, sales_history, settings.sales_window_days)

            await self._replace_product(updated)
            log_operation("inventory", "simulate_sale", variant_id, metadata={"quantity": quantity})
            logger.info(f"Simulated sale of {quantity} units of {variant_id}")
            return {"success": True, "product": updated}

    async def adjust_stock(
        self,
        variant_id: str,
        adjustment: int,
        reason: str,
        user: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Apply a manual stock correction

        Args:
            variant_id: Product to adjust
            adjustment: Signed change in units
            reason: Why the stock changed
            user: Who made the change; defaults to the signed-in user

        Returns:
            Result with the updated product
        """
        async with self._lock:
            product = self.get_product(variant_id)

            if adjustment == 0:
                return {"success": False, "error": "Adjustment must be non-zero"}
            if not reason or not reason.strip():
                return {"success": False, "error": "A reason is required"}
            if product.total_stock + adjustment < 0:
                return {
                    "success": False,
                    "error": f"Adjustment would leave negative stock ({product.total_stock} units available)"
                }

            user = user or (self.account.user.name if self.account.user else "System")
            logger.info(f"Adjusting stock for {variant_id} by {adjustment}. Reason: {reason}")

            try:
                updated = self._apply_stock_movement(
                    product, adjustment, StockEventType.MANUAL_ADJUSTMENT, user=user, reason=reason.strip()
                )
            except ValueError as e:
                return {"success": False, "error": str(e)}
            updated = recalculate_product_state(updated, window_days=settings.sales_window_days)

            await self._replace_product(updated)
            log_operation("inventory", "adjust_stock", variant_id, metadata={"adjustment": adjustment, "reason": reason})
            return {"success": True, "product": updated}

    def _apply_stock_movement(
        self,
        product: ProcessedProduct,
        change: int,
        event_type: StockEventType,
        user: str,
        reason: Optional[str] = None
    ) -> ProcessedProduct:
        inventory = _distribute_stock_change(product.inventory, change)
        total_stock = calculate_total_stock(inventory)

        log_entry = StockHistoryLogEntry(
            id=f"log_{uuid4().hex[:12]}",
            timestamp=datetime.now(),
            type=event_type,
            change=change,
            new_total=total_stock,
            user=user,
            reason=reason,
        )

        return product.model_copy(update={
            "inventory": inventory,
            "total_stock": total_stock,
            "stock_history": [*product.stock_history, log_entry],
        })

    # Alert settings

    async def add_alert_recipient(self, variant_id: str, channel: AlertChannel, value: str) -> Dict[str, Any]:
        """
        Add a recipient to one of a product's alert lists

        Args:
            variant_id: Product whose alerts to change
            channel: email, sms or slack
            value: Address, phone number or channel name

        Returns:
            Result with the updated alert setting
        """
        async with self._lock:
            product = self.get_product(variant_id)
            channel = AlertChannel(channel)

            try:
                value = validate_recipient(channel, value)
            except ValueError as e:
                return {"success": False, "error": str(e)}

            field = CHANNEL_FIELDS[channel]
            current = getattr(product.alert_setting, field)
            if value in current:
                return {"success": False, "error": f"{value} is already on the {channel.value} list"}

            setting = product.alert_setting.model_copy(update={field: [*current, value]})
            return await self._save_alert_setting(product, setting, recalculate=False)

    async def remove_alert_recipient(self, variant_id: str, channel: AlertChannel, value: str) -> Dict[str, Any]:
        async with self._lock:
            product = self.get_product(variant_id)
            channel = AlertChannel(channel)

            field = CHANNEL_FIELDS[channel]
            current = getattr(product.alert_setting, field)
            if value not in current:
                return {"success": False, "error": f"{value} is not on the {channel.value} list"}

            setting = product.alert_setting.model_copy(
                update={field: [item for item in current if item != value]}
            )
            return await self._save_alert_setting(product, setting, recalculate=False)

    async def update_reorder_point(self, variant_id: str, units: int) -> Dict[str, Any]:
        """Change the reorder point; status is re-evaluated immediately"""
        async with self._lock:
            product = self.get_product(variant_id)
            if units < 0:
                return {"success": False, "error": "Reorder point cannot be negative"}
            setting = product.alert_setting.model_copy(update={"reorder_point_units": units})
            return await self._save_alert_setting(product, setting, recalculate=True)

    async def update_reorder_quantity(self, variant_id: str, quantity: int) -> Dict[str, Any]:
        async with self._lock:
            product = self.get_product(variant_id)
            if quantity <= 0:
                return {"success": False, "error": "Reorder quantity must be a positive number"}
            setting = product.alert_setting.model_copy(update={"reorder_quantity": quantity})
            return await self._save_alert_setting(product, setting, recalculate=False)

    async def update_supplier_lead_time(self, variant_id: str, days: int) -> Dict[str, Any]:
        async with self._lock:
            product = self.get_product(variant_id)
            if days < 0:
                return {"success": False, "error": "Lead time cannot be negative"}
            setting = product.alert_setting.model_copy(update={"supplier_lead_time_days": days})
            return await self._save_alert_setting(product, setting, recalculate=False)

    async def _save_alert_setting(self, product, setting, recalculate: bool) -> Dict[str, Any]:
        self.store.upsert_alert_setting(setting)

        updated = product.model_copy(update={"alert_setting": setting})
        if recalculate:
            updated = recalculate_product_state(updated, window_days=settings.sales_window_days)

        await self._replace_product(updated)
        log_operation("inventory", "update_alert_setting", product.id)
        return {"success": True, "product": updated, "alert_setting": setting}

    async def send_test_alert(self, variant_id: str) -> Dict[str, Any]:
        product = self.get_product(variant_id)
        return await self.alert_agent.send_test_alert(product.name, product.alert_setting)

    # Supplier integration

    async def add_supplier_mapping(
        self,
        variant_id: str,
        supplier_name: str,
        supplier_api_url: str,
        supplier_sku: str,
        cost_per_item: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Link a product to a supplier feed and refetch

        Returns:
            Refetch result with the saved mapping
        """
        async with self._lock:
            self.get_product(variant_id)
            mapping = ExternalInventoryMapping(
                variant_id=variant_id,
                supplier_name=supplier_name.strip(),
                supplier_api_url=supplier_api_url.strip(),
                supplier_sku=supplier_sku.strip(),
                cost_per_item=cost_per_item,
            )
            self.store.upsert_supplier_mapping(mapping)
            result = await self._refetch()
            return {**result, "mapping": mapping}

    async def remove_supplier_mapping(self, variant_id: str) -> Dict[str, Any]:
        async with self._lock:
            self.get_product(variant_id)
            if not self.store.delete_supplier_mapping(variant_id):
                return {"success": False, "error": "No supplier integration configured for this product"}
            return await self._refetch()

    async def get_reorder_suggestion(self, variant_id: str) -> Dict[str, Any]:
        product = self.get_product(variant_id)
        return await self.forecast_agent.fetch_reorder_suggestion(product)

    # Purchase orders

    async def send_purchase_order(self, po_id: str) -> Dict[str, Any]:
        """Move a draft order to Sent"""
        async with self._lock:
            po = self.get_purchase_order(po_id)
            if po.status != PurchaseOrderStatus.DRAFT:
                return {"success": False, "error": f"Only draft orders can be sent (order is {PurchaseOrderStatus(po.status).value})"}

            updated = po.model_copy(update={"status": PurchaseOrderStatus.SENT, "updated_at": datetime.now()})
            self._replace_purchase_order(updated)
            logger.info(f"Purchase order {po_id} sent for {po.quantity} units")
            return {"success": True, "purchase_order": updated}

    async def receive_purchase_order(self, po_id: str) -> Dict[str, Any]:
        """
        Mark a sent order as received and book its units into stock

        Returns:
            Result with the order and the restocked product
        """
        async with self._lock:
            po = self.get_purchase_order(po_id)
            if po.status != PurchaseOrderStatus.SENT:
                return {"success": False, "error": f"Only sent orders can be received (order is {PurchaseOrderStatus(po.status).value})"}

            product = self.get_product(po.product.id)
            restocked = self._apply_stock_movement(
                product, po.quantity, StockEventType.MANUAL_ADJUSTMENT,
                user="System", reason=f"Purchase order {po.id} received"
            )
            restocked = recalculate_product_state(restocked, window_days=settings.sales_window_days)
            await self._replace_product(restocked)

            updated = self.get_purchase_order(po_id).model_copy(
                update={"status": PurchaseOrderStatus.RECEIVED, "updated_at": datetime.now()}
            )
            self._replace_purchase_order(updated)
            logger.info(f"Purchase order {po_id} received; {po.quantity} units added to {product.id}")
            return {"success": True, "purchase_order": updated, "product": restocked}

    def _replace_purchase_order(self, updated: PurchaseOrder):
        self.purchase_orders = [updated if po.id == updated.id else po for po in self.purchase_orders]

    # Bookkeeping

    async def _replace_product(self, updated: ProcessedProduct):
        previous = self.get_product(updated.id)
        self.products = [updated if p.id == updated.id else p for p in self.products]
        self.purchase_orders = [
            po.model_copy(update={"product": updated}) if po.product.id == updated.id else po
            for po in self.purchase_orders
        ]
        metrics_collector.record_status_counts([p.status for p in self.products])
        await self._notify_status_change(previous.status, updated)

    async def _notify_status_change(self, previous_status: Optional[str], product: ProcessedProduct):
        if product.status == previous_status or product.status == InventoryStatus.HEALTHY:
            return

        level = "critical" if product.status == InventoryStatus.CRITICAL else "warning"
        await alert_manager.send_alert(
            level,
            f"{product.name} stock is {InventoryStatus(product.status).value}",
            {
                "variant_id": product.id,
                "sku": product.sku,
                "total_stock": product.total_stock,
                "days_until_stockout": product.days_until_stockout,
                "reorder_point_units": product.alert_setting.reorder_point_units,
            }
        )

def _record_sale(
    sales_history: List[SalesHistoryEntry],
    variant_id: str,
    quantity: int
) -> List[SalesHistoryEntry]:
    """Add units to today's entry, creating it when the day has no sales yet"""
    today = date.today()
    history = list(sales_history)
    if history and history[-1].date == today:
        last = history[-1]
        history[-1] = last.model_copy(update={"units_sold": last.units_sold + quantity})
    else:
        history.append(SalesHistoryEntry(variant_id=variant_id, date=today, units_sold=quantity))
    return history

def _distribute_stock_change(inventory: List[InventoryLevel], change: int) -> List[InventoryLevel]:
    """
    Spread a stock change over fulfillment centers

    Increases land in the first owned center. Decreases drain owned centers
    in order, then supplier stock.
    """
    levels = [level.model_copy() for level in inventory]
    if not levels:
        raise ValueError("Product has no fulfillment center to hold stock")
    owned = [level for level in levels if not is_supplier_center(level.center_id)]
    supplier = [level for level in levels if is_supplier_center(level.center_id)]

    if change > 0:
        target = owned[0] if owned else levels[0]
        target.stock += change
        return levels

    remaining = -change
    for level in owned + supplier:
        taken = min(level.stock, remaining)
        level.stock -= taken
        remaining -= taken
        if remaining == 0:
            break

    if remaining:
        raise ValueError("Stock change exceeds available units")
    return levels
