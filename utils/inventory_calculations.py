"""
Stock status and sales velocity derivations
"""

import math
from typing import List, Dict, Any, Optional
from datetime import datetime, time, timedelta

import numpy as np

from models.schemas import (
    AlertSetting, InventoryLevel, InventoryStatus, ProcessedProduct,
    SalesHistoryEntry, StockEventType, StockHistoryLogEntry
)

def calculate_total_stock(inventory: List[InventoryLevel]) -> int:
    return sum(level.stock for level in inventory)

def calculate_sales_velocity(sales_history: List[SalesHistoryEntry], window_days: int = 30) -> float:
    """Mean daily units over the trailing window; 0 with no history"""
    recent = sales_history[-window_days:]
    if not recent:
        return 0.0
    return float(np.mean([entry.units_sold for entry in recent]))

def calculate_days_until_stockout(total_stock: int, sales_velocity: float) -> float:
    if sales_velocity > 0:
        return total_stock / sales_velocity
    return math.inf

def determine_inventory_status(
    total_stock: int,
    days_until_stockout: float,
    alert_setting: AlertSetting
) -> InventoryStatus:
    """
    Classify stock health

    The reorder point wins over days of cover: a product at or below its
    reorder point is Critical no matter how slowly it sells.
    """
    if total_stock <= alert_setting.reorder_point_units:
        return InventoryStatus.CRITICAL
    if days_until_stockout < alert_setting.low_stock_threshold_days:
        return InventoryStatus.LOW
    return InventoryStatus.HEALTHY

def round_velocity(sales_velocity: float) -> float:
    return round(sales_velocity, 1)

def floor_days(days_until_stockout: float) -> Optional[int]:
    if math.isinf(days_until_stockout):
        return None
    return math.floor(days_until_stockout)

def derive_stock_figures(
    total_stock: int,
    sales_velocity: float,
    alert_setting: AlertSetting
) -> Dict[str, Any]:
    """
    Compute the derived fields stored on a ProcessedProduct

    Args:
        total_stock: Units on hand across all centers
        sales_velocity: Unrounded units sold per day
        alert_setting: Thresholds for the variant

    Returns:
        Dict with sales_velocity, days_until_stockout and status
    """
    days = calculate_days_until_stockout(total_stock, sales_velocity)
    return {
        "sales_velocity": round_velocity(sales_velocity),
        "days_until_stockout": floor_days(days),
        # classification uses the unfloored projection
        "status": determine_inventory_status(total_stock, days, alert_setting),
    }

def reconstruct_stock_history(
    variant_id: str,
    total_stock: int,
    sales_history: List[SalesHistoryEntry],
    adjustments: Optional[List[Dict[str, Any]]] = None,
    now: Optional[datetime] = None,
    recent_sales: int = 5,
    history_days: int = 90
) -> List[StockHistoryLogEntry]:
    """
    Rebuild a stock movement log that ends at the current total

    Only the most recent sales and the recorded adjustments are known, so the
    log walks backwards from total_stock undoing each movement; whatever is
    left becomes the Initial Stock entry dated history_days ago.

    Args:
        variant_id: Variant the log belongs to
        total_stock: Current units on hand
        sales_history: Chronological daily sales
        adjustments: Recorded manual adjustments (id, timestamp, change, user, reason)
        now: Reference time for the Initial Stock entry
        recent_sales: How many of the latest sales to include
        history_days: Age of the Initial Stock entry in days

    Returns:
        Log entries in chronological order
    """
    now = now or datetime.now()
    events = []

    latest_sales = sales_history[-recent_sales:] if recent_sales > 0 else []
    for i, sale in enumerate(reversed(latest_sales)):
        events.append({
            "id": f"{variant_id}-sale-{i}",
            "timestamp": datetime.combine(sale.date, time.min) + timedelta(seconds=i),
            "type": StockEventType.SALE,
            "change": -sale.units_sold,
            "user": "System",
            "reason": None,
        })

    for adjustment in adjustments or []:
        events.append({
            "id": adjustment["id"],
            "timestamp": adjustment["timestamp"],
            "type": StockEventType.MANUAL_ADJUSTMENT,
            "change": adjustment["change"],
            "user": adjustment.get("user", "System"),
            "reason": adjustment.get("reason"),
        })

    events.sort(key=lambda e: e["timestamp"], reverse=True)

    running = total_stock
    log = []
    for event in events:
        log.append(StockHistoryLogEntry(new_total=running, **event))
        running -= event["change"]

    log.append(StockHistoryLogEntry(
        id=f"{variant_id}-init",
        timestamp=now - timedelta(days=history_days),
        type=StockEventType.INITIAL_STOCK,
        change=running,
        new_total=running,
        user="System",
    ))

    log.reverse()
    return log

def recalculate_product_state(
    product: ProcessedProduct,
    sales_history: Optional[List[SalesHistoryEntry]] = None,
    window_days: int = 30
) -> ProcessedProduct:
    """
    Recompute derived fields after a local change

    Always uses the simple trailing average, so a Pro forecast is replaced
    by the plain mean until the next full fetch.
    """
    history = sales_history if sales_history is not None else product.sales_history
    velocity = calculate_sales_velocity(history, window_days)
    figures = derive_stock_figures(product.total_stock, velocity, product.alert_setting)
    return product.model_copy(update={"sales_history": list(history), **figures})
