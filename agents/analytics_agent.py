"""
Analytics Agent
Chart data, product rankings and stock reports over processed products
"""

import logging
import math
from typing import List, Dict, Any, Optional, Tuple
from datetime import date, timedelta

import pandas as pd
import numpy as np

from models.schemas import InventoryStatus, ProcessedProduct, SubscriptionTier
from utils.monitoring import monitor_agent_operation
from config import settings

logger = logging.getLogger(__name__)

PRESET_LOOKBACK_DAYS = {"7D": 6, "30D": 29, "90D": 89}
SORT_KEYS = ("name", "total_stock", "sales_velocity", "days_until_stockout")
MAX_X_AXIS_LABELS = 6
TREND_SLOPE_THRESHOLD = 0.1

class AnalyticsAgent:
    """Agent for dashboard analytics"""

    def visible_products(
        self,
        products: List[ProcessedProduct],
        tier: SubscriptionTier,
        limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Apply the plan's product limit

        Returns:
            Visible products plus how many are hidden behind the paywall
        """
        limit = settings.starter_tier_limit if limit is None else limit
        visible = products[:limit] if SubscriptionTier(tier) == SubscriptionTier.STARTER else list(products)
        return {
            "products": visible,
            "hidden_count": len(products) - len(visible),
            "limit": limit if SubscriptionTier(tier) == SubscriptionTier.STARTER else None,
        }

    def at_risk_products(self, products: List[ProcessedProduct]) -> List[ProcessedProduct]:
        """Low and Critical products, soonest stockout first"""
        at_risk = [
            p for p in products
            if p.status in (InventoryStatus.LOW, InventoryStatus.CRITICAL)
        ]
        return sorted(at_risk, key=lambda p: _days_sort_value(p.days_until_stockout))

    def status_summary(self, products: List[ProcessedProduct]) -> Dict[str, int]:
        summary = {status.value: 0 for status in InventoryStatus}
        for product in products:
            summary[InventoryStatus(product.status).value] += 1
        return summary

    def sort_products(
        self,
        products: List[ProcessedProduct],
        key: str = "name",
        direction: str = "asc"
    ) -> List[ProcessedProduct]:
        """
        Sort products for the products table

        Args:
            products: Products to sort
            key: name, total_stock, sales_velocity or days_until_stockout
            direction: asc or desc

        Returns:
            New sorted list; names compare case-insensitively and products
            that are not selling sort as the longest time to stockout
        """
        if key not in SORT_KEYS:
            raise ValueError(f"Unsupported sort key: {key}")
        if direction not in ("asc", "desc"):
            raise ValueError(f"Unsupported sort direction: {direction}")

        def sort_value(product: ProcessedProduct):
            if key == "name":
                return product.name.lower()
            if key == "days_until_stockout":
                return _days_sort_value(product.days_until_stockout)
            return getattr(product, key)

        return sorted(products, key=sort_value, reverse=direction == "desc")

    # Sales chart

    def preset_range(self, preset: str, today: Optional[date] = None) -> Tuple[date, date]:
        if preset not in PRESET_LOOKBACK_DAYS:
            raise ValueError(f"Unknown range preset: {preset}")
        end = today or date.today()
        return end - timedelta(days=PRESET_LOOKBACK_DAYS[preset]), end

    def validate_custom_range(self, start: Optional[date], end: Optional[date]) -> Tuple[date, date]:
        if start is None or end is None:
            raise ValueError("Please select both a start and end date.")
        if start > end:
            raise ValueError("Start date cannot be after end date.")
        return start, end

    @monitor_agent_operation("analytics", "sales_chart")
    def sales_chart_data(self, product: ProcessedProduct, start: date, end: date) -> Dict[str, Any]:
        """
        Daily sales points for a product over an inclusive date range

        Args:
            product: Product to chart
            start: First day shown
            end: Last day shown

        Returns:
            Points annotated with active promotions, axis hints and trend
        """
        points = []
        for entry in product.sales_history:
            if not start <= entry.date <= end:
                continue
            promotion = next((p for p in product.promotions if p.is_active_on(entry.date)), None)
            points.append({
                "date": entry.date.isoformat(),
                "units_sold": entry.units_sold,
                "promotion": promotion.title if promotion else None,
            })

        units = [p["units_sold"] for p in points]
        max_units = max(units, default=0)

        labels = []
        if len(points) >= 2:
            step = max(1, len(points) // MAX_X_AXIS_LABELS)
            labels = [points[i]["date"] for i in range(0, len(points), step)]

        return {
            "variant_id": product.id,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "points": points,
            "total_units": int(sum(units)),
            "max_value": math.ceil(max_units * 1.2) or 10,
            "x_axis_labels": labels,
            "trend": self._calculate_trend(np.array(units, dtype=float)),
        }

    def _calculate_trend(self, values: np.ndarray) -> str:
        """Calculate trend from time series data"""
        if len(values) < 2:
            return "insufficient_data"

        x = np.arange(len(values))
        slope = np.polyfit(x, values, 1)[0]

        if slope > TREND_SLOPE_THRESHOLD:
            return "increasing"
        elif slope < -TREND_SLOPE_THRESHOLD:
            return "decreasing"
        return "stable"

    def recent_sales(self, product: ProcessedProduct, limit: int = 10) -> List[Dict[str, Any]]:
        return [
            {"date": entry.date.isoformat(), "units_sold": entry.units_sold}
            for entry in reversed(product.sales_history[-limit:])
        ]

    # Reports

    @monitor_agent_operation("analytics", "sku_performance")
    def sku_performance(
        self,
        products: List[ProcessedProduct],
        days: int = 30,
        today: Optional[date] = None
    ) -> List[Dict[str, Any]]:
        """
        Units sold per SKU over a trailing window, best sellers first

        Args:
            products: Products to rank
            days: Window length in days, ending today
            today: Last day of the window

        Returns:
            One row per SKU with totals, daily average and share of units
        """
        today = today or date.today()
        window_start = today - timedelta(days=days - 1)

        rows = [
            {"variant_id": p.id, "sku": p.sku, "name": p.name, "date": entry.date, "units_sold": entry.units_sold}
            for p in products
            for entry in p.sales_history
            if window_start <= entry.date <= today
        ]
        if not rows:
            return []

        df = pd.DataFrame(rows)
        summary = (
            df.groupby(["variant_id", "sku", "name"], as_index=False)
            .agg(units_sold=("units_sold", "sum"), peak_day=("units_sold", "max"))
        )
        summary["average_per_day"] = (summary["units_sold"] / days).round(1)
        total = summary["units_sold"].sum()
        summary["share_of_units"] = (summary["units_sold"] / total * 100).round(1) if total else 0.0
        summary = summary.sort_values(["units_sold", "name"], ascending=[False, True])

        return [
            {
                "variant_id": row.variant_id,
                "sku": row.sku,
                "name": row.name,
                "units_sold": int(row.units_sold),
                "peak_day": int(row.peak_day),
                "average_per_day": float(row.average_per_day),
                "share_of_units": float(row.share_of_units),
            }
            for row in summary.itertuples(index=False)
        ]

    def inventory_by_center(self, products: List[ProcessedProduct]) -> List[Dict[str, Any]]:
        """Units held per fulfillment center across all products"""
        rows = [level.model_dump() for p in products for level in p.inventory]
        if not rows:
            return []

        df = pd.DataFrame(rows)
        grouped = (
            df.groupby(["center_id", "center_name"], as_index=False)
            .agg(stock=("stock", "sum"), products=("variant_id", "nunique"))
            .sort_values("stock", ascending=False)
        )
        return [
            {
                "center_id": row.center_id,
                "center_name": row.center_name,
                "stock": int(row.stock),
                "products": int(row.products),
            }
            for row in grouped.itertuples(index=False)
        ]

    def forecast_report(self, products: List[ProcessedProduct], today: Optional[date] = None) -> List[Dict[str, Any]]:
        """
        Projected stockout and latest reorder date per product

        The reorder-by date is the projected stockout minus the supplier lead
        time; None for products that are not selling.
        """
        today = today or date.today()
        report = []
        for product in products:
            days = product.days_until_stockout
            stockout_date = today + timedelta(days=days) if days is not None else None
            reorder_by = (
                stockout_date - timedelta(days=product.alert_setting.supplier_lead_time_days)
                if stockout_date else None
            )
            report.append({
                "variant_id": product.id,
                "name": product.name,
                "status": InventoryStatus(product.status).value,
                "sales_velocity": product.sales_velocity,
                "days_until_stockout": days,
                "projected_stockout_date": stockout_date.isoformat() if stockout_date else None,
                "reorder_by_date": reorder_by.isoformat() if reorder_by else None,
                "reorder_overdue": bool(reorder_by and reorder_by < today),
                "analysis": product.analysis,
            })
        return sorted(report, key=lambda r: _days_sort_value(r["days_until_stockout"]))

def _days_sort_value(days: Optional[int]) -> float:
    return math.inf if days is None else days
