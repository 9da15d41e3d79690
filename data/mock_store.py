"""
In-memory tables backing the inventory dashboard

Each table mirrors what a storefront backend would keep per variant. Readers
receive copies, so callers may mutate what they get without touching the
tables; only the explicit upsert/delete methods write back.
"""

import logging
from typing import List, Dict, Any, Optional
from datetime import date, datetime, timedelta

import numpy as np

from models.schemas import (
    ProductVariant, InventoryLevel, AlertSetting, SalesHistoryEntry,
    ExternalInventoryMapping, ShopifyPromotion
)

logger = logging.getLogger(__name__)

WEEKEND_MULTIPLIER = 1.3
MONDAY_MULTIPLIER = 0.8
PROMOTION_MULTIPLIER = 2.5

VARIANTS = [
    {
        "id": "prod_1",
        "shopify_variant_id": "gid://shopify/ProductVariant/1001",
        "name": "Pro Wireless Headphones",
        "sku": "PWH-001-BLK",
        "image_url": "https://picsum.photos/seed/headphones/400/400",
    },
    {
        "id": "prod_2",
        "shopify_variant_id": "gid://shopify/ProductVariant/1002",
        "name": "Smart Fitness Tracker",
        "sku": "SFT-2024-GRY",
        "image_url": "https://picsum.photos/seed/tracker/400/400",
    },
    {
        "id": "prod_3",
        "shopify_variant_id": "gid://shopify/ProductVariant/1003",
        "name": "Organic Matcha Powder",
        "sku": "OMP-500G-JP",
        "image_url": "https://picsum.photos/seed/matcha/400/400",
    },
    {
        "id": "prod_4",
        "shopify_variant_id": "gid://shopify/ProductVariant/1004",
        "name": "Minimalist Leather Wallet",
        "sku": "MLW-BRN-01",
        "image_url": "https://picsum.photos/seed/wallet/400/400",
    },
    {
        "id": "prod_5",
        "shopify_variant_id": "gid://shopify/ProductVariant/1005",
        "name": "Insulated Water Bottle",
        "sku": "IWB-SS-32OZ",
        "image_url": "https://picsum.photos/seed/bottle/400/400",
    },
]

INVENTORY_LEVELS = [
    {"variant_id": "prod_1", "center_id": "fc_1", "center_name": "East Coast FC", "stock": 120},
    {"variant_id": "prod_1", "center_id": "fc_2", "center_name": "West Coast FC", "stock": 85},
    {"variant_id": "prod_2", "center_id": "fc_1", "center_name": "East Coast FC", "stock": 45},
    {"variant_id": "prod_2", "center_id": "fc_3", "center_name": "Midwest FC", "stock": 30},
    {"variant_id": "prod_3", "center_id": "fc_2", "center_name": "West Coast FC", "stock": 350},
    {"variant_id": "prod_3", "center_id": "fc_3", "center_name": "Midwest FC", "stock": 200},
    # prod_4 is also stocked by an external supplier, see SUPPLIER_MAPPINGS
    {"variant_id": "prod_4", "center_id": "fc_1", "center_name": "East Coast FC", "stock": 25},
    {"variant_id": "prod_5", "center_id": "fc_1", "center_name": "East Coast FC", "stock": 150},
    {"variant_id": "prod_5", "center_id": "fc_2", "center_name": "West Coast FC", "stock": 200},
    {"variant_id": "prod_5", "center_id": "fc_3", "center_name": "Midwest FC", "stock": 180},
]

ALERT_SETTINGS = [
    {
        "variant_id": "prod_1", "reorder_point_units": 50, "reorder_quantity": 150,
        "low_stock_threshold_days": 14, "supplier_lead_time_days": 10,
        "alert_email_list": ["owner@momentum.com", "ops@momentum.com"],
        "alert_sms_list": ["+15551234567"],
        "alert_slack_list": ["#inventory-critical"],
    },
    {
        "variant_id": "prod_2", "reorder_point_units": 20, "reorder_quantity": 100,
        "low_stock_threshold_days": 7, "supplier_lead_time_days": 7,
        "alert_email_list": ["owner@momentum.com"],
        "alert_sms_list": [],
        "alert_slack_list": [],
    },
    {
        "variant_id": "prod_3", "reorder_point_units": 100, "reorder_quantity": 300,
        "low_stock_threshold_days": 21, "supplier_lead_time_days": 14,
        "alert_email_list": ["purchasing@momentum.com"],
        "alert_sms_list": [],
        "alert_slack_list": ["#inventory-general"],
    },
    {
        "variant_id": "prod_4", "reorder_point_units": 15, "reorder_quantity": 50,
        "low_stock_threshold_days": 10, "supplier_lead_time_days": 20,
        "alert_email_list": ["owner@momentum.com", "leathergoods@momentum.com"],
        "alert_sms_list": [],
        "alert_slack_list": [],
    },
    {
        "variant_id": "prod_5", "reorder_point_units": 100, "reorder_quantity": 250,
        "low_stock_threshold_days": 14, "supplier_lead_time_days": 5,
        "alert_email_list": ["owner@momentum.com"],
        "alert_sms_list": ["+15551234567"],
        "alert_slack_list": [],
    },
]

# (base daily units, volatility) per variant
SALES_PROFILES = {
    "prod_1": (8, 5),    # steady seller
    "prod_2": (12, 4),   # consistent
    "prod_3": (19, 6),   # high volume
    "prod_4": (2, 3),    # slow mover
    "prod_5": (15, 7),   # popular, with a promo spike
}

SUPPLIER_MAPPINGS = [
    {
        "variant_id": "prod_4",
        "supplier_name": "Artisan Leather Goods",
        "supplier_api_url": "https://api.artisanleather.com/inventory",
        "supplier_sku": "ALG-WALLET-MIN-BRN",
        "cost_per_item": 12.50,
    }
]

SENT_PURCHASE_ORDERS = [
    {"variant_id": "prod_2", "quantity": 50},
]

class MockDataStore:
    """Seeded in-memory tables keyed by variant id"""

    def __init__(self, seed: Optional[int] = None, today: Optional[date] = None):
        self.today = today or date.today()
        self.rng = np.random.default_rng(seed)

        self.variants = [ProductVariant(**row) for row in VARIANTS]
        self.inventory_levels = [InventoryLevel(**row) for row in INVENTORY_LEVELS]
        self.alert_settings: Dict[str, AlertSetting] = {
            row["variant_id"]: AlertSetting(**row) for row in ALERT_SETTINGS
        }
        self.supplier_mappings: Dict[str, ExternalInventoryMapping] = {
            row["variant_id"]: ExternalInventoryMapping(**row) for row in SUPPLIER_MAPPINGS
        }
        self.promotions = [
            ShopifyPromotion(
                variant_id="prod_5",
                title="Summer Hydration Sale",
                discount_code="SUMMER20",
                start_date=self.today - timedelta(days=20),
                end_date=self.today - timedelta(days=15),
            )
        ]
        self.stock_adjustments = [
            {
                "id": "prod_2-adj-1",
                "variant_id": "prod_2",
                "timestamp": datetime.combine(self.today - timedelta(days=10), datetime.now().time()),
                "change": 10,
                "user": "Jane Doe",
                "reason": "Stock Take Correction",
            }
        ]

        self.sales_history: List[SalesHistoryEntry] = []
        for variant_id, (base_sales, volatility) in SALES_PROFILES.items():
            self.sales_history.extend(
                self.generate_sales_history(
                    variant_id, base_sales, volatility, self.get_promotions(variant_id)
                )
            )

        logger.info(
            f"Mock data store seeded with {len(self.variants)} variants "
            f"and {len(self.sales_history)} sales entries"
        )

    def generate_sales_history(
        self,
        variant_id: str,
        base_sales: float,
        volatility: float,
        promotions: Optional[List[ShopifyPromotion]] = None,
        days: int = 90
    ) -> List[SalesHistoryEntry]:
        """
        Generate one sales entry per day, ending today

        Args:
            variant_id: Variant the sales belong to
            base_sales: Average units sold on an ordinary day
            volatility: Width of the uniform noise band around the base
            promotions: Promotions that boost sales while active
            days: Number of days to generate

        Returns:
            Chronological daily sales entries
        """
        promotions = promotions or []
        history = []

        for offset in range(days - 1, -1, -1):
            day = self.today - timedelta(days=offset)

            multiplier = 1.0
            if day.weekday() >= 5:
                multiplier = WEEKEND_MULTIPLIER
            elif day.weekday() == 0:
                multiplier = MONDAY_MULTIPLIER

            if any(p.is_active_on(day) for p in promotions):
                multiplier *= PROMOTION_MULTIPLIER

            raw = (base_sales + (self.rng.random() - 0.5) * volatility) * multiplier
            # half-up rounding
            units_sold = max(0, int(np.floor(raw + 0.5)))

            history.append(SalesHistoryEntry(variant_id=variant_id, date=day, units_sold=units_sold))

        return history

    def get_variants(self) -> List[ProductVariant]:
        return [v.model_copy() for v in self.variants]

    def get_variant(self, variant_id: str) -> Optional[ProductVariant]:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant.model_copy()
        return None

    def get_inventory_levels(self, variant_id: str) -> List[InventoryLevel]:
        return [level.model_copy() for level in self.inventory_levels if level.variant_id == variant_id]

    def get_alert_setting(self, variant_id: str) -> AlertSetting:
        return self.alert_settings[variant_id].model_copy(deep=True)

    def get_sales_history(self, variant_id: str) -> List[SalesHistoryEntry]:
        return [entry.model_copy() for entry in self.sales_history if entry.variant_id == variant_id]

    def get_promotions(self, variant_id: str) -> List[ShopifyPromotion]:
        return [p.model_copy() for p in self.promotions if p.variant_id == variant_id]

    def get_supplier_mapping(self, variant_id: str) -> Optional[ExternalInventoryMapping]:
        mapping = self.supplier_mappings.get(variant_id)
        return mapping.model_copy() if mapping else None

    def get_stock_adjustments(self, variant_id: str) -> List[Dict[str, Any]]:
        return [dict(adj) for adj in self.stock_adjustments if adj["variant_id"] == variant_id]

    def get_sent_purchase_orders(self) -> List[Dict[str, Any]]:
        return [dict(po) for po in SENT_PURCHASE_ORDERS]

    def upsert_alert_setting(self, setting: AlertSetting):
        if setting.variant_id not in self.alert_settings:
            raise KeyError(f"Unknown variant: {setting.variant_id}")
        self.alert_settings[setting.variant_id] = setting.model_copy(deep=True)
        logger.debug(f"Alert setting saved for {setting.variant_id}")

    def upsert_supplier_mapping(self, mapping: ExternalInventoryMapping):
        if self.get_variant(mapping.variant_id) is None:
            raise KeyError(f"Unknown variant: {mapping.variant_id}")
        self.supplier_mappings[mapping.variant_id] = mapping.model_copy()
        logger.info(f"Supplier mapping saved for {mapping.variant_id}: {mapping.supplier_name}")

    def delete_supplier_mapping(self, variant_id: str) -> bool:
        removed = self.supplier_mappings.pop(variant_id, None)
        if removed:
            logger.info(f"Supplier mapping removed for {variant_id}")
        return removed is not None
