"""
Data models for the inventory dashboard tables and derived aggregates
"""

from typing import List, Optional
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field, computed_field
from enum import Enum

class InventoryStatus(str, Enum):
    HEALTHY = "Healthy"
    LOW = "Low"
    CRITICAL = "Critical"

class StockEventType(str, Enum):
    INITIAL_STOCK = "Initial Stock"
    SALE = "Sale"
    MANUAL_ADJUSTMENT = "Manual Adjustment"

class SubscriptionTier(str, Enum):
    STARTER = "Starter"
    PRO = "Pro"

class AuthStatus(str, Enum):
    LOADING = "loading"
    LOGGED_OUT = "logged_out"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    LOGGED_IN = "logged_in"

class PurchaseOrderStatus(str, Enum):
    DRAFT = "Draft"
    SENT = "Sent"
    RECEIVED = "Received"

class AlertChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    SLACK = "slack"

class ProFeature(str, Enum):
    AI_FORECAST = "ai_forecast"
    REORDER_SUGGESTIONS = "reorder_suggestions"
    SMS_ALERTS = "sms_alerts"
    SLACK_ALERTS = "slack_alerts"
    TEST_ALERTS = "test_alerts"
    SUPPLIER_INTEGRATION = "supplier_integration"
    ANALYTICS = "analytics"

ADJUSTMENT_REASONS = [
    "Stock Take Correction",
    "Damaged Goods",
    "Returned by Customer",
    "Promotion/Marketing",
    "Supplier Error",
    "Other",
]

# Table models
class ProductVariant(BaseModel):
    """Product variant as listed in the storefront"""
    id: str = Field(..., description="Variant identifier")
    shopify_variant_id: str = Field(..., description="Storefront variant GID")
    sku: str = Field(..., description="Stock keeping unit")
    name: str = Field(..., description="Display name")
    image_url: str = Field("", description="Product image URL")

class InventoryLevel(BaseModel):
    """Stock held for a variant at one fulfillment center"""
    variant_id: str
    center_id: str = Field(..., description="Fulfillment center identifier")
    center_name: str = Field(..., description="Fulfillment center name")
    stock: int = Field(..., ge=0, description="Units on hand")

class AlertSetting(BaseModel):
    """Reorder thresholds and alert recipients for a variant"""
    variant_id: str
    reorder_point_units: int = Field(..., ge=0, description="Critical at or below this stock")
    reorder_quantity: int = Field(..., gt=0, description="Units to order when reordering")
    low_stock_threshold_days: int = Field(..., ge=0, description="Low when fewer days of cover remain")
    supplier_lead_time_days: int = Field(..., ge=0, description="Days from order to arrival")
    alert_email_list: List[str] = Field(default_factory=list)
    alert_sms_list: List[str] = Field(default_factory=list)
    alert_slack_list: List[str] = Field(default_factory=list)

    def recipient_count(self) -> int:
        return len(self.alert_email_list) + len(self.alert_sms_list) + len(self.alert_slack_list)

class SalesHistoryEntry(BaseModel):
    variant_id: str
    date: date
    units_sold: int = Field(..., ge=0)

class ExternalInventoryMapping(BaseModel):
    """Link between a variant and a third-party supplier feed"""
    variant_id: str
    supplier_name: str = Field(..., min_length=1)
    supplier_api_url: str = Field(..., min_length=1)
    supplier_sku: str = Field(..., min_length=1)
    cost_per_item: Optional[float] = Field(None, ge=0, description="Unit cost charged by the supplier")

class ShopifyPromotion(BaseModel):
    variant_id: str
    start_date: date
    end_date: date
    title: str
    discount_code: Optional[str] = None

    def is_active_on(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

class StockHistoryLogEntry(BaseModel):
    """Single append-only stock movement"""
    model_config = ConfigDict(use_enum_values=True)

    id: str
    timestamp: datetime
    type: StockEventType
    change: int
    new_total: int
    user: str = Field("System")
    reason: Optional[str] = None

# Derived aggregates
class ProcessedProduct(ProductVariant):
    """Variant joined with all of its tables plus derived stock figures"""
    model_config = ConfigDict(use_enum_values=True)

    inventory: List[InventoryLevel] = Field(default_factory=list)
    sales_history: List[SalesHistoryEntry] = Field(default_factory=list)
    stock_history: List[StockHistoryLogEntry] = Field(default_factory=list)
    alert_setting: AlertSetting
    promotions: List[ShopifyPromotion] = Field(default_factory=list)
    external_inventory_mapping: Optional[ExternalInventoryMapping] = None
    total_stock: int = Field(0, description="Sum of all inventory levels")
    sales_velocity: float = Field(0.0, description="Average units sold per day")
    days_until_stockout: Optional[int] = Field(None, description="Whole days of cover; None when not selling")
    status: InventoryStatus = Field(InventoryStatus.HEALTHY)
    analysis: Optional[str] = Field(None, description="Forecast commentary")

class ForecastResult(BaseModel):
    sales_velocity: float
    analysis: str

class PurchaseOrder(BaseModel):
    """Replenishment order for a single product"""
    model_config = ConfigDict(use_enum_values=True)

    id: str
    product: ProcessedProduct
    quantity: int = Field(..., gt=0)
    status: PurchaseOrderStatus = Field(PurchaseOrderStatus.DRAFT)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @computed_field
    @property
    def estimated_cost(self) -> Optional[float]:
        mapping = self.product.external_inventory_mapping
        if mapping is None or mapping.cost_per_item is None:
            return None
        return round(mapping.cost_per_item * self.quantity, 2)

# Account models
class User(BaseModel):
    name: str
    email: str
    avatar_url: str

class Store(BaseModel):
    name: str
    domain: str
