import logging
import time
from contextlib import asynccontextmanager
from typing import Dict, Any, Optional
from datetime import date, datetime

from fastapi import FastAPI, HTTPException, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from agents.account_agent import AccountAgent, FeatureLockedError
from agents.analytics_agent import AnalyticsAgent
from agents.forecast_agent import ForecastAgent
from agents.inventory_agent import InventoryAgent, ProductNotFoundError, PurchaseOrderNotFoundError
from agents.orchestrator import InventoryOrchestrator
from data.mock_store import MockDataStore
from models.schemas import (
    ADJUSTMENT_REASONS, AlertChannel, InventoryStatus, ProFeature,
    PurchaseOrderStatus, SubscriptionTier
)
from utils.logging_config import log_request, setup_logging
from utils.monitoring import (
    alert_manager, health_checker, init_monitoring, instrument_app, metrics_collector
)
from config import settings

logger = logging.getLogger(__name__)

# Global agent instances
inventory_agent: Optional[InventoryAgent] = None
account_agent: Optional[AccountAgent] = None
analytics_agent: Optional[AnalyticsAgent] = None

# Errors the endpoints let through to the exception handlers
NOT_FOUND_ERRORS = (ProductNotFoundError, PurchaseOrderNotFoundError)
PASSTHROUGH_ERRORS = (HTTPException, FeatureLockedError) + NOT_FOUND_ERRORS

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize agents on startup"""
    global inventory_agent, account_agent, analytics_agent

    setup_logging()
    init_monitoring()

    try:
        logger.info("Initializing inventory agents...")

        store = MockDataStore(seed=settings.mock_data_seed)
        forecast_agent = ForecastAgent()
        orchestrator = InventoryOrchestrator(store, forecast_agent)

        account_agent = AccountAgent()
        analytics_agent = AnalyticsAgent()
        inventory_agent = InventoryAgent(orchestrator, account_agent)

        health_checker.register_check("inventory", inventory_health_check)
        health_checker.register_check("gemini", forecast_agent.health_check)

        await inventory_agent.refetch_data()
        logger.info("All agents initialized successfully")

    except Exception as e:
        logger.error(f"Failed to initialize agents: {str(e)}")
        raise

    yield

    logger.info("Shutting down inventory agents...")

# Initialize FastAPI app
app = FastAPI(
    title="Inventory Dashboard API",
    description="Stock levels, low-stock alerts, sales analytics and AI forecasting for a storefront",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
instrument_app(app)

# Security
security = HTTPBearer()

# Request Models
class SaleRequest(BaseModel):
    quantity: int = Field(..., gt=0, description="Units sold")

class StockAdjustmentRequest(BaseModel):
    adjustment: int = Field(..., description="Signed change in units")
    reason: str = Field(ADJUSTMENT_REASONS[0], description="Reason for the adjustment")

class RecipientRequest(BaseModel):
    channel: AlertChannel = Field(..., description="email, sms or slack")
    value: str = Field(..., min_length=1, description="Address, phone number or channel")

class AlertSettingsUpdate(BaseModel):
    reorder_point_units: Optional[int] = Field(None, ge=0)
    reorder_quantity: Optional[int] = Field(None, gt=0)
    supplier_lead_time_days: Optional[int] = Field(None, ge=0)

class SupplierMappingRequest(BaseModel):
    supplier_name: str = Field(..., min_length=1)
    supplier_api_url: str = Field(..., min_length=1)
    supplier_sku: str = Field(..., min_length=1)
    cost_per_item: Optional[float] = Field(None, ge=0)

class TierRequest(BaseModel):
    tier: SubscriptionTier

# Authentication dependency
async def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)):
    if credentials.credentials != settings.api_key:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return credentials.credentials

def require_inventory_agent() -> InventoryAgent:
    if not inventory_agent:
        raise HTTPException(status_code=503, detail="Inventory agent not initialized")
    return inventory_agent

def require_account_agent() -> AccountAgent:
    if not account_agent:
        raise HTTPException(status_code=503, detail="Account agent not initialized")
    return account_agent

def require_analytics_agent() -> AnalyticsAgent:
    if not analytics_agent:
        raise HTTPException(status_code=503, detail="Analytics agent not initialized")
    return analytics_agent

def require_feature(feature: ProFeature):
    require_account_agent().require_feature(feature)

def check_result(result: Dict[str, Any], default_error: str = "Operation failed") -> Dict[str, Any]:
    if not result.get("success"):
        raise HTTPException(status_code=400, detail=result.get("error", default_error))
    return result

def tracked_product(variant_id: str):
    """Product lookup honouring the Starter tier item limit"""
    agent = require_inventory_agent()
    product = agent.get_product(variant_id)
    visible = require_analytics_agent().visible_products(agent.get_products(), require_account_agent().tier)
    if all(p.id != variant_id for p in visible["products"]):
        raise HTTPException(
            status_code=402,
            detail=f"Your current plan allows you to track {visible['limit']} items. Upgrade to Pro to see more."
        )
    return product

async def inventory_health_check():
    agent = require_inventory_agent()
    if agent.error:
        raise RuntimeError(agent.error)
    return agent.state()

@app.middleware("http")
async def record_request_metrics(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    metrics_collector.record_request(request.method, endpoint, response.status_code, duration)
    log_request(
        request.method, request.url.path, response.status_code, round(duration * 1000, 2),
        tier=account_agent.tier.value if account_agent else ""
    )
    return response

# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    try:
        if inventory_agent:
            report = await health_checker.run_checks()
            return {
                "status": report["overall_status"],
                "timestamp": datetime.now().isoformat(),
                "checks": report["checks"]
            }
        return {"status": "initializing", "timestamp": datetime.now().isoformat()}
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        return {"status": "unhealthy", "error": str(e), "timestamp": datetime.now().isoformat()}

# Session and subscription endpoints
@app.get("/api/v1/session")
async def get_session(token: str = Depends(verify_token)):
    """Current sign-in state, plan and unlocked features"""
    account = require_account_agent()
    return {**account.session(), "features": account.features()}

@app.post("/api/v1/auth/login")
async def login(token: str = Depends(verify_token)):
    return check_result(require_account_agent().login())

@app.post("/api/v1/auth/confirm")
async def confirm_email(token: str = Depends(verify_token)):
    return check_result(require_account_agent().confirm_email())

@app.post("/api/v1/auth/logout")
async def logout(token: str = Depends(verify_token)):
    return check_result(require_account_agent().logout())

@app.post("/api/v1/subscription/tier")
async def select_tier(request: TierRequest, token: str = Depends(verify_token)):
    """Select a plan; upgrading refetches products with Pro data"""
    try:
        result = require_account_agent().select_tier(request.tier)
        if result["changed"]:
            refetch = await require_inventory_agent().refetch_data()
            result["refetch"] = refetch
        return result

    except PASSTHROUGH_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Error selecting tier: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@app.post("/api/v1/subscription/finalize")
async def finalize_upgrade(token: str = Depends(verify_token)):
    return check_result(require_account_agent().finalize_upgrade())

# Inventory endpoints
@app.get("/api/v1/inventory")
async def list_inventory(
    sort_key: str = "name",
    direction: str = "asc",
    token: str = Depends(verify_token)
):
    """Products visible on the current plan"""
    try:
        agent = require_inventory_agent()
        analytics = require_analytics_agent()

        visible = analytics.visible_products(agent.get_products(), require_account_agent().tier)
        products = analytics.sort_products(visible["products"], sort_key, direction)

        return {
            **agent.state(),
            "products": products,
            "hidden_count": visible["hidden_count"],
            "tier_limit": visible["limit"],
            "summary": analytics.status_summary(visible["products"]),
        }

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PASSTHROUGH_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Error listing inventory: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@app.post("/api/v1/inventory/refresh")
async def refresh_inventory(token: str = Depends(verify_token)):
    """Recompose products from the data store"""
    result = await require_inventory_agent().refetch_data()
    if not result.get("success"):
        raise HTTPException(status_code=502, detail=result["error"])
    return result

@app.get("/api/v1/inventory/at-risk")
async def at_risk_inventory(token: str = Depends(verify_token)):
    """Low and Critical products, soonest stockout first"""
    agent = require_inventory_agent()
    analytics = require_analytics_agent()
    visible = analytics.visible_products(agent.get_products(), require_account_agent().tier)
    return {"products": analytics.at_risk_products(visible["products"])}

@app.get("/api/v1/inventory/adjustment-reasons")
async def adjustment_reasons(token: str = Depends(verify_token)):
    return {"reasons": ADJUSTMENT_REASONS}

@app.get("/api/v1/inventory/{variant_id}")
async def get_product(variant_id: str, token: str = Depends(verify_token)):
    """Full processed product"""
    return tracked_product(variant_id)

@app.get("/api/v1/inventory/{variant_id}/stock-history")
async def get_stock_history(variant_id: str, token: str = Depends(verify_token)):
    product = tracked_product(variant_id)
    return {"variant_id": variant_id, "total_stock": product.total_stock, "entries": product.stock_history}

@app.get("/api/v1/inventory/{variant_id}/recent-sales")
async def get_recent_sales(
    variant_id: str,
    limit: int = Query(10, gt=0, le=90),
    token: str = Depends(verify_token)
):
    """Latest daily sales, newest first"""
    product = tracked_product(variant_id)
    return {"variant_id": variant_id, "sales": require_analytics_agent().recent_sales(product, limit)}

@app.post("/api/v1/inventory/{variant_id}/sales")
async def simulate_sale(variant_id: str, request: SaleRequest, token: str = Depends(verify_token)):
    """Record a sale made today"""
    try:
        tracked_product(variant_id)
        result = await require_inventory_agent().simulate_sale(variant_id, request.quantity)
        return check_result(result, "Sale failed")

    except PASSTHROUGH_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Error simulating sale: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@app.post("/api/v1/inventory/{variant_id}/adjustments")
async def adjust_stock(variant_id: str, request: StockAdjustmentRequest, token: str = Depends(verify_token)):
    """Apply a manual stock correction"""
    try:
        tracked_product(variant_id)
        result = await require_inventory_agent().adjust_stock(variant_id, request.adjustment, request.reason)
        return check_result(result, "Adjustment failed")

    except PASSTHROUGH_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Error adjusting stock: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

# Alert endpoints
def _require_channel(channel: AlertChannel):
    if channel == AlertChannel.SMS:
        require_feature(ProFeature.SMS_ALERTS)
    elif channel == AlertChannel.SLACK:
        require_feature(ProFeature.SLACK_ALERTS)

@app.post("/api/v1/inventory/{variant_id}/alerts/recipients")
async def add_alert_recipient(variant_id: str, request: RecipientRequest, token: str = Depends(verify_token)):
    """Add an email, SMS or Slack recipient"""
    tracked_product(variant_id)
    _require_channel(request.channel)
    result = await require_inventory_agent().add_alert_recipient(variant_id, request.channel, request.value)
    return check_result(result)

@app.delete("/api/v1/inventory/{variant_id}/alerts/recipients/{channel}")
async def remove_alert_recipient(
    variant_id: str,
    channel: AlertChannel,
    value: str = Query(..., min_length=1),
    token: str = Depends(verify_token)
):
    tracked_product(variant_id)
    result = await require_inventory_agent().remove_alert_recipient(variant_id, channel, value)
    return check_result(result)

@app.patch("/api/v1/inventory/{variant_id}/alerts/settings")
async def update_alert_settings(variant_id: str, request: AlertSettingsUpdate, token: str = Depends(verify_token)):
    """Update reorder point, reorder quantity or supplier lead time"""
    try:
        tracked_product(variant_id)
        agent = require_inventory_agent()
        result: Dict[str, Any] = {"success": True, "product": agent.get_product(variant_id)}

        if request.reorder_point_units is not None:
            result = check_result(await agent.update_reorder_point(variant_id, request.reorder_point_units))
        if request.reorder_quantity is not None:
            result = check_result(await agent.update_reorder_quantity(variant_id, request.reorder_quantity))
        if request.supplier_lead_time_days is not None:
            result = check_result(await agent.update_supplier_lead_time(variant_id, request.supplier_lead_time_days))

        return result

    except PASSTHROUGH_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Error updating alert settings: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@app.post("/api/v1/inventory/{variant_id}/alerts/test")
async def send_test_alert(variant_id: str, token: str = Depends(verify_token)):
    """Send a test alert to every configured recipient"""
    tracked_product(variant_id)
    require_feature(ProFeature.TEST_ALERTS)
    return check_result(await require_inventory_agent().send_test_alert(variant_id))

# Supplier and forecasting endpoints
@app.put("/api/v1/inventory/{variant_id}/supplier")
async def add_supplier_mapping(variant_id: str, request: SupplierMappingRequest, token: str = Depends(verify_token)):
    """Link a product to a supplier stock feed"""
    try:
        tracked_product(variant_id)
        require_feature(ProFeature.SUPPLIER_INTEGRATION)
        result = await require_inventory_agent().add_supplier_mapping(
            variant_id,
            supplier_name=request.supplier_name,
            supplier_api_url=request.supplier_api_url,
            supplier_sku=request.supplier_sku,
            cost_per_item=request.cost_per_item
        )
        return check_result(result)

    except PASSTHROUGH_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Error adding supplier mapping: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@app.delete("/api/v1/inventory/{variant_id}/supplier")
async def remove_supplier_mapping(variant_id: str, token: str = Depends(verify_token)):
    tracked_product(variant_id)
    require_feature(ProFeature.SUPPLIER_INTEGRATION)
    return check_result(await require_inventory_agent().remove_supplier_mapping(variant_id))

@app.get("/api/v1/inventory/{variant_id}/reorder-suggestion")
async def get_reorder_suggestion(variant_id: str, token: str = Depends(verify_token)):
    """AI reorder advice for a Low or Critical product"""
    product = tracked_product(variant_id)
    require_feature(ProFeature.REORDER_SUGGESTIONS)
    if product.status == InventoryStatus.HEALTHY:
        raise HTTPException(status_code=400, detail="Reorder suggestions are only offered for low-stock products")
    return await require_inventory_agent().get_reorder_suggestion(variant_id)

# Purchase order endpoints
@app.get("/api/v1/purchase-orders")
async def list_purchase_orders(
    status: Optional[PurchaseOrderStatus] = None,
    token: str = Depends(verify_token)
):
    orders = require_inventory_agent().get_purchase_orders(status)
    return {"purchase_orders": orders, "count": len(orders)}

def tracked_purchase_order(po_id: str):
    """Purchase order lookup honouring the Starter tier item limit"""
    po = require_inventory_agent().get_purchase_order(po_id)
    tracked_product(po.product.id)
    return po

@app.post("/api/v1/purchase-orders/{po_id}/send")
async def send_purchase_order(po_id: str, token: str = Depends(verify_token)):
    tracked_purchase_order(po_id)
    return check_result(await require_inventory_agent().send_purchase_order(po_id))

@app.post("/api/v1/purchase-orders/{po_id}/receive")
async def receive_purchase_order(po_id: str, token: str = Depends(verify_token)):
    tracked_purchase_order(po_id)
    return check_result(await require_inventory_agent().receive_purchase_order(po_id))

# Analytics endpoints
@app.get("/api/v1/analytics/sales/{variant_id}")
async def sales_chart(
    variant_id: str,
    preset: str = "30D",
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    token: str = Depends(verify_token)
):
    """Daily sales for a preset (7D, 30D, 90D) or a custom date range"""
    require_feature(ProFeature.ANALYTICS)
    product = tracked_product(variant_id)
    analytics = require_analytics_agent()

    try:
        if start_date is not None or end_date is not None:
            start, end = analytics.validate_custom_range(start_date, end_date)
            preset = "Custom"
        else:
            start, end = analytics.preset_range(preset)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"preset": preset, **analytics.sales_chart_data(product, start, end)}

@app.get("/api/v1/analytics/sku-performance")
async def sku_performance(days: int = Query(30, gt=0, le=90), token: str = Depends(verify_token)):
    require_feature(ProFeature.ANALYTICS)
    products = require_inventory_agent().get_products()
    return {"days": days, "rows": require_analytics_agent().sku_performance(products, days)}

@app.get("/api/v1/analytics/forecast-report")
async def forecast_report(token: str = Depends(verify_token)):
    require_feature(ProFeature.ANALYTICS)
    products = require_inventory_agent().get_products()
    return {"rows": require_analytics_agent().forecast_report(products)}

@app.get("/api/v1/analytics/inventory-by-center")
async def inventory_by_center(token: str = Depends(verify_token)):
    agent = require_inventory_agent()
    analytics = require_analytics_agent()
    visible = analytics.visible_products(agent.get_products(), require_account_agent().tier)
    return {"centers": analytics.inventory_by_center(visible["products"])}

# Monitoring endpoints
@app.get("/api/v1/monitoring/alerts")
async def recent_alerts(limit: int = Query(50, gt=0, le=1000), token: str = Depends(verify_token)):
    """Stock alerts raised by status changes"""
    return {"alerts": alert_manager.get_recent_alerts(limit)}

# Error handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "timestamp": datetime.now().isoformat()},
        headers=getattr(exc, "headers", None)
    )

@app.exception_handler(ProductNotFoundError)
@app.exception_handler(PurchaseOrderNotFoundError)
async def not_found_handler(request, exc):
    return JSONResponse(
        status_code=404,
        content={"error": str(exc.args[0]) if exc.args else "Not found", "timestamp": datetime.now().isoformat()}
    )

@app.exception_handler(FeatureLockedError)
async def feature_locked_handler(request, exc):
    return JSONResponse(
        status_code=402,
        content={"error": str(exc), "feature": exc.feature.value, "timestamp": datetime.now().isoformat()}
    )

@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "timestamp": datetime.now().isoformat()}
    )

# Main entry point
if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
