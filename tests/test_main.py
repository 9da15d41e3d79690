"""
Tests for main FastAPI application
"""

import pytest
from datetime import date, timedelta
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient

import main
from agents.alert_agent import AlertAgent
from utils.monitoring import health_checker

def test_health_check(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "initializing"
    assert "timestamp" in data

def test_health_check_with_agents(client: TestClient, live_app, monkeypatch):
    """Test health check once the agents are running"""
    monkeypatch.setattr(health_checker, "checks", {})
    health_checker.register_check("inventory", main.inventory_health_check)

    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["checks"]["inventory"]["result"]["product_count"] == 5

def test_health_check_reports_fetch_error(client: TestClient, live_app, monkeypatch):
    monkeypatch.setattr(health_checker, "checks", {})
    health_checker.register_check("inventory", main.inventory_health_check)
    live_app.error = "Failed to fetch inventory data from the server."

    data = client.get("/health").json()
    assert data["status"] == "unhealthy"
    assert data["checks"]["inventory"]["status"] == "unhealthy"

def test_unauthorized_request(client: TestClient):
    """Test request without authentication"""
    response = client.get("/api/v1/inventory")
    assert response.status_code in (401, 403)

def test_invalid_api_key(client: TestClient):
    """Test request with invalid API key"""
    headers = {"Authorization": "Bearer invalid-key"}
    response = client.get("/api/v1/inventory", headers=headers)
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid API key"

def test_inventory_missing_agent(client: TestClient, auth_headers: dict):
    """Test inventory listing when the agent is not initialized"""
    with patch('main.inventory_agent', None):
        response = client.get("/api/v1/inventory", headers=auth_headers)
        assert response.status_code == 503
        assert response.json()["error"] == "Inventory agent not initialized"

class TestSession:
    """Tests for sign-in and subscription endpoints"""

    def test_login_flow(self, client: TestClient, auth_headers: dict, live_app):
        session = client.get("/api/v1/session", headers=auth_headers).json()
        assert session["status"] == "logged_out"
        assert session["tier"] == "Starter"
        assert session["features"]["ai_forecast"] is False

        response = client.post("/api/v1/auth/login", headers=auth_headers)
        assert response.json()["status"] == "awaiting_confirmation"

        response = client.post("/api/v1/auth/confirm", headers=auth_headers)
        assert response.json()["status"] == "logged_in"
        assert response.json()["user"]["email"] == "jane.doe@example.com"

        response = client.post("/api/v1/auth/login", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Already logged in"

        response = client.post("/api/v1/auth/logout", headers=auth_headers)
        assert response.json()["status"] == "logged_out"

    def test_confirm_without_login(self, client: TestClient, auth_headers: dict, live_app):
        response = client.post("/api/v1/auth/confirm", headers=auth_headers)
        assert response.status_code == 400

    def test_upgrade_refetches_pro_data(self, client: TestClient, auth_headers: dict, live_app):
        response = client.post("/api/v1/subscription/tier", json={"tier": "Pro"}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["changed"] is True
        assert data["is_previewing_upgrade"] is True
        assert data["refetch"]["success"] is True
        assert live_app.get_product("prod_4").total_stock == 100

        response = client.post("/api/v1/subscription/finalize", headers=auth_headers)
        assert response.json()["is_previewing_upgrade"] is False

    def test_selecting_current_tier(self, client: TestClient, auth_headers: dict, live_app):
        response = client.post("/api/v1/subscription/tier", json={"tier": "Starter"}, headers=auth_headers)

        assert response.json()["changed"] is False
        assert "refetch" not in response.json()

    def test_unknown_tier(self, client: TestClient, auth_headers: dict, live_app):
        response = client.post("/api/v1/subscription/tier", json={"tier": "Enterprise"}, headers=auth_headers)
        assert response.status_code == 422

class TestInventoryEndpoints:
    """Tests for inventory endpoints"""

    def test_list_inventory_starter(self, client: TestClient, auth_headers: dict, live_app):
        response = client.get("/api/v1/inventory", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert [p["id"] for p in data["products"]] == ["prod_3", "prod_1", "prod_2"]
        assert data["hidden_count"] == 2
        assert data["tier_limit"] == 3
        assert sum(data["summary"].values()) == 3
        assert data["tier"] == "Starter"

    def test_list_inventory_sorted(self, client: TestClient, auth_headers: dict, live_app):
        response = client.get(
            "/api/v1/inventory", params={"sort_key": "total_stock", "direction": "desc"}, headers=auth_headers
        )

        assert [p["total_stock"] for p in response.json()["products"]] == [550, 205, 75]

    def test_list_inventory_bad_sort(self, client: TestClient, auth_headers: dict, live_app):
        response = client.get("/api/v1/inventory", params={"sort_key": "price"}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Unsupported sort key: price"

    def test_list_inventory_pro(self, client: TestClient, auth_headers: dict, pro_app):
        data = client.get("/api/v1/inventory", headers=auth_headers).json()

        assert len(data["products"]) == 5
        assert data["hidden_count"] == 0
        assert data["tier_limit"] is None

    def test_refresh(self, client: TestClient, auth_headers: dict, live_app):
        response = client.post("/api/v1/inventory/refresh", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "product_count": 5}

    def test_refresh_failure(self, client: TestClient, auth_headers: dict, live_app):
        live_app.orchestrator.fetch_processed_products = AsyncMock(side_effect=RuntimeError("down"))

        response = client.post("/api/v1/inventory/refresh", headers=auth_headers)

        assert response.status_code == 502
        assert response.json()["error"] == "Failed to fetch inventory data from the server."

    def test_at_risk(self, client: TestClient, auth_headers: dict, live_app):
        data = client.get("/api/v1/inventory/at-risk", headers=auth_headers).json()

        assert [p["id"] for p in data["products"]] == ["prod_2"]

    def test_adjustment_reasons(self, client: TestClient, auth_headers: dict, live_app):
        data = client.get("/api/v1/inventory/adjustment-reasons", headers=auth_headers).json()

        assert data["reasons"][0] == "Stock Take Correction"
        assert len(data["reasons"]) == 6

    def test_get_product(self, client: TestClient, auth_headers: dict, live_app):
        response = client.get("/api/v1/inventory/prod_2", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total_stock"] == 75
        assert data["status"] == "Low"
        assert len(data["sales_history"]) == 90

    def test_get_unknown_product(self, client: TestClient, auth_headers: dict, live_app):
        response = client.get("/api/v1/inventory/prod_99", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "Product not found: prod_99"

    def test_product_beyond_starter_limit(self, client: TestClient, auth_headers: dict, live_app):
        response = client.get("/api/v1/inventory/prod_5", headers=auth_headers)

        assert response.status_code == 402
        assert "allows you to track 3 items" in response.json()["error"]

    def test_stock_history(self, client: TestClient, auth_headers: dict, live_app):
        data = client.get("/api/v1/inventory/prod_1/stock-history", headers=auth_headers).json()

        assert data["entries"][0]["type"] == "Initial Stock"
        assert data["entries"][-1]["new_total"] == data["total_stock"] == 205

    def test_recent_sales(self, client: TestClient, auth_headers: dict, live_app):
        response = client.get("/api/v1/inventory/prod_1/recent-sales", params={"limit": 3}, headers=auth_headers)

        assert response.status_code == 200
        sales = response.json()["sales"]
        assert len(sales) == 3
        assert sales[0]["date"] == date.today().isoformat()
        assert sales[1]["date"] == (date.today() - timedelta(days=1)).isoformat()

    def test_recent_sales_default_limit(self, client: TestClient, auth_headers: dict, live_app):
        data = client.get("/api/v1/inventory/prod_2/recent-sales", headers=auth_headers).json()

        assert data["variant_id"] == "prod_2"
        assert len(data["sales"]) == 10

    def test_recent_sales_beyond_starter_limit(self, client: TestClient, auth_headers: dict, live_app):
        response = client.get("/api/v1/inventory/prod_5/recent-sales", headers=auth_headers)

        assert response.status_code == 402

    def test_simulate_sale(self, client: TestClient, auth_headers: dict, live_app):
        response = client.post("/api/v1/inventory/prod_1/sales", json={"quantity": 10}, headers=auth_headers)

        assert response.status_code == 200
        product = response.json()["product"]
        assert product["total_stock"] == 195
        assert product["stock_history"][-1]["type"] == "Sale"

    def test_simulate_sale_validation(self, client: TestClient, auth_headers: dict, live_app):
        response = client.post("/api/v1/inventory/prod_1/sales", json={"quantity": 0}, headers=auth_headers)
        assert response.status_code == 422

        response = client.post("/api/v1/inventory/prod_1/sales", json={"quantity": 1000}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Insufficient stock: 205 units available"

    def test_simulate_sale_internal_key_error(self, client: TestClient, auth_headers: dict, live_app):
        live_app.simulate_sale = AsyncMock(side_effect=KeyError("prod_1"))

        response = client.post("/api/v1/inventory/prod_1/sales", json={"quantity": 1}, headers=auth_headers)

        assert response.status_code == 500

    def test_adjust_stock(self, client: TestClient, auth_headers: dict, live_app):
        response = client.post(
            "/api/v1/inventory/prod_2/adjustments",
            json={"adjustment": -70, "reason": "Damaged Goods"},
            headers=auth_headers
        )

        assert response.status_code == 200
        product = response.json()["product"]
        assert product["total_stock"] == 5
        assert product["status"] == "Critical"
        assert product["stock_history"][-1]["reason"] == "Damaged Goods"

        alerts = client.get("/api/v1/monitoring/alerts", params={"limit": 1}, headers=auth_headers).json()
        assert alerts["alerts"][0]["details"]["variant_id"] == "prod_2"

    def test_adjust_stock_negative_total(self, client: TestClient, auth_headers: dict, live_app):
        response = client.post(
            "/api/v1/inventory/prod_2/adjustments",
            json={"adjustment": -100, "reason": "Damaged Goods"},
            headers=auth_headers
        )

        assert response.status_code == 400

class TestAlertEndpoints:
    """Tests for alert configuration endpoints"""

    def test_add_email_recipient(self, client: TestClient, auth_headers: dict, live_app):
        response = client.post(
            "/api/v1/inventory/prod_2/alerts/recipients",
            json={"channel": "email", "value": "warehouse@momentum.com"},
            headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["alert_setting"]["alert_email_list"] == ["owner@momentum.com", "warehouse@momentum.com"]

    def test_invalid_email(self, client: TestClient, auth_headers: dict, live_app):
        response = client.post(
            "/api/v1/inventory/prod_2/alerts/recipients",
            json={"channel": "email", "value": "warehouse"},
            headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Please enter a valid email."

    def test_sms_requires_pro(self, client: TestClient, auth_headers: dict, live_app):
        response = client.post(
            "/api/v1/inventory/prod_2/alerts/recipients",
            json={"channel": "sms", "value": "+15557654321"},
            headers=auth_headers
        )

        assert response.status_code == 402
        assert response.json()["feature"] == "sms_alerts"

    def test_sms_on_pro(self, client: TestClient, auth_headers: dict, pro_app):
        response = client.post(
            "/api/v1/inventory/prod_2/alerts/recipients",
            json={"channel": "sms", "value": "+15557654321"},
            headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["alert_setting"]["alert_sms_list"] == ["+15557654321"]

    def test_remove_recipient(self, client: TestClient, auth_headers: dict, live_app):
        response = client.delete(
            "/api/v1/inventory/prod_1/alerts/recipients/email",
            params={"value": "ops@momentum.com"},
            headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["alert_setting"]["alert_email_list"] == ["owner@momentum.com"]

    def test_update_settings(self, client: TestClient, auth_headers: dict, live_app):
        response = client.patch(
            "/api/v1/inventory/prod_1/alerts/settings",
            json={"reorder_point_units": 300, "supplier_lead_time_days": 12},
            headers=auth_headers
        )

        assert response.status_code == 200
        product = response.json()["product"]
        assert product["status"] == "Critical"
        assert product["alert_setting"]["reorder_point_units"] == 300
        assert product["alert_setting"]["supplier_lead_time_days"] == 12

    def test_update_settings_validation(self, client: TestClient, auth_headers: dict, live_app):
        response = client.patch(
            "/api/v1/inventory/prod_1/alerts/settings",
            json={"reorder_quantity": 0},
            headers=auth_headers
        )

        assert response.status_code == 422

    def test_test_alert_requires_pro(self, client: TestClient, auth_headers: dict, live_app):
        response = client.post("/api/v1/inventory/prod_1/alerts/test", headers=auth_headers)

        assert response.status_code == 402
        assert response.json()["feature"] == "test_alerts"

    def test_test_alert_on_pro(self, client: TestClient, auth_headers: dict, pro_app):
        pro_app.alert_agent = AlertAgent(delay_seconds=0)

        response = client.post("/api/v1/inventory/prod_1/alerts/test", headers=auth_headers)

        assert response.status_code == 200
        assert "2 email(s), 1 SMS, and 1 Slack channel(s)" in response.json()["message"]

class TestSupplierAndForecastEndpoints:
    """Tests for supplier integration and AI suggestion endpoints"""

    def test_supplier_requires_pro(self, client: TestClient, auth_headers: dict, live_app):
        response = client.put(
            "/api/v1/inventory/prod_1/supplier",
            json={"supplier_name": "Sound Supply", "supplier_api_url": "https://api.soundsupply.test", "supplier_sku": "SS-1"},
            headers=auth_headers
        )

        assert response.status_code == 402

    def test_supplier_mapping_on_pro(self, client: TestClient, auth_headers: dict, pro_app):
        response = client.put(
            "/api/v1/inventory/prod_1/supplier",
            json={
                "supplier_name": "Sound Supply",
                "supplier_api_url": "https://api.soundsupply.test",
                "supplier_sku": "SS-1",
                "cost_per_item": 20.0,
            },
            headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["mapping"]["supplier_name"] == "Sound Supply"
        assert pro_app.get_product("prod_1").total_stock == 280

        response = client.delete("/api/v1/inventory/prod_1/supplier", headers=auth_headers)
        assert response.status_code == 200
        assert pro_app.get_product("prod_1").total_stock == 205

        response = client.delete("/api/v1/inventory/prod_1/supplier", headers=auth_headers)
        assert response.status_code == 400

    def test_reorder_suggestion_only_for_low_stock(self, client: TestClient, auth_headers: dict, pro_app):
        response = client.get("/api/v1/inventory/prod_1/reorder-suggestion", headers=auth_headers)

        assert response.status_code == 400

    def test_reorder_suggestion(self, client: TestClient, auth_headers: dict, pro_app):
        client.post(
            "/api/v1/inventory/prod_2/adjustments",
            json={"adjustment": -70, "reason": "Damaged Goods"},
            headers=auth_headers
        )

        response = client.get("/api/v1/inventory/prod_2/reorder-suggestion", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["variant_id"] == "prod_2"
        assert response.json()["generated"] is True

    def test_reorder_suggestion_requires_pro(self, client: TestClient, auth_headers: dict, live_app):
        response = client.get("/api/v1/inventory/prod_2/reorder-suggestion", headers=auth_headers)

        assert response.status_code == 402
        assert response.json()["feature"] == "reorder_suggestions"

class TestPurchaseOrderEndpoints:
    """Tests for purchase order endpoints"""

    def test_list_purchase_orders(self, client: TestClient, auth_headers: dict, live_app):
        data = client.get("/api/v1/purchase-orders", headers=auth_headers).json()

        assert data["count"] == 1
        assert data["purchase_orders"][0]["id"] == "po_sent_prod_2"
        assert data["purchase_orders"][0]["status"] == "Sent"
        assert data["purchase_orders"][0]["estimated_cost"] is None

        drafts = client.get("/api/v1/purchase-orders", params={"status": "Draft"}, headers=auth_headers).json()
        assert drafts["count"] == 0

    def test_receive_purchase_order(self, client: TestClient, auth_headers: dict, live_app):
        response = client.post("/api/v1/purchase-orders/po_sent_prod_2/send", headers=auth_headers)
        assert response.status_code == 400

        response = client.post("/api/v1/purchase-orders/po_sent_prod_2/receive", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["purchase_order"]["status"] == "Received"
        assert response.json()["product"]["total_stock"] == 125

    def test_unknown_purchase_order(self, client: TestClient, auth_headers: dict, live_app):
        response = client.post("/api/v1/purchase-orders/po_missing/receive", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "Purchase order not found: po_missing"

    def test_purchase_order_beyond_starter_limit(self, client: TestClient, auth_headers: dict, live_app, store):
        store.upsert_alert_setting(store.get_alert_setting("prod_5").model_copy(update={"reorder_point_units": 1000}))
        client.post("/api/v1/inventory/refresh", headers=auth_headers)
        assert "po_draft_prod_5" in [po.id for po in live_app.get_purchase_orders("Draft")]

        response = client.post("/api/v1/purchase-orders/po_draft_prod_5/send", headers=auth_headers)
        assert response.status_code == 402
        assert "allows you to track 3 items" in response.json()["error"]

        response = client.post("/api/v1/purchase-orders/po_draft_prod_5/receive", headers=auth_headers)
        assert response.status_code == 402
        assert live_app.get_purchase_order("po_draft_prod_5").status == "Draft"

    def test_send_draft_purchase_order(self, client: TestClient, auth_headers: dict, live_app, store):
        store.upsert_alert_setting(store.get_alert_setting("prod_1").model_copy(update={"reorder_point_units": 300}))
        client.post("/api/v1/inventory/refresh", headers=auth_headers)

        response = client.post("/api/v1/purchase-orders/po_draft_prod_1/send", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["purchase_order"]["status"] == "Sent"

class TestAnalyticsEndpoints:
    """Tests for analytics endpoints"""

    def test_sales_chart_requires_pro(self, client: TestClient, auth_headers: dict, live_app):
        response = client.get("/api/v1/analytics/sales/prod_1", headers=auth_headers)

        assert response.status_code == 402
        assert response.json()["feature"] == "analytics"

    def test_sales_chart_preset(self, client: TestClient, auth_headers: dict, pro_app):
        response = client.get("/api/v1/analytics/sales/prod_1", params={"preset": "7D"}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["preset"] == "7D"
        assert len(data["points"]) == 7
        assert data["end_date"] == date.today().isoformat()

    def test_sales_chart_custom_range(self, client: TestClient, auth_headers: dict, pro_app):
        end = date.today() - timedelta(days=1)
        start = end - timedelta(days=13)

        response = client.get(
            "/api/v1/analytics/sales/prod_5",
            params={"start_date": start.isoformat(), "end_date": end.isoformat()},
            headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["preset"] == "Custom"
        assert len(response.json()["points"]) == 14

    @pytest.mark.parametrize("params,message", [
        ({"start_date": "2024-06-01"}, "Please select both a start and end date."),
        ({"start_date": "2024-06-10", "end_date": "2024-06-01"}, "Start date cannot be after end date."),
        ({"preset": "1Y"}, "Unknown range preset: 1Y"),
    ])
    def test_sales_chart_bad_range(self, client: TestClient, auth_headers: dict, pro_app, params, message):
        response = client.get("/api/v1/analytics/sales/prod_1", params=params, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == message

    def test_sku_performance(self, client: TestClient, auth_headers: dict, pro_app):
        response = client.get("/api/v1/analytics/sku-performance", params={"days": 7}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["days"] == 7
        assert len(response.json()["rows"]) == 5

    def test_forecast_report(self, client: TestClient, auth_headers: dict, pro_app):
        rows = client.get("/api/v1/analytics/forecast-report", headers=auth_headers).json()["rows"]

        assert len(rows) == 5
        assert all(row["sales_velocity"] == 5.0 for row in rows)

    def test_inventory_by_center_starter(self, client: TestClient, auth_headers: dict, live_app):
        centers = client.get("/api/v1/analytics/inventory-by-center", headers=auth_headers).json()["centers"]

        assert {c["center_id"]: c["stock"] for c in centers} == {"fc_1": 165, "fc_2": 435, "fc_3": 230}
