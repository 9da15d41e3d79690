"""
Pytest configuration and fixtures for inventory dashboard tests
"""

import asyncio
import json
import os
from unittest.mock import AsyncMock, Mock

import pytest

# Set test environment
os.environ["TESTING"] = "true"
os.environ["DEBUG"] = "true"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["GOOGLE_CLOUD_PROJECT"] = "test-project"
os.environ["API_KEY"] = "test-api-key"
os.environ["ENABLE_MONITORING"] = "false"
os.environ["API_DELAY_SECONDS"] = "0"
os.environ["SUPPLIER_DELAY_SECONDS"] = "0"
os.environ["TEST_ALERT_DELAY_SECONDS"] = "0"
os.environ["MOCK_DATA_SEED"] = "42"

from fastapi.testclient import TestClient

import main
from main import app
from config import settings
from agents.account_agent import AccountAgent
from agents.analytics_agent import AnalyticsAgent
from agents.forecast_agent import ForecastAgent
from agents.inventory_agent import InventoryAgent
from agents.orchestrator import InventoryOrchestrator
from agents.supplier_agent import SupplierAgent
from data.mock_store import MockDataStore

FORECAST_REPLY = {"forecastedVelocity": 5.0, "analysis": "Demand is steady once the promotion is excluded."}

def run_sync(coro):
    """Run a coroutine on a private loop so the test loop is left untouched"""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()

def make_genai_response(text):
    response = Mock()
    response.text = text
    return response

@pytest.fixture
def client() -> TestClient:
    """Create a test client for the FastAPI app"""
    return TestClient(app)

@pytest.fixture
def auth_headers() -> dict:
    """Authentication headers for API requests"""
    return {"Authorization": f"Bearer {settings.api_key}"}

@pytest.fixture
def mock_genai_client():
    """Gemini client whose async generate_content returns a fixed forecast"""
    client = Mock()
    client.aio.models.generate_content = AsyncMock(
        return_value=make_genai_response(json.dumps(FORECAST_REPLY))
    )
    return client

@pytest.fixture
def store() -> MockDataStore:
    return MockDataStore(seed=42)

@pytest.fixture
def forecast_agent(mock_genai_client) -> ForecastAgent:
    return ForecastAgent(client=mock_genai_client)

@pytest.fixture
def orchestrator(store, forecast_agent) -> InventoryOrchestrator:
    return InventoryOrchestrator(
        store,
        forecast_agent,
        supplier_agent=SupplierAgent(delay_seconds=0),
        delay_seconds=0
    )

@pytest.fixture
def account() -> AccountAgent:
    return AccountAgent()

@pytest.fixture
def inventory_agent(orchestrator, account) -> InventoryAgent:
    """Inventory agent loaded with Starter tier products"""
    agent = InventoryAgent(orchestrator, account)
    run_sync(agent.refetch_data())
    return agent

@pytest.fixture
def analytics_agent() -> AnalyticsAgent:
    return AnalyticsAgent()

@pytest.fixture
def live_app(monkeypatch, inventory_agent, account, analytics_agent):
    """Wire real agents into the app's globals"""
    monkeypatch.setattr(main, "inventory_agent", inventory_agent)
    monkeypatch.setattr(main, "account_agent", account)
    monkeypatch.setattr(main, "analytics_agent", analytics_agent)
    return inventory_agent

@pytest.fixture
def pro_app(live_app, account):
    """Live app upgraded to the Pro tier"""
    account.select_tier("Pro")
    run_sync(live_app.refetch_data())
    return live_app

@pytest.fixture
def forecast_reply() -> dict:
    return dict(FORECAST_REPLY)

@pytest.fixture
def genai_response():
    """Factory for Gemini responses with the given text"""
    return make_genai_response
