from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    """Application settings with validation"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Google Cloud
    google_cloud_project: Optional[str] = Field(None, description="GCP project for Vertex AI; required unless gemini_api_key is set")
    location: str = Field("us-central1", description="Vertex AI region")
    gemini_api_key: Optional[str] = Field(None, description="Gemini Developer API key; overrides Vertex AI when set")

    # Gemini
    forecast_model: str = Field("gemini-2.5-flash", description="Model used for sales velocity forecasts")
    suggestion_model: str = Field("gemini-2.5-flash", description="Model used for reorder suggestions")
    forecast_temperature: float = Field(0.2)
    suggestion_temperature: float = Field(0.5)

    # Simulated latency (seconds)
    api_delay_seconds: float = Field(0.5, ge=0)
    supplier_delay_seconds: float = Field(0.3, ge=0)
    test_alert_delay_seconds: float = Field(0.8, ge=0)

    # Inventory
    supplier_mock_stock: int = Field(75, ge=0)
    sales_window_days: int = Field(30, gt=0)
    sales_history_days: int = Field(90, gt=0)
    recent_sales_in_stock_log: int = Field(5, ge=0)
    mock_data_seed: Optional[int] = Field(None, description="Seed for the generated sales history")

    # Subscription
    starter_tier_limit: int = Field(3, gt=0)
    default_tier: str = Field("Starter")

    # API
    api_host: str = Field("0.0.0.0")
    api_port: int = Field(8000)
    api_version: str = Field("v1")
    api_key: str = Field(...)
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # Monitoring
    enable_monitoring: bool = Field(True)
    otel_endpoint: str = Field("http://localhost:4317", validation_alias="OTEL_EXPORTER_OTLP_ENDPOINT")
    prometheus_port: int = Field(8001)

    # Development
    debug: bool = Field(False)
    log_level: str = Field("INFO")
    log_dir: str = Field("logs")

settings = Settings()
