"""
Forecast Agent
Uses Gemini to forecast sales velocity and suggest reorder quantities
"""

import logging
import json
import math
from typing import List, Dict, Any, Optional

from google import genai
from google.genai import types

from models.schemas import (
    ForecastResult, ProcessedProduct, ProductVariant, SalesHistoryEntry, ShopifyPromotion
)
from utils.inventory_calculations import calculate_sales_velocity
from utils.monitoring import metrics_collector, monitor_agent_operation
from config import settings

logger = logging.getLogger(__name__)

FORECAST_FALLBACK_ANALYSIS = "AI forecast unavailable. Using basic average."
SUGGESTION_EMPTY = "No suggestion available."
SUGGESTION_FALLBACK = "Could not generate a suggestion at this time. Please try again later."

FORECAST_SYSTEM_INSTRUCTION = (
    "You are an e-commerce data analyst. Your goal is to provide accurate sales forecasts "
    "and concise insights based on historical data, accounting for promotions. "
    "Respond ONLY with a valid JSON object matching the requested schema."
)

FORECAST_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "forecastedVelocity": types.Schema(
            type=types.Type.NUMBER,
            description="The forecasted average daily sales velocity, normalized to account for promotions.",
        ),
        "analysis": types.Schema(
            type=types.Type.STRING,
            description="A brief, one-sentence analysis of the sales trend, mentioning any promotions.",
        ),
    },
    required=["forecastedVelocity", "analysis"],
)

def create_genai_client() -> genai.Client:
    """Gemini client for the Developer API when a key is set, Vertex AI otherwise"""
    if settings.gemini_api_key:
        return genai.Client(api_key=settings.gemini_api_key)
    if not settings.google_cloud_project:
        raise ValueError("Set GEMINI_API_KEY, or GOOGLE_CLOUD_PROJECT for Vertex AI")
    return genai.Client(
        vertexai=True,
        project=settings.google_cloud_project,
        location=settings.location,
    )

class ForecastAgent:
    """Agent for AI sales forecasting and reorder advice"""

    def __init__(self, client: Optional[genai.Client] = None):
        """Initialize Forecast Agent"""
        self.client = client or create_genai_client()
        self.forecast_model = settings.forecast_model
        self.suggestion_model = settings.suggestion_model

    def _build_forecast_prompt(
        self,
        variant: ProductVariant,
        sales_history: List[SalesHistoryEntry],
        promotions: List[ShopifyPromotion]
    ) -> str:
        sales_data = ", ".join(str(entry.units_sold) for entry in sales_history)
        if promotions:
            promotion = promotions[0]
            promotion_context = (
                f'There was a promotion titled "{promotion.title}" from '
                f'{promotion.start_date.isoformat()} to {promotion.end_date.isoformat()}.'
            )
        else:
            promotion_context = "There were no major promotions during this period."

        return f"""
        Analyze the following daily sales data for the product "{variant.name}" over the last {len(sales_history)} days.
        Sales Data: [{sales_data}]

        Additional Context:
        {promotion_context}

        Act as an e-commerce supply chain expert. Your primary goal is to determine the true organic
        daily sales velocity, factoring out the temporary spike caused by any promotions.

        1. Calculate a forecasted average daily sales velocity for the next 30 days, attempting to
           normalize for the promotional lift.
        2. Provide a brief, one-sentence analysis explaining your forecast, specifically mentioning
           the promotion's impact if applicable.
        """

    def _parse_forecast(self, text: Optional[str]) -> ForecastResult:
        """
        Parse the model's JSON reply

        Raises:
            ValueError: If the reply is empty or not a usable forecast
        """
        json_text = (text or "").strip()
        if not json_text:
            raise ValueError("Empty response from API")

        result = json.loads(json_text)
        velocity = result.get("forecastedVelocity")
        analysis = result.get("analysis")

        if isinstance(velocity, bool) or not isinstance(velocity, (int, float)):
            raise ValueError(f"Invalid forecasted velocity: {velocity!r}")
        # json.loads accepts NaN and Infinity
        if not math.isfinite(velocity) or velocity < 0:
            raise ValueError(f"Invalid forecasted velocity: {velocity!r}")
        if not isinstance(analysis, str):
            raise ValueError("Missing forecast analysis")

        return ForecastResult(sales_velocity=float(velocity), analysis=analysis)

    @monitor_agent_operation("forecast", "advanced_forecast")
    async def fetch_advanced_forecast(
        self,
        variant: ProductVariant,
        sales_history: List[SalesHistoryEntry],
        promotions: List[ShopifyPromotion]
    ) -> ForecastResult:
        """
        Forecast daily sales velocity with promotional lift factored out

        Args:
            variant: Product being forecast
            sales_history: Recent daily sales, normally the last 30 days
            promotions: Promotions for the product

        Returns:
            Forecast velocity and a one-sentence analysis; the simple average
            with a fallback note when the model cannot be used
        """
        logger.info(f"Fetching advanced forecast for {variant.sku}")
        prompt = self._build_forecast_prompt(variant, sales_history, promotions)

        try:
            response = await self.client.aio.models.generate_content(
                model=self.forecast_model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    system_instruction=FORECAST_SYSTEM_INSTRUCTION,
                    response_mime_type="application/json",
                    response_schema=FORECAST_SCHEMA,
                    temperature=settings.forecast_temperature,
                ),
            )
            forecast = self._parse_forecast(response.text)
            metrics_collector.record_gemini_request(self.forecast_model, "success")
            logger.info(f"Received forecast for {variant.sku}")
            return forecast

        except Exception as e:
            metrics_collector.record_gemini_request(self.forecast_model, "error")
            logger.error(f"Gemini forecast call failed for {variant.name}: {str(e)}")
            return ForecastResult(
                sales_velocity=calculate_sales_velocity(sales_history, settings.sales_window_days),
                analysis=FORECAST_FALLBACK_ANALYSIS,
            )

    def _build_suggestion_prompt(self, product: ProcessedProduct) -> str:
        return f"""
        You are an expert inventory manager for an e-commerce store.
        Based on the following data for the product "{product.name}", provide a concise reorder suggestion.

        Current Data:
        - Product Name: {product.name}
        - SKU: {product.sku}
        - Current Total Stock: {product.total_stock} units
        - Forecasted Daily Sales: {product.sales_velocity} units/day
        - Supplier Lead Time: {product.alert_setting.supplier_lead_time_days} days

        Your task is to recommend a quantity to reorder.
        Your suggestion should aim to cover at least a 30-day sales period AFTER the new stock arrives.
        Explain your reasoning in one or two sentences. Respond only with the suggestion text.

        Example response format: "To prevent a stockout and maintain a 30-day supply, I recommend
        reordering at least 250 units. This covers the 10-day lead time and forecasted demand."
        """

    @monitor_agent_operation("forecast", "reorder_suggestion")
    async def fetch_reorder_suggestion(self, product: ProcessedProduct) -> Dict[str, Any]:
        """
        Ask Gemini how much of a product to reorder

        Args:
            product: Product with current stock and velocity

        Returns:
            Dict with the suggestion text and whether the model answered
        """
        logger.info(f"Fetching reorder suggestion for {product.sku}")

        try:
            response = await self.client.aio.models.generate_content(
                model=self.suggestion_model,
                contents=self._build_suggestion_prompt(product),
                config=types.GenerateContentConfig(
                    temperature=settings.suggestion_temperature,
                ),
            )
            metrics_collector.record_gemini_request(self.suggestion_model, "success")
            text = (response.text or "").strip()
            return {
                "variant_id": product.id,
                "suggestion": text or SUGGESTION_EMPTY,
                "generated": bool(text),
            }

        except Exception as e:
            metrics_collector.record_gemini_request(self.suggestion_model, "error")
            logger.error(f"Gemini suggestion call failed for {product.sku}: {str(e)}")
            return {
                "variant_id": product.id,
                "suggestion": SUGGESTION_FALLBACK,
                "generated": False,
            }

    async def health_check(self) -> Dict[str, Any]:
        """Report the configured Gemini backend without spending a request"""
        return {
            "backend": "gemini-api" if settings.gemini_api_key else "vertex-ai",
            "forecast_model": self.forecast_model,
            "suggestion_model": self.suggestion_model,
        }
