"""
AI vision extraction.

Sends the receipt image to an OpenAI-compatible chat-completions gateway and
turns the reply into a validated ``ExtractedReceipt``.
"""
from __future__ import annotations

import base64
import json
import logging
import re

import httpx
from pydantic import ValidationError

from app.config import settings
from app.errors import AIProcessingError, ExtractionError
from app.schemas import ExtractedReceipt

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a receipt parser. Extract the merchant name, total amount, date, and category from receipt images. Return ONLY valid JSON in this exact format: {"merchant_name": "string", "amount": number, "date": "YYYY-MM-DD", "category": "string", "items": ["string"]}. "items" lists the purchased line items as printed.

CRITICAL CATEGORIZATION RULES - Analyze the merchant name AND items on the receipt:

1. FUEL: If the receipt mentions ANY of: pump, diesel, petrol, gas station, fuel, BP, Shell, Chevron, Texaco, Esso, Mobil, Circle K, 7-Eleven (with fuel), Speedway, Wawa (with fuel) -> category: "Fuel"

2. FOOD: If from restaurants, cafes, bakeries, grocery stores, supermarkets, food delivery, or mentions food items like: Tesco, Sainsbury's, Asda, Morrisons, Aldi, Lidl, Waitrose, McDonald's, KFC, Subway, Starbucks, Costa, Greggs, Pizza Hut, Domino's, takeaway, restaurant, cafe, bistro, diner -> category: "Food"

3. MATERIALS: If from hardware stores, building suppliers, or purchasing construction/work materials like: B&Q, Screwfix, Wickes, Toolstation, Homebase, Travis Perkins, Jewson, Selco, plumbing supplies, electrical supplies, timber, cement, paint, tools, building materials -> category: "Materials"

4. OTHER CATEGORIES:
   - Transportation: Public transport, taxis, Uber, parking (NOT fuel)
   - Shopping: Clothing, electronics, general retail (NOT groceries)
   - Entertainment: Cinema, games, events
   - Business: Office supplies, services
   - Health: Pharmacy, medical
   - Other: anything else

Use intelligent matching - check both merchant name AND items purchased. If unsure between categories, prioritize Fuel > Materials > Food."""

USER_PROMPT = "Please extract the information from this receipt image."

_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


def strip_code_fences(content: str) -> str:
    return _FENCE.sub("", content).strip()


def parse_ai_content(content: str) -> ExtractedReceipt:
    """Parse the model's message content; any failure is an ``ExtractionError``."""
    cleaned = strip_code_fences(content)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse AI response: %s", content)
        raise ExtractionError("Failed to parse receipt data from AI response") from e
    if not isinstance(payload, dict):
        raise ExtractionError("AI response is not a JSON object")
    try:
        return ExtractedReceipt.model_validate(payload)
    except ValidationError as e:
        logger.error("AI response failed validation: %s", e)
        raise ExtractionError("AI response is missing merchant name or amount") from e


class VisionExtractor:
    def __init__(self, http: httpx.Client, api_url: str, api_key: str, model: str):
        self.http = http
        self.api_url = api_url
        self.api_key = api_key
        self.model = model

    @classmethod
    def from_settings(cls, http: httpx.Client) -> "VisionExtractor":
        return cls(http, settings.LLM_API_URL, settings.LLM_API_KEY, settings.LLM_MODEL)

    def _payload(self, content: bytes, content_type: str) -> dict:
        data_url = f"data:{content_type or 'image/jpeg'};base64,{base64.b64encode(content).decode('ascii')}"
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": USER_PROMPT},
                        {"type": "image_url", "image_url": {"url": data_url}},
                    ],
                },
            ],
        }

    def extract(self, content: bytes, content_type: str) -> ExtractedReceipt:
        if not self.api_key:
            raise AIProcessingError("AI gateway API key is not configured", status_code=500)

        logger.info("Sending %d byte image to %s (model=%s)", len(content), self.api_url, self.model)
        try:
            resp = self.http.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=self._payload(content, content_type),
            )
        except httpx.HTTPError as e:
            logger.error("AI request failed: %s", e)
            raise AIProcessingError(f"AI processing failed: {e}") from e

        if resp.status_code >= 400:
            logger.error("AI API error: %s %s", resp.status_code, resp.text[:500])
            raise AIProcessingError(f"AI processing failed: {resp.status_code}")

        try:
            message = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ExtractionError("No content in AI response") from e
        if not message:
            raise ExtractionError("No content in AI response")

        logger.info("AI response content: %s", message)
        return parse_ai_content(message)
