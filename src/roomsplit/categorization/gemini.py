import json
import logging
from typing import Any, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from roomsplit.categorization.base import (
    CategorizationError,
    CategorizationResult,
    ExpenseCategorizer,
)

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """You are an expert expense categorizer.

You will use the shop name and item description to categorize the expense.

Shop Name: {shop_name}
Item Description: {item_description}

Respond with a JSON object containing the category and a confidence level between 0 and 1.
Use exactly this shape: {{"category": "<category>", "confidence": <number>}}
"""

REQUEST_TIMEOUT = 30.0

AUTH_EXCEPTIONS = (
    google_exceptions.PermissionDenied,
    google_exceptions.Unauthenticated,
)


class GeminiCategorizer(ExpenseCategorizer):
    """
    Categorizes expenses with a single Gemini text-generation call.

    One attempt per call: no retry, no caching. Any failure surfaces as
    CategorizationError and the caller decides whether it is fatal.

    Usage:
        categorizer = GeminiCategorizer(api_key=os.getenv("GOOGLE_API_KEY"))
        result = categorizer.categorize("SuperMart", "milk, bread")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = "gemini-2.5-flash",
        model: Optional[Any] = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        """
        Args:
            api_key: Google AI API key. Required unless a model is injected.
            model_name: Gemini model to call
            model: Optional pre-built model object (anything with
                generate_content). Useful for testing.
            timeout: Seconds before a request is abandoned
        """
        self.api_key = api_key
        self.model_name = model_name
        self.timeout = timeout
        self._model = model

    @property
    def model(self) -> Any:
        """Lazy-build the Gemini model so a missing key only fails on use"""
        if self._model is None:
            if not self.api_key:
                raise CategorizationError(
                    "No API key configured for the categorization service",
                    auth_failure=True,
                )
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(
                self.model_name,
                generation_config={"response_mime_type": "application/json"},
            )
        return self._model

    def categorize(self, shop_name: str, item_description: str) -> CategorizationResult:
        prompt = PROMPT_TEMPLATE.format(
            shop_name=shop_name,
            item_description=item_description,
        )

        try:
            # No transport-level retry: one request per call
            response = self.model.generate_content(
                prompt,
                request_options={"retry": None, "timeout": self.timeout},
            )
            text = response.text
        except CategorizationError:
            raise
        except AUTH_EXCEPTIONS as e:
            raise CategorizationError(f"Categorization service rejected the API key: {e}", auth_failure=True) from e
        except (google_exceptions.GoogleAPIError, ConnectionError, TimeoutError) as e:
            raise CategorizationError(
                f"Categorization service call failed: {e}",
                auth_failure="API key" in str(e),
            ) from e
        except ValueError as e:
            # response.text raises ValueError when the candidate was blocked
            raise CategorizationError(f"Categorization service returned no text: {e}") from e

        logger.debug("Categorization response for %r: %s", shop_name, text)
        return parse_categorization(text)


def parse_categorization(text: str) -> CategorizationResult:
    """
    Parse the model's JSON answer into a CategorizationResult.

    Tolerates markdown code fences around the JSON. Confidence is clamped
    to [0, 1].

    Raises:
        CategorizationError: If the output is not the expected shape
    """
    cleaned = (text or "").strip().replace("```json", "").replace("```", "").strip()

    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise CategorizationError(f"Malformed categorization output: {text!r}") from e

    if not isinstance(payload, dict):
        raise CategorizationError(f"Malformed categorization output: {text!r}")

    category = payload.get("category")
    confidence = payload.get("confidence")

    if not isinstance(category, str):
        raise CategorizationError(f"Categorization output has no category: {text!r}")

    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise CategorizationError(f"Categorization output has no confidence: {text!r}")

    return CategorizationResult(
        category=category.strip(),
        confidence=min(max(float(confidence), 0.0), 1.0),
    )
