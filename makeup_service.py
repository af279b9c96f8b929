import base64
import json
import logging
from functools import lru_cache
from io import BytesIO
from typing import Optional

import google.generativeai as genai
from PIL import Image

import config
from catalog_fetcher import CatalogEntry, CatalogFetcher
from reconciler import RecommendationResult, reconcile

logger = logging.getLogger(__name__)

SEARCH_FAILED_DESCRIPTION = "Could not retrieve specific products at this moment."


class ImageGenerationError(RuntimeError):
    """The image model answered without an image."""


@lru_cache(maxsize=None)
def _configure(api_key: str) -> None:
    # Once per key; genai keeps the key in process-wide state
    genai.configure(api_key=api_key)


def _get_model(model_name: str) -> genai.GenerativeModel:
    if not config.GEMINI_API_KEY:
        raise RuntimeError("GEMINI_API_KEY not set in environment or .env file")
    _configure(config.GEMINI_API_KEY)
    return genai.GenerativeModel(model_name=model_name)


def _decode_image(image_base64: str) -> Image.Image:
    return Image.open(BytesIO(base64.b64decode(image_base64)))


# --- Prompts ---

def makeup_prompt(user_request: str = "") -> str:
    if user_request.strip():
        return f"""
Apply makeup to this person based on the following request: "{user_request.strip()}".
Make sure the makeup style matches their request (e.g., if they ask for cool-tone pink lipstick, apply cool-tone pink lips; if they ask for a natural look, apply light natural makeup).
Keep the facial structure and identity identical, only apply virtual makeup. Photorealistic, 8k resolution.
"""
    return """
Apply a sophisticated, high-fashion K-beauty makeup look to this person.
Enhance skin texture to be glass-like, add soft coral-pink blush, defined eyeliner, and a gradient lip tint.
Keep the facial structure and identity identical, only apply virtual makeup. Photorealistic, 8k resolution.
"""


def catalog_context(catalog: list[CatalogEntry]) -> str:
    # id/name/price only, to keep the prompt small
    return json.dumps(
        [{"id": p.prdtNo, "name": p.prdtName, "price": p.saleAmt} for p in catalog],
        ensure_ascii=False,
    )


def recommendation_prompt(catalog: list[CatalogEntry], user_request: str = "") -> str:
    request_line = ""
    if user_request.strip():
        request_line = f'The user asked for this look: "{user_request.strip()}". Favor products that help achieve it.\n'
    return f"""
You are a professional K-Beauty consultant.
1. Analyze the user's face in the image.
2. Below is a list of currently trending Best Seller products from Olive Young.
3. Select exactly 4 products from this list that would best create a "Glass Skin" or trendy K-Beauty look for this specific user.
4. For each selected product, give a persuasive and specific reason why it fits this user's generated look.
5. Return a JSON object.
{request_line}
AVAILABLE PRODUCTS JSON:
{catalog_context(catalog)}

RESPONSE FORMAT:
{{
  "description": "A short, elegant description of the makeup style (max 2 sentences).",
  "recommendations": [
    {{
      "id": "The exact 'id' from the provided list",
      "reason": "A specific, convincing reason why this product is recommended for this look."
    }}
  ]
}}
"""


# --- Model collaborators ---

async def generate_makeup_look(image_base64: str, user_request: str = "") -> str:
    """Render a makeup look onto the photo and return the result as base64."""
    model = _get_model(config.IMAGE_MODEL_NAME)
    person_image = _decode_image(image_base64)

    response = await model.generate_content_async(
        [person_image, makeup_prompt(user_request)],
        request_options={"timeout": config.MODEL_TIMEOUT_SECONDS},
    )

    for candidate in response.candidates[:1]:
        for part in candidate.content.parts:
            if part.inline_data and part.inline_data.data:
                return base64.b64encode(part.inline_data.data).decode("ascii")

    feedback = getattr(response, "prompt_feedback", None)
    block_reason = getattr(feedback, "block_reason", None) if feedback else None
    message = "No image generated."
    if block_reason:
        message = f"{message} Reason: {block_reason}"
    logger.error("Error generating look: %s", message)
    raise ImageGenerationError(message)


async def request_recommendations(
    image_base64: str, catalog: list[CatalogEntry], user_request: str = ""
) -> str:
    """Ask the text model to pick products; returns its raw, unchecked text."""
    model = _get_model(config.TEXT_MODEL_NAME)
    response = await model.generate_content_async(
        [_decode_image(image_base64), recommendation_prompt(catalog, user_request)],
        generation_config={"response_mime_type": "application/json"},
        request_options={"timeout": config.MODEL_TIMEOUT_SECONDS},
    )
    try:
        return response.text or ""
    except ValueError:
        # .text raises when the reply carries no text part
        return ""


async def search_products(
    image_base64: str,
    user_request: str = "",
    fetcher: Optional[CatalogFetcher] = None,
) -> RecommendationResult:
    """Fetch best sellers, let the model pick from them, and reconcile the picks.

    Never raises: any unexpected failure yields an empty product list with an
    apologetic description.
    """
    try:
        catalog = await (fetcher or CatalogFetcher()).fetch()
        raw_text = await request_recommendations(image_base64, catalog, user_request)
        return reconcile(raw_text, catalog)
    except Exception:
        logger.exception("Error searching products")
        return RecommendationResult(description=SEARCH_FAILED_DESCRIPTION, products=[])
