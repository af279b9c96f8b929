import asyncio
import base64
import json
from io import BytesIO
from types import SimpleNamespace

import pytest
from PIL import Image

import config
import makeup_service
from catalog_fetcher import FALLBACK_CATALOG
from makeup_service import (
    SEARCH_FAILED_DESCRIPTION,
    ImageGenerationError,
    generate_makeup_look,
    recommendation_prompt,
    search_products,
)


def _photo_base64():
    buffer = BytesIO()
    Image.new("RGB", (4, 4), (200, 150, 140)).save(buffer, format="JPEG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


class FakeModel:
    def __init__(self, response):
        self.response = response
        self.calls = []

    async def generate_content_async(self, contents, **kwargs):
        self.calls.append((contents, kwargs))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


class FakeFetcher:
    def __init__(self, catalog):
        self.catalog = catalog

    async def fetch(self):
        return list(self.catalog)


def _image_response(parts, block_reason=None):
    return SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))],
        prompt_feedback=SimpleNamespace(block_reason=block_reason),
    )


def _use_model(monkeypatch, model):
    monkeypatch.setattr(makeup_service, "_get_model", lambda _name: model)


def test_generate_makeup_look_returns_base64_image(monkeypatch):
    text_part = SimpleNamespace(inline_data=None, text="here you go")
    image_part = SimpleNamespace(inline_data=SimpleNamespace(data=b"PNGDATA", mime_type="image/png"))
    model = FakeModel(_image_response([text_part, image_part]))
    _use_model(monkeypatch, model)

    result = asyncio.run(generate_makeup_look(_photo_base64(), "cool-tone pink lips"))

    assert base64.b64decode(result) == b"PNGDATA"
    contents, kwargs = model.calls[0]
    assert "cool-tone pink lips" in contents[1]
    assert kwargs["request_options"]["timeout"] == config.MODEL_TIMEOUT_SECONDS


def test_generate_makeup_look_uses_default_look_without_request(monkeypatch):
    image_part = SimpleNamespace(inline_data=SimpleNamespace(data=b"x"))
    model = FakeModel(_image_response([image_part]))
    _use_model(monkeypatch, model)

    asyncio.run(generate_makeup_look(_photo_base64(), "   "))

    assert "K-beauty" in model.calls[0][0][1]


def test_generate_makeup_look_without_image_part_fails(monkeypatch):
    text_part = SimpleNamespace(inline_data=None, text="sorry")
    _use_model(monkeypatch, FakeModel(_image_response([text_part], block_reason="SAFETY")))

    with pytest.raises(ImageGenerationError, match="No image generated. Reason: SAFETY"):
        asyncio.run(generate_makeup_look(_photo_base64()))


def test_missing_api_key_is_reported(monkeypatch):
    monkeypatch.setattr(config, "GEMINI_API_KEY", "")
    with pytest.raises(RuntimeError, match="GEMINI_API_KEY"):
        makeup_service._get_model(config.TEXT_MODEL_NAME)


def test_recommendation_prompt_embeds_simplified_catalog():
    prompt = recommendation_prompt(list(FALLBACK_CATALOG[:2]), "natural look")

    assert '"id": "GA210410161"' in prompt
    assert '"price": "19.00"' in prompt
    assert "imagePath" not in prompt
    assert "natural look" in prompt


def test_search_products_reconciles_model_picks(monkeypatch):
    payload = {
        "description": "Soft glass skin.",
        "recommendations": [{"id": "GA210002192", "reason": "Plumps the skin."}, {"id": "fake"}],
    }
    model = FakeModel(SimpleNamespace(text="```json\n" + json.dumps(payload) + "\n```"))
    _use_model(monkeypatch, model)

    result = asyncio.run(search_products(_photo_base64(), fetcher=FakeFetcher(FALLBACK_CATALOG)))

    assert result.description == "Soft glass skin."
    assert [p.id for p in result.products] == ["GA210002192"]
    assert model.calls[0][1]["generation_config"] == {"response_mime_type": "application/json"}


def test_search_products_repairs_empty_model_text(monkeypatch):
    _use_model(monkeypatch, FakeModel(SimpleNamespace(text="")))

    result = asyncio.run(search_products(_photo_base64(), fetcher=FakeFetcher(FALLBACK_CATALOG)))

    assert len(result.products) == 4
    assert result.description == "A custom curated look for you."


def test_search_products_absorbs_model_failure(monkeypatch):
    _use_model(monkeypatch, FakeModel(RuntimeError("quota exceeded")))

    result = asyncio.run(search_products(_photo_base64(), fetcher=FakeFetcher(FALLBACK_CATALOG)))

    assert result.products == []
    assert result.description == SEARCH_FAILED_DESCRIPTION


def test_search_products_absorbs_bad_image(monkeypatch):
    _use_model(monkeypatch, FakeModel(SimpleNamespace(text="{}")))

    result = asyncio.run(search_products("not-an-image", fetcher=FakeFetcher(FALLBACK_CATALOG)))

    assert result.products == []
    assert result.description == SEARCH_FAILED_DESCRIPTION


def test_api_key_is_configured_once(monkeypatch):
    configured = []
    monkeypatch.setattr(config, "GEMINI_API_KEY", "test-key")
    monkeypatch.setattr(makeup_service.genai, "configure", lambda **kwargs: configured.append(kwargs))
    makeup_service._configure.cache_clear()

    makeup_service._get_model(config.TEXT_MODEL_NAME)
    makeup_service._get_model(config.IMAGE_MODEL_NAME)
    makeup_service._configure.cache_clear()

    assert configured == [{"api_key": "test-key"}]
