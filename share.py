"""Pack a recommendation result into a URL-safe token and back."""

import base64
import binascii
import json

from pydantic import BaseModel, Field, ValidationError

from reconciler import PresentedProduct, RecommendationResult


class SharedLook(BaseModel):
    desc: str
    prods: list[PresentedProduct] = Field(default_factory=list)


class InvalidShareToken(ValueError):
    pass


def encode_share_token(result: RecommendationResult) -> str:
    shared = SharedLook(desc=result.description, prods=result.products)
    raw = json.dumps(shared.model_dump(), ensure_ascii=False, separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_share_token(token: str) -> RecommendationResult:
    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
        shared = SharedLook.model_validate_json(raw)
    except (binascii.Error, UnicodeError, ValidationError) as e:
        raise InvalidShareToken(f"Malformed share token: {e}") from e
    return RecommendationResult(description=shared.desc, products=shared.prods)
