import logging
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

import config
from makeup_service import ImageGenerationError, generate_makeup_look, search_products
from reconciler import RecommendationResult
from share import InvalidShareToken, decode_share_token, encode_share_token

# --- 1. Configuration ---
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Hosts that serve catalog thumbnails
PROXY_IMAGE_HOSTS = {"image.oliveyoung.com", "cdn-image.oliveyoung.com"}


# --- 2. Pydantic Models ---
class MakeupPayload(BaseModel):
    image: str = Field(..., description="Base64 encoded JPEG of the user's photo.")
    request: Optional[str] = Field(None, description="Optional free-text makeup request, e.g. 'cool-tone pink lips'.")


class MakeupResponse(BaseModel):
    image: str = Field(..., description="Base64 encoded image with the makeup look applied.")


class ShareResponse(BaseModel):
    token: str


# --- 3. FastAPI Application Setup ---
app = FastAPI(
    title="Virtual Makeup Try-On API",
    description="Renders a makeup look onto a photo and matches best-selling cosmetics to it.",
    version="1.0.0",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- 4. Image proxy client ---
async def _require_catalog_host(request: httpx.Request):
    # Runs for every hop, so redirects cannot leave the catalog hosts
    if request.url.host not in PROXY_IMAGE_HOSTS:
        raise HTTPException(status_code=400, detail="Redirected away from catalog image hosts.")


def _image_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=config.RELAY_TIMEOUT_SECONDS,
        transport=transport,
        event_hooks={"request": [_require_catalog_host]},
    )


# --- 5. API Endpoints ---
@app.get("/proxy-image")
async def proxy_image(url: str):
    """Relay a product thumbnail so the browser can draw it without CORS headers."""
    try:
        host = httpx.URL(url).host
    except httpx.InvalidURL:
        raise HTTPException(status_code=400, detail="Invalid image URL.")
    if host not in PROXY_IMAGE_HOSTS:
        raise HTTPException(status_code=400, detail="URL is not a catalog image host.")

    headers = {
        "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36",
        "Accept": "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8",
    }
    async with _image_client() as client:
        try:
            response = await client.get(url, follow_redirects=True, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise HTTPException(status_code=e.response.status_code, detail=f"Image server error: {e.response.status_code}")
        except httpx.RequestError as e:
            raise HTTPException(status_code=400, detail=f"Failed to fetch image: {e}")

    content_type = response.headers.get("content-type", "")
    if not content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="URL is not a direct image link.")
    return Response(content=response.content, media_type=content_type)


@app.post("/generate", response_model=MakeupResponse)
async def generate_look(payload: MakeupPayload):
    try:
        image = await generate_makeup_look(payload.image, payload.request or "")
    except ImageGenerationError as e:
        raise HTTPException(status_code=500, detail=f"Image generation failed. {e}")
    except Exception as e:
        logger.exception("Error generating look")
        raise HTTPException(status_code=500, detail=f"An internal server error occurred: {str(e)}")
    return MakeupResponse(image=image)


@app.post("/recommend", response_model=RecommendationResult)
async def recommend_products(payload: MakeupPayload):
    # search_products absorbs its own failures
    return await search_products(payload.image, payload.request or "")


@app.post("/share", response_model=ShareResponse)
async def create_share(result: RecommendationResult):
    return ShareResponse(token=encode_share_token(result))


@app.get("/share/{token}", response_model=RecommendationResult)
async def open_share(token: str):
    try:
        return decode_share_token(token)
    except InvalidShareToken as e:
        raise HTTPException(status_code=400, detail=str(e))


# --- 6. Run the Application ---
if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
