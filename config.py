import os

from dotenv import load_dotenv

# Values from a local .env file fill in anything not already in the environment
load_dotenv()

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")

# Image editing model and the text model that picks products
IMAGE_MODEL_NAME = os.getenv("IMAGE_MODEL_NAME", "gemini-2.5-flash-image")
TEXT_MODEL_NAME = os.getenv("TEXT_MODEL_NAME", "gemini-2.5-flash")

RELAY_TIMEOUT_SECONDS = float(os.getenv("RELAY_TIMEOUT_SECONDS", "10"))
MODEL_TIMEOUT_SECONDS = float(os.getenv("MODEL_TIMEOUT_SECONDS", "120"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
