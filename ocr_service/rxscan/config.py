"""
config.py

Central place to load environment variables.
"""

from dotenv import load_dotenv
import os

# Load variables from .env file into environment
load_dotenv()

# Which multimodal endpoint handles extraction: "gemini" or "openai"
INFERENCE_PROVIDER = os.getenv("INFERENCE_PROVIDER", "gemini").lower()

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4.1")

# Seconds to wait for the single inference request
INFERENCE_TIMEOUT = float(os.getenv("INFERENCE_TIMEOUT", "60"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def get_api_key(provider: str):
    """Return the configured API key for a provider (None if not set)."""
    if provider == "openai":
        return OPENAI_API_KEY
    return GEMINI_API_KEY


def get_model(provider: str) -> str:
    if provider == "openai":
        return OPENAI_MODEL
    return GEMINI_MODEL
