"""Pytest configuration and fixtures."""

import base64
import io
import sys
import warnings
from pathlib import Path

import pytest
from dotenv import load_dotenv
from PIL import Image

# Configure pytest-asyncio
pytest_plugins = ["pytest_asyncio"]


def pytest_configure(config):
    """Configure pytest settings."""
    # Filter out the google genai aiohttp deprecation warning (from external library)
    warnings.filterwarnings(
        "ignore",
        message="Inheritance class AiohttpClientSession from ClientSession is discouraged",
        category=DeprecationWarning,
    )


# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

API_KEY_ENV_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY")


def make_png_base64(width: int = 4, height: int = 3, color=(255, 0, 0)) -> str:
    """Create a PNG image and return it as raw base64 (no data URL prefix)."""
    img = Image.new("RGB", (width, height), color)
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


@pytest.fixture
def png_base64() -> str:
    """Return a small PNG as raw base64."""
    return make_png_base64()


@pytest.fixture
def edit_body(png_base64) -> dict:
    """Return a valid edit request body."""
    return {"imageData": png_base64, "mimeType": "image/png", "prompt": "Make the sky purple"}


@pytest.fixture
def no_api_key(monkeypatch):
    """Remove every API key environment variable."""
    for name in API_KEY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def api_key(monkeypatch, no_api_key) -> str:
    """Configure a single test API key."""
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    return "test-key"
