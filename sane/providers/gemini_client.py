"""
Factory for Google Gemini clients (google-genai SDK).
"""

import os


def create_gemini_client(api_key: str | None = None):
    """
    Create a ``google.genai.Client``.

    Authentication (checked in priority order):
    1. api_key parameter
    2. GEMINI_API_KEY or GOOGLE_API_KEY

    Raises:
        RuntimeError: If google-genai is not installed
        ValueError: If no API key is available
    """
    try:
        from google import genai
    except ImportError:
        raise RuntimeError("Google provider requires 'google-genai' library")

    key = api_key or os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
    if not key:
        raise ValueError(
            "Google AI authentication required. Set google_api_key in sane.toml "
            "or GEMINI_API_KEY / GOOGLE_API_KEY"
        )
    return genai.Client(api_key=key)
