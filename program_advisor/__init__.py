"""Program advisor backend package."""

from .app import create_app
from .config import get_advisor_settings, get_llm_settings

__all__ = ["create_app", "get_advisor_settings", "get_llm_settings"]
