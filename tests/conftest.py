import pytest

from program_advisor import llm, rate_limiter
from program_advisor.config import get_advisor_settings, get_llm_settings
from program_advisor.memory import chat_memory

CREDENTIAL_VARS = ("OPENAI_API_KEY", "GROQ_API_KEY")


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch):
    """Keep tests offline and stop cached state leaking between them."""

    for name in CREDENTIAL_VARS:
        monkeypatch.delenv(name, raising=False)
    get_llm_settings.cache_clear()
    get_advisor_settings.cache_clear()
    monkeypatch.setattr(llm, "_client_cache", None)
    monkeypatch.setattr(rate_limiter, "_limiter", None)
    chat_memory.clear()
    yield
    get_llm_settings.cache_clear()
    get_advisor_settings.cache_clear()
    chat_memory.clear()
