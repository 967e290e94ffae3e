import pytest
from conftest import FakeResponse, FakeSession

from services.llm_service import ClaudeService, GeminiService, LlmService, build_llm_service
from utils.config import LlmSettings
from utils.exceptions import TransportError


def test_claude_request_and_reply():
    session = FakeSession(FakeResponse({"content": [
        {"type": "text", "text": '{"noEntry": '},
        {"type": "text", "text": "true}"},
    ]}))
    service = ClaudeService(LlmSettings(provider="claude", claude_api_key="k"), session=session)

    assert service.ask("pick one", "be brief") == '{"noEntry": true}'
    call = session.calls[0]
    assert call["url"] == ClaudeService.API_URL
    assert call["headers"]["x-api-key"] == "k"
    assert call["headers"]["anthropic-version"] == "2023-06-01"
    assert call["json"]["system"] == "be brief"
    assert call["json"]["messages"] == [{"role": "user", "content": "pick one"}]


def test_gemini_request_and_reply():
    session = FakeSession(FakeResponse({"candidates": [{"content": {"parts": [{"text": "hello"}]}}]}))
    settings = LlmSettings(provider="gemini", gemini_api_key="g", gemini_model="gemini-test")
    service = GeminiService(settings, session=session)

    assert service.ask("prompt", "system") == "hello"
    call = session.calls[0]
    assert call["url"].endswith("/gemini-test:generateContent")
    assert call["headers"]["x-goog-api-key"] == "g"
    assert call["json"]["systemInstruction"] == {"parts": [{"text": "system"}]}


def test_http_error_is_transport_error():
    session = FakeSession(FakeResponse({"error": "overloaded"}, status_code=529))
    service = ClaudeService(LlmSettings(claude_api_key="k"), session=session)
    with pytest.raises(TransportError) as exc:
        service.ask("x")
    assert exc.value.status_code == 529


def test_unexpected_shape_is_transport_error():
    session = FakeSession(FakeResponse({"candidates": []}))
    with pytest.raises(TransportError):
        GeminiService(LlmSettings(gemini_api_key="g"), session=session).ask("x")


def test_build_picks_provider():
    assert isinstance(build_llm_service(LlmSettings(provider="Claude", claude_api_key="k")), ClaudeService)
    assert isinstance(build_llm_service(LlmSettings(provider="gemini")), GeminiService)
    with pytest.raises(ValueError):
        build_llm_service(LlmSettings(provider="gpt"))


def test_base_service_is_abstract():
    with pytest.raises(TypeError):
        LlmService(LlmSettings())
