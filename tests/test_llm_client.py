import pytest
import requests

import llm_client
from llm_client import (
    LLMError,
    call_model,
    extract_json_object,
    generate_json,
    get_model_by_id,
    make_caller,
    models_by_provider,
    safe_json_load,
    strip_code_fences,
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


@pytest.fixture
def captured_post(monkeypatch):
    calls = []

    def install(response):
        def fake_post(url, headers=None, json=None, timeout=None):
            calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
            if isinstance(response, Exception):
                raise response
            return response

        monkeypatch.setattr(llm_client.requests, "post", fake_post)
        return calls

    return install


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1} ') == '{"a": 1}'


def test_extract_json_object_skips_prose_and_braces_in_strings():
    text = 'Sure! {"msg": "a } brace", "n": [1, 2]} trailing words'
    assert extract_json_object(text) == '{"msg": "a } brace", "n": [1, 2]}'


def test_safe_json_load_never_raises():
    assert safe_json_load('{"a": 1}') == {"a": 1}
    assert safe_json_load("[1, 2]") == {"data": [1, 2]}
    assert "error" in safe_json_load("")
    bad = safe_json_load("{nope")
    assert bad["error"].startswith("Invalid JSON")
    assert bad["raw_text"] == "{nope"


def test_generate_json_passes_dicts_through():
    assert generate_json(lambda u, s: {"x": 1}, "sys", "user") == {"x": 1}
    assert generate_json(lambda u, s: '```json\n{"x": 2}\n```', "sys", "user") == {"x": 2}


def test_model_registry():
    assert get_model_by_id("gpt-4o")["provider"] == "openai"
    assert get_model_by_id("nope") is None
    assert set(models_by_provider()) == {"gemini", "openai", "anthropic"}


def test_call_model_unknown_model():
    with pytest.raises(LLMError, match="Unknown model"):
        call_model("gpt-99", "hi", "", {"openai": "k"})


def test_call_model_missing_key():
    with pytest.raises(LLMError, match="openai API key is required"):
        call_model("gpt-4o", "hi", "", {"openai": None})


def test_openai_request_shape(captured_post):
    calls = captured_post(FakeResponse(200, {"choices": [{"message": {"content": ' {"ok": true} '}}]}))
    out = call_model("gpt-4o", "hello", "be brief", {"openai": "sk-test"}, temperature=0.2)

    assert out == '{"ok": true}'
    call = calls[0]
    assert call["url"] == llm_client.OPENAI_URL
    assert call["headers"]["Authorization"] == "Bearer sk-test"
    assert call["json"]["response_format"] == {"type": "json_object"}
    assert call["json"]["temperature"] == 0.2
    assert call["json"]["messages"][0]["content"].startswith("be brief")
    assert call["timeout"] == llm_client.config.REQUEST_TIMEOUT_S


def test_openai_plain_text_mode(captured_post):
    calls = captured_post(FakeResponse(200, {"choices": [{"message": {"content": "plain"}}]}))
    call_model("gpt-4o", "hello", "", {"openai": "sk"}, json_mode=False)
    assert "response_format" not in calls[0]["json"]
    assert calls[0]["json"]["messages"][0]["content"] == ""


def test_openai_error_status(captured_post):
    captured_post(FakeResponse(401, {"error": {"message": "Incorrect API key"}}))
    with pytest.raises(LLMError, match="Incorrect API key"):
        call_model("gpt-4o", "hello", "", {"openai": "bad"})


def test_openai_error_without_body(captured_post):
    captured_post(FakeResponse(500, ValueError("no json")))
    with pytest.raises(LLMError, match="OpenAI API error: 500"):
        call_model("gpt-4o", "hello", "", {"openai": "k"})


def test_openai_timeout(captured_post):
    captured_post(requests.Timeout("slow"))
    with pytest.raises(LLMError, match="timed out"):
        call_model("gpt-4o", "hello", "", {"openai": "k"})


def test_anthropic_request_shape(captured_post):
    calls = captured_post(FakeResponse(200, {"content": [{"text": "hi there"}]}))
    caller = make_caller("claude-3-5-haiku-20241022", {"anthropic": "ak"}, json_mode=False)

    assert caller("hello", "sys") == "hi there"
    call = calls[0]
    assert call["url"] == llm_client.ANTHROPIC_URL
    assert call["headers"]["x-api-key"] == "ak"
    assert call["headers"]["anthropic-version"] == llm_client.ANTHROPIC_VERSION
    assert call["json"]["system"] == "sys"
    assert call["json"]["messages"] == [{"role": "user", "content": "hello"}]


def test_anthropic_empty_content(captured_post):
    captured_post(FakeResponse(200, {"content": []}))
    with pytest.raises(LLMError, match="No response text"):
        call_model("claude-3-5-haiku-20241022", "hello", "", {"anthropic": "ak"})


def test_gemini_uses_sdk_client(monkeypatch):
    seen = {}

    class FakeModels:
        def generate_content(self, model, contents, config):
            seen.update(model=model, contents=contents, config=config)

            class R:
                text = ' {"ok": 1} '

            return R()

    class FakeClient:
        def __init__(self, api_key):
            seen["api_key"] = api_key
            self.models = FakeModels()

    monkeypatch.setattr(llm_client.genai, "Client", FakeClient)
    monkeypatch.setattr(llm_client, "_gemini_clients", {})

    out = call_model("gemini-2.0-flash", "hello", "sys", {"gemini": "gk"})
    assert out == '{"ok": 1}'
    assert seen["api_key"] == "gk"
    assert seen["model"] == "gemini-2.0-flash"
    assert seen["config"].response_mime_type == "application/json"
    assert seen["config"].system_instruction == "sys"


def test_gemini_failure_becomes_llm_error(monkeypatch):
    class Boom:
        def __init__(self, api_key):
            raise RuntimeError("quota")

    monkeypatch.setattr(llm_client.genai, "Client", Boom)
    monkeypatch.setattr(llm_client, "_gemini_clients", {})
    with pytest.raises(LLMError, match="quota"):
        call_model("gemini-2.0-flash", "hello", "", {"gemini": "gk"})
