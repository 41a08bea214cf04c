# llm_client.py

import json
import re
from typing import Callable, Dict, List, Optional

import requests
from google import genai  # type: ignore
from google.genai import types  # type: ignore

import config
from logger import get_logger

logger = get_logger(__name__)

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"

JSON_ONLY_SUFFIX = "\n\nIMPORTANT: You must return valid JSON only."

# ------------------ Model registry ------------------

GEMINI_MODELS = [
    {"id": "gemini-2.0-flash", "label": "Gemini 2.0 Flash", "description": "Latest fast model"},
    {"id": "gemini-1.5-pro", "label": "Gemini 1.5 Pro", "description": "Advanced reasoning"},
    {"id": "gemini-1.5-flash", "label": "Gemini 1.5 Flash", "description": "Quick responses"},
]

OPENAI_MODELS = [
    {"id": "gpt-4o", "label": "GPT-4o", "description": "Flagship multimodal"},
    {"id": "gpt-4o-mini", "label": "GPT-4o mini", "description": "Small and cheap"},
    {"id": "o3", "label": "o3", "description": "Reasoning model"},
]

CLAUDE_MODELS = [
    {"id": "claude-sonnet-4-20250514", "label": "Claude Sonnet 4", "description": "Balanced model"},
    {"id": "claude-3-5-sonnet-20241022", "label": "Claude 3.5 Sonnet", "description": "Balanced performance"},
    {"id": "claude-3-5-haiku-20241022", "label": "Claude 3.5 Haiku", "description": "Fastest Claude"},
]

SUPPORTED_MODELS = (
    [{**m, "provider": "gemini"} for m in GEMINI_MODELS]
    + [{**m, "provider": "openai"} for m in OPENAI_MODELS]
    + [{**m, "provider": "anthropic"} for m in CLAUDE_MODELS]
)


class LLMError(RuntimeError):
    """Raised when a provider call cannot produce text."""


def get_model_by_id(model_id: str) -> Optional[dict]:
    for m in SUPPORTED_MODELS:
        if m["id"] == model_id:
            return m
    return None


def models_by_provider() -> Dict[str, List[dict]]:
    grouped: Dict[str, List[dict]] = {}
    for m in SUPPORTED_MODELS:
        grouped.setdefault(m["provider"], []).append(m)
    return grouped


# ------------------ JSON helpers ------------------

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def strip_code_fences(s: str) -> str:
    """Return the body of the first ```json ... ``` block, or the text unchanged."""
    s = (s or "").strip()
    if "```" not in s:
        return s
    m = _FENCE_RE.search(s)
    if m:
        return m.group(1).strip()
    # Unterminated fence: drop the opening line
    first_newline = s.find("\n")
    if s.startswith("```") and first_newline != -1:
        return s[first_newline + 1 :].strip()
    return s


def extract_json_object(s: str) -> str:
    """
    Best-effort extraction of the first JSON object/array from a string.
    Handles cases where the model adds extra text before/after JSON.
    """
    s = strip_code_fences(s)
    if not s:
        return ""

    if (s.startswith("{") and s.endswith("}")) or (s.startswith("[") and s.endswith("]")):
        return s

    obj_start = s.find("{")
    arr_start = s.find("[")
    start_candidates = [i for i in [obj_start, arr_start] if i != -1]
    if not start_candidates:
        return s

    start = min(start_candidates)

    # Find matching end by scanning braces/brackets, skipping string literals
    stack = []
    in_string = False
    escaped = False
    for idx in range(start, len(s)):
        ch = s[idx]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]":
            if not stack:
                continue
            open_ch = stack.pop()
            if (open_ch == "{" and ch != "}") or (open_ch == "[" and ch != "]"):
                continue
            if not stack:
                return s[start : idx + 1].strip()

    return s[start:].strip()


def safe_json_load(txt: str) -> dict:
    """
    Never crash the caller due to invalid/empty JSON.
    Returns {"error": "...", "raw_text": "..."} on failure.
    """
    raw = (txt or "").strip()
    if not raw:
        return {"error": "Empty response from model (no JSON returned).", "raw_text": ""}

    candidate = extract_json_object(raw)

    try:
        parsed = json.loads(candidate)
        if isinstance(parsed, dict):
            return parsed
        return {"data": parsed}
    except json.JSONDecodeError as e:
        return {
            "error": f"Invalid JSON from model: {e}",
            "raw_text": raw[:4000],
        }


# ------------------ Providers ------------------

_gemini_clients: Dict[str, "genai.Client"] = {}


def _gemini_client(api_key: str):
    if api_key not in _gemini_clients:
        _gemini_clients[api_key] = genai.Client(api_key=api_key)
    return _gemini_clients[api_key]


def call_gemini(
    user: str,
    system: str,
    api_key: str,
    model_id: str = config.GEMINI_MODEL,
    *,
    json_mode: bool = True,
    temperature: Optional[float] = None,
) -> str:
    if not api_key:
        raise LLMError("Gemini API key is missing")

    cfg = {
        "system_instruction": system or None,
        "max_output_tokens": config.MAX_OUTPUT_TOKENS,
    }
    if temperature is not None:
        cfg["temperature"] = temperature
    if json_mode:
        cfg["response_mime_type"] = "application/json"

    try:
        resp = _gemini_client(api_key).models.generate_content(
            model=model_id,
            contents=user,
            config=types.GenerateContentConfig(**cfg),
        )
    except Exception as e:
        logger.error("Gemini call failed: %s", e)
        raise LLMError(f"Gemini call failed: {e}") from e

    text = (resp.text or "").strip()
    if not text:
        raise LLMError("No response text from Gemini")
    return text


def _error_message(resp: requests.Response, provider: str) -> str:
    try:
        data = resp.json()
    except ValueError:
        data = {}
    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return err["message"]
    return f"{provider} API error: {resp.status_code}"


def call_openai(
    user: str,
    system: str,
    api_key: str,
    model_id: str = "gpt-4o",
    *,
    json_mode: bool = True,
    temperature: Optional[float] = None,
) -> str:
    if not api_key:
        raise LLMError("OpenAI API key is missing")

    system_text = (system or "") + (JSON_ONLY_SUFFIX if json_mode else "")
    payload = {
        "model": model_id,
        "messages": [
            {"role": "system", "content": system_text},
            {"role": "user", "content": user},
        ],
        "max_tokens": config.MAX_OUTPUT_TOKENS,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}
    if temperature is not None:
        payload["temperature"] = temperature

    try:
        resp = requests.post(
            OPENAI_URL,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            json=payload,
            timeout=config.REQUEST_TIMEOUT_S,
        )
    except requests.Timeout as e:
        raise LLMError("OpenAI request timed out") from e
    except requests.RequestException as e:
        raise LLMError(f"OpenAI call failed: {e}") from e

    if not resp.ok:
        raise LLMError(f"OpenAI call failed: {_error_message(resp, 'OpenAI')}")

    data = resp.json()
    try:
        text = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        text = None
    if not text:
        raise LLMError("No response text from OpenAI")
    return text.strip()


def call_anthropic(
    user: str,
    system: str,
    api_key: str,
    model_id: str = "claude-3-5-sonnet-20241022",
    *,
    json_mode: bool = True,
    temperature: Optional[float] = None,
) -> str:
    if not api_key:
        raise LLMError("Anthropic API key is missing")

    payload = {
        "model": model_id,
        "max_tokens": config.MAX_OUTPUT_TOKENS,
        "system": (system or "") + (JSON_ONLY_SUFFIX if json_mode else ""),
        "messages": [{"role": "user", "content": user}],
    }
    if temperature is not None:
        payload["temperature"] = temperature

    try:
        resp = requests.post(
            ANTHROPIC_URL,
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            json=payload,
            timeout=config.REQUEST_TIMEOUT_S,
        )
    except requests.Timeout as e:
        raise LLMError("Anthropic request timed out") from e
    except requests.RequestException as e:
        raise LLMError(f"Anthropic call failed: {e}") from e

    if not resp.ok:
        raise LLMError(f"Anthropic call failed: {_error_message(resp, 'Anthropic')}")

    data = resp.json()
    try:
        text = data["content"][0]["text"]
    except (KeyError, IndexError, TypeError):
        text = None
    if not text:
        raise LLMError("No response text from Anthropic")
    return text.strip()


_PROVIDER_CALLS = {
    "gemini": call_gemini,
    "openai": call_openai,
    "anthropic": call_anthropic,
}


def call_model(
    model_id: str,
    user: str,
    system: str,
    api_keys: Dict[str, Optional[str]],
    *,
    json_mode: bool = True,
    temperature: Optional[float] = None,
) -> str:
    """Route a prompt to the provider that serves `model_id`."""
    model = get_model_by_id(model_id)
    if model is None:
        raise LLMError(f"Unknown model: {model_id}")

    provider = model["provider"]
    key = (api_keys or {}).get(provider)
    if not key:
        raise LLMError(f"{provider} API key is required")

    return _PROVIDER_CALLS[provider](
        user, system, key, model_id, json_mode=json_mode, temperature=temperature
    )


def make_caller(
    model_id: str,
    api_keys: Dict[str, Optional[str]],
    *,
    json_mode: bool = True,
    temperature: Optional[float] = None,
) -> Callable[[str, str], str]:
    """Bind a model and keys into the `call_llm(user, system)` shape the pipeline uses."""

    def _call(user: str, system: str = "") -> str:
        return call_model(model_id, user, system, api_keys, json_mode=json_mode, temperature=temperature)

    return _call


def generate_json(call_llm: Callable[[str, str], object], system: str, user: str) -> dict:
    """Call an LLM and parse its reply without ever raising on bad JSON."""
    out = call_llm(user, system)
    if isinstance(out, dict):
        return out
    return safe_json_load(out if isinstance(out, str) else json.dumps(out))
