"""Parser generator interface: ask a language model for parseWeightLog source. Provider-agnostic; swap via settings or registration."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Optional

from pydantic import ValidationError

from .config import AISettings
from .models import GeneratedParser

logger = logging.getLogger(__name__)

# Generator signature: (sample: str) -> GeneratedParser
ParserGeneratorFn = Callable[[str], GeneratedParser]

# Provider loader: (settings) -> ParserGeneratorFn | None (None when the provider isn't configured)
ParserProviderLoader = Callable[[AISettings], Optional[ParserGeneratorFn]]

_generator: Optional[ParserGeneratorFn] = None  # set via set_parser_generator(); takes precedence

_PROVIDERS: dict[str, ParserProviderLoader] = {}


def register_parser_provider(name: str, loader: ParserProviderLoader) -> None:
    """Register a provider selectable via AISettings.provider / WEIGHTLOG_AI_PROVIDER."""
    _PROVIDERS[name.strip().lower()] = loader


def set_parser_generator(fn: ParserGeneratorFn | None) -> None:
    """Set the generator directly (tests, embedding apps). Takes precedence over providers.
    Set to None to clear and fall back to the configured provider."""
    global _generator
    _generator = fn


def get_parser_generator(settings: AISettings | None = None) -> Optional[ParserGeneratorFn]:
    """Return the configured generator or None.
    Order: 1) set_parser_generator(), 2) settings.provider's loader (settings default to env)."""
    if _generator is not None:
        return _generator
    settings = settings or AISettings.from_env()
    if not settings.is_ready():
        return None
    loader = _PROVIDERS.get(settings.provider)
    if not loader:
        return None
    return loader(settings)


# --- Shared contract: prompt and JSON response parsing ---

WEIGHT_PARSER_SYSTEM = "You are a senior data engineer. Return ONLY valid JSON, no markdown or explanation."


def build_weight_parser_prompt(sample: str) -> str:
    return f"""I will provide the first few lines of a file that contains historical body-weight entries.
You must infer the structure and return JSON with a plain Python function that can parse the ENTIRE file.

Requirements:
- Respond ONLY with JSON following this schema:
{{
  "parser": "def parseWeightLog(file_text):\\n    ...",
  "summary": "One sentence describing the detected format"
}}
- The parser must:
  * Define a top-level function parseWeightLog(file_text) that accepts a single string argument.
  * Return a list of dicts shaped like {{"weight": float, "unit": "lb" or "kg", "recordedAt": str}}.
  * Handle headers, blank lines, and common date formats. Convert dates to ISO 8601 strings (set time to 09:00:00 local if missing).
  * Assume "lb" when units are missing.
  * Use only these standard-library modules if needed: calendar, collections, datetime, decimal, functools, itertools, json, math, re, statistics, string.
  * Never read or write files, access the network, print, or use names starting with double underscores.
  * Stay under 8000 characters.

Sample input (first ~5 lines only):
\"\"\"
{sample}
\"\"\""""


def _extract_json_object(text: str) -> dict:
    """Strip markdown/code fences and extract a single JSON object from text."""
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```\w*\n?", "", text)
        text = re.sub(r"\n?```\s*$", "", text)
    text = text.strip()
    start = text.find("{")
    if start == -1:
        raise ValueError("No JSON object found")
    # raw_decode stops at the end of the first object, ignoring trailing prose
    obj, _ = json.JSONDecoder().raw_decode(text[start:])
    if not isinstance(obj, dict):
        raise ValueError("Expected a JSON object")
    return obj


def parse_generated_parser_json(text: str) -> GeneratedParser:
    """Parse the model response into GeneratedParser. Missing parser -> ValueError."""
    data = _extract_json_object(text)
    try:
        result = GeneratedParser.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"AI response does not match the parser schema: {e.errors()[0]['msg']}") from e
    if not result.parser.strip():
        raise ValueError("AI response missing parser function.")
    return result


# --- Error reporting ---

def _parse_response_body(body: Any) -> Optional[dict]:
    if isinstance(body, str):
        try:
            parsed = json.loads(body)
        except json.JSONDecodeError:
            return None
        return parsed if isinstance(parsed, dict) else None
    if isinstance(body, dict):
        return body
    return None


def describe_ai_error(error: BaseException | None, fallback: str) -> tuple[int, str]:
    """Return (status_code, user-facing message) for a provider error."""
    if error is None:
        return 500, fallback
    status = getattr(error, "status_code", None) or 500
    body = _parse_response_body(getattr(error, "body", None))
    body_error = body.get("error") if body else None
    if isinstance(body_error, dict):
        body_error = body_error.get("message")
    if isinstance(body_error, str) and body_error:
        if "model" in body_error and "not found" in body_error:
            return 400, "Selected AI model is unavailable on the provider. Choose another model or ensure it is installed."
        return status, body_error
    message = str(error)
    if message:
        return status, message
    return 500, fallback


# --- Built-in: OpenAI-compatible providers ---

def _openai_generator(client: Any, model: str) -> ParserGeneratorFn:
    def _generate(sample: str) -> GeneratedParser:
        resp = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": WEIGHT_PARSER_SYSTEM},
                {"role": "user", "content": build_weight_parser_prompt(sample)},
            ],
            temperature=0.0,
            response_format={"type": "json_object"},
        )
        choice = resp.choices and resp.choices[0]
        if not choice or not choice.message or not choice.message.content:
            raise ValueError("AI response missing parser function.")
        return parse_generated_parser_json(choice.message.content)

    return _generate


def _load_openai_generator(settings: AISettings) -> Optional[ParserGeneratorFn]:
    """OpenAI generator when an API key is configured."""
    if not settings.openai_api_key:
        return None
    from openai import OpenAI

    client = OpenAI(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout=settings.request_timeout,
    )
    return _openai_generator(client, settings.model)


def _load_ollama_generator(settings: AISettings) -> Optional[ParserGeneratorFn]:
    """Ollama through its OpenAI-compatible /v1 endpoint (the key is ignored but required by the client)."""
    from openai import OpenAI

    client = OpenAI(
        api_key="ollama",
        base_url=settings.ollama_base_url.rstrip("/") + "/v1",
        timeout=settings.request_timeout,
    )
    return _openai_generator(client, settings.model)


register_parser_provider("openai", _load_openai_generator)
register_parser_provider("ollama", _load_ollama_generator)


def generate_parser_source(sample: str, settings: AISettings | None = None) -> GeneratedParser:
    """Call the configured generator. If none configured, raises."""
    generator = get_parser_generator(settings)
    if generator is None:
        raise RuntimeError(
            "Parser generator not configured. Set WEIGHTLOG_AI_PROVIDER and provider env vars, or call set_parser_generator(fn)."
        )
    logger.info("Requesting generated weight parser for %d-line sample", len(sample.splitlines()))
    return generator(sample)
