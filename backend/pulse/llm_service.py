"""
LLM service for insight and summary generation.

Supports Gemini (google-generativeai, default, to leverage the free tier) and
OpenAI (openai client). Public coroutines never raise: a missing key, SDK
error, timeout or unusable response all come back as an empty result.
"""

import asyncio
import json
import logging
import os
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import google.generativeai as genai
from openai import OpenAI

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_BASE = "https://api.openai.com/v1"


class LLMConfig:
    """Configuration for LLM service."""

    def __init__(self):
        # Provider can be "gemini" (default) or "openai"
        self.provider = os.getenv("LLM_PROVIDER", "gemini").lower()

        # Keys (LLM_API_KEY takes precedence to avoid host overrides)
        if self.provider == "gemini":
            self.api_key = os.getenv("LLM_API_KEY") or os.getenv("GEMINI_API_KEY")
        else:
            self.api_key = os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY")

        self.model = os.getenv("LLM_MODEL", "gemini-2.0-flash" if self.provider == "gemini" else "gpt-4o-mini")
        self.api_base = os.getenv("OPENAI_API_BASE", DEFAULT_OPENAI_BASE)
        # For google-generativeai, api_endpoint should be just the host (no scheme/path)
        self.gemini_api_base = os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com")
        self.temperature = float(os.getenv("LLM_TEMPERATURE", "0.4"))
        self.max_tokens = int(os.getenv("LLM_MAX_TOKENS", "2048"))
        self.timeout_seconds = float(os.getenv("LLM_TIMEOUT_SECONDS", "9"))
        self.available = bool(self.api_key)

        if not self.available:
            logger.warning("LLM not configured (missing API key); insights will use fallback cards.")
            return

        if self.provider != "openai":
            parsed = urlparse(self.gemini_api_base)
            api_endpoint = parsed.netloc or parsed.path or self.gemini_api_base
            genai.configure(api_key=self.api_key, client_options={"api_endpoint": api_endpoint})


def _call_model(prompt: str, config: LLMConfig) -> str:
    """Blocking provider call returning the raw response text."""
    if config.provider == "openai":
        client = OpenAI(api_key=config.api_key, base_url=config.api_base or DEFAULT_OPENAI_BASE)
        response = client.chat.completions.create(
            model=config.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )
        return (response.choices[0].message.content or "").strip()

    model_name = config.model
    if not model_name.startswith("models/"):
        model_name = f"models/{model_name}"
    model = genai.GenerativeModel(model_name)
    gen_response = model.generate_content(
        prompt,
        generation_config={
            "temperature": config.temperature,
            "max_output_tokens": config.max_tokens,
            "response_mime_type": "application/json",
        },
    )
    text_out = ""
    if getattr(gen_response, "candidates", None):
        for part in gen_response.candidates[0].content.parts:
            if hasattr(part, "text"):
                text_out = part.text
                break
    if not text_out:
        text_out = getattr(gen_response, "text", "") or ""
    return text_out.strip()


def extract_json(response_text: str) -> Optional[Any]:
    """
    Parses model text as JSON, falling back to a fenced block or the first
    [...] / {...} blob. Returns None when nothing parses.
    """
    if not response_text:
        return None
    try:
        return json.loads(response_text)
    except json.JSONDecodeError:
        pass

    extracted = None
    if "```json" in response_text:
        extracted = response_text.split("```json", 1)[1].split("```", 1)[0].strip()
    elif "```" in response_text:
        extracted = response_text.split("```", 1)[1].split("```", 1)[0].strip()
    else:
        m = re.search(r"\[.*\]|\{.*\}", response_text, re.S)
        if m:
            extracted = m.group(0)
    if not extracted:
        return None
    try:
        return json.loads(extracted)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse extracted JSON: {e}; raw text: {response_text[:400]}")
        return None


async def _complete(prompt: str, config: LLMConfig, purpose: str) -> Optional[Any]:
    if not config.available:
        logger.info(f"LLM unavailable; skipping {purpose} request")
        return None
    try:
        logger.info(f"Calling LLM provider={config.provider} model={config.model} for {purpose}")
        text_out = await asyncio.wait_for(
            asyncio.to_thread(_call_model, prompt, config),
            timeout=config.timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning(f"LLM {purpose} request timed out after {config.timeout_seconds}s")
        return None
    except Exception as e:
        logger.error(f"Error calling LLM for {purpose}: {e}")
        return None

    logger.debug(f"LLM raw response: {text_out[:1000]}")
    parsed = extract_json(text_out)
    if parsed is None:
        logger.error(f"Failed to parse LLM {purpose} response as JSON; raw text: {text_out[:400]}")
    return parsed


async def request_insight_cards(prompt: str, config: Optional[LLMConfig] = None) -> List[Any]:
    """
    Asks the model for an array of card objects.

    Returns:
        the parsed array (items still untrusted), or [] on any failure
    """
    if config is None:
        config = LLMConfig()
    parsed = await _complete(prompt, config, "insights")
    if isinstance(parsed, dict):
        # Some models wrap the array: {"insights": [...]} / {"cards": [...]}
        for key in ("insights", "cards", "items"):
            if isinstance(parsed.get(key), list):
                parsed = parsed[key]
                break
    if not isinstance(parsed, list):
        if parsed is not None:
            logger.error(f"LLM insights response is {type(parsed).__name__}, expected a list")
        return []
    return parsed


async def request_summary(prompt: str, config: Optional[LLMConfig] = None) -> Optional[Dict[str, Any]]:
    """Asks the model for a {"text", "actions"} summary object; None on any failure."""
    if config is None:
        config = LLMConfig()
    parsed = await _complete(prompt, config, "summary")
    if not isinstance(parsed, dict):
        if parsed is not None:
            logger.error(f"LLM summary response is {type(parsed).__name__}, expected an object")
        return None
    return parsed
