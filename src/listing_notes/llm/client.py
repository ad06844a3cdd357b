# src/listing_notes/llm/client.py

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Dict, List, Optional

import httpx
import openai
from openai import OpenAI

from ..core.listing import ListingRecord
from ..core.media import DEFAULT_AUDIO_MIME, MediaBlob
from .prompts import RESPONSE_FORMAT, build_prompt

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "API Key is missing. Set LISTING_API_KEY in your .env."

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

# mime subtype -> input_audio "format"
_AUDIO_FORMATS = {
    "mpeg": "mp3",
    "mp3": "mp3",
    "x-wav": "wav",
    "wav": "wav",
    "wave": "wav",
    "x-m4a": "m4a",
    "mp4": "m4a",
    "ogg": "ogg",
    "webm": "webm",
    "flac": "flac",
    "aac": "aac",
}


def _is_auth_error(exc: Exception) -> bool:
    return exc.__class__.__name__ in {
        "AuthenticationError",
        "PermissionDeniedError",
        "UnauthorizedError",
    }


def _is_rate_limit_error(exc: Exception) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return exc.__class__.__name__ in {"RateLimitError", "TooManyRequestsError"}


def _is_connection_error(exc: Exception) -> bool:
    return exc.__class__.__name__ in {
        "APIConnectionError",
        "APITimeoutError",
        "Timeout",
        "ConnectTimeout",
        "ReadTimeout",
        "WriteTimeout",
    }


def _is_not_found_error(exc: Exception) -> bool:
    # OpenAI-compatible SDK uses NotFoundError for HTTP 404 (unknown model).
    return exc.__class__.__name__ in {"NotFoundError"}


def friendly_llm_error_message(err: Exception) -> str:
    msg = str(err).strip() or "LLM error."
    if "API Key is missing" in msg:
        return "AI 服务未配置（缺少 API Key）。请在 .env 中设置 LISTING_API_KEY。"
    if "LLM model list is empty" in msg:
        return "AI 服务未配置（没有可用模型）。请在 .env 中设置 LISTING_LLM_MODELS。"
    if "LLM base URL is not set" in msg:
        return "AI 服务未配置（缺少服务地址）。请在 .env 中设置 LISTING_BASE_URL。"
    return msg


def audio_format(mime_type: str) -> str:
    subtype = (mime_type or DEFAULT_AUDIO_MIME).split(";", 1)[0].split("/")[-1].strip().lower()
    return _AUDIO_FORMATS.get(subtype, subtype or "webm")


def build_messages(
    text: str,
    image: MediaBlob | None = None,
    audio: MediaBlob | None = None,
) -> list[dict[str, Any]]:
    """One user message: instruction + user text, then inline image/audio parts."""
    parts: list[dict[str, Any]] = [{"type": "text", "text": build_prompt(text)}]

    if image is not None:
        parts.append({"type": "image_url", "image_url": {"url": image.to_data_uri()}})

    if audio is not None:
        parts.append(
            {
                "type": "input_audio",
                "input_audio": {"data": audio.to_base64(), "format": audio_format(audio.mime_type)},
            }
        )

    return [{"role": "user", "content": parts}]


def parse_listings(raw: str | None) -> list[ListingRecord]:
    """
    Parse the service's JSON reply.

    - empty reply -> RuntimeError
    - invalid JSON -> RuntimeError
    - no "listings" array -> [] (the caller turns that into a failed task)
    """
    s = (raw or "").strip()
    if not s:
        raise RuntimeError("No data returned from AI")

    m = _FENCE_RE.match(s)
    if m:
        s = m.group(1).strip()

    try:
        parsed = json.loads(s)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Malformed JSON returned from AI: {e.msg}") from e

    if not isinstance(parsed, dict):
        return []
    items = parsed.get("listings")
    if not isinstance(items, list):
        return []
    return [ListingRecord.from_dict(item) for item in items if isinstance(item, dict)]


def _message_content(response: Any) -> str | None:
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError, TypeError):
        return None
    if isinstance(content, list):
        # Some providers return content parts even for JSON output.
        chunks: list[str] = []
        for part in content:
            t = part.get("text") if isinstance(part, dict) else getattr(part, "text", None)
            if t:
                chunks.append(str(t))
        return "".join(chunks)
    return content


class OpenAIListingExtractor:
    """
    Listing extractor on top of an OpenAI-compatible chat completions API
    (OpenRouter by default, so multimodal Gemini models work).

    Behavior:
    - Tries models in the order from settings (LISTING_LLM_MODELS).
    - 404 (model not available) -> skip that model for an hour, try next.
    - Rate limit / network issues / other errors -> try next.
    - Auth issues -> fail fast (no retries across models).
    - Everything that reaches the caller is a RuntimeError with a message.
    """

    def __init__(self, settings: Any, *, client: OpenAI | None = None) -> None:
        api_key = (getattr(settings, "api_key", None) or "").strip()
        base_url = (getattr(settings, "base_url", "") or "").strip()
        models = [m.strip() for m in (getattr(settings, "llm_models", None) or []) if m and m.strip()]

        if not api_key:
            raise RuntimeError(MISSING_KEY_MESSAGE)
        if not base_url:
            raise RuntimeError("LLM base URL is not set. Set LISTING_BASE_URL in your .env.")
        if not models:
            raise RuntimeError("LLM model list is empty. Set LISTING_LLM_MODELS in your .env.")

        self._models: List[str] = models
        self._headers: Dict[str, str] = dict(getattr(settings, "extra_headers", {}) or {})
        self._bad_models: dict[str, float] = {}  # model -> retry_at (monotonic)

        if client is None:
            connect_s = float(getattr(settings, "llm_connect_timeout", 10.0))
            read_s = float(getattr(settings, "llm_read_timeout", 300.0))
            # Retries are off so a failing model falls through to the next one quickly.
            client = OpenAI(
                base_url=base_url,
                api_key=api_key,
                timeout=httpx.Timeout(connect=connect_s, read=read_s, write=30.0, pool=connect_s),
                max_retries=0,
            )
        self._client = client

    @property
    def models(self) -> list[str]:
        return list(self._models)

    def extract(
        self,
        text: str,
        image: MediaBlob | None = None,
        audio: MediaBlob | None = None,
    ) -> list[ListingRecord]:
        messages = build_messages(text, image, audio)
        raw = self._complete(messages)
        listings = parse_listings(raw)
        logger.debug("Parsed %d listing(s) from AI reply", len(listings))
        return listings

    def _complete(self, messages: list[dict[str, Any]]) -> str:
        last_error: Optional[Exception] = None
        now = time.monotonic()

        for model in self._models:
            retry_at = self._bad_models.get(model)
            if retry_at is not None and retry_at > now:
                continue

            logger.info("LLM: trying model=%s", model)
            t0 = time.monotonic()
            try:
                response = self._client.chat.completions.create(
                    model=model,
                    messages=messages,
                    response_format=RESPONSE_FORMAT,
                    extra_headers=self._headers or None,
                )
            except Exception as e:
                last_error = e

                if _is_auth_error(e):
                    raise RuntimeError(
                        "LLM authentication failed. Check your API key (LISTING_API_KEY)."
                    ) from e

                if _is_not_found_error(e):
                    self._bad_models[model] = time.monotonic() + 3600.0  # 1 hour
                    logger.info("LLM: model not available (404): %s", model)
                    continue

                if _is_rate_limit_error(e):
                    logger.info("LLM: rate-limited on model=%s, trying next", model)
                    continue

                if _is_connection_error(e):
                    logger.info("LLM: network/timeout error on model=%s, trying next", model)
                    continue

                logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
                continue

            content = _message_content(response)
            logger.info("LLM: reply from model=%s (%.2fs)", model, time.monotonic() - t0)
            if content and content.strip():
                return content
            last_error = RuntimeError(f"Model returned no content: {model}")

        if last_error is not None:
            if _is_rate_limit_error(last_error):
                raise RuntimeError("LLM is rate-limited. Try again later.") from last_error
            if _is_connection_error(last_error):
                raise RuntimeError("LLM network/timeout error. Try again later or change models.") from last_error
            if str(last_error).startswith("Model returned no content"):
                raise RuntimeError("No data returned from AI") from last_error
            raise RuntimeError(f"All LLM models failed: {last_error}") from last_error

        raise RuntimeError("All LLM models failed.")
