"""Translation client backed by the Claude Messages API.

All translation goes through a single prompt-in, text-out call. Prompts are
built here; the model never sees anything except the prompt text.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from toolbox_subtitles.config import settings
from toolbox_subtitles.schemas.subtitles import TranslationItem
from toolbox_subtitles.services.results import FailureKind, ServiceResult

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504, 529}

_string_list = TypeAdapter(List[str])


class _ContentBlock(BaseModel):
    type: str = "text"
    text: Optional[str] = None


class _MessagesResponse(BaseModel):
    content: List[_ContentBlock]


def build_text_prompt(text: str, target_language: str, is_html: bool, source_language: str) -> str:
    if is_html:
        return (
            f"Translate the following HTML content from {source_language} to {target_language}.\n"
            "IMPORTANT: Keep all HTML tags exactly as they are. Do not add, remove or reorder "
            "tags or attributes. Only translate the text content between tags.\n"
            "Return only the translated HTML, nothing else.\n\n"
            f"{text}"
        )
    return (
        f"Translate the following text from {source_language} to {target_language}.\n"
        "Return only the translated text, nothing else.\n\n"
        f"{text}"
    )


def build_batch_prompt(
    items: Sequence[TranslationItem], target_language: str, source_language: str
) -> str:
    lines = [
        f"Translate the following items from {source_language} to {target_language}.",
        "Return the translations as a JSON array with the same order as the input.",
        "Each element should be the translated text only.",
        "For HTML content (marked with [HTML]), preserve all HTML tags and only translate the text.",
        "",
        "Items to translate:",
        "```",
    ]
    for number, item in enumerate(items, start=1):
        prefix = "[HTML] " if item.is_html else ""
        context = f" ({item.context})" if item.context else ""
        lines.append(f"{number}. {prefix}{item.text}{context}")
    lines += [
        "```",
        "",
        "Return only a valid JSON array of translated strings, like:",
        '["translated text 1", "translated text 2", ...]',
    ]
    return "\n".join(lines)


def build_srt_prompt(srt_content: str, target_language: str) -> str:
    return (
        f"Translate the following SRT subtitle text to {target_language}.\n"
        "Keep the exact same format with numbers and timestamps, only translate the text.\n"
        "Return only the translated SRT, nothing else:\n\n"
        f"{srt_content}"
    )


def parse_string_array(raw: str) -> Optional[List[str]]:
    """Decode the JSON string array embedded in a model reply.

    Text around the outermost brackets is ignored. Returns None when no array
    can be decoded, which is distinct from an empty array.
    """
    start = raw.find("[")
    end = raw.rfind("]")
    if start == -1 or end <= start:
        return None
    try:
        return _string_list.validate_json(raw[start : end + 1])
    except ValidationError:
        return None


class ClaudeTranslationClient:
    """Translate plain text, HTML and SRT content with Claude."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.claude_api_key
        self.model = model or settings.claude_model
        self.base_url = (base_url or settings.claude_base_url).rstrip("/")
        self.max_tokens = max_tokens or settings.claude_max_tokens
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = (
            settings.translation_max_retries if max_retries is None else max_retries
        )
        self.backoff_seconds = (
            settings.retry_backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        self._transport = transport

    async def translate_text(
        self,
        text: str,
        target_language: str,
        is_html: bool = False,
        source_language: str = "English",
    ) -> ServiceResult[str]:
        if not text or not text.strip():
            return ServiceResult.success("")
        logger.info("Translating content to %s, HTML: %s", target_language, is_html)
        prompt = build_text_prompt(text, target_language, is_html, source_language)
        return await self._complete(prompt)

    async def translate_batch(
        self,
        items: Sequence[TranslationItem],
        target_language: str,
        source_language: str = "English",
    ) -> ServiceResult[Dict[str, ServiceResult[str]]]:
        """Translate many items with one request.

        The outer result fails only when the request itself fails. Items the
        reply does not cover are reported as individual failures.
        """
        results: Dict[str, ServiceResult[str]] = {}
        pending: List[TranslationItem] = []
        for item in items:
            if item.text and item.text.strip():
                pending.append(item)
            else:
                results[item.key] = ServiceResult.success("")

        if not pending:
            return ServiceResult.success(results)

        logger.info("Batch translating %s items to %s", len(pending), target_language)
        reply = await self._complete(build_batch_prompt(pending, target_language, source_language))
        if not reply.ok:
            return ServiceResult.failure(reply.kind, reply.error)

        translations = parse_string_array(reply.value)
        if translations is None:
            logger.warning("Failed to parse batch response as JSON array")
            for item in pending:
                results[item.key] = ServiceResult.failure(
                    FailureKind.MALFORMED_RESPONSE, "Could not decode batch translation response"
                )
            return ServiceResult.success(results)

        if len(translations) < len(pending):
            logger.warning(
                "Batch response had %s items, expected %s", len(translations), len(pending)
            )
        for index, item in enumerate(pending):
            if index >= len(translations):
                results[item.key] = ServiceResult.failure(
                    FailureKind.MALFORMED_RESPONSE, "Missing from batch translation response"
                )
            elif not translations[index].strip():
                results[item.key] = ServiceResult.failure(
                    FailureKind.EMPTY_RESULT, "Translation came back empty"
                )
            else:
                results[item.key] = ServiceResult.success(translations[index])
        return ServiceResult.success(results)

    async def translate_srt(self, srt_content: str, target_language: str) -> ServiceResult[str]:
        """Translate cue text while keeping numbering and timestamps intact."""
        if not srt_content or not srt_content.strip():
            return ServiceResult.success("")
        return await self._complete(build_srt_prompt(srt_content, target_language))

    async def send_custom_prompt(self, prompt: str) -> ServiceResult[str]:
        if not prompt or not prompt.strip():
            return ServiceResult.failure(FailureKind.VALIDATION, "Prompt is empty")
        return await self._complete(prompt)

    async def _complete(self, prompt: str) -> ServiceResult[str]:
        if not self.api_key:
            return ServiceResult.failure(
                FailureKind.CONFIGURATION, "Claude API key is not configured"
            )

        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {"x-api-key": self.api_key, "anthropic-version": ANTHROPIC_VERSION}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(self.max_retries + 1):
                try:
                    response = await client.post(
                        f"{self.base_url}/messages", json=payload, headers=headers
                    )
                except httpx.HTTPError as exc:
                    logger.warning("Claude request failed: %s", exc)
                    return ServiceResult.failure(
                        FailureKind.TRANSPORT, f"HTTP request failed: {exc}"
                    )

                if response.status_code in RETRYABLE_STATUS_CODES and attempt < self.max_retries:
                    wait_time = self.backoff_seconds * (2**attempt)
                    logger.warning(
                        "Claude API returned %s, retrying in %ss", response.status_code, wait_time
                    )
                    await asyncio.sleep(wait_time)
                    continue
                if response.is_error:
                    logger.error(
                        "Claude API error: %s - %s", response.status_code, response.text[:500]
                    )
                    return ServiceResult.failure(
                        FailureKind.TRANSPORT, f"Claude API error: {response.status_code}"
                    )
                break

        try:
            body = _MessagesResponse.model_validate_json(response.content)
        except ValidationError as exc:
            logger.warning("Failed to parse Claude response: %s", exc)
            return ServiceResult.failure(
                FailureKind.MALFORMED_RESPONSE, "Failed to parse translation response"
            )

        text = next((block.text for block in body.content if block.text is not None), "")
        if not text.strip():
            return ServiceResult.failure(
                FailureKind.EMPTY_RESULT, "Translation service returned empty content"
            )
        return ServiceResult.success(text)
