import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from encyclopedia.catalog import ProviderCatalog
from encyclopedia.config import config as app_config
from encyclopedia.errors import ProviderError, TransientError, classify_failure
from encyclopedia.normalizer import GROQ_FALLBACK
from encyclopedia.prompts import SYSTEM_PROMPT, history_to_chat_messages, merge_text_attachment
from encyclopedia.types import Attachment, Message, ProviderConfig

from .chat_provider import BaseChatProvider

logger = logging.getLogger(__name__)


class GroqHttpProvider(BaseChatProvider):
    """Stateless chat-completions client for Groq's OpenAI-compatible API.

    The whole transcript is sent on every call. Image attachments switch the
    request to the catalogue's vision model.
    """

    fallback = GROQ_FALLBACK
    engine_label = "Groq"

    def __init__(
        self,
        config: ProviderConfig,
        catalog: Optional[ProviderCatalog] = None,
        *,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__(config, catalog)
        self.base_url = base_url or app_config.groq_base_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout or app_config.timeout)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.credential}",
            "Content-Type": "application/json",
        }

    def build_payload(
        self,
        history: Sequence[Message],
        user_text: str,
        attachment: Optional[Attachment],
    ) -> Dict[str, Any]:
        model = self.config.model
        content: List[Dict[str, Any]]

        if attachment is not None and attachment.is_binary:
            model = self.spec.vision_model or model
            content = [
                {"type": "text", "text": user_text},
                {"type": "image_url", "image_url": {"url": attachment.data}},
            ]
        else:
            content = [{"type": "text", "text": merge_text_attachment(user_text, attachment)}]

        messages: List[Dict[str, Any]] = [{"role": "system", "content": SYSTEM_PROMPT}]
        messages.extend(history_to_chat_messages(history))
        messages.append({"role": "user", "content": content})

        generation = self.spec.generation
        return {
            "messages": messages,
            "model": model,
            "temperature": generation.get("temperature", 0.5),
            "max_tokens": generation.get("max_tokens", app_config.max_tokens),
            "stream": False,
            "response_format": {"type": "json_object"},
        }

    async def _complete(
        self,
        history: Sequence[Message],
        user_text: str,
        attachment: Optional[Attachment],
    ) -> str:
        payload = self.build_payload(history, user_text, attachment)

        try:
            r = await self._client.post(self.base_url, json=payload, headers=self._headers())
        except httpx.TimeoutException as e:
            raise TransientError(f"Groq request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Groq request failed: {e}") from e

        if r.status_code >= 400:
            message = _error_message(r)
            logger.error("Groq API Error (%s): %s", r.status_code, message)
            raise classify_failure(r.status_code, message, provider_label="Groq")

        try:
            data = r.json()
            return data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Unexpected Groq response shape: {e}") from e

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _error_message(r: httpx.Response) -> str:
    """Human readable message embedded in an error body, if any"""
    try:
        body = r.json()
    except ValueError:
        body = {}
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
    return f"Groq API Error: {r.status_code}"
