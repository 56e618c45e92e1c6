import base64
import logging
from typing import Any, List, Optional, Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from encyclopedia.catalog import ProviderCatalog
from encyclopedia.errors import ProviderError, classify_failure
from encyclopedia.normalizer import GEMINI_FALLBACK
from encyclopedia.prompts import PRIMING_REPLY, SYSTEM_PROMPT, merge_text_attachment
from encyclopedia.types import Attachment, Message, ProviderConfig

from .chat_provider import BaseChatProvider

logger = logging.getLogger(__name__)


class GeminiSessionProvider(BaseChatProvider):
    """Stateful Gemini chat session.

    Dialogue state lives in the SDK chat object, seeded with the system
    prompt as a priming exchange. Only the new turn is sent per call, so the
    `history` argument is not replayed.
    """

    fallback = GEMINI_FALLBACK
    engine_label = "Gemini"

    def __init__(
        self,
        config: ProviderConfig,
        catalog: Optional[ProviderCatalog] = None,
        *,
        client: Optional[Any] = None,
    ) -> None:
        super().__init__(config, catalog)
        self._client = client
        self._chat = None

    def _priming_history(self) -> List[genai_types.Content]:
        return [
            genai_types.Content(
                role="user",
                parts=[genai_types.Part(text="System Prompt: " + SYSTEM_PROMPT)],
            ),
            genai_types.Content(
                role="model",
                parts=[genai_types.Part(text=PRIMING_REPLY)],
            ),
        ]

    def _session(self):
        if self._chat is None:
            if self._client is None:
                self._client = genai.Client(api_key=self.config.credential)
            generation = genai_types.GenerateContentConfig(
                temperature=self.spec.generation.get("temperature"),
            )
            self._chat = self._client.aio.chats.create(
                model=self.config.model,
                config=generation,
                history=self._priming_history(),
            )
            logger.info("Started Gemini chat session (%s)", self.config.model)
        return self._chat

    def _build_parts(self, user_text: str, attachment: Optional[Attachment]) -> List[Any]:
        if attachment is not None and attachment.is_binary:
            return [
                genai_types.Part.from_bytes(
                    data=base64.b64decode(attachment.base64_payload),
                    mime_type=attachment.mime_type,
                ),
                genai_types.Part.from_text(text=user_text),
            ]
        return [genai_types.Part.from_text(text=merge_text_attachment(user_text, attachment))]

    async def _complete(
        self,
        history: Sequence[Message],
        user_text: str,
        attachment: Optional[Attachment],
    ) -> str:
        parts = self._build_parts(user_text, attachment)
        chat = self._session()
        try:
            response = await chat.send_message(parts)
        except genai_errors.APIError as e:
            logger.error("Gemini request failed: %s", e)
            raise classify_failure(e.code, e.message or str(e), provider_label="Gemini") from e
        except httpx.TransportError as e:
            raise ProviderError(f"Gemini connection failed: {e}") from e
        return response.text or ""
