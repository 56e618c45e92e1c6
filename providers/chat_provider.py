import logging
from typing import Optional, Protocol, Sequence

from encyclopedia.catalog import ProviderCatalog, ProviderSpec, get_catalog
from encyclopedia.errors import ConfigurationError, EncyclopediaError, ProviderError, UnsupportedCapabilityError
from encyclopedia.normalizer import FallbackProfile, normalize
from encyclopedia.prompts import unsupported_attachment_text
from encyclopedia.types import Analysis, Attachment, Message, ProviderConfig, StructuredResponse

logger = logging.getLogger(__name__)

SYSTEM_WARNING_SOURCE = "System Warning"


class ChatProvider(Protocol):
    """Common contract for every inference backend.

    send() returns a StructuredResponse for any model output, including
    malformed output and unsupported attachments. Transport and setup
    failures are raised as encyclopedia.errors.ProviderError subclasses.
    """

    config: ProviderConfig

    @property
    def supports_vision(self) -> bool:
        ...

    async def send(
        self,
        history: Sequence[Message],
        user_text: str,
        attachment: Optional[Attachment] = None,
    ) -> StructuredResponse:
        ...

    async def close(self) -> None:
        ...


class BaseChatProvider:
    """Shared capability gate, credential check and output normalization.

    Subclasses implement _complete(), returning the raw model text.
    """

    fallback: FallbackProfile
    engine_label = "this provider"

    def __init__(self, config: ProviderConfig, catalog: Optional[ProviderCatalog] = None) -> None:
        self.config = config
        self.catalog = catalog or get_catalog()
        self.spec: ProviderSpec = self.catalog.get_provider(config.provider)

    @property
    def supports_vision(self) -> bool:
        return self.config.supports_vision

    @property
    def label(self) -> str:
        return self.spec.label

    def _require_credential(self) -> None:
        if self.spec.requires_credential and not self.config.credential:
            raise ConfigurationError(
                f"{self.label} API Key is missing. Please configure it in settings."
            )

    def _check_attachment(self, attachment: Optional[Attachment]) -> None:
        if attachment is not None and attachment.is_binary and not self.supports_vision:
            raise UnsupportedCapabilityError(attachment.mime_type)

    def unsupported_response(self) -> StructuredResponse:
        return StructuredResponse(
            text=unsupported_attachment_text(
                self.engine_label, self.catalog.vision_alternative(self.config.provider)
            ),
            sources=[SYSTEM_WARNING_SOURCE],
            confidence_score=100,
            analysis=Analysis(intent="File Analysis", context=f"Unsupported in {self.label}"),
            recommendations=[],
        )

    async def send(
        self,
        history: Sequence[Message],
        user_text: str,
        attachment: Optional[Attachment] = None,
    ) -> StructuredResponse:
        try:
            self._check_attachment(attachment)
        except UnsupportedCapabilityError:
            return self.unsupported_response()

        self._require_credential()
        try:
            raw = await self._complete(history, user_text, attachment)
        except EncyclopediaError:
            raise
        except Exception as e:
            logger.exception("%s backend raised unexpectedly", self.label)
            raise ProviderError(f"{self.label} request failed: {e}") from e
        return normalize(raw, self.fallback)

    async def _complete(
        self,
        history: Sequence[Message],
        user_text: str,
        attachment: Optional[Attachment],
    ) -> str:
        raise NotImplementedError

    async def close(self) -> None:
        return None
