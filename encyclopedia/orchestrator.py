"""
Conversation orchestrator - input mode, send gating, provider dispatch and
speech output.

Runs on a single asyncio event loop. Only one send is in flight at a time,
so transcript order equals submission order. A send uses the provider that
was active when it was submitted; configuration updates apply to later sends.
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Union

from encyclopedia.attachments import PendingAttachment, load_attachment
from encyclopedia.catalog import ProviderCatalog, get_catalog
from encyclopedia.config import config as app_config
from encyclopedia.errors import EncyclopediaError, TransientError
from encyclopedia.logger import SessionLogger
from encyclopedia.retry import RetryController
from encyclopedia.settings_store import KEY_LOCAL_MODEL, KEY_PROVIDER, SettingsStore, credential_key
from encyclopedia.speech import SpeechRecognizer, SpeechSynthesizer
from encyclopedia.types import (
    Attachment,
    InputMode,
    ListeningState,
    Message,
    ProcessingState,
    ProgressEvent,
    ProviderConfig,
    Role,
    SpeechState,
    StructuredResponse,
)
from providers import ChatProvider, create_provider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[..., ChatProvider]

DEFAULT_ERROR_TEXT = "I'm having trouble connecting right now."
FILE_ONLY_QUESTION = "Please analyze the attached file."


class ConversationOrchestrator:
    """
    Top-level conversation state machine.

    States:
        input_mode: voice | text
        processing: idle | busy
        speech: idle | speaking (reported by the synthesizer)
        listening: idle | listening
    """

    def __init__(
        self,
        store: SettingsStore,
        *,
        catalog: Optional[ProviderCatalog] = None,
        synthesizer: Optional[SpeechSynthesizer] = None,
        recognizer: Optional[SpeechRecognizer] = None,
        provider_factory: ProviderFactory = create_provider,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_retry_status: Optional[Callable[[str], None]] = None,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
        session_logger: Optional[SessionLogger] = None,
        input_mode: InputMode = InputMode.VOICE,
    ):
        self.store = store
        self.catalog = catalog or get_catalog()
        self.synthesizer = synthesizer
        self.recognizer = recognizer
        self.session_id = uuid.uuid4().hex[:12]

        self.messages: List[Message] = []
        self.input_mode = input_mode
        self.processing = ProcessingState.IDLE
        self.listening = ListeningState.IDLE
        self.interim_transcript = ""
        self.transcript = ""
        self.pending = PendingAttachment()
        self.progress: Optional[ProgressEvent] = None

        self._provider_factory = provider_factory
        self._sleep = sleep
        self._on_retry_status = on_retry_status
        self._on_progress = on_progress
        self._session_logger = session_logger
        self._providers: Dict[ProviderConfig, ChatProvider] = {}
        self._retired: List[ChatProvider] = []

        self.provider_config = self.load_config()

    # ========== Configuration ==========

    def load_config(self) -> ProviderConfig:
        """Build the active ProviderConfig from the settings store."""
        provider_id = (
            self.store.get(KEY_PROVIDER)
            or self.catalog.defaults.get("provider")
            or app_config.default_provider
        )
        spec = self.catalog.get_provider(provider_id)
        key = spec.credential_key or credential_key(provider_id)
        credential = self.store.get(key) or app_config.env_credential(provider_id)
        model = None
        if spec.kind == "local_engine":
            model = self.store.get(KEY_LOCAL_MODEL) or self.catalog.defaults.get("local_model")
        return self.catalog.build_config(provider_id, credential, model)

    async def update_config(
        self,
        provider_id: str,
        credential: Optional[str] = None,
        model: Optional[str] = None,
    ) -> ProviderConfig:
        """
        Explicitly switch provider, credential or model.

        Providers built for the previous configuration are released; if a send
        is in flight they are released after it completes.
        """
        spec = self.catalog.get_provider(provider_id)
        self.store.set(KEY_PROVIDER, provider_id)
        if credential is not None and spec.requires_credential:
            self.store.set(spec.credential_key or credential_key(provider_id), credential)
        if model is not None and spec.kind == "local_engine":
            self.store.set(KEY_LOCAL_MODEL, model)

        new_config = self.load_config()
        self.provider_config = new_config
        logger.info("Provider set to %s (%s)", new_config.provider, new_config.model)

        stale = [cfg for cfg in self._providers if cfg != new_config]
        for cfg in stale:
            self._retired.append(self._providers.pop(cfg))
        if self.processing == ProcessingState.IDLE:
            await self._release_retired()
        return new_config

    def _provider_for(self, config: ProviderConfig) -> ChatProvider:
        provider = self._providers.get(config)
        if provider is None:
            provider = self._provider_factory(config, self.catalog, on_progress=self._handle_progress)
            self._providers[config] = provider
        return provider

    async def _release_retired(self) -> None:
        retired, self._retired = self._retired, []
        for provider in retired:
            await provider.close()

    async def aclose(self) -> None:
        """Release every provider (end of session)."""
        self._retired.extend(self._providers.values())
        self._providers.clear()
        await self._release_retired()

    # ========== State ==========

    @property
    def speech(self) -> SpeechState:
        if self.synthesizer is not None and self.synthesizer.is_speaking:
            return SpeechState.SPEAKING
        return SpeechState.IDLE

    @property
    def progress_visible(self) -> bool:
        return self.progress is not None

    @property
    def is_processing(self) -> bool:
        return self.processing == ProcessingState.BUSY

    def can_send(self, text: str, attachment: Optional[Attachment] = None) -> bool:
        if self.processing != ProcessingState.IDLE:
            return False
        return bool((text or "").strip()) or attachment is not None or self.pending.current is not None

    # ========== Sending ==========

    def attach(self, attachment: Optional[Attachment]) -> None:
        """Queue an attachment for the next send, replacing any pending one."""
        self.pending.attach(attachment)

    async def attach_file(self, path: Union[str, Path]) -> Optional[Attachment]:
        attachment = await load_attachment(path)
        if attachment is not None:
            self.pending.attach(attachment)
        return attachment

    async def send(
        self,
        text: str = "",
        attachment: Optional[Attachment] = None,
    ) -> Optional[StructuredResponse]:
        """
        Submit one user message.

        Args:
            text: User question
            attachment: Optional attachment; otherwise the pending one is used

        Returns:
            The assistant response appended to the transcript, or None when the
            send was rejected (busy, or nothing to send)
        """
        text = (text or "").strip()
        if not self.can_send(text, attachment):
            logger.debug("Send rejected (processing=%s)", self.processing.value)
            return None

        self.processing = ProcessingState.BUSY
        try:
            if attachment is not None:
                self.pending.attach(attachment)
            attachment = self.pending.take()
            question = text or FILE_ONLY_QUESTION

            config = self.provider_config
            history = list(self.messages)
            display = f"[Attached: {attachment.name}]\n{question}" if attachment else question
            self.messages.append(Message(role=Role.USER, content=display))
            self.transcript = ""
            self._log("log_user_turn", config.provider, question, attachment.name if attachment else None)

            response = await self._dispatch(config, history, question, attachment)
            self.messages.append(Message(role=Role.ASSISTANT, content=response))

            if self.input_mode == InputMode.VOICE and response.text:
                self._speak(response.text)
            return response
        finally:
            self.processing = ProcessingState.IDLE
            await self._release_retired()

    async def _dispatch(
        self,
        config: ProviderConfig,
        history: List[Message],
        question: str,
        attachment: Optional[Attachment],
    ) -> StructuredResponse:
        spec = self.catalog.get_provider(config.provider)
        attempts = 1 if spec.kind == "local_engine" else app_config.retry_attempts
        retry = RetryController(
            attempts=attempts,
            base_delay=app_config.retry_base_delay,
            on_retry=lambda attempt, delay, err: self._handle_retry(config, attempt, delay, err),
            sleep=self._sleep,
            exhausted_hint=(
                f"Please wait, or switch to '{self.catalog.offline_label()}' "
                "in Settings for unlimited usage."
            ),
        )
        label = config.provider.capitalize()

        try:
            provider = self._provider_for(config)
            response = await retry.run(lambda: provider.send(history, question, attachment), label=label)
        except EncyclopediaError as e:
            logger.error("App Error: %s", e)
            self._log("log_error", config.provider, e)
            return StructuredResponse.notice(str(e) or DEFAULT_ERROR_TEXT)
        except Exception as e:
            # providers outside BaseChatProvider may raise anything
            logger.exception("Unexpected provider failure")
            self._log("log_error", config.provider, e)
            return StructuredResponse.notice(DEFAULT_ERROR_TEXT)

        self._log("log_response", config.provider, response)
        return response

    def _handle_retry(self, config: ProviderConfig, attempt: int, delay: float, error: TransientError) -> None:
        logger.info("User notified: Retrying in %dms", int(delay * 1000))
        self._log("log_retry", config.provider, attempt, delay, str(error))
        if self._on_retry_status:
            self._on_retry_status(f"Service busy, retrying in {int(delay)}s (attempt {attempt + 1})...")

    def _handle_progress(self, event: ProgressEvent) -> None:
        if event.done or event.fraction >= 1.0:
            self.progress = None
            self._log("log_progress", event)
        else:
            if self.progress is None or self.progress.stage != event.stage:
                self._log("log_progress", event)
            self.progress = event
        if self._on_progress:
            self._on_progress(event)

    # ========== Voice ==========

    def _speak(self, text: str) -> None:
        if self.synthesizer is not None:
            self.synthesizer.speak(text)

    def stop_speaking(self) -> None:
        if self.synthesizer is not None and self.synthesizer.is_speaking:
            self.synthesizer.cancel()

    def start_listening(self) -> None:
        if self.listening == ListeningState.LISTENING:
            return
        self.stop_speaking()
        self.transcript = ""
        self.interim_transcript = ""
        self.listening = ListeningState.LISTENING
        if self.recognizer is not None:
            self.recognizer.start()

    def stop_listening(self) -> Optional["asyncio.Task"]:
        if self.recognizer is not None and self.listening == ListeningState.LISTENING:
            self.recognizer.stop()
        return self.on_listening_ended()

    def toggle_listening(self) -> Optional["asyncio.Task"]:
        if self.listening == ListeningState.LISTENING:
            return self.stop_listening()
        self.start_listening()
        return None

    def on_interim_transcript(self, text: str) -> None:
        self.interim_transcript = text or ""

    def on_final_transcript(self, text: str) -> None:
        text = (text or "").strip()
        if text:
            self.transcript = f"{self.transcript} {text}".strip()
        self.interim_transcript = ""

    def on_listening_ended(self) -> Optional["asyncio.Task"]:
        """
        Recognizer reported the end of listening.

        A non-empty final transcript is sent exactly once; the returned task
        resolves to the send result. Must be called on the event loop.
        """
        if self.listening != ListeningState.LISTENING:
            return None
        self.listening = ListeningState.IDLE
        self.interim_transcript = ""

        transcript, self.transcript = self.transcript, ""
        if not transcript:
            return None
        return asyncio.get_running_loop().create_task(self.send(transcript))

    def set_input_mode(self, mode: InputMode) -> None:
        if mode == self.input_mode:
            return
        if mode == InputMode.TEXT:
            # abandon the utterance, do not send it
            if self.recognizer is not None and self.listening == ListeningState.LISTENING:
                self.recognizer.stop()
            self.listening = ListeningState.IDLE
            self.transcript = ""
            self.interim_transcript = ""
            self.stop_speaking()
        self.input_mode = mode

    def _log(self, method: str, *args) -> None:
        if self._session_logger is not None:
            getattr(self._session_logger, method)(self.session_id, *args)
