import asyncio
import logging
from typing import Any, AsyncIterator, Callable, List, Optional, Sequence

from encyclopedia.catalog import ProviderCatalog
from encyclopedia.config import config as app_config
from encyclopedia.errors import EngineLoadError, NotFoundError, ProviderError
from encyclopedia.normalizer import LOCAL_FALLBACK
from encyclopedia.prompts import SYSTEM_PROMPT, history_to_chat_messages, merge_text_attachment
from encyclopedia.types import (
    Attachment,
    EngineLifecycleState,
    Message,
    ProgressEvent,
    ProviderConfig,
)

from .chat_provider import BaseChatProvider
from .model_assets import DOWNLOAD_SHARE, ModelAssets, ModelFiles

logger = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressEvent], None]
EngineLoader = Callable[[ModelFiles, int, int, Optional[str]], Any]

FINISHED_STAGE = "Finish loading on local engine"

# catalogue `chat_handler` values -> llama_cpp.llama_chat_format classes
CHAT_HANDLERS = {
    "llava-1-5": "Llava15ChatHandler",
    "llava-1-6": "Llava16ChatHandler",
}
DEFAULT_CHAT_HANDLER = "llava-1-5"


def load_llama_engine(
    files: ModelFiles,
    n_ctx: int,
    n_gpu_layers: int,
    chat_handler: Optional[str] = None,
) -> Any:
    """Build a llama.cpp engine (blocking).

    A vision projector needs the multimodal chat handler matching the
    model family; `chat_handler` names it (see CHAT_HANDLERS).
    """
    # Lazy import: llama-cpp-python is an optional extra
    from llama_cpp import Llama

    handler = None
    if files.clip_path:
        from llama_cpp import llama_chat_format

        name = chat_handler or DEFAULT_CHAT_HANDLER
        if name not in CHAT_HANDLERS:
            raise ValueError(f"Unknown chat handler: {name}")
        handler_cls = getattr(llama_chat_format, CHAT_HANDLERS[name])
        handler = handler_cls(clip_model_path=files.clip_path, verbose=False)

    return Llama(
        model_path=files.model_path,
        chat_handler=handler,
        n_ctx=n_ctx,
        n_gpu_layers=n_gpu_layers,
        verbose=False,
    )


class LocalEngineProvider(BaseChatProvider):
    """On-device llama.cpp engine with an explicit lifecycle.

    UNINITIALIZED -> LOADING -> READY, LOADING -> FAILED on error, and
    FAILED -> LOADING on the next initialize(). Initialization is
    single-flight: concurrent callers await the same task. Inference is
    serialized because the engine is not safe for concurrent calls.
    """

    fallback = LOCAL_FALLBACK

    def __init__(
        self,
        config: ProviderConfig,
        catalog: Optional[ProviderCatalog] = None,
        *,
        assets: Optional[ModelAssets] = None,
        loader: EngineLoader = load_llama_engine,
    ) -> None:
        super().__init__(config, catalog)
        self.model = self.catalog.get_model(config.provider, config.model)
        if self.model is None or not self.model.repo_id:
            raise NotFoundError(f"Unknown local model: {config.model}")

        self.assets = assets or ModelAssets(app_config.model_dir)
        self._loader = loader
        self._engine: Any = None
        self._state = EngineLifecycleState.UNINITIALIZED
        self._init_task: Optional[asyncio.Task] = None
        self._inference_lock = asyncio.Lock()
        self._listeners: List[ProgressListener] = []
        self._last_fraction = 0.0

    @property
    def engine_label(self) -> str:
        return f"{self.config.model} locally (text-only model)"

    @property
    def state(self) -> EngineLifecycleState:
        return self._state

    # ========== Progress ==========

    def add_progress_listener(self, listener: ProgressListener) -> Callable[[], None]:
        """Register an observer; returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def progress_events(self) -> AsyncIterator[ProgressEvent]:
        """Iterate progress of the current (or next) load until its terminal event.

        Events emitted before iteration starts are not replayed.
        """
        queue: asyncio.Queue = asyncio.Queue()
        remove = self.add_progress_listener(queue.put_nowait)
        try:
            while True:
                event = await queue.get()
                yield event
                if event.done:
                    return
        finally:
            remove()

    def _emit(self, stage: str, fraction: float, done: bool = False) -> None:
        fraction = min(1.0, max(fraction, self._last_fraction))
        self._last_fraction = fraction
        event = ProgressEvent(stage=stage, fraction=fraction, done=done)
        logger.debug("Model progress: %s (%.0f%%)", stage, fraction * 100)
        for listener in list(self._listeners):
            listener(event)

    # ========== Lifecycle ==========

    async def initialize(self) -> None:
        """Bring the engine to READY, sharing any load already in flight.

        Raises:
            EngineLoadError: the load failed; state is FAILED and a later call retries
        """
        if self._state == EngineLifecycleState.READY:
            return
        if self._init_task is None:
            self._init_task = asyncio.get_running_loop().create_task(self._load())
        await asyncio.shield(self._init_task)

    async def _load(self) -> None:
        self._state = EngineLifecycleState.LOADING
        self._last_fraction = 0.0
        loop = asyncio.get_running_loop()

        def report(stage: str, fraction: float) -> None:
            loop.call_soon_threadsafe(self._emit, stage, fraction)

        logger.info("Initializing local engine (%s)...", self.config.model)
        self._emit("Initializing...", 0.0)
        try:
            files = await asyncio.to_thread(
                self.assets.fetch, self.model.repo_id, self.model.clip_file, report
            )
            self._emit("Loading model into memory", DOWNLOAD_SHARE)
            engine = await asyncio.to_thread(
                self._loader,
                files,
                app_config.local_n_ctx,
                app_config.local_n_gpu_layers,
                self.model.chat_handler,
            )
        except Exception as e:
            logger.error("Failed to load local engine: %s", e)
            self._state = EngineLifecycleState.FAILED
            self._init_task = None
            self._emit(f"Failed: {e}", self._last_fraction, done=True)
            raise EngineLoadError(f"Failed to load local model {self.config.model}: {e}") from e

        self._engine = engine
        self._state = EngineLifecycleState.READY
        self._emit(FINISHED_STAGE, 1.0, done=True)
        logger.info("Local engine loaded.")

    async def teardown(self) -> None:
        """Dispose of the engine so a different model can be loaded.

        Waits for an in-flight load and for running inference first.
        """
        task = self._init_task
        if task is not None and not task.done():
            try:
                await asyncio.shield(task)
            except EngineLoadError:
                pass

        async with self._inference_lock:
            engine, self._engine = self._engine, None
            if engine is not None:
                close = getattr(engine, "close", None)
                if close is not None:
                    await asyncio.to_thread(close)
            self._state = EngineLifecycleState.UNINITIALIZED
            self._init_task = None
        logger.info("Local engine released (%s)", self.config.model)

    async def close(self) -> None:
        await self.teardown()

    # ========== Inference ==========

    def _build_messages(
        self,
        history: Sequence[Message],
        user_text: str,
        attachment: Optional[Attachment],
    ) -> List[dict]:
        if attachment is not None and attachment.is_binary:
            user_content: Any = [
                {"type": "text", "text": user_text},
                {"type": "image_url", "image_url": {"url": attachment.data}},
            ]
        else:
            user_content = merge_text_attachment(user_text, attachment)

        messages: List[dict] = [{"role": "system", "content": SYSTEM_PROMPT}]
        messages.extend(history_to_chat_messages(history))
        messages.append({"role": "user", "content": user_content})
        return messages

    async def _complete(
        self,
        history: Sequence[Message],
        user_text: str,
        attachment: Optional[Attachment],
    ) -> str:
        await self.initialize()
        messages = self._build_messages(history, user_text, attachment)
        generation = self.spec.generation

        async with self._inference_lock:
            if self._engine is None:
                raise ProviderError("Local engine was released before inference")
            try:
                response = await asyncio.to_thread(
                    self._engine.create_chat_completion,
                    messages=messages,
                    temperature=generation.get("temperature", 0.7),
                    max_tokens=generation.get("max_tokens", app_config.max_tokens),
                )
            except (RuntimeError, ValueError) as e:
                logger.error("Local Inference Error: %s", e)
                raise ProviderError(f"Local inference failed: {e}") from e

        try:
            return response["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Unexpected local engine output: {e}") from e
