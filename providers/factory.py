from typing import Callable, Optional

from encyclopedia.catalog import ProviderCatalog, get_catalog
from encyclopedia.types import ProgressEvent, ProviderConfig

from .chat_provider import ChatProvider


def create_provider(
    config: ProviderConfig,
    catalog: Optional[ProviderCatalog] = None,
    *,
    on_progress: Optional[Callable[[ProgressEvent], None]] = None,
) -> ChatProvider:
    """Create the provider client for a configuration.

    Backend SDKs are imported only for the kind actually requested.
    """
    catalog = catalog or get_catalog()
    kind = catalog.get_provider(config.provider).kind

    if kind == "cloud_session":
        from .gemini_session import GeminiSessionProvider

        return GeminiSessionProvider(config, catalog)
    if kind == "cloud_stateless":
        from .groq_http import GroqHttpProvider

        return GroqHttpProvider(config, catalog)
    if kind == "local_engine":
        from .local_engine import LocalEngineProvider

        provider = LocalEngineProvider(config, catalog)
        if on_progress is not None:
            provider.add_progress_listener(on_progress)
        return provider
    raise ValueError(f"Unknown provider kind: {kind}")


__all__ = ["create_provider"]
