"""Provider package for pluggable inference backends.

Three clients share the ChatProvider contract:
- GeminiSessionProvider: stateful cloud chat session
- GroqHttpProvider: stateless chat-completions over HTTP
- LocalEngineProvider: on-device llama.cpp engine with a download/load lifecycle

Use create_provider() to build the one matching a ProviderConfig.
"""

from .chat_provider import BaseChatProvider, ChatProvider  # re-export
from .factory import create_provider

__all__ = [
    "BaseChatProvider",
    "ChatProvider",
    "create_provider",
]
