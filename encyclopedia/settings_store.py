"""
Key/value settings store (provider choice, credentials, local model).

The orchestrator receives a store explicitly; nothing reads settings from
global state. JsonSettingsStore persists to a JSON file the way the provider
state file is saved and restored.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)

KEY_PROVIDER = "ai_provider"
KEY_LOCAL_MODEL = "local_model"


def credential_key(provider: str) -> str:
    return f"{provider}_api_key"


class SettingsStore(Protocol):
    """Minimal key/value contract"""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: Optional[str]) -> None:
        ...


class MemorySettingsStore:
    """Process-local store (tests, one-off CLI sessions)"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: Optional[str]) -> None:
        if value is None or value == "":
            self._values.pop(key, None)
        else:
            self._values[key] = value


class JsonSettingsStore(MemorySettingsStore):
    """Store backed by a JSON file; every set() is written through."""

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        self.load()

    def load(self) -> None:
        """Restore saved settings"""
        if not self.path.exists():
            return
        try:
            state = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", self.path, e)
            return
        if isinstance(state, dict):
            self._values = {str(k): str(v) for k, v in state.items() if v is not None}

    def save(self) -> None:
        """Persist the current settings"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._values, indent=2), encoding="utf-8")

    def set(self, key: str, value: Optional[str]) -> None:
        super().set(key, value)
        self.save()
