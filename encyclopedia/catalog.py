"""
Provider catalogue - backends, models and derived capabilities.

Loaded from config/providers.yaml.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from encyclopedia.config import config
from encyclopedia.errors import ConfigurationError
from encyclopedia.types import Capability, ProviderConfig


DEFAULT_VISION_MARKERS = ("vision", "llava", "-vl")


def has_vision_marker(model_id: Optional[str], markers: Sequence[str] = DEFAULT_VISION_MARKERS) -> bool:
    """Naming convention for multimodal models"""
    if not model_id:
        return False
    lowered = model_id.lower()
    return any(marker in lowered for marker in markers)


@dataclass
class ModelSpec:
    """Model entry from the catalogue"""
    id: str
    supports_vision: bool
    description: str = ""
    repo_id: Optional[str] = None
    clip_file: Optional[str] = None
    chat_handler: Optional[str] = None


@dataclass
class ProviderSpec:
    """Backend entry from the catalogue"""
    id: str
    label: str
    kind: str
    requires_credential: bool
    default_model: str
    credential_key: Optional[str] = None
    vision_model: Optional[str] = None
    models: Dict[str, ModelSpec] = field(default_factory=dict)
    generation: Dict[str, Any] = field(default_factory=dict)


class ProviderCatalog:
    """Read-only view of the configured providers"""

    def __init__(self, path: Optional[Path] = None, data: Optional[Dict[str, Any]] = None):
        self.path = Path(path) if path else config.catalog_path
        raw = data if data is not None else self._load_config()
        self.defaults: Dict[str, Any] = raw.get("defaults", {})
        self.vision_markers = tuple(raw.get("vision_markers") or DEFAULT_VISION_MARKERS)
        self.providers: Dict[str, ProviderSpec] = {
            provider_id: self._parse_provider(provider_id, entry)
            for provider_id, entry in (raw.get("providers") or {}).items()
        }

    def _load_config(self) -> Dict[str, Any]:
        """Read the YAML catalogue"""
        if not self.path.exists():
            raise FileNotFoundError(f"Config not found: {self.path}")

        with open(self.path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def _parse_provider(self, provider_id: str, entry: Dict[str, Any]) -> ProviderSpec:
        models = {}
        for model_id, model_config in (entry.get("models") or {}).items():
            model_config = model_config or {}
            supports_vision = model_config.get("supports_vision")
            if supports_vision is None:
                supports_vision = has_vision_marker(model_id, self.vision_markers)
            models[model_id] = ModelSpec(
                id=model_id,
                supports_vision=bool(supports_vision),
                description=model_config.get("description", ""),
                repo_id=model_config.get("repo_id"),
                clip_file=model_config.get("clip_file"),
                chat_handler=model_config.get("chat_handler"),
            )

        return ProviderSpec(
            id=provider_id,
            label=entry.get("label", provider_id),
            kind=entry["kind"],
            requires_credential=entry.get("requires_credential", True),
            default_model=entry.get("default_model") or next(iter(models), ""),
            credential_key=entry.get("credential_key"),
            vision_model=entry.get("vision_model"),
            models=models,
            generation=entry.get("generation") or {},
        )

    # ========== Lookup ==========

    def provider_ids(self) -> List[str]:
        return list(self.providers)

    def get_provider(self, provider_id: str) -> ProviderSpec:
        spec = self.providers.get(provider_id)
        if spec is None:
            raise ConfigurationError(f"Unknown provider: {provider_id}")
        return spec

    def get_model(self, provider_id: str, model_id: str) -> Optional[ModelSpec]:
        return self.get_provider(provider_id).models.get(model_id)

    def model_supports_vision(self, provider_id: str, model_id: Optional[str]) -> bool:
        model = self.get_model(provider_id, model_id) if model_id else None
        if model is not None:
            return model.supports_vision
        return has_vision_marker(model_id, self.vision_markers)

    def capabilities(self, provider_id: str, model_id: Optional[str]) -> frozenset:
        """
        Derive the capability set for a provider/model pair.

        A provider that can switch to a dedicated vision model is vision
        capable regardless of the selected text model.
        """
        spec = self.get_provider(provider_id)
        caps = {Capability.TEXT}
        if spec.vision_model or self.model_supports_vision(provider_id, model_id):
            caps.add(Capability.VISION)
        return frozenset(caps)

    def vision_alternative(self, exclude: str) -> str:
        """Label of a vision capable provider other than `exclude`"""
        for spec in self.providers.values():
            if spec.id == exclude:
                continue
            if spec.vision_model or any(m.supports_vision for m in spec.models.values()):
                return spec.label
        return "a vision capable provider"

    def offline_label(self) -> str:
        for spec in self.providers.values():
            if spec.kind == "local_engine":
                return spec.label
        return "the local provider"

    def build_config(
        self,
        provider_id: str,
        credential: Optional[str] = None,
        model_id: Optional[str] = None,
    ) -> ProviderConfig:
        spec = self.get_provider(provider_id)
        model = model_id or spec.default_model
        return ProviderConfig(
            provider=provider_id,
            credential=credential or None,
            model=model,
            capabilities=self.capabilities(provider_id, model),
        )


# Singleton
_catalog: Optional[ProviderCatalog] = None


def get_catalog() -> ProviderCatalog:
    """Get the singleton instance"""
    global _catalog
    if _catalog is None:
        _catalog = ProviderCatalog()
    return _catalog


def reset_catalog() -> None:
    """Reset the singleton (for tests)"""
    global _catalog
    _catalog = None
