"""
Configuration management for the encyclopedia assistant.
"""

import os
from pathlib import Path

from dotenv import load_dotenv


class Config:
    """Global configuration"""

    def __init__(self):
        load_dotenv(override=False)

        # Provider selection (overridden by the settings store once saved)
        self.default_provider = os.getenv("AI_PROVIDER", "gemini")
        self.gemini_api_key = os.getenv("GEMINI_API_KEY") or None
        self.groq_api_key = os.getenv("GROQ_API_KEY") or None
        self.groq_base_url = os.getenv(
            "GROQ_BASE_URL", "https://api.groq.com/openai/v1/chat/completions"
        )

        # Generation
        self.max_tokens = int(os.getenv("MAX_TOKENS", "1024"))
        self.timeout = int(os.getenv("TIMEOUT", "60"))

        # Retry policy
        self.retry_attempts = int(os.getenv("RETRY_ATTEMPTS", "3"))
        self.retry_base_delay = float(os.getenv("RETRY_BASE_DELAY", "2.0"))

        # Local engine
        self.local_n_ctx = int(os.getenv("LOCAL_N_CTX", "8192"))
        self.local_n_gpu_layers = int(os.getenv("LOCAL_N_GPU_LAYERS", "-1"))

        # Project paths
        self.project_root = Path(__file__).parent.parent
        self.catalog_path = Path(
            os.getenv("PROVIDER_CATALOG", str(self.project_root / "config" / "providers.yaml"))
        )
        self.settings_path = Path(
            os.getenv("SETTINGS_PATH", str(self.project_root / "config" / "settings.json"))
        )
        self.model_dir = Path(os.getenv("MODEL_DIR", str(self.project_root / "shared_models")))
        self.log_dir = Path(os.getenv("LOG_DIR", "runs"))

    def env_credential(self, provider: str):
        """Credential from the environment, used when the settings store has none"""
        return {
            "gemini": self.gemini_api_key,
            "groq": self.groq_api_key,
        }.get(provider)


# Global config instance
config = Config()
