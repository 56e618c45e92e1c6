"""
GGUF asset resolution and download for the local engine.

Picks the preferred quantization from a Hugging Face model repo, downloads
every shard of split files plus an optional vision projector, and reports
per-file progress through a callback.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from huggingface_hub import hf_hub_download, list_repo_files, try_to_load_from_cache

logger = logging.getLogger(__name__)

# Search strategy: Q5_K_M > Q4_K_M > Q8_0 > Q4_0
QUANT_PREFERENCES = ("Q5_K_M", "Q4_K_M", "Q8_0", "Q4_0")

# Share of the overall load spent fetching assets; the rest is engine start-up
DOWNLOAD_SHARE = 0.9

_SPLIT_RE = re.compile(r"(.*)-00001-of-(\d{5})\.gguf$")

ProgressCallback = Callable[[str, float], None]


@dataclass
class ModelFiles:
    model_path: str
    clip_path: Optional[str] = None


def select_model_file(files: Sequence[str]) -> str:
    """Choose the GGUF file to load from a repo listing."""
    gguf_files = [f for f in files if f.endswith(".gguf") and "mmproj" not in f.lower()]
    if not gguf_files:
        raise ValueError("No GGUF files found in repository")

    for quant in QUANT_PREFERENCES:
        matches = [f for f in gguf_files if quant.lower() in f.lower()]
        if matches:
            # first shard of a split file sorts first
            return sorted(matches)[0]
    return gguf_files[0]


def shard_names(filename: str) -> List[str]:
    """All shard filenames for a split GGUF, or just the file itself."""
    split = _SPLIT_RE.search(filename)
    if not split:
        return [filename]
    base, total = split.group(1), int(split.group(2))
    return [f"{base}-{i:05d}-of-{total:05d}.gguf" for i in range(1, total + 1)]


class ModelAssets:
    """Fetches model files into a shared directory (blocking; run in a worker thread)."""

    def __init__(self, model_dir: Path):
        self.model_dir = Path(model_dir)

    def _local_copy(self, repo_id: str, filename: str) -> Optional[str]:
        direct = self.model_dir / filename
        if direct.exists():
            return str(direct)
        cached = try_to_load_from_cache(repo_id, filename)
        if isinstance(cached, str):
            return cached
        return None

    def fetch(self, repo_id: str, clip_file: Optional[str], report: ProgressCallback) -> ModelFiles:
        """
        Ensure every file for repo_id is available locally.

        Args:
            repo_id: Hugging Face repository holding GGUF files
            clip_file: Optional vision projector filename in the same repo
            report: Called with (stage, fraction) where fraction is within [0, DOWNLOAD_SHARE]

        Returns:
            Local paths of the model (first shard) and projector
        """
        self.model_dir.mkdir(parents=True, exist_ok=True)

        report(f"Fetching file list for {repo_id}", 0.02)
        selected = select_model_file(list_repo_files(repo_id))
        logger.info("Selected model file: %s", selected)

        downloads = shard_names(selected)
        if clip_file:
            downloads.append(clip_file)

        paths = []
        total = len(downloads)
        for i, filename in enumerate(downloads):
            fraction = 0.05 + (DOWNLOAD_SHARE - 0.05) * i / total
            path = self._local_copy(repo_id, filename)
            if path is not None:
                report(f"Found cached {filename} [{i + 1}/{total}]", fraction)
            else:
                report(f"Downloading {filename} [{i + 1}/{total}]", fraction)
                path = hf_hub_download(
                    repo_id=repo_id,
                    filename=filename,
                    local_dir=str(self.model_dir),
                )
            paths.append(path)

        report("Model files ready", DOWNLOAD_SHARE)
        return ModelFiles(model_path=paths[0], clip_path=paths[-1] if clip_file else None)
