"""
GGUF selection and download progress tests (huggingface_hub patched)
"""
from unittest.mock import patch

import pytest

from providers.model_assets import DOWNLOAD_SHARE, ModelAssets, select_model_file, shard_names


class TestSelectModelFile:
    def test_quant_preference(self):
        files = [
            "README.md",
            "model-Q4_0.gguf",
            "model-Q8_0.gguf",
            "model-Q4_K_M.gguf",
            "mmproj-Q5_K_M.gguf",
        ]
        assert select_model_file(files) == "model-Q4_K_M.gguf"

    def test_first_shard_of_split(self):
        files = [
            "big-Q5_K_M-00002-of-00002.gguf",
            "big-Q5_K_M-00001-of-00002.gguf",
        ]
        assert select_model_file(files) == "big-Q5_K_M-00001-of-00002.gguf"

    def test_falls_back_to_any_gguf(self):
        assert select_model_file(["weights-f16.gguf"]) == "weights-f16.gguf"

    def test_no_gguf(self):
        with pytest.raises(ValueError):
            select_model_file(["README.md", "mmproj-model-f16.gguf"])


class TestShardNames:
    def test_split(self):
        assert shard_names("m-Q4_0-00001-of-00003.gguf") == [
            "m-Q4_0-00001-of-00003.gguf",
            "m-Q4_0-00002-of-00003.gguf",
            "m-Q4_0-00003-of-00003.gguf",
        ]

    def test_single(self):
        assert shard_names("m-Q4_0.gguf") == ["m-Q4_0.gguf"]


class TestFetch:
    def test_download_with_projector(self, tmp_path):
        """モデル本体とプロジェクタを取得し進捗を報告"""
        reports = []

        def fake_download(repo_id, filename, local_dir):
            return f"{local_dir}/{filename}"

        with patch("providers.model_assets.list_repo_files", return_value=["llava-Q4_K_M.gguf", "mmproj-model-f16.gguf"]), \
             patch("providers.model_assets.try_to_load_from_cache", return_value=None), \
             patch("providers.model_assets.hf_hub_download", side_effect=fake_download) as download:
            files = ModelAssets(tmp_path).fetch(
                "org/llava", "mmproj-model-f16.gguf", lambda stage, f: reports.append((stage, f))
            )

        assert files.model_path.endswith("llava-Q4_K_M.gguf")
        assert files.clip_path.endswith("mmproj-model-f16.gguf")
        assert download.call_count == 2
        fractions = [f for _, f in reports]
        assert fractions == sorted(fractions)
        assert fractions[-1] == DOWNLOAD_SHARE
        assert reports[1][0] == "Downloading llava-Q4_K_M.gguf [1/2]"

    def test_cached_file_skips_download(self, tmp_path):
        (tmp_path / "tiny-Q4_0.gguf").write_bytes(b"gguf")
        reports = []

        with patch("providers.model_assets.list_repo_files", return_value=["tiny-Q4_0.gguf"]), \
             patch("providers.model_assets.try_to_load_from_cache", return_value=None), \
             patch("providers.model_assets.hf_hub_download") as download:
            files = ModelAssets(tmp_path).fetch("org/tiny", None, lambda stage, f: reports.append(stage))

        download.assert_not_called()
        assert files.model_path == str(tmp_path / "tiny-Q4_0.gguf")
        assert files.clip_path is None
        assert any(stage.startswith("Found cached") for stage in reports)
