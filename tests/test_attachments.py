"""
Attachment classifier tests
"""
import asyncio
import base64

import pytest

from encyclopedia.attachments import PendingAttachment, classify_bytes, load_attachment


class TestClassifyBytes:
    @pytest.mark.parametrize("name,mime", [
        ("photo.jpg", "image/jpeg"),
        ("photo.PNG", "image/png"),
        ("scan.webp", "image/webp"),
        ("paper.pdf", "application/pdf"),
    ])
    def test_binary_types(self, name, mime):
        att = classify_bytes(name, b"\x89binary\x00")
        assert att.is_binary is True
        assert att.mime_type == mime
        assert att.data.startswith(f"data:{mime};base64,")
        assert base64.b64decode(att.base64_payload) == b"\x89binary\x00"

    @pytest.mark.parametrize("name,mime", [
        ("notes.txt", "text/plain"),
        ("table.csv", "text/csv"),
        ("data.json", "application/json"),
        ("README.md", "text/markdown"),
    ])
    def test_text_types(self, name, mime):
        att = classify_bytes(name, "héllo".encode("utf-8"))
        assert att.is_binary is False
        assert att.mime_type == mime
        assert att.data == "héllo"
        assert att.name == name

    def test_invalid_utf8_text_raises(self):
        with pytest.raises(UnicodeDecodeError):
            classify_bytes("notes.txt", b"\xff\xfe\xfa")


class TestLoadAttachment:
    def test_reads_file(self, tmp_path):
        path = tmp_path / "facts.md"
        path.write_text("# Paris\nCapital of France", encoding="utf-8")

        att = asyncio.run(load_attachment(path))
        assert att is not None
        assert att.mime_type == "text/markdown"
        assert "Capital of France" in att.data

    def test_missing_file_returns_none(self, tmp_path):
        """読めないファイルは添付なしとして扱う"""
        assert asyncio.run(load_attachment(tmp_path / "nope.txt")) is None

    def test_undecodable_text_returns_none(self, tmp_path):
        path = tmp_path / "bad.txt"
        path.write_bytes(b"\xff\xfe\xfa")
        assert asyncio.run(load_attachment(path)) is None


class TestPendingAttachment:
    def test_replace_not_append(self, text_attachment, image_attachment):
        pending = PendingAttachment()
        pending.attach(text_attachment)
        pending.attach(image_attachment)
        assert pending.current is image_attachment

    def test_take_clears(self, text_attachment):
        pending = PendingAttachment()
        pending.attach(text_attachment)
        assert pending.take() is text_attachment
        assert pending.take() is None
        assert pending.current is None
