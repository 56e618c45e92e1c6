"""
Response normalizer tests
"""
import json

import pytest

from encyclopedia.normalizer import (
    EMPTY_OUTPUT_TEXT,
    GEMINI_FALLBACK,
    GROQ_FALLBACK,
    LOCAL_FALLBACK,
    normalize,
    parse_structured,
    strip_fences,
)
from encyclopedia.errors import SchemaParseError
from encyclopedia.types import StructuredResponse

from conftest import CAPITAL_JSON


class TestStripFences:
    def test_json_fence(self):
        assert strip_fences('```json\n{"text": "hi"}\n```') == '{"text": "hi"}'

    def test_plain_fence_and_whitespace(self):
        assert strip_fences('  ```\n{"a": 1}\n```  ') == '{"a": 1}'

    def test_none(self):
        assert strip_fences(None) == ""


class TestParseStructured:
    def test_valid_payload(self):
        """スキーマ通りのJSONはそのまま採用"""
        resp = parse_structured(CAPITAL_JSON)
        assert resp.text == "The capital of France is Paris."
        assert resp.sources == ["General Knowledge"]
        assert resp.confidence_score == 99
        assert resp.analysis.intent == "Information Retrieval"
        assert resp.recommendations[0].label == "Eiffel Tower"
        assert resp.recommendations[0].score == 95

    def test_scores_are_clamped(self):
        payload = json.dumps({
            "text": "x",
            "confidence_score": 250,
            "recommendations": [{"label": "a", "score": -4}, {"label": "b", "score": "77"}],
        })
        resp = parse_structured(payload)
        assert resp.confidence_score == 100
        assert [r.score for r in resp.recommendations] == [0, 77]

    def test_optional_fields_missing(self):
        resp = parse_structured('{"text": "only text"}')
        assert resp.sources == []
        assert resp.analysis is None
        assert resp.recommendations == []
        assert resp.confidence_score == 0

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"sources": []}', '{"text": ""}', '{"text": 5}'])
    def test_schema_violations_raise(self, raw):
        with pytest.raises(SchemaParseError):
            parse_structured(raw)


class TestNormalize:
    def test_fenced_valid_json(self):
        resp = normalize(f"```json\n{CAPITAL_JSON}\n```", GEMINI_FALLBACK)
        assert resp.text == "The capital of France is Paris."
        assert resp.confidence_score == 99

    def test_gemini_fallback(self):
        """パース失敗時はプロバイダ別のフォールバック"""
        resp = normalize("Paris is the capital.", GEMINI_FALLBACK)
        assert resp.text == "Paris is the capital."
        assert resp.sources == ["Unknown"]
        assert resp.confidence_score == 0
        assert resp.analysis.intent == "Unknown"
        assert resp.analysis.context == "Failed to parse structured response"
        assert resp.recommendations == []

    def test_groq_and_local_fallback_confidence(self):
        assert normalize("plain", GROQ_FALLBACK).confidence_score == 90
        assert normalize("plain", GROQ_FALLBACK).sources == ["Groq LLM"]
        assert normalize("plain", LOCAL_FALLBACK).confidence_score == 80
        assert normalize("plain", LOCAL_FALLBACK).sources == ["Local Knowledge"]

    def test_fallback_text_is_unfenced(self):
        resp = normalize("```json\n{broken\n```", LOCAL_FALLBACK)
        assert resp.text == "{broken"

    @pytest.mark.parametrize("raw", [
        "",
        None,
        "```json```",
        42,
        '{"text": null}',
        '{"text": "Paris", "confidence_score": 1e999}',
        '{"text": "Paris", "confidence_score": Infinity}',
        '{"text": "Paris", "confidence_score": NaN}',
        '{"text": "Paris", "recommendations": [{"label": "a", "score": -Infinity}]}',
        '{"text": "Paris", "recommendations": [{"label": "a", "score": ' + "9" * 400 + "}]}",
    ])
    def test_never_raises_and_text_non_empty(self, raw):
        resp = normalize(raw, GROQ_FALLBACK)
        assert isinstance(resp, StructuredResponse)
        assert resp.text
        assert 0 <= resp.confidence_score <= 100

    def test_empty_output_placeholder(self):
        assert normalize("", GEMINI_FALLBACK).text == EMPTY_OUTPUT_TEXT


class TestStructuredResponse:
    def test_to_dict_round_trip_fields(self):
        resp = parse_structured(CAPITAL_JSON)
        data = resp.to_dict()
        assert data["text"] == resp.text
        assert data["analysis"] == {"intent": "Information Retrieval", "context": "Geography"}
        assert data["recommendations"] == [{"label": "Eiffel Tower", "score": 95}]

    def test_non_finite_scores_use_default(self):
        """数値として扱えないスコアは既定値"""
        resp = parse_structured('{"text": "Paris", "confidence_score": 1e999, '
                                '"recommendations": [{"label": "a", "score": NaN}]}')
        assert resp.confidence_score == 0
        assert resp.recommendations[0].score == 0
        assert StructuredResponse(text="a", confidence_score=10 ** 400).confidence_score == 0

    def test_construction_clamps_confidence(self):
        assert StructuredResponse(text="a", confidence_score=-10).confidence_score == 0
        assert StructuredResponse(text="a", confidence_score=101).confidence_score == 100
