"""
Tests for the Synthesizer

Grounded answers, findings and structured extraction with fallbacks,
and whole-text analysis.
"""

import json
import logging
from unittest.mock import Mock

import pytest

from analyst.common.errors import GenerationError, SynthesisParseError
from analyst.common.schemas import Chunk
from analyst.tests.fakes import ScriptedLLM


def _put(store, name, contents, embedder=None):
    for i, content in enumerate(contents):
        store.put(name, Chunk(
            document_name=name, content=content, index=i, total_chunks=len(contents),
            embedding=embedder.embed(content) if embedder else None,
        ))


def _synth(store, llm, embedding_service=None, mode="auto"):
    from analyst.retriever.searcher import Retriever
    from analyst.retriever.synthesizer import Synthesizer
    return Synthesizer(Retriever(store, embedding_service, mode=mode), llm)


class TestAnswer:
    def test_no_context_skips_model(self, store):
        from analyst.retriever.synthesizer import INSUFFICIENT_INFO_ANSWER
        llm = Mock()

        result = _synth(store, llm).answer("What is X?", "doc2")

        assert result.answer == INSUFFICIENT_INFO_ANSWER
        assert result.sources == []
        assert result.confidence == 0
        llm.generate.assert_not_called()

    def test_numbered_context_and_sources(self, store):
        _put(store, "doc", ["Acme sells widgets in Europe. " * 5, "Widgets revenue reached $3M."])
        llm = ScriptedLLM("Acme sells widgets [1].")

        result = _synth(store, llm, mode="keyword").answer("widgets", "doc")

        prompt = llm.prompts[0]
        assert "[1] Acme sells widgets" in prompt
        assert "[2] Widgets revenue" in prompt
        assert "Question: widgets" in prompt
        assert result.answer == "Acme sells widgets [1]."
        assert result.sources[0] == ("Acme sells widgets in Europe. " * 5)[:100] + "..."
        assert result.sources[1] == "Widgets revenue reached $3M...."

    def test_keyword_confidence_is_constant(self, store):
        _put(store, "doc", ["growth growth growth", "growth"])
        result = _synth(store, ScriptedLLM("a"), mode="keyword").answer("growth", "doc")
        assert result.confidence == pytest.approx(0.8)

    def test_vector_confidence_is_mean_similarity(self, store):
        from analyst.retriever.searcher import Retriever
        from analyst.retriever.synthesizer import Synthesizer
        store.put("doc", Chunk(document_name="doc", content="a", index=0, total_chunks=2, embedding=[1.0, 0.0]))
        store.put("doc", Chunk(document_name="doc", content="b", index=1, total_chunks=2, embedding=[0.0, 1.0]))
        embedding = Mock()
        embedding.embed.return_value = [1.0, 0.0]

        synth = Synthesizer(Retriever(store, embedding, mode="vector"), ScriptedLLM("answer"))
        result = synth.answer("q", "doc")

        assert result.confidence == pytest.approx(0.5)

    def test_model_errors_propagate(self, store):
        _put(store, "doc", ["some context"])
        llm = Mock()
        llm.generate.side_effect = GenerationError("LLM client is not available")

        with pytest.raises(GenerationError):
            _synth(store, llm, mode="keyword").answer("context", "doc")

    def test_to_dict(self, store):
        from analyst.retriever.synthesizer import AnalystAnswer
        data = AnalystAnswer(answer="a", sources=["s"], confidence=0.5).to_dict()
        assert data == {"answer": "a", "sources": ["s"], "confidence": 0.5}


class TestFindings:
    FINDINGS = {
        "keyInsights": ["Demand is rising"],
        "opportunities": ["Expand to LATAM"],
        "threats": ["New entrants"],
        "recommendations": ["Lock in suppliers"],
    }

    def test_parses_fenced_json(self, store):
        _put(store, "doc", ["market research findings about opportunities and threats"])
        raw = "Here you go:\n```json\n" + json.dumps(self.FINDINGS) + "\n```\nLet me know!"
        llm = ScriptedLLM(raw)

        findings = _synth(store, llm, mode="keyword").findings("doc")

        assert findings.key_insights == ["Demand is rising"]
        assert findings.to_dict() == self.FINDINGS
        assert "keyInsights, opportunities, threats, recommendations" in llm.prompts[0]

    def test_truncated_json_falls_back(self, store, caplog):
        _put(store, "doc", ["market findings"])
        llm = ScriptedLLM('{"keyInsights": ["cut off"')

        with caplog.at_level(logging.WARNING, logger="analyst.retriever.synthesizer"):
            findings = _synth(store, llm, mode="keyword").findings("doc")

        assert findings.to_dict() == {
            "keyInsights": ["Unable to parse findings"],
            "opportunities": [],
            "threats": [],
            "recommendations": [],
        }
        assert "fallback" in caplog.text

    def test_wrong_shape_falls_back(self, store):
        _put(store, "doc", ["market findings"])
        llm = ScriptedLLM('{"keyInsights": "not a list", "threats": 5}')

        findings = _synth(store, llm, mode="keyword").findings("doc")

        assert findings.key_insights == ["Unable to parse findings"]

    def test_no_context_falls_back_without_model(self, store):
        llm = Mock()
        findings = _synth(store, llm).findings("empty-doc")
        assert findings.key_insights == ["Unable to parse findings"]
        llm.generate.assert_not_called()

    def test_uses_ten_chunks(self, store):
        _put(store, "doc", [f"market analysis part {i}" for i in range(15)])
        llm = ScriptedLLM(json.dumps(self.FINDINGS))

        _synth(store, llm, mode="keyword").findings("doc")

        assert "[10]" in llm.prompts[0]
        assert "[11]" not in llm.prompts[0]


class TestStructuredExtraction:
    def test_parses_fields(self, store):
        _put(store, "doc", ["company information and metrics"])
        llm = ScriptedLLM(
            'Sure! {"companyName": "Acme", "industry": "Robotics", "marketSize": "$4B", '
            '"competitors": ["Globex"], "keyMetrics": {"growth": "12%"}, '
            '"foundedYear": "1999", "employeeCount": "1,200", "ceo": "R. Runner"}'
        )

        data = _synth(store, llm, mode="keyword").extract_structured("doc")

        assert data.company_name == "Acme"
        assert data.founded_year == 1999
        assert data.employee_count == 1200
        out = data.to_dict()
        assert out["marketSize"] == "$4B"
        assert out["competitors"] == ["Globex"]
        assert out["ceo"] == "R. Runner"

    def test_unparseable_falls_back(self, store):
        _put(store, "doc", ["company information"])
        llm = ScriptedLLM("I could not find any company data.")

        data = _synth(store, llm, mode="keyword").extract_structured("doc")

        assert data.to_dict() == {"companyName": "Unknown", "industry": "Unknown"}

    def test_no_context_falls_back(self, store):
        data = _synth(store, Mock()).extract_structured("missing")
        assert data.to_dict() == {"companyName": "Unknown", "industry": "Unknown"}


class TestAnalyzeDocument:
    ANALYSIS = {
        "companyName": "Acme",
        "industry": "Robotics",
        "competitors": ["Globex"],
        "keyInsights": ["i"],
        "opportunities": ["o"],
        "threats": ["t"],
        "recommendations": ["r"],
        "swotAnalysis": {"strengths": ["s"], "weaknesses": ["w"], "opportunities": ["o"], "threats": ["t"]},
    }

    def test_parses_swot(self, store):
        llm = ScriptedLLM(json.dumps(self.ANALYSIS))

        analysis = _synth(store, llm).analyze_document("Acme builds robots.")

        assert analysis.swot_analysis.weaknesses == ["w"]
        assert analysis.to_dict()["swotAnalysis"]["strengths"] == ["s"]
        assert "Acme builds robots." in llm.prompts[0]

    def test_truncates_long_documents(self, store):
        from analyst.retriever.synthesizer import MAX_ANALYSIS_CHARS, TRUNCATION_MARKER
        llm = ScriptedLLM(json.dumps(self.ANALYSIS))

        _synth(store, llm).analyze_document("x" * (MAX_ANALYSIS_CHARS + 500))

        prompt = llm.prompts[0]
        assert TRUNCATION_MARKER in prompt
        assert "x" * (MAX_ANALYSIS_CHARS + 1) not in prompt

    def test_parse_failure_raises(self, store):
        llm = ScriptedLLM("Analysis unavailable")
        with pytest.raises(SynthesisParseError):
            _synth(store, llm).analyze_document("text")

    def test_empty_text_rejected(self, store):
        with pytest.raises(ValueError):
            _synth(store, Mock()).analyze_document("   ")


class TestExtractReport:
    def test_extracts_figures(self, store):
        llm = ScriptedLLM(json.dumps({
            "summary": "Strong year.",
            "products": ["Widget Pro"],
            "figures": [{"label": "Revenue", "value": 3000000}],
            "keyInsights": ["k"],
            "marketTrends": ["automation"],
        }))

        report = _synth(store, llm).extract_report("Annual report text")

        assert report.figures[0].value == "3000000"
        assert report.to_dict()["marketTrends"] == ["automation"]

    def test_parse_failure_raises(self, store):
        with pytest.raises(SynthesisParseError):
            _synth(store, ScriptedLLM("{oops")).extract_report("text")
