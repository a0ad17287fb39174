"""
Synthesizer

Grounded generation over retrieved chunks.

Every operation follows the same shape: retrieve, number the chunks into a
context block, prompt the model, then parse. Free-text answers are returned
as-is. JSON-shaped outputs are cut out of the response with brace matching
and validated against a schema.

Key principle: the model is never called with an empty context.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..common.config import RetrieverConfig
from ..common.errors import SynthesisParseError
from ..common.llm_client import TextGenerator
from ..common.llm_utils import extract_json_object
from ..common.schemas import DocumentAnalysis, MarketFindings, ReportExtraction, StructuredData
from .searcher import VECTOR, RetrievalResult, Retriever

logger = logging.getLogger("analyst.retriever.synthesizer")

M = TypeVar("M", bound=BaseModel)

INSUFFICIENT_INFO_ANSWER = (
    "I don't have enough information to answer this question based on the provided documents."
)
FINDINGS_QUERY = "market research findings opportunities threats analysis"
STRUCTURED_QUERY = "company information metrics data statistics"

MAX_ANALYSIS_CHARS = 100_000
TRUNCATION_MARKER = "\n\n[Document truncated for analysis]"


@dataclass
class AnalystAnswer:
    """Answer to a question about one document"""
    answer: str
    sources: List[str] = field(default_factory=list)  # chunk previews, in citation order
    confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"answer": self.answer, "sources": list(self.sources), "confidence": self.confidence}


# Prompt templates
ANSWER_PROMPT = """You are an AI Market Analyst. Answer the following question based on the provided context from market research documents.

Context:
{context}

Question: {question}

Provide a clear, concise answer based ONLY on the context. If the context doesn't contain enough information, say so. Cite which context sections you used (e.g., [1], [2])."""

FINDINGS_PROMPT = """You are an AI Market Analyst. Analyze the following market research document and provide structured findings.

Document Content:
{context}

Provide a comprehensive analysis in the following format:

KEY INSIGHTS:
- List 3-5 key insights from the research

OPPORTUNITIES:
- List 3-5 market opportunities identified

THREATS:
- List 3-5 potential threats or challenges

RECOMMENDATIONS:
- List 3-5 strategic recommendations

Format your response as a JSON object with keys: keyInsights, opportunities, threats, recommendations (each as an array of strings)."""

STRUCTURED_PROMPT = """You are an AI Market Analyst. Extract structured data from the following market research document.

Document Content:
{context}

Extract and return a JSON object with the following information:
- companyName: string
- industry: string
- marketSize: string (if available)
- competitors: array of competitor names
- keyMetrics: object with any numerical metrics found (revenue, growth rate, market share, etc.)
- foundedYear: number (if available)
- headquarters: string (if available)
- employeeCount: number (if available)

Only include fields where you find clear information. Return valid JSON."""

ANALYSIS_PROMPT = """You are an AI Market Analyst. Analyze the following market research document and provide comprehensive insights.

Document Content:
{content}

Provide your analysis in the following JSON format:
{{
  "companyName": "string",
  "industry": "string",
  "marketSize": "string (if available)",
  "competitors": ["array of competitor names"],
  "keyInsights": ["3-5 key insights from the research"],
  "opportunities": ["3-5 market opportunities identified"],
  "threats": ["3-5 potential threats or challenges"],
  "recommendations": ["3-5 strategic recommendations"],
  "swotAnalysis": {{
    "strengths": ["3-5 company strengths"],
    "weaknesses": ["3-5 company weaknesses"],
    "opportunities": ["3-5 market opportunities"],
    "threats": ["3-5 external threats"]
  }}
}}

Return ONLY valid JSON, no additional text."""

REPORT_PROMPT = """Analyze the following market report document and extract key information.

Document Text:
{content}

Extract:
1. A concise summary (max 200 words) of key market insights
2. All mentioned product names
3. Key figures/numbers with their labels
4. Main insights from the report
5. Identified market trends

Format your response as a JSON object with keys: summary (string), products (array of strings), figures (array of {{"label": string, "value": string}}), keyInsights (array of strings), marketTrends (array of strings)."""


def truncate_for_analysis(text: str, limit: int = MAX_ANALYSIS_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def format_context(results: List[RetrievalResult]) -> str:
    """Number chunks [1]..[n] in ranking order."""
    return "\n\n".join(f"[{i}] {r.content}" for i, r in enumerate(results, 1))


class Synthesizer:
    """
    Answers, findings and structured extraction over one document.

    Findings and structured extraction never fail on a malformed model
    response; they return a typed fallback instead. Answers and whole-text
    analysis propagate model errors.
    """

    def __init__(
        self,
        retriever: Retriever,
        llm: TextGenerator,
        answer_topk: int = 5,
        context_topk: int = 10,
        source_preview_chars: int = 100,
        keyword_confidence: float = 0.8,
    ):
        """
        Initialize synthesizer.

        Args:
            retriever: Scoped chunk retrieval
            llm: Anything with ``generate(prompt) -> str``
            answer_topk: Chunks retrieved for a question
            context_topk: Chunks retrieved for findings / structured extraction
            source_preview_chars: Length of each source preview in answers
            keyword_confidence: Confidence reported for keyword-ranked answers
        """
        self._retriever = retriever
        self._llm = llm
        self.answer_topk = answer_topk
        self.context_topk = context_topk
        self.source_preview_chars = source_preview_chars
        self.keyword_confidence = keyword_confidence

    @classmethod
    def from_config(cls, config: RetrieverConfig, retriever: Retriever, llm: TextGenerator) -> "Synthesizer":
        return cls(
            retriever,
            llm,
            answer_topk=config.topk,
            context_topk=config.context_topk,
            source_preview_chars=config.source_preview_chars,
            keyword_confidence=config.keyword_confidence,
        )

    # ------------------------------------------------------------------
    # Retrieval-grounded operations
    # ------------------------------------------------------------------

    def answer(self, question: str, document_name: str) -> AnalystAnswer:
        """Answer a question from the document's most relevant chunks."""
        results = self._retriever.search(question, document_name, top_k=self.answer_topk)
        if not results:
            logger.info("No context for %r in %s", question, document_name)
            return AnalystAnswer(answer=INSUFFICIENT_INFO_ANSWER, sources=[], confidence=0.0)

        prompt = ANSWER_PROMPT.format(context=format_context(results), question=question)
        answer_text = self._llm.generate(prompt)

        return AnalystAnswer(
            answer=answer_text,
            sources=[self._preview(r.content) for r in results],
            confidence=self._confidence(results),
        )

    def findings(self, document_name: str) -> MarketFindings:
        """Insights, opportunities, threats and recommendations for a document."""
        results = self._retriever.search(FINDINGS_QUERY, document_name, top_k=self.context_topk)
        if not results:
            logger.info("No context for findings in %s", document_name)
            return MarketFindings.fallback()

        raw = self._llm.generate(FINDINGS_PROMPT.format(context=format_context(results)))
        try:
            return self._parse(raw, MarketFindings)
        except SynthesisParseError as e:
            logger.warning("Findings for %s unparseable, using fallback: %s", document_name, e)
            return MarketFindings.fallback()

    def extract_structured(self, document_name: str) -> StructuredData:
        """Company-level facts (name, industry, market size, ...) for a document."""
        results = self._retriever.search(STRUCTURED_QUERY, document_name, top_k=self.context_topk)
        if not results:
            logger.info("No context for structured extraction in %s", document_name)
            return StructuredData.fallback()

        raw = self._llm.generate(STRUCTURED_PROMPT.format(context=format_context(results)))
        try:
            return self._parse(raw, StructuredData)
        except SynthesisParseError as e:
            logger.warning("Structured data for %s unparseable, using fallback: %s", document_name, e)
            return StructuredData.fallback()

    # ------------------------------------------------------------------
    # Whole-text operations
    # ------------------------------------------------------------------

    def analyze_document(self, text: str) -> DocumentAnalysis:
        """
        Full analysis with a SWOT block, from raw text rather than retrieval.

        Raises:
            ValueError: empty text
            SynthesisParseError: the model did not return a usable JSON object
        """
        if not text or not text.strip():
            raise ValueError("Document content is required")

        raw = self._llm.generate(ANALYSIS_PROMPT.format(content=truncate_for_analysis(text)))
        return self._parse(raw, DocumentAnalysis)

    def extract_report(self, text: str) -> ReportExtraction:
        """Summary, products, labeled figures, insights and trends from raw text."""
        if not text or not text.strip():
            raise ValueError("Document content is required")

        raw = self._llm.generate(REPORT_PROMPT.format(content=truncate_for_analysis(text)))
        return self._parse(raw, ReportExtraction)

    # ------------------------------------------------------------------

    def _preview(self, content: str) -> str:
        return content[:self.source_preview_chars] + "..."

    def _confidence(self, results: List[RetrievalResult]) -> float:
        """Mean similarity for vector results; a fixed value for keyword results."""
        if not results:
            return 0.0
        if results[0].strategy != VECTOR:
            return self.keyword_confidence
        return sum(r.score for r in results) / len(results)

    @staticmethod
    def _parse(raw: str, model: Type[M]) -> M:
        data = extract_json_object(raw)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise SynthesisParseError(f"Response does not match {model.__name__}: {e}", raw_response=raw) from e
