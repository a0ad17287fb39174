"""
Market Analysis Schemas

Shapes the generative model is asked to fill. Model output is parsed with
the brace-matched extractor and validated here; field names on the wire are
camelCase, Python attributes are snake_case.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ============================================================================
# Findings
# ============================================================================

class MarketFindings(_CamelModel):
    """Four labeled lists summarizing a market research document"""
    key_insights: List[str] = Field(default_factory=list, alias="keyInsights")
    opportunities: List[str] = Field(default_factory=list)
    threats: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)

    @classmethod
    def fallback(cls) -> "MarketFindings":
        return cls(key_insights=["Unable to parse findings"])


# ============================================================================
# Structured extraction
# ============================================================================

class StructuredData(_CamelModel):
    """Entity-level facts about the company a document describes.

    Unknown keys the model adds are kept.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    company_name: str = Field(default="Unknown", alias="companyName")
    industry: str = "Unknown"
    market_size: Optional[str] = Field(default=None, alias="marketSize")
    competitors: Optional[List[str]] = None
    key_metrics: Optional[Dict[str, Any]] = Field(default=None, alias="keyMetrics")
    founded_year: Optional[int] = Field(default=None, alias="foundedYear")
    headquarters: Optional[str] = None
    employee_count: Optional[int] = Field(default=None, alias="employeeCount")

    @field_validator("founded_year", "employee_count", mode="before")
    @classmethod
    def _coerce_count(cls, value):
        # Models often answer "1,200" or "approx. 500"; anything unreadable is dropped
        if value is None or isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value)
        digits = "".join(ch for ch in str(value) if ch.isdigit())
        return int(digits) if digits else None

    @field_validator("market_size", mode="before")
    @classmethod
    def _stringify(cls, value):
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @classmethod
    def fallback(cls) -> "StructuredData":
        return cls()


# ============================================================================
# Whole-document analysis
# ============================================================================

class SwotAnalysis(_CamelModel):
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    opportunities: List[str] = Field(default_factory=list)
    threats: List[str] = Field(default_factory=list)


class DocumentAnalysis(_CamelModel):
    """Full-text analysis with a SWOT block"""
    company_name: str = Field(default="Unknown", alias="companyName")
    industry: str = "Unknown"
    market_size: Optional[str] = Field(default=None, alias="marketSize")
    competitors: List[str] = Field(default_factory=list)
    key_insights: List[str] = Field(default_factory=list, alias="keyInsights")
    opportunities: List[str] = Field(default_factory=list)
    threats: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    swot_analysis: SwotAnalysis = Field(default_factory=SwotAnalysis, alias="swotAnalysis")


# ============================================================================
# Report extraction
# ============================================================================

class Figure(_CamelModel):
    """A labeled number from a report, e.g. ("Market size", "$4.2B")"""
    label: str
    value: str

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, value):
        return value if isinstance(value, str) else str(value)


class ReportExtraction(_CamelModel):
    summary: str = ""
    products: List[str] = Field(default_factory=list)
    figures: List[Figure] = Field(default_factory=list)
    key_insights: List[str] = Field(default_factory=list, alias="keyInsights")
    market_trends: List[str] = Field(default_factory=list, alias="marketTrends")
