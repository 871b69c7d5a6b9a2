# backend/screener/schemas/report.py
from typing import Any, Literal

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

RiskLevel = Literal["Low", "Medium", "High", "Unknown"]
Sentiment = Literal["Positive", "Neutral", "Negative", "Mixed", "Unknown"]
Recommendation = Literal["Go", "Go with conditions", "No-Go"]

RISK_LEVELS = ("Low", "Medium", "High", "Unknown")
SENTIMENTS = ("Positive", "Neutral", "Negative", "Mixed", "Unknown")
RECOMMENDATIONS = ("Go", "Go with conditions", "No-Go")


def coerce_choice(value: Any, choices: tuple[str, ...], fallback: str | None = "Unknown") -> Any:
    """
    Case-insensitive match of an LLM-provided label against a fixed vocabulary.

    Unmatched labels become ``fallback``; with ``fallback=None`` the raw value
    is returned so validation rejects it.
    """
    if not isinstance(value, str):
        return fallback if fallback is not None else value
    normalised = " ".join(value.replace("_", " ").split()).lower()
    for choice in choices:
        if normalised == choice.lower():
            return choice
    return fallback if fallback is not None else value


class ReportModel(BaseModel):
    """
    Base for every model filled from LLM output.

    LLM responses may use camelCase or snake_case keys; both are accepted.
    Serialisation (including FastAPI responses, which dump by alias) is
    always snake_case.
    """

    model_config = ConfigDict(
        alias_generator=AliasGenerator(validation_alias=to_camel),
        populate_by_name=True,
        extra="ignore",
    )


class Company(ReportModel):
    model_config = ConfigDict(frozen=True)

    name: str
    registration_number: str | None = None
    address: str | None = None
    website: str | None = None
    description: str | None = None

    @field_validator("registration_number", "address", "website", "description", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if v is None:
            return None
        if isinstance(v, str):
            stripped = v.strip()
            return stripped or None
        return str(v)


class ReportSource(BaseModel):
    title: str
    uri: str


class ReportSources(BaseModel):
    web: list[ReportSource] = []
    maps: list[ReportSource] = []


class CompanySummary(Company):
    overview: str


class KeyPersonnel(ReportModel):
    name: str
    title: str = ""
    bio: str = ""


class StrategicAnalysis(ReportModel):
    strengths: list[str] = []
    weaknesses: list[str] = []
    opportunities: list[str] = []
    threats: list[str] = []


class RiskFactor(ReportModel):
    risk_level: RiskLevel = "Unknown"
    summary: str = ""

    @field_validator("risk_level", mode="before")
    @classmethod
    def _risk_level(cls, v):
        return coerce_choice(v, RISK_LEVELS)


class SanctionMatchDetail(ReportModel):
    name: str
    list_name: str = Field("", validation_alias="list")
    details: str = ""


class SanctionsMatches(RiskFactor):
    matches: list[SanctionMatchDetail] = []


class AMLDetailedBreakdown(ReportModel):
    jurisdiction_risk: RiskFactor = RiskFactor()
    industry_risk: RiskFactor = RiskFactor()
    sanctions_matches: SanctionsMatches = SanctionsMatches()


class AMLRiskAssessment(ReportModel):
    risk_level: RiskLevel = "Unknown"
    summary: str
    red_flags: list[str] = []
    detailed_breakdown: AMLDetailedBreakdown | None = None
    crime_typologies: list[str] = []
    mitigation_strategies: list[str] = []

    @field_validator("risk_level", mode="before")
    @classmethod
    def _risk_level(cls, v):
        return coerce_choice(v, RISK_LEVELS)


class PEPScreeningDetail(ReportModel):
    name: str
    title: str = ""
    reason: str = ""
    relationship: str | None = None


class PEPScreening(ReportModel):
    is_pep_involved: bool = False
    details: list[PEPScreeningDetail] = []

    @model_validator(mode="before")
    @classmethod
    def _acronym_key(cls, data: Any) -> Any:
        # to_camel gives "isPepInvolved"; prompts and older payloads use "isPEPInvolved"
        if isinstance(data, dict) and "isPEPInvolved" in data:
            data = {k: v for k, v in data.items() if k != "isPEPInvolved"} | {
                "is_pep_involved": data["isPEPInvolved"]
            }
        return data


class UBO(ReportModel):
    name: str
    ownership_percentage: str | None = None
    nationality: str | None = None

    @field_validator("ownership_percentage", mode="before")
    @classmethod
    def _percentage_as_text(cls, v):
        if v is None or isinstance(v, str):
            return v
        return f"{v}%"


class BeneficialOwnership(ReportModel):
    summary: str
    ubos: list[UBO] = []


class RegulatoryCompliance(ReportModel):
    summary: str
    legal_issues: list[str] = []
    regulatory_actions: list[str] = []


class ReputationalRisk(ReportModel):
    summary: str
    sentiment: Sentiment = "Unknown"
    key_mentions: list[str] = []

    @field_validator("sentiment", mode="before")
    @classmethod
    def _sentiment(cls, v):
        return coerce_choice(v, SENTIMENTS)


class SocialMediaProfile(ReportModel):
    platform: str
    url: str = ""
    summary: str = ""


class SocialMediaPresence(ReportModel):
    summary: str
    profiles: list[SocialMediaProfile] = []


class ExecutiveSummary(ReportModel):
    summary: str
    overall_risk: RiskLevel = "Unknown"
    key_findings: list[str] = []

    @field_validator("overall_risk", mode="before")
    @classmethod
    def _overall_risk(cls, v):
        return coerce_choice(v, RISK_LEVELS)


class Certification(ReportModel):
    name: str
    issuing_body: str = ""
    description: str = ""


class VerificationDetails(ReportModel):
    company_name: str = ""
    legal_status: str = ""
    registration_details: str = ""
    regulatory_oversight: str = ""
    existence_confirmed: bool = False


class DueDiligenceReport(ReportModel):
    verification_summary: VerificationDetails
    risk_consolidation: str
    final_recommendation: str


class GoNoGoAssessment(ReportModel):
    recommendation: Recommendation
    justification: str

    @field_validator("recommendation", mode="before")
    @classmethod
    def _recommendation(cls, v):
        if isinstance(v, str) and v.strip().lower() in {"no go", "nogo"}:
            return "No-Go"
        return coerce_choice(v, RECOMMENDATIONS, fallback=None)


class ComprehensiveReport(BaseModel):
    """
    The assembled due-diligence report.

    Frozen: it is built once every section has settled and is read-only
    afterwards (rendering, PDF export).
    """

    model_config = ConfigDict(frozen=True)

    executive_summary: ExecutiveSummary
    go_no_go_assessment: GoNoGoAssessment
    company_summary: CompanySummary
    key_personnel: list[KeyPersonnel]
    financial_health_analysis: dict[str, str]
    market_presence: str
    products_and_services: str
    strategic_analysis: StrategicAnalysis
    aml_risk_assessment: AMLRiskAssessment
    pep_screening: PEPScreening
    beneficial_ownership: BeneficialOwnership
    regulatory_compliance: RegulatoryCompliance
    reputational_risk: ReputationalRisk
    social_media_presence: SocialMediaPresence
    certifications: list[Certification]
    due_diligence_report: DueDiligenceReport
    sources: ReportSources = ReportSources()
