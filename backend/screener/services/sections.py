# backend/screener/services/sections.py

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Optional

from ..schemas.report import Company

NOT_VERIFIED = "Information could not be verified."

JSON_ONLY_SUFFIX = (
    "\n\nIMPORTANT: Respond ONLY with a valid JSON object that adheres to the structure "
    "described, without any markdown formatting, comments, or extra text."
)


@dataclass(frozen=True)
class SectionDefinition:
    """
    One independently generated slice of the report.

    `key` is also the name of the ComprehensiveReport field it fills.
    `unwrap` names the key whose value replaces the whole payload
    (e.g. {"personnel": [...]} -> [...]).
    """

    key: str
    label: str
    prompt: str
    expects_json: bool = True
    default: Any = None
    unwrap: Optional[str] = None

    def __post_init__(self) -> None:
        # Defaults are shared module state; store read-only views
        object.__setattr__(self, "default", _frozen(self.default))

    def render(self, company_identifier: str) -> str:
        text = self.prompt.format(company=company_identifier)
        if self.expects_json:
            text += JSON_ONLY_SUFFIX
        return text


def company_identifier(company: Company) -> str:
    if company.registration_number:
        return f"{company.name} (Reg: {company.registration_number})"
    return company.name


def _frozen(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _frozen(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_frozen(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Mutable deep copy of a (possibly frozen) default."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(v) for v in value]
    return value


_RISK_FACTOR_DEFAULT = {"risk_level": "Unknown", "summary": NOT_VERIFIED}


SECTION_DEFINITIONS: tuple[SectionDefinition, ...] = (
    SectionDefinition(
        key="executive_summary",
        label="Drafting executive summary",
        prompt=(
            "You are a senior KYC analyst at a commercial bank preparing a client onboarding file.\n\n"
            "Write an executive summary of the due-diligence findings for {company}. Use web search to "
            "cover corporate identity, ownership, sanctions and PEP exposure, adverse media, regulatory "
            "history and financial standing.\n\n"
            "Return a JSON object with this exact shape:\n"
            "{{\n"
            '  "summary": "4-6 sentence synthesis of the overall risk picture",\n'
            '  "overall_risk": "Low" | "Medium" | "High" | "Unknown",\n'
            '  "key_findings": ["3-6 short, specific findings"]\n'
            "}}\n"
            "Use \"Unknown\" when the evidence is insufficient to grade the risk."
        ),
        default={
            "summary": NOT_VERIFIED,
            "overall_risk": "Unknown",
            "key_findings": [],
        },
    ),
    SectionDefinition(
        key="company_summary",
        label="Analyzing company summary",
        prompt=(
            "Generate a detailed company summary and overview for {company}: legal form, year of "
            "incorporation, headquarters, lines of business, size and group structure.\n\n"
            'Return a JSON object containing a single key "overview" holding the detailed summary as '
            "a string."
        ),
        default={"overview": NOT_VERIFIED},
    ),
    SectionDefinition(
        key="key_personnel",
        label="Identifying key personnel",
        prompt=(
            "Identify the key personnel (CEO, CTO, CFO, board chair and other executives) of {company}.\n\n"
            'Return a JSON object with a "personnel" key holding an array of objects, each with '
            '"name", "title" and "bio" (1-3 sentences on background and tenure). Only include people '
            "you can tie to this specific company."
        ),
        default={"personnel": []},
        unwrap="personnel",
    ),
    SectionDefinition(
        key="beneficial_ownership",
        label="Tracing beneficial ownership (UBO)",
        prompt=(
            "Identify the ultimate beneficial owners (natural persons holding 25% or more, or "
            "otherwise exercising control) of {company}. Consider registry filings, shareholder "
            "disclosures, parent companies and holding structures.\n\n"
            "Return a JSON object with this exact shape:\n"
            "{{\n"
            '  "summary": "Description of the ownership structure and how control is exercised",\n'
            '  "ubos": [\n'
            '    {{"name": "...", "ownership_percentage": "e.g. 40%" | null, "nationality": "..." | null}}\n'
            "  ]\n"
            "}}\n"
            "For listed companies with dispersed ownership, say so in the summary and list only "
            "controlling holders."
        ),
        default={"summary": NOT_VERIFIED, "ubos": []},
    ),
    SectionDefinition(
        key="pep_screening",
        label="Screening for politically exposed persons (PEP)",
        prompt=(
            "Screen {company}, its executives, directors and beneficial owners for politically exposed "
            "persons (current or former senior public officials, their family members and close "
            "associates).\n\n"
            "Return a JSON object with this exact shape:\n"
            "{{\n"
            '  "is_pep_involved": true | false,\n'
            '  "details": [\n'
            '    {{"name": "...", "title": "public function held", "reason": "why this is a PEP match", '
            '"relationship": "relationship to the company" | null}}\n'
            "  ]\n"
            "}}"
        ),
        default={"is_pep_involved": False, "details": []},
    ),
    SectionDefinition(
        key="aml_risk_assessment",
        label="Assessing AML and sanctions risk",
        prompt=(
            "Perform an anti-money-laundering risk assessment of {company}. Check the company and its "
            "key people against public sanctions lists (OFAC SDN, EU, UN, UK HMT), evaluate "
            "jurisdiction risk (FATF grey/black lists, secrecy jurisdictions) and industry risk "
            "(cash-intensive, high-risk sectors), and look for red flags in adverse media.\n\n"
            "Return a JSON object with this exact shape:\n"
            "{{\n"
            '  "risk_level": "Low" | "Medium" | "High" | "Unknown",\n'
            '  "summary": "Overall AML assessment",\n'
            '  "red_flags": ["..."],\n'
            '  "detailed_breakdown": {{\n'
            '    "jurisdiction_risk": {{"risk_level": "...", "summary": "..."}},\n'
            '    "industry_risk": {{"risk_level": "...", "summary": "..."}},\n'
            '    "sanctions_matches": {{"risk_level": "...", "summary": "...", '
            '"matches": [{{"name": "...", "list": "sanctions list name", "details": "..."}}]}}\n'
            "  }},\n"
            '  "crime_typologies": ["relevant money-laundering or financial-crime typologies"],\n'
            '  "mitigation_strategies": ["recommended controls or enhanced due-diligence steps"]\n'
            "}}\n"
            "Only report a sanctions match when names and identifying details actually correspond."
        ),
        default={
            "risk_level": "Unknown",
            "summary": NOT_VERIFIED,
            "red_flags": [],
            "detailed_breakdown": {
                "jurisdiction_risk": _RISK_FACTOR_DEFAULT,
                "industry_risk": _RISK_FACTOR_DEFAULT,
                "sanctions_matches": {**_RISK_FACTOR_DEFAULT, "matches": []},
            },
            "crime_typologies": [],
            "mitigation_strategies": [],
        },
    ),
    SectionDefinition(
        key="regulatory_compliance",
        label="Reviewing regulatory compliance",
        prompt=(
            "Review the regulatory and legal standing of {company}: licences and supervising "
            "authorities, enforcement actions, fines, litigation and investigations over the last "
            "ten years.\n\n"
            "Return a JSON object with this exact shape:\n"
            "{{\n"
            '  "summary": "...",\n'
            '  "legal_issues": ["lawsuits, investigations or settlements, with dates"],\n'
            '  "regulatory_actions": ["fines, sanctions or licence actions by regulators, with dates"]\n'
            "}}"
        ),
        default={"summary": NOT_VERIFIED, "legal_issues": [], "regulatory_actions": []},
    ),
    SectionDefinition(
        key="financial_health_analysis",
        label="Compiling financial health analysis",
        prompt=(
            "Analyse the financial health of {company}. Include metrics such as annual revenue, net "
            "income, total assets, debt level, market capitalisation, credit rating and stock price "
            "where applicable, each with the reporting period.\n\n"
            "Return a flat JSON object whose keys are the metric names and whose values are strings "
            'with the figures, e.g. {{"Annual revenue (FY2023)": "EUR 1.2bn"}}.'
        ),
        default={"Status": NOT_VERIFIED},
    ),
    SectionDefinition(
        key="market_presence",
        label="Assessing market presence",
        prompt=(
            "Describe the market presence of {company}. Include its target customers, key markets and "
            "geographies, market position and major competitors. Respond with plain text."
        ),
        expects_json=False,
        default={"text": NOT_VERIFIED},
        unwrap="text",
    ),
    SectionDefinition(
        key="products_and_services",
        label="Reviewing products and services",
        prompt=(
            "List and describe the main products and services offered by {company}. "
            "Respond with plain text."
        ),
        expects_json=False,
        default={"text": NOT_VERIFIED},
        unwrap="text",
    ),
    SectionDefinition(
        key="strategic_analysis",
        label="Conducting strategic analysis (SWOT)",
        prompt=(
            "Conduct a SWOT analysis for {company}.\n\n"
            'Return a JSON object with four keys: "strengths", "weaknesses", "opportunities" and '
            '"threats". Each key holds an array of 3-5 descriptive strings.'
        ),
        default={"strengths": [], "weaknesses": [], "opportunities": [], "threats": []},
    ),
    SectionDefinition(
        key="reputational_risk",
        label="Analyzing reputational risk",
        prompt=(
            "Assess the reputational risk of {company} from news coverage, customer and employee "
            "reviews, ESG controversies and adverse media over the last five years.\n\n"
            "Return a JSON object with this exact shape:\n"
            "{{\n"
            '  "summary": "...",\n'
            '  "sentiment": "Positive" | "Neutral" | "Negative" | "Mixed" | "Unknown",\n'
            '  "key_mentions": ["notable articles or events, with source and date"]\n'
            "}}"
        ),
        default={"summary": NOT_VERIFIED, "sentiment": "Unknown", "key_mentions": []},
    ),
    SectionDefinition(
        key="social_media_presence",
        label="Checking social media presence",
        prompt=(
            "Find the official social media profiles of {company} (LinkedIn, X/Twitter, Facebook, "
            "Instagram, YouTube and others) and summarise its activity and audience.\n\n"
            "Return a JSON object with this exact shape:\n"
            "{{\n"
            '  "summary": "...",\n'
            '  "profiles": [{{"platform": "...", "url": "https://...", "summary": "..."}}]\n'
            "}}\n"
            "Only include profiles that clearly belong to this company."
        ),
        default={"summary": NOT_VERIFIED, "profiles": []},
    ),
    SectionDefinition(
        key="certifications",
        label="Verifying certifications",
        prompt=(
            "List the certifications, accreditations and quality or security standards held by "
            "{company} (for example ISO 9001, ISO 27001, SOC 2, PCI DSS, B Corp).\n\n"
            'Return a JSON object with a "certifications" key holding an array of objects with '
            '"name", "issuing_body" and "description".'
        ),
        default={"certifications": []},
        unwrap="certifications",
    ),
    SectionDefinition(
        key="due_diligence_report",
        label="Consolidating due diligence report",
        prompt=(
            "Act as a compliance officer and produce a due-diligence verification for {company}. "
            "Confirm that the entity exists, its legal status, its registration details and which "
            "authorities oversee it, then consolidate the main risks.\n\n"
            "Return a JSON object with this exact shape:\n"
            "{{\n"
            '  "verification_summary": {{\n'
            '    "company_name": "registered legal name",\n'
            '    "legal_status": "e.g. active, dissolved, in liquidation",\n'
            '    "registration_details": "registry, number and date",\n'
            '    "regulatory_oversight": "supervising authorities, if any",\n'
            '    "existence_confirmed": true | false\n'
            "  }},\n"
            '  "risk_consolidation": "consolidated view of all material risks",\n'
            '  "final_recommendation": "recommended onboarding decision and conditions"\n'
            "}}"
        ),
        default={
            "verification_summary": {
                "company_name": "",
                "legal_status": NOT_VERIFIED,
                "registration_details": NOT_VERIFIED,
                "regulatory_oversight": NOT_VERIFIED,
                "existence_confirmed": False,
            },
            "risk_consolidation": NOT_VERIFIED,
            "final_recommendation": NOT_VERIFIED,
        },
    ),
    SectionDefinition(
        key="go_no_go_assessment",
        label="Formulating Go/No-Go recommendation",
        prompt=(
            "Based on public information about {company}, give a Go / No-Go recommendation for "
            "onboarding it as a business client of a bank, weighing sanctions, PEP, AML, regulatory "
            "and reputational risk.\n\n"
            "Return a JSON object with this exact shape:\n"
            "{{\n"
            '  "recommendation": "Go" | "Go with conditions" | "No-Go",\n'
            '  "justification": "3-5 sentences explaining the decision and any conditions"\n'
            "}}"
        ),
        default={
            "recommendation": "No-Go",
            "justification": (
                "A recommendation could not be formed because the underlying information could "
                "not be verified. Manual review is required."
            ),
        },
    ),
)

SECTIONS_BY_KEY: Mapping[str, SectionDefinition] = MappingProxyType(
    {d.key: d for d in SECTION_DEFINITIONS}
)
