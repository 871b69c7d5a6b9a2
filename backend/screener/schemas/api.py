# backend/screener/schemas/api.py
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from .report import Company, ComprehensiveReport

MAX_QUERY_LEN = 200

JobStatus = Literal["pending", "running", "complete", "failed"]


class GeoLocation(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class SearchRequest(BaseModel):
    query: str
    location: GeoLocation | None = None

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        v = v.strip()
        if len(v) > MAX_QUERY_LEN:
            raise ValueError(f"query must be at most {MAX_QUERY_LEN} characters")
        return v


class SearchResponse(BaseModel):
    query: str
    companies: list[Company]


class SearchHistoryOut(BaseModel):
    history: list[str]


class ThemePreference(BaseModel):
    theme: Literal["light", "dark"]


class ReportRequest(BaseModel):
    company: Company


class ProgressMessageOut(BaseModel):
    key: str
    label: str
    status: Literal["pending", "complete", "error"]


class ReportJobOut(BaseModel):
    job_id: str
    status: JobStatus
    progress: list[ProgressMessageOut] = []
    report: ComprehensiveReport | None = None
    llm_usage: dict | None = None
    error: str | None = None
