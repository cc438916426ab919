from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"


class AccidentCounts(BaseModel):
    totalAccidents: int = 0
    # Accidents dated within the last five years.
    latestAccidents: int = 0


class StateSummary(BaseModel):
    abbr: str
    name: str
    facility_count: int = 0
    county_count: int = 0


class AccidentRow(BaseModel):
    accident_id: str
    date: Optional[str] = None
    time: Optional[str] = None
    naics_code: Optional[str] = None
    flags: dict = Field(default_factory=dict)
    EPAFacilityID: str
    name: str = ""
