from __future__ import annotations

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field


class FilterContextModel(BaseModel):
    # Dates stay strings here; unparseable values are dropped during normalization.
    fiscal_period_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("fiscal_period_id", "exercice_id"))
    meeting_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("meeting_id", "reunion_id"))
    custom_start: Optional[str] = Field(default=None, validation_alias=AliasChoices("custom_start", "date_debut"))
    custom_end: Optional[str] = Field(default=None, validation_alias=AliasChoices("custom_end", "date_fin"))
    search: str = ""


class FiscalPeriodModel(BaseModel):
    id: str
    name: str
    start_date: str
    end_date: str
    status: str = ""


class MeetingModel(BaseModel):
    id: str
    subject: str = ""
    date: Optional[str] = None
    status: str = ""


class MetaPeriodsResponse(BaseModel):
    exercices: List[FiscalPeriodModel] = Field(default_factory=list)


class MetaMeetingsResponse(BaseModel):
    reunions: List[MeetingModel] = Field(default_factory=list)
