from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, List, Optional, Sequence

from e2d_core.records import FinancialRecord, FiscalPeriod, Meeting, parse_date


DateSelector = Callable[[FinancialRecord], Optional[date]]


@dataclass(frozen=True)
class FilterContext:
    fiscal_period_id: Optional[str] = None
    meeting_id: Optional[str] = None
    custom_start: Optional[date] = None
    custom_end: Optional[date] = None
    search: str = ""


@dataclass(frozen=True)
class FilterOutcome:
    records: List[FinancialRecord] = field(default_factory=list)
    period: Optional[FiscalPeriod] = None
    levels_applied: List[str] = field(default_factory=list)
    # None when no meeting is selected or its date is unknown.
    meeting_in_period: Optional[bool] = None


def _as_id(value: object) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    if not s or s.lower() in {"all", "none", "null", "tous"}:
        return None
    return s


def normalize_filter_context(raw: Optional[dict]) -> FilterContext:
    raw = raw or {}
    return FilterContext(
        fiscal_period_id=_as_id(raw.get("fiscal_period_id", raw.get("exercice_id"))),
        meeting_id=_as_id(raw.get("meeting_id", raw.get("reunion_id"))),
        custom_start=parse_date(raw.get("custom_start", raw.get("date_debut"))),
        custom_end=parse_date(raw.get("custom_end", raw.get("date_fin"))),
        search=str(raw.get("search") or "").strip(),
    )


def _within(day: Optional[date], start: Optional[date], end: Optional[date]) -> bool:
    if day is None:
        return False
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


def record_date(record: FinancialRecord) -> Optional[date]:
    return record.record_date


def resolve_period(periods: Iterable[FiscalPeriod], period_id: Optional[str]) -> Optional[FiscalPeriod]:
    if not period_id:
        return None
    for period in periods or []:
        if period.id == period_id:
            return period
    return None


def meetings_in_period(meetings: Iterable[Meeting], period: Optional[FiscalPeriod]) -> List[Meeting]:
    """Meetings selectable once ``period`` is chosen, most recent first."""
    if period is None:
        return []
    scoped = [m for m in meetings or [] if period.contains(m.date)]
    return sorted(scoped, key=lambda m: m.date, reverse=True)


def matches_search(record: FinancialRecord, search: str) -> bool:
    q = (search or "").strip().lower()
    if not q:
        return True
    return q in (record.member_name or "").lower() or q in (record.category or "").lower()


def apply_filters(
    records: Sequence[FinancialRecord],
    context: Optional[FilterContext],
    periods: Iterable[FiscalPeriod],
    *,
    meetings: Optional[Iterable[Meeting]] = None,
    date_of: DateSelector = record_date,
) -> FilterOutcome:
    """Narrow ``records`` through exercice -> réunion -> custom range, plus search.

    Each level only applies when the exercice resolves; an unknown exercice id
    leaves the records unfiltered by date. Malformed custom bounds are ignored.
    """
    context = context or FilterContext()
    out = list(records or [])
    levels: List[str] = []

    period = resolve_period(periods, context.fiscal_period_id)
    meeting_in_period: Optional[bool] = None
    if period is not None:
        out = [r for r in out if period.contains(date_of(r))]
        levels.append("fiscal_period")

        if context.meeting_id:
            out = [r for r in out if r.meeting_id == context.meeting_id]
            levels.append("meeting")
            meeting = next((m for m in meetings or [] if m.id == context.meeting_id), None)
            if meeting is not None and meeting.date is not None:
                meeting_in_period = period.contains(meeting.date)

        start = parse_date(context.custom_start)
        end = parse_date(context.custom_end)
        if start is not None or end is not None:
            out = [r for r in out if _within(date_of(r), start, end)]
            levels.append("custom_range")

    if (context.search or "").strip():
        out = [r for r in out if matches_search(r, context.search)]
        levels.append("search")

    return FilterOutcome(records=out, period=period, levels_applied=levels, meeting_in_period=meeting_in_period)


def filter_records(
    records: Sequence[FinancialRecord],
    context: Optional[FilterContext],
    periods: Iterable[FiscalPeriod],
    *,
    date_of: DateSelector = record_date,
) -> List[FinancialRecord]:
    return apply_filters(records, context, periods, date_of=date_of).records
