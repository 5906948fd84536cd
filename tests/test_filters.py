"""Tests for the exercice -> réunion -> date-range filter evaluator."""

from datetime import date

from conftest import make_record

from e2d_core.aggregates import aggregate
from e2d_core.filters import (
    FilterContext,
    apply_filters,
    filter_records,
    meetings_in_period,
    normalize_filter_context,
    resolve_period,
)
from e2d_core.records import RecordKind


class TestFiscalPeriodLevel:
    def test_period_keeps_records_inside_bounds(self, dues, periods):
        """Three dues in 2024 -> 3 records, total 4500, average 1500."""
        out = filter_records(dues, FilterContext(fiscal_period_id="ex-2024"), periods)

        assert len(out) == 3
        agg = aggregate(out)
        assert agg.total == 4500
        assert agg.average == 1500

    def test_period_bounds_are_inclusive(self, periods):
        records = [
            make_record("first", 10, date(2024, 1, 1)),
            make_record("last", 20, date(2024, 12, 31)),
            make_record("before", 30, date(2023, 12, 31)),
            make_record("after", 40, date(2025, 1, 1)),
        ]
        out = filter_records(records, FilterContext(fiscal_period_id="ex-2024"), periods)
        assert [r.id for r in out] == ["first", "last"]

    def test_records_without_date_are_dropped_when_period_active(self, periods):
        records = [make_record("dated", 10, date(2024, 2, 1)), make_record("undated", 10, None)]
        out = filter_records(records, FilterContext(fiscal_period_id="ex-2024"), periods)
        assert [r.id for r in out] == ["dated"]

    def test_unknown_period_fails_open(self, dues, periods):
        out = filter_records(dues, FilterContext(fiscal_period_id="does-not-exist"), periods)
        assert out == dues

    def test_other_period_excludes_everything(self, dues, periods):
        assert filter_records(dues, FilterContext(fiscal_period_id="ex-2023"), periods) == []


class TestMeetingLevel:
    def test_meeting_matches_foreign_key_exactly(self, dues, periods):
        out = filter_records(dues, FilterContext(fiscal_period_id="ex-2024", meeting_id="reu-mars"), periods)
        assert [r.id for r in out] == ["c1", "c2"]

    def test_unknown_meeting_yields_empty(self, dues, periods):
        """A meeting id no record carries -> empty set, zeroed aggregate."""
        out = filter_records(dues, FilterContext(fiscal_period_id="ex-2024", meeting_id="reu-inconnue"), periods)

        assert out == []
        agg = aggregate(out)
        assert (agg.total, agg.count, agg.average, agg.breakdown_by_status) == (0, 0, 0, {})

    def test_meeting_ignored_without_period(self, dues, periods):
        out = filter_records(dues, FilterContext(meeting_id="reu-inconnue"), periods)
        assert out == dues

    def test_meeting_ignored_when_period_does_not_resolve(self, dues, periods):
        out = filter_records(dues, FilterContext(fiscal_period_id="nope", meeting_id="reu-inconnue"), periods)
        assert out == dues


class TestCustomRangeLevel:
    def test_custom_end_only(self, dues, periods):
        """An end bound of 2024-06-30 keeps the first two dues."""
        ctx = normalize_filter_context({"fiscal_period_id": "ex-2024", "custom_end": "2024-06-30"})
        agg = aggregate(filter_records(dues, ctx, periods))

        assert agg.total == 3000
        assert agg.count == 2

    def test_custom_start_only(self, dues, periods):
        ctx = FilterContext(fiscal_period_id="ex-2024", custom_start=date(2024, 5, 15))
        assert [r.id for r in filter_records(dues, ctx, periods)] == ["c2", "c3"]

    def test_bounds_are_inclusive(self, dues, periods):
        ctx = FilterContext(fiscal_period_id="ex-2024", custom_start=date(2024, 3, 10), custom_end=date(2024, 3, 10))
        assert [r.id for r in filter_records(dues, ctx, periods)] == ["c1"]

    def test_custom_range_ignored_without_period(self, dues, periods):
        ctx = FilterContext(custom_start=date(2030, 1, 1))
        assert filter_records(dues, ctx, periods) == dues

    def test_invalid_date_strings_are_unset(self, dues, periods):
        ctx = normalize_filter_context({"fiscal_period_id": "ex-2024", "custom_start": "pas une date", "custom_end": "2024-13-45"})
        assert ctx.custom_start is None
        assert ctx.custom_end is None
        assert len(filter_records(dues, ctx, periods)) == 3

    def test_raw_string_bounds_on_context_are_tolerated(self, dues, periods):
        ctx = FilterContext(fiscal_period_id="ex-2024", custom_end="2024-06-30")  # type: ignore[arg-type]
        assert len(filter_records(dues, ctx, periods)) == 2

    def test_monotonic_narrowing(self, dues, periods):
        base = FilterContext(fiscal_period_id="ex-2024")
        narrowed = FilterContext(fiscal_period_id="ex-2024", custom_end=date(2024, 4, 1))
        assert len(filter_records(dues, narrowed, periods)) <= len(filter_records(dues, base, periods))


class TestSearch:
    def test_search_matches_member_name_case_insensitive(self, dues, periods):
        out = filter_records(dues, FilterContext(search="AWA"), periods)
        assert [r.id for r in out] == ["c1"]

    def test_search_matches_category(self, dues, periods):
        out = filter_records(dues, FilterContext(search="solidarité"), periods)
        assert [r.id for r in out] == ["c2"]

    def test_search_combines_with_levels(self, dues, periods):
        ctx = FilterContext(fiscal_period_id="ex-2024", meeting_id="reu-mars", search="mensuelle")
        assert [r.id for r in filter_records(dues, ctx, periods)] == ["c1"]


class TestEdgeCases:
    def test_empty_records(self, periods):
        assert filter_records([], FilterContext(fiscal_period_id="ex-2024", meeting_id="x"), periods) == []

    def test_empty_context_returns_records_unchanged(self, dues, periods):
        assert filter_records(dues, FilterContext(), periods) == dues
        assert filter_records(dues, None, periods) == dues

    def test_idempotent(self, dues, periods):
        ctx = FilterContext(fiscal_period_id="ex-2024", custom_end=date(2024, 6, 30))
        assert aggregate(filter_records(dues, ctx, periods)) == aggregate(filter_records(dues, ctx, periods))

    def test_custom_date_selector(self, periods):
        loan = make_record("p1", 100, date(2023, 6, 1), kind=RecordKind.PRET, status="en_cours", due_date=date(2024, 3, 1))
        ctx = FilterContext(fiscal_period_id="ex-2024")
        assert filter_records([loan], ctx, periods) == []
        assert filter_records([loan], ctx, periods, date_of=lambda r: r.due_date) == [loan]


class TestConsistencyAndOptions:
    def test_meeting_inside_period_is_flagged_consistent(self, dues, periods, meetings):
        outcome = apply_filters(dues, FilterContext(fiscal_period_id="ex-2024", meeting_id="reu-mars"), periods, meetings=meetings)
        assert outcome.meeting_in_period is True
        assert outcome.levels_applied == ["fiscal_period", "meeting"]

    def test_meeting_outside_period_is_flagged_but_still_evaluated(self, dues, periods, meetings):
        outcome = apply_filters(dues, FilterContext(fiscal_period_id="ex-2024", meeting_id="reu-2023"), periods, meetings=meetings)
        assert outcome.meeting_in_period is False
        assert outcome.records == []

    def test_no_meeting_selected_has_no_flag(self, dues, periods, meetings):
        outcome = apply_filters(dues, FilterContext(fiscal_period_id="ex-2024"), periods, meetings=meetings)
        assert outcome.meeting_in_period is None
        assert outcome.period.id == "ex-2024"

    def test_meetings_in_period_most_recent_first(self, meetings, period_2024):
        assert [m.id for m in meetings_in_period(meetings, period_2024)] == ["reu-sept", "reu-mars"]
        assert meetings_in_period(meetings, None) == []

    def test_resolve_period(self, periods):
        assert resolve_period(periods, "ex-2023").name == "Exercice 2023"
        assert resolve_period(periods, None) is None
        assert resolve_period(periods, "zzz") is None


class TestNormalizeFilterContext:
    def test_accepts_source_field_names(self):
        ctx = normalize_filter_context({"exercice_id": "ex-2024", "reunion_id": "reu-mars", "date_debut": "2024-02-01", "search": "  awa "})
        assert ctx == FilterContext(
            fiscal_period_id="ex-2024",
            meeting_id="reu-mars",
            custom_start=date(2024, 2, 1),
            custom_end=None,
            search="awa",
        )

    def test_all_sentinel_means_unset(self):
        assert normalize_filter_context({"fiscal_period_id": "all"}).fiscal_period_id is None
        assert normalize_filter_context({"fiscal_period_id": "  "}).fiscal_period_id is None

    def test_none_input(self):
        assert normalize_filter_context(None) == FilterContext()
