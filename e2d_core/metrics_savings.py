from __future__ import annotations

from dataclasses import asdict
from decimal import Decimal
from typing import Any, Dict, List

from e2d_core.aggregates import aggregate, loan_interest_due, savers_shares, summarize_loans, summarize_savings
from e2d_core.charts import bar_chart
from e2d_core.config import get_settings
from e2d_core.filters import FilterContext
from e2d_core.records import FinancialRecord
from e2d_core.viewmodels import assemble, display_options, format_fcfa, format_percent


ACTIVE_SAVINGS = "actif"
INTEREST_BEARING_LOANS = ("en_cours", "reconduit")


def active_savings(records: List[FinancialRecord]) -> List[FinancialRecord]:
    return [e for e in records if e.status == ACTIVE_SAVINGS]


def compute_savings(filters: FilterContext, ctx: Dict[str, Any]) -> Dict[str, Any]:
    records: List[FinancialRecord] = ctx.get("filtered_epargne", []) or []
    loans: List[FinancialRecord] = ctx.get("filtered_pret", []) or []
    settings = ctx.get("settings") or get_settings()
    opts = display_options(ctx)

    active = active_savings(records)
    loan_summary = summarize_loans(loans)
    summary = summarize_savings(active, loan_summary.interest_accrued, settings.savings_interest_share)
    agg = aggregate(records)
    view = assemble(agg, records, {"title": "Épargnes"}, **opts)

    return {
        "filters": asdict(filters),
        "consistency": ctx.get("consistency", {}),
        "kpis": {
            "total_saved": summary.total_saved,
            "active_count": summary.count,
            "savers": len({e.member_id or e.member_name for e in active}),
            "average": aggregate(active).average,
            "loan_interest": loan_summary.interest_accrued,
            "estimated_interest": summary.estimated_interest,
        },
        "aggregate": asdict(agg),
        "view": asdict(view),
        "charts": {"monthly": bar_chart(view.monthly_series, title="Dépôts par mois", x_title="Mois")},
    }


def compute_savers_benefits(filters: FilterContext, ctx: Dict[str, Any]) -> Dict[str, Any]:
    """Each saver's share of the period's loan interest, prorated by amount saved."""
    savings = active_savings(ctx.get("filtered_epargne", []) or [])
    loans = [p for p in ctx.get("filtered_pret", []) or [] if p.status in INTEREST_BEARING_LOANS]
    opts = display_options(ctx)
    locale, currency = opts["locale"], opts["currency"]

    interest_total = sum((loan_interest_due(p) for p in loans), Decimal(0))
    shares = savers_shares(savings, interest_total)
    total_saved = sum((s.total_saved for s in shares), Decimal(0))

    rows = []
    for s in shares:
        rows.append(
            {
                "member_id": s.member_id,
                "member": s.member_name,
                "total_saved": s.total_saved,
                "percentage": s.percentage,
                "estimated_gain": s.estimated_gain,
                "expected_total": s.expected_total,
                "export": [
                    {"header": "Épargnant", "value": s.member_name},
                    {"header": "Montant épargné", "value": format_fcfa(s.total_saved, locale=locale, currency=currency)},
                    {"header": "Part (%)", "value": format_percent(s.percentage, locale=locale)},
                    {"header": "Gains estimés", "value": format_fcfa(s.estimated_gain, locale=locale, currency=currency)},
                    {"header": "Total attendu", "value": format_fcfa(s.expected_total, locale=locale, currency=currency)},
                ],
            }
        )

    series = [{"name": s.member_name or s.member_id, "value": s.estimated_gain} for s in shares]
    return {
        "filters": asdict(filters),
        "consistency": ctx.get("consistency", {}),
        "kpis": {
            "total_saved": total_saved,
            "loan_interest": interest_total,
            "savers": len(shares),
        },
        "stats": [
            {"label": "Total épargnes", "value": format_fcfa(total_saved, locale=locale, currency=currency)},
            {"label": "Total intérêts", "value": format_fcfa(interest_total, locale=locale, currency=currency)},
            {"label": "Nombre d'épargnants", "value": str(len(shares))},
        ],
        "savers": rows,
        "charts": {"gains": bar_chart(series, title="Gains estimés par épargnant", x_title="Épargnant")},
    }
