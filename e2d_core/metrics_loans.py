from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Any, Dict, List

from e2d_core.aggregates import aggregate, is_overdue, loan_interest_due, summarize_loans
from e2d_core.charts import pie_chart
from e2d_core.filters import FilterContext
from e2d_core.records import FinancialRecord
from e2d_core.viewmodels import assemble, display_options, format_fcfa, format_percent, status_badge


def _loan_rows(loans: List[FinancialRecord], as_of: date, locale: str, currency: str) -> List[Dict[str, Any]]:
    rows = []
    for p in sorted(loans, key=lambda p: (p.record_date is not None, p.record_date or date.min, p.id), reverse=True):
        interest = loan_interest_due(p)
        total_due = p.amount + interest
        overdue = is_overdue(p, as_of)
        # An ongoing loan past its due date is shown as late.
        badge = status_badge("en_retard" if overdue else p.status)
        rows.append(
            {
                "id": p.id,
                "member": p.member_name,
                "date": p.record_date.isoformat() if p.record_date else None,
                "due_date": p.due_date.isoformat() if p.due_date else None,
                "amount": p.amount,
                "interest_rate": p.interest_rate,
                "interest_rate_display": format_percent(p.interest_rate, decimals=1, locale=locale),
                "renewals": p.renewals,
                "interest_due": interest,
                "total_due": total_due,
                "amount_paid": p.amount_paid,
                "remaining": total_due - p.amount_paid,
                "total_due_display": format_fcfa(total_due, locale=locale, currency=currency),
                "status": p.status,
                "overdue": overdue,
                "badge": asdict(badge),
            }
        )
    return rows


def compute_loans(filters: FilterContext, ctx: Dict[str, Any]) -> Dict[str, Any]:
    loans: List[FinancialRecord] = ctx.get("filtered_pret", []) or []
    opts = display_options(ctx)
    as_of: date = ctx.get("as_of") or date.today()

    agg = aggregate(loans)
    summary = summarize_loans(loans, as_of=as_of)
    view = assemble(agg, loans, {"title": "Prêts"}, **opts)

    return {
        "filters": asdict(filters),
        "consistency": ctx.get("consistency", {}),
        "kpis": asdict(summary),
        "aggregate": asdict(agg),
        "view": asdict(view),
        "loans": _loan_rows(loans, as_of, opts["locale"], opts["currency"]),
        "charts": {
            "status": pie_chart(view.status_series, title="Prêts par statut", color_map={s["name"]: s["color"] for s in view.status_series}),
        },
    }
