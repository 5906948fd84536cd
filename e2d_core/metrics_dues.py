from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Any, Dict, List

from e2d_core.aggregates import aggregate, summarize_dues
from e2d_core.charts import bar_chart, pie_chart
from e2d_core.filters import FilterContext
from e2d_core.records import FinancialRecord
from e2d_core.viewmodels import assemble, display_options


def compute_dues(filters: FilterContext, ctx: Dict[str, Any]) -> Dict[str, Any]:
    records: List[FinancialRecord] = ctx.get("filtered_cotisation", []) or []
    opts = display_options(ctx)
    as_of: date = ctx.get("as_of") or date.today()

    agg = aggregate(records)
    summary = summarize_dues(records)
    this_month = aggregate(
        [r for r in records if r.record_date is not None and (r.record_date.year, r.record_date.month) == (as_of.year, as_of.month)]
    )

    view = assemble(agg, records, {"title": "Cotisations"}, **opts)
    charts = {
        "status": pie_chart(view.status_series, title="Répartition par statut", color_map={s["name"]: s["color"] for s in view.status_series}),
        "monthly": bar_chart(view.monthly_series, title="Cotisations par mois", x_title="Mois"),
    }

    return {
        "filters": asdict(filters),
        "consistency": ctx.get("consistency", {}),
        "kpis": {
            "total": agg.total,
            "count": agg.count,
            "average": agg.average,
            "paid": summary.paid,
            "pending": summary.pending,
            "late": summary.late,
            "current_month_total": this_month.total,
        },
        "aggregate": asdict(agg),
        "view": asdict(view),
        "charts": charts,
    }
