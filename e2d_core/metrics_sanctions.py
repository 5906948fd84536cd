from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

from e2d_core.aggregates import HUNDRED, ZERO, aggregate, summarize_sanctions
from e2d_core.charts import pie_chart
from e2d_core.filters import FilterContext
from e2d_core.records import FinancialRecord
from e2d_core.viewmodels import assemble, display_options


def compute_sanctions(filters: FilterContext, ctx: Dict[str, Any]) -> Dict[str, Any]:
    records: List[FinancialRecord] = ctx.get("filtered_sanction", []) or []
    opts = display_options(ctx)

    agg = aggregate(records)
    summary = summarize_sanctions(records)
    recovery_rate = summary.paid / summary.total * HUNDRED if summary.total > 0 else ZERO
    view = assemble(agg, records, {"title": "Sanctions"}, **opts)

    return {
        "filters": asdict(filters),
        "consistency": ctx.get("consistency", {}),
        "kpis": {
            **asdict(summary),
            "count": agg.count,
            "paid_count": agg.breakdown_by_status.get("paye", 0),
            "unpaid_count": agg.breakdown_by_status.get("impaye", 0),
            "recovery_rate": recovery_rate,
        },
        "aggregate": asdict(agg),
        "view": asdict(view),
        "charts": {
            "status": pie_chart(view.status_series, title="Sanctions par statut", color_map={s["name"]: s["color"] for s in view.status_series}),
        },
    }
