from __future__ import annotations

from dataclasses import asdict
from decimal import Decimal
from typing import Any, Dict, List

from e2d_core.aggregates import aggregate
from e2d_core.charts import bar_chart
from e2d_core.filters import FilterContext
from e2d_core.records import FinancialRecord
from e2d_core.viewmodels import assemble, display_options


def _by_category(records: List[FinancialRecord]) -> List[Dict[str, Any]]:
    totals: Dict[str, Decimal] = {}
    for r in records:
        key = r.category or "Non classé"
        totals[key] = totals.get(key, Decimal(0)) + r.amount
    return [{"name": k, "value": v} for k, v in sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))]


def compute_aid(filters: FilterContext, ctx: Dict[str, Any]) -> Dict[str, Any]:
    records: List[FinancialRecord] = ctx.get("filtered_aide", []) or []
    opts = display_options(ctx)

    agg = aggregate(records)
    view = assemble(agg, records, {"title": "Aides"}, **opts)
    by_category = _by_category(records)

    return {
        "filters": asdict(filters),
        "consistency": ctx.get("consistency", {}),
        "kpis": {
            "total": agg.total,
            "count": agg.count,
            "average": agg.average,
            "beneficiaries": len({r.member_id for r in records if r.member_id}),
        },
        "aggregate": asdict(agg),
        "by_category": by_category,
        "view": asdict(view),
        "charts": {"by_category": bar_chart(by_category, title="Aides par type", x_title="Type d'aide")},
    }
