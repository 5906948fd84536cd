from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd

from e2d_core.aggregates import (
    summarize_loans,
    summarize_sanctions,
    summarize_savings,
    summarize_tontine,
    treasury_rollup,
)
from e2d_core.charts import bar_chart, pie_chart
from e2d_core.config import get_settings
from e2d_core.filters import FilterContext
from e2d_core.metrics_savings import active_savings
from e2d_core.records import FiscalPeriod
from e2d_core.viewmodels import display_options, format_fcfa


ROLLING_PERIODS = {
    "mois": ("Dernier mois", pd.DateOffset(months=1)),
    "trimestre": ("Dernier trimestre", pd.DateOffset(months=3)),
    "annee": ("Dernière année", pd.DateOffset(years=1)),
}


def rolling_period(periode: str, as_of: Optional[date] = None) -> Optional[FiscalPeriod]:
    """A synthetic exercice covering the last month / quarter / year up to ``as_of``."""
    if periode not in ROLLING_PERIODS:
        return None
    as_of = as_of or date.today()
    label, offset = ROLLING_PERIODS[periode]
    start = (pd.Timestamp(as_of) - offset).date()
    return FiscalPeriod(id=f"rolling:{periode}", name=label, start_date=start, end_date=as_of)


def _period_label(ctx: Dict[str, Any]) -> str:
    period: Optional[FiscalPeriod] = ctx.get("period")
    return period.name if period is not None else "Toutes périodes"


def compute_financial_report(filters: FilterContext, ctx: Dict[str, Any]) -> Dict[str, Any]:
    settings = ctx.get("settings") or get_settings()
    opts = display_options(ctx)
    locale, currency = opts["locale"], opts["currency"]

    dues = ctx.get("filtered_cotisation", []) or []
    payouts = ctx.get("filtered_beneficiaire", []) or []
    loans = ctx.get("filtered_pret", []) or []
    savings = active_savings(ctx.get("filtered_epargne", []) or [])
    sanctions = ctx.get("filtered_sanction", []) or []

    tontine = summarize_tontine(dues, payouts)
    loan_summary = summarize_loans(loans)
    savings_summary = summarize_savings(savings, loan_summary.interest_accrued, settings.savings_interest_share)
    sanction_summary = summarize_sanctions(sanctions)
    treasury = treasury_rollup(
        tontine.dues_collected,
        tontine.beneficiaries_paid_out,
        loan_summary.total_repaid,
        savings_summary.total_saved,
        sanction_summary.paid,
    )

    lines = [
        ("Tontine - Cotisations", tontine.dues_collected),
        ("Tontine - Bénéficiaires", -tontine.beneficiaries_paid_out),
        ("Tontine - Solde", tontine.balance),
        ("Prêts - Total Prêtés", loan_summary.total_lent),
        ("Prêts - Total Remboursé", loan_summary.total_repaid),
        ("Prêts - Intérêts", loan_summary.interest_accrued),
        ("Épargnes - Total", savings_summary.total_saved),
        ("Sanctions - Total", sanction_summary.total),
        ("Sanctions - Payé", sanction_summary.paid),
    ]
    table: List[Dict[str, Any]] = [{"module": name, "amount": amount} for name, amount in lines]
    export_rows = [
        [
            {"header": "Module", "value": name},
            {"header": f"Montant ({currency})", "value": format_fcfa(amount, locale=locale, currency=currency)},
        ]
        for name, amount in lines
    ]

    composition = [
        {"name": "Cotisations", "value": tontine.dues_collected},
        {"name": "Prêts remboursés", "value": loan_summary.total_repaid},
        {"name": "Épargnes", "value": savings_summary.total_saved},
        {"name": "Sanctions payées", "value": sanction_summary.paid},
    ]
    by_module = [
        {"name": "Tontine", "value": tontine.balance},
        {"name": "Prêts", "value": loan_summary.total_lent},
        {"name": "Épargnes", "value": savings_summary.total_saved},
        {"name": "Sanctions", "value": sanction_summary.total},
    ]

    return {
        "filters": asdict(filters),
        "consistency": ctx.get("consistency", {}),
        "period": _period_label(ctx),
        "tontine": asdict(tontine),
        "prets": asdict(loan_summary),
        "epargnes": asdict(savings_summary),
        "sanctions": asdict(sanction_summary),
        "treasury": asdict(treasury),
        "kpis": {
            "net_balance": format_fcfa(treasury.net_balance, locale=locale, currency=currency),
            "dues_collected": format_fcfa(tontine.dues_collected, locale=locale, currency=currency),
            "loans_outstanding": format_fcfa(loan_summary.total_lent - loan_summary.total_repaid, locale=locale, currency=currency),
            "savings_total": format_fcfa(savings_summary.total_saved, locale=locale, currency=currency),
        },
        "table": table,
        "export_rows": export_rows,
        "stats": [
            {"label": "Trésorerie totale", "value": format_fcfa(treasury.net_balance, locale=locale, currency=currency)},
            {"label": "Prêts en cours", "value": str(loan_summary.ongoing)},
            {"label": "Prêts en retard", "value": str(loan_summary.late)},
        ],
        "charts": {
            "composition": pie_chart(composition, title="Composition de la trésorerie"),
            "by_module": bar_chart(by_module, title="Montants par module", x_title="Module"),
        },
    }
