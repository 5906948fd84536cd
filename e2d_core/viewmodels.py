"""Presentation shaping: formatted totals, status badges, chart series, table rows.

Nothing here computes business figures; totals always come from an
``AggregateResult`` (or another summary) built upstream.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any, Dict, List, Mapping, Optional, Sequence

from e2d_core.aggregates import AggregateResult
from e2d_core.config import get_settings
from e2d_core.records import FinancialRecord, is_missing


@dataclass(frozen=True)
class Badge:
    label: str
    color: str
    variant: str = "default"


STATUS_BADGES: Dict[str, Badge] = {
    "paye": Badge("Payé", "green", "success"),
    "en_attente": Badge("En attente", "gray", "secondary"),
    "en_retard": Badge("En retard", "red", "destructive"),
    "partiel": Badge("Partiel", "orange", "warning"),
    "impaye": Badge("Impayé", "red", "destructive"),
    "en_cours": Badge("En cours", "blue", "default"),
    "rembourse": Badge("Remboursé", "green", "success"),
    "retard_partiel": Badge("Retard partiel", "orange", "warning"),
    "reconduit": Badge("Reconduit", "purple", "secondary"),
    "annule": Badge("Annulé", "gray", "outline"),
    "actif": Badge("Actif", "green", "success"),
    "retire": Badge("Retiré", "gray", "secondary"),
    "alloue": Badge("Alloué", "green", "success"),
    "prevu": Badge("Prévu", "blue", "default"),
}

BADGE_HEX = {
    "green": "#16a34a",
    "gray": "#6b7280",
    "red": "#dc2626",
    "orange": "#ea580c",
    "blue": "#2563eb",
    "purple": "#7c3aed",
}

DEFAULT_COLUMNS = {
    "date": "Date",
    "member": "Membre",
    "category": "Type",
    "amount": "Montant (FCFA)",
    "status": "Statut",
}

MONTHS_FR = ["janv.", "févr.", "mars", "avr.", "mai", "juin", "juil.", "août", "sept.", "oct.", "nov.", "déc."]

_GROUP_SEPARATORS = {"fr": "\u202f", "en": ","}
_DECIMAL_MARKS = {"fr": ",", "en": "."}


@dataclass(frozen=True)
class ViewModel:
    title: str
    kpis: Dict[str, str] = field(default_factory=dict)
    badges: List[Dict[str, Any]] = field(default_factory=list)
    status_series: List[Dict[str, Any]] = field(default_factory=list)
    monthly_series: List[Dict[str, Any]] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    export_rows: List[List[Dict[str, str]]] = field(default_factory=list)


def round_half_up(value: object, ndigits: int = 0) -> Optional[Decimal]:
    if is_missing(value):
        return None
    q = Decimal(10) ** -ndigits
    d = Decimal(str(value))
    if not d.is_finite():
        return None
    with localcontext() as dctx:
        # Enough digits for every integer digit plus the requested decimals.
        dctx.prec = max(dctx.prec, d.adjusted() + ndigits + 2)
        return d.quantize(q, rounding=ROUND_HALF_UP)


def format_number(value: object, *, decimals: int = 0, locale: str = "fr") -> str:
    rounded = round_half_up(value, decimals)
    if rounded is None:
        return "N/A"
    raw = f"{rounded:,.{decimals}f}"
    sep = _GROUP_SEPARATORS.get(locale, ",")
    mark = _DECIMAL_MARKS.get(locale, ".")
    return raw.replace(",", "\x00").replace(".", mark).replace("\x00", sep)


def format_fcfa(value: object, *, locale: str = "fr", currency: str = "FCFA") -> str:
    text = format_number(value, locale=locale)
    return text if text == "N/A" else f"{text} {currency}"


def format_percent(value: object, *, decimals: int = 2, locale: str = "fr") -> str:
    text = format_number(value, decimals=decimals, locale=locale)
    if text == "N/A":
        return text
    return f"{text} %" if locale == "fr" else f"{text}%"


def format_date(value: Optional[date], *, locale: str = "fr") -> str:
    if value is None:
        return ""
    return value.strftime("%d/%m/%Y") if locale == "fr" else value.isoformat()


def status_badge(status: str, labels: Optional[Mapping[str, str]] = None) -> Badge:
    base = STATUS_BADGES.get(status)
    label = (labels or {}).get(status)
    if base is None:
        return Badge(label or status, "gray", "outline")
    if label:
        return Badge(label, base.color, base.variant)
    return base


def _badge_payload(status: str, badge: Badge, count: int) -> Dict[str, Any]:
    return {"status": status, "label": badge.label, "color": badge.color, "variant": badge.variant, "count": count}


def month_label(key: str, *, locale: str = "fr") -> str:
    year, month = key.split("-")
    if locale == "fr":
        return f"{MONTHS_FR[int(month) - 1]} {year}"
    return key


def monthly_totals(records: Sequence[FinancialRecord]) -> List[Dict[str, Any]]:
    """Chart series of record amounts grouped by calendar month, oldest first."""
    buckets: Dict[str, Decimal] = {}
    for r in records:
        if r.record_date is None:
            continue
        key = f"{r.record_date.year:04d}-{r.record_date.month:02d}"
        buckets[key] = buckets.get(key, Decimal(0)) + r.amount
    return [{"name": k, "value": buckets[k]} for k in sorted(buckets)]


def _sort_key(r: FinancialRecord):
    return (r.record_date is not None, r.record_date or date.min, r.id)


def table_rows(records: Sequence[FinancialRecord], *, labels: Optional[Mapping[str, Any]] = None, locale: str = "fr") -> List[Dict[str, Any]]:
    status_labels = (labels or {}).get("statuses")
    rows: List[Dict[str, Any]] = []
    for r in sorted(records, key=_sort_key, reverse=True):
        badge = status_badge(r.status, status_labels)
        rows.append(
            {
                "id": r.id,
                "date": r.record_date.isoformat() if r.record_date else None,
                "date_display": format_date(r.record_date, locale=locale),
                "member": r.member_name,
                "category": r.category,
                "amount": r.amount,
                "amount_display": format_fcfa(r.amount, locale=locale),
                "status": r.status,
                "status_label": badge.label,
                "badge": {"label": badge.label, "color": badge.color, "variant": badge.variant},
            }
        )
    return rows


def export_pairs(rows: Sequence[Dict[str, Any]], columns: Optional[Mapping[str, str]] = None) -> List[List[Dict[str, str]]]:
    """Flatten table rows to ``{header, value}`` pairs for the export service."""
    headers = {**DEFAULT_COLUMNS, **(columns or {})}
    out: List[List[Dict[str, str]]] = []
    for row in rows:
        out.append(
            [
                {"header": headers["date"], "value": row.get("date_display") or ""},
                {"header": headers["member"], "value": row.get("member") or ""},
                {"header": headers["category"], "value": row.get("category") or ""},
                {"header": headers["amount"], "value": row.get("amount_display") or ""},
                {"header": headers["status"], "value": row["badge"]["label"] if row.get("badge") else ""},
            ]
        )
    return out


def assemble(
    aggregate: AggregateResult,
    records: Sequence[FinancialRecord],
    labels: Optional[Mapping[str, Any]] = None,
    *,
    locale: str = "fr",
    currency: str = "FCFA",
) -> ViewModel:
    labels = labels or {}
    status_labels = labels.get("statuses")

    badges: List[Dict[str, Any]] = []
    status_series: List[Dict[str, Any]] = []
    for status, count in aggregate.breakdown_by_status.items():
        badge = status_badge(status, status_labels)
        badges.append(_badge_payload(status, badge, count))
        status_series.append({"name": badge.label, "value": count, "color": BADGE_HEX.get(badge.color, BADGE_HEX["gray"])})

    monthly = [{"name": month_label(p["name"], locale=locale), "value": p["value"]} for p in monthly_totals(records)]
    rows = table_rows(records, labels=labels, locale=locale)

    return ViewModel(
        title=str(labels.get("title") or ""),
        kpis={
            "total": format_fcfa(aggregate.total, locale=locale, currency=currency),
            "count": format_number(aggregate.count, locale=locale),
            "average": format_fcfa(aggregate.average, locale=locale, currency=currency),
        },
        badges=badges,
        status_series=status_series,
        monthly_series=monthly,
        rows=rows,
        export_rows=export_pairs(rows, labels.get("columns")),
    )


def display_options(ctx: Mapping[str, Any]) -> Dict[str, str]:
    settings = ctx.get("settings") or get_settings()
    return {"locale": settings.locale, "currency": settings.currency_label}
