from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import pandas as pd


class RecordKind(str, Enum):
    COTISATION = "cotisation"
    EPARGNE = "epargne"
    PRET = "pret"
    SANCTION = "sanction"
    AIDE = "aide"
    BENEFICIAIRE = "beneficiaire"


# Backend table and date column per record kind.
TABLES: Dict[RecordKind, str] = {
    RecordKind.COTISATION: "cotisations",
    RecordKind.EPARGNE: "epargnes",
    RecordKind.PRET: "prets",
    RecordKind.SANCTION: "sanctions",
    RecordKind.AIDE: "aides",
    RecordKind.BENEFICIAIRE: "reunion_beneficiaires",
}

DATE_FIELDS: Dict[RecordKind, str] = {
    RecordKind.COTISATION: "date_paiement",
    RecordKind.EPARGNE: "date_depot",
    RecordKind.PRET: "date_pret",
    RecordKind.SANCTION: "date_sanction",
    RecordKind.AIDE: "date_allocation",
    RecordKind.BENEFICIAIRE: "date_benefice_prevue",
}

AMOUNT_FIELDS: Dict[RecordKind, str] = {
    RecordKind.BENEFICIAIRE: "montant_benefice",
}

MEMBER_FIELDS: Dict[RecordKind, str] = {
    RecordKind.AIDE: "beneficiaire_id",
}

CATEGORY_FIELDS: Dict[RecordKind, str] = {
    RecordKind.COTISATION: "type_cotisation",
    RecordKind.SANCTION: "type_sanction",
    RecordKind.AIDE: "type_aide",
}

STATUSES: Dict[RecordKind, tuple] = {
    RecordKind.COTISATION: ("paye", "en_attente", "en_retard"),
    RecordKind.EPARGNE: ("actif", "retire"),
    RecordKind.PRET: ("en_cours", "rembourse", "en_retard", "retard_partiel", "reconduit", "annule"),
    RecordKind.SANCTION: ("paye", "partiel", "impaye"),
    RecordKind.AIDE: ("alloue", "en_attente", "annule"),
    RecordKind.BENEFICIAIRE: ("prevu", "paye"),
}

UNKNOWN_STATUS = "inconnu"


def is_missing(value: object) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def to_decimal(value: object) -> Decimal:
    """Lenient amount coercion: anything missing or non-numeric counts as 0."""
    if is_missing(value) or isinstance(value, bool):
        return Decimal(0)
    if isinstance(value, Decimal):
        return value if value.is_finite() else Decimal(0)
    try:
        out = Decimal(str(value).strip().replace("\u00a0", "").replace("\u202f", "").replace(" ", ""))
    except (InvalidOperation, ValueError):
        return Decimal(0)
    return out if out.is_finite() else Decimal(0)


def parse_date(value: object) -> Optional[date]:
    """Return a ``date`` or ``None`` for anything that does not parse."""
    if is_missing(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        pass
    try:
        ts = pd.to_datetime(s, errors="coerce")
    except (TypeError, ValueError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    return ts.date()


def _as_str(value: object) -> Optional[str]:
    if is_missing(value):
        return None
    s = str(value).strip()
    return s or None


def _as_int(value: object) -> int:
    # CSV exports write integer columns with gaps as "2.0".
    return int(to_decimal(value))


@dataclass(frozen=True)
class FiscalPeriod:
    id: str
    name: str
    start_date: date
    end_date: date
    status: str = ""

    def contains(self, day: Optional[date]) -> bool:
        return day is not None and self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class Meeting:
    id: str
    subject: str
    date: Optional[date]
    status: str = ""


@dataclass(frozen=True)
class FinancialRecord:
    id: str
    kind: RecordKind
    amount: Decimal
    record_date: Optional[date]
    status: str = UNKNOWN_STATUS
    meeting_id: Optional[str] = None
    member_id: Optional[str] = None
    fiscal_period_id: Optional[str] = None
    member_name: str = ""
    category: str = ""
    amount_paid: Decimal = Decimal(0)
    interest_rate: Decimal = Decimal(0)
    renewals: int = 0
    due_date: Optional[date] = None


def _member_name(row: Mapping[str, Any]) -> str:
    if _as_str(row.get("membre_nom")):
        return str(row.get("membre_nom")).strip()
    member = row.get("membre") or row.get("membres")
    if isinstance(member, Mapping):
        parts = [_as_str(member.get("prenom")), _as_str(member.get("nom"))]
    else:
        parts = [_as_str(row.get("prenom")), _as_str(row.get("nom"))]
    return " ".join(p for p in parts if p)


def _category(kind: RecordKind, row: Mapping[str, Any]) -> str:
    field = CATEGORY_FIELDS.get(kind)
    if field is None:
        return ""
    value = row.get(field)
    if isinstance(value, Mapping):
        value = value.get("nom")
    return _as_str(value) or ""


def record_from_row(kind: RecordKind, row: Mapping[str, Any]) -> FinancialRecord:
    """Build a typed record from a backend row, coercing every field leniently."""
    kind = RecordKind(kind)
    return FinancialRecord(
        id=_as_str(row.get("id")) or "",
        kind=kind,
        amount=to_decimal(row.get(AMOUNT_FIELDS.get(kind, "montant"))),
        record_date=parse_date(row.get(DATE_FIELDS[kind])),
        status=_as_str(row.get("statut")) or UNKNOWN_STATUS,
        meeting_id=_as_str(row.get("reunion_id")),
        member_id=_as_str(row.get(MEMBER_FIELDS.get(kind, "membre_id"))),
        fiscal_period_id=_as_str(row.get("exercice_id")),
        member_name=_member_name(row),
        category=_category(kind, row),
        amount_paid=to_decimal(row.get("montant_paye")),
        interest_rate=to_decimal(row.get("taux_interet")),
        renewals=_as_int(row.get("reconductions")),
        due_date=parse_date(row.get("echeance")),
    )


def period_from_row(row: Mapping[str, Any]) -> Optional[FiscalPeriod]:
    start = parse_date(row.get("date_debut"))
    end = parse_date(row.get("date_fin"))
    pid = _as_str(row.get("id"))
    if pid is None or start is None or end is None:
        return None
    return FiscalPeriod(id=pid, name=_as_str(row.get("nom")) or pid, start_date=start, end_date=end, status=_as_str(row.get("statut")) or "")


def meeting_from_row(row: Mapping[str, Any]) -> Optional[Meeting]:
    mid = _as_str(row.get("id"))
    if mid is None:
        return None
    return Meeting(
        id=mid,
        subject=_as_str(row.get("sujet")) or "",
        date=parse_date(row.get("date_reunion")),
        status=_as_str(row.get("statut")) or "",
    )
