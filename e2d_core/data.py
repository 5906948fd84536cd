from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

import pandas as pd

from e2d_core.filters import FilterContext, FilterOutcome, apply_filters, normalize_filter_context
from e2d_core.records import (
    CATEGORY_FIELDS,
    MEMBER_FIELDS,
    TABLES,
    FinancialRecord,
    FiscalPeriod,
    Meeting,
    RecordKind,
    is_missing,
    meeting_from_row,
    period_from_row,
    record_from_row,
)


logger = logging.getLogger(__name__)

Row = Dict[str, Any]

MEMBERS_TABLE = "membres"
PERIODS_TABLE = "exercices"
MEETINGS_TABLE = "reunions"

# Lookup table + foreign key used to fill each kind's category label.
TYPE_TABLES: Dict[RecordKind, Tuple[str, str]] = {
    RecordKind.COTISATION: ("cotisations_types", "type_cotisation_id"),
    RecordKind.SANCTION: ("sanctions_types", "type_sanction_id"),
    RecordKind.AIDE: ("aides_types", "type_aide_id"),
}

KNOWN_TABLES = sorted(
    {MEMBERS_TABLE, PERIODS_TABLE, MEETINGS_TABLE}
    | set(TABLES.values())
    | {t for t, _ in TYPE_TABLES.values()}
)

FILE_SUFFIXES = (".csv", ".xlsx")


class GatewayError(Exception):
    """Raised by a row store for a table it does not know."""

    def __init__(self, table: str, message: str = "unknown table"):
        self.table = table
        super().__init__(f"{message}: {table}")


class RowStoreGateway(Protocol):
    def fetch_all(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> List[Row]:
        ...


def _match(row: Mapping[str, Any], filters: Optional[Mapping[str, Any]]) -> bool:
    """Equality filters; a ``(column, op)`` key with op in gte/lte compares ordered values."""
    for key, expected in (filters or {}).items():
        if isinstance(key, tuple):
            column, op = key
            value = row.get(column)
            if is_missing(value):
                return False
            if op == "gte" and not str(value) >= str(expected):
                return False
            if op == "lte" and not str(value) <= str(expected):
                return False
        elif row.get(key) != expected:
            return False
    return True


class InMemoryRowStore:
    def __init__(self, tables: Optional[Mapping[str, Iterable[Mapping[str, Any]]]] = None, *, strict: bool = False):
        self._tables: Dict[str, List[Row]] = {name: [dict(r) for r in rows] for name, rows in (tables or {}).items()}
        self.strict = strict

    def fetch_all(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> List[Row]:
        if table not in self._tables:
            if self.strict:
                raise GatewayError(table)
            return []
        return [dict(r) for r in self._tables[table] if _match(r, filters)]


def _clean_frame(df: pd.DataFrame) -> List[Row]:
    df = df.loc[:, ~df.columns.duplicated()]
    df.columns = [str(c).strip() for c in df.columns]
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


@lru_cache(maxsize=64)
def _read_table(path_str: str, mtime: float) -> Tuple[Row, ...]:
    path = Path(path_str)
    if path.suffix.lower() == ".xlsx":
        df = pd.read_excel(path, dtype=object)
    else:
        df = pd.read_csv(path, dtype=str, keep_default_na=True)
    return tuple(_clean_frame(df))


class FileRowStore:
    """Row store backed by one ``<table>.csv`` or ``<table>.xlsx`` export per table."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def path_for(self, table: str) -> Optional[Path]:
        for suffix in FILE_SUFFIXES:
            candidate = self.data_dir / f"{table}{suffix}"
            if candidate.exists():
                return candidate
        return None

    def available_tables(self) -> List[str]:
        if not self.data_dir.exists():
            return []
        return sorted({p.stem for p in self.data_dir.iterdir() if p.suffix.lower() in FILE_SUFFIXES})

    def fetch_all(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> List[Row]:
        path = self.path_for(table)
        if path is None:
            raise GatewayError(table, "no export found for table")
        rows = _read_table(str(path), path.stat().st_mtime)
        return [dict(r) for r in rows if _match(r, filters)]


def _safe_fetch(gateway: RowStoreGateway, table: str, filters: Optional[Mapping[str, Any]]) -> List[Row]:
    try:
        return list(gateway.fetch_all(table, filters) or [])
    except GatewayError as exc:
        logger.warning("%s; defaulting to empty", exc)
        return []
    except Exception:
        logger.exception("fetch failed for table %s; defaulting to empty", table)
        return []


def fetch_tables(
    gateway: RowStoreGateway,
    tables: Iterable[str],
    *,
    filters: Optional[Mapping[str, Mapping[str, Any]]] = None,
    max_workers: int = 4,
) -> Dict[str, List[Row]]:
    """Fetch independent tables concurrently; a failed table becomes ``[]``.

    Returns only once every fetch has resolved.
    """
    names = list(dict.fromkeys(tables))
    if not names:
        return {}
    filters = filters or {}
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(names)))) as pool:
        futures = {name: pool.submit(_safe_fetch, gateway, name, filters.get(name)) for name in names}
        return {name: fut.result() for name, fut in futures.items()}


def _member_names(rows: Sequence[Row]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for r in rows:
        if is_missing(r.get("id")):
            continue
        parts = [str(r[k]).strip() for k in ("prenom", "nom") if not is_missing(r.get(k))]
        out[str(r["id"])] = " ".join(p for p in parts if p)
    return out


def _type_names(rows: Sequence[Row]) -> Dict[str, str]:
    return {str(r["id"]): str(r.get("nom") or "") for r in rows if not is_missing(r.get("id"))}


def _enrich(kind: RecordKind, rows: Sequence[Row], members: Dict[str, str], types: Dict[str, str]) -> List[Row]:
    member_field = MEMBER_FIELDS.get(kind, "membre_id")
    type_fk = TYPE_TABLES.get(kind, (None, None))[1]
    category_field = CATEGORY_FIELDS.get(kind)
    out: List[Row] = []
    for r in rows:
        row = dict(r)
        member_id = row.get(member_field)
        if is_missing(row.get("membre_nom")) and not is_missing(member_id):
            name = members.get(str(member_id))
            if name:
                row["membre_nom"] = name
        if category_field and type_fk and is_missing(row.get(category_field)) and not is_missing(row.get(type_fk)):
            row[category_field] = types.get(str(row[type_fk]))
        out.append(row)
    return out


def build_records(kind: RecordKind, rows: Sequence[Row]) -> List[FinancialRecord]:
    out: List[FinancialRecord] = []
    for r in rows:
        try:
            out.append(record_from_row(kind, r))
        except Exception:
            logger.exception("skipping malformed %s row", kind.value)
    return out


def load_data_context(gateway: RowStoreGateway, *, max_workers: int = 4) -> Dict[str, Any]:
    """Fetch every table the reports need and type the rows.

    The result maps each ``RecordKind`` value to its records, plus ``periods``
    and ``meetings``.
    """
    tables = fetch_tables(gateway, KNOWN_TABLES, max_workers=max_workers)
    members = _member_names(tables.get(MEMBERS_TABLE, []))

    ctx: Dict[str, Any] = {}
    for kind, table in TABLES.items():
        type_table = TYPE_TABLES.get(kind, (None, None))[0]
        types = _type_names(tables.get(type_table, [])) if type_table else {}
        rows = _enrich(kind, tables.get(table, []), members, types)
        ctx[kind.value] = build_records(kind, rows)

    periods = [p for p in (period_from_row(r) for r in tables.get(PERIODS_TABLE, [])) if p is not None]
    meetings = [m for m in (meeting_from_row(r) for r in tables.get(MEETINGS_TABLE, [])) if m is not None]
    ctx["periods"] = sorted(periods, key=lambda p: p.start_date, reverse=True)
    ctx["meetings"] = sorted(meetings, key=lambda m: (m.date is not None, m.date), reverse=True)
    ctx["row_counts"] = {name: len(rows) for name, rows in tables.items()}
    logger.info("loaded data context: %s", ctx["row_counts"])
    return ctx


def prepare_context(filters: dict | FilterContext, data_ctx: Dict[str, Any]) -> Dict[str, Any]:
    """Apply one filter context to every module so all totals share a period."""
    filt = filters if isinstance(filters, FilterContext) else normalize_filter_context(filters)
    periods: List[FiscalPeriod] = data_ctx.get("periods", []) or []
    meetings: List[Meeting] = data_ctx.get("meetings", []) or []

    ctx: Dict[str, Any] = {"filters": filt, "periods": periods, "meetings": meetings}
    outcome: Optional[FilterOutcome] = None
    for kind in RecordKind:
        outcome = apply_filters(data_ctx.get(kind.value, []) or [], filt, periods, meetings=meetings)
        ctx[f"filtered_{kind.value}"] = outcome.records
        ctx[kind.value] = list(data_ctx.get(kind.value, []) or [])

    ctx["period"] = outcome.period if outcome else None
    ctx["consistency"] = {
        "levels_applied": outcome.levels_applied if outcome else [],
        "meeting_in_period": outcome.meeting_in_period if outcome else None,
    }
    return ctx