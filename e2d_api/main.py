from __future__ import annotations

import logging
import math
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Literal, Optional

import numpy as np
import pandas as pd
from fastapi import Depends, FastAPI, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from e2d_api.schemas import (
    FilterContextModel,
    FiscalPeriodModel,
    MeetingModel,
    MetaMeetingsResponse,
    MetaPeriodsResponse,
)
from e2d_core.config import get_settings
from e2d_core.data import FileRowStore, RowStoreGateway, load_data_context, prepare_context
from e2d_core.export import build_export, to_csv_bytes, to_excel_bytes
from e2d_core.filters import FilterContext, meetings_in_period, normalize_filter_context, resolve_period
from e2d_core.metrics_aid import compute_aid
from e2d_core.metrics_dues import compute_dues
from e2d_core.metrics_loans import compute_loans
from e2d_core.metrics_report import compute_financial_report, rolling_period
from e2d_core.metrics_sanctions import compute_sanctions
from e2d_core.metrics_savings import compute_savers_benefits, compute_savings


app = FastAPI(title="E2D Finance API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

PAGES: Dict[str, Callable[[FilterContext, Dict[str, Any]], Dict[str, Any]]] = {
    "cotisations": compute_dues,
    "epargnes": compute_savings,
    "prets": compute_loans,
    "sanctions": compute_sanctions,
    "aides": compute_aid,
    "rapport-financier": compute_financial_report,
    "epargnants-benefices": compute_savers_benefits,
}

EXPORT_TITLES = {
    "cotisations": "Cotisations",
    "epargnes": "Épargnes",
    "prets": "Prêts",
    "sanctions": "Sanctions",
    "aides": "Aides",
    "rapport-financier": "Rapport Financier Global",
    "epargnants-benefices": "Épargnants - Bénéfices Attendus",
}


def get_gateway() -> RowStoreGateway:
    return FileRowStore(get_settings().data_dir)


def _filters_from_model(model: Optional[FilterContextModel]) -> FilterContext:
    raw = model.model_dump() if model is not None else {}
    return normalize_filter_context(raw)


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for Decimal/pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                Decimal: _safe_float,
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
                date: lambda d: d.isoformat(),
                datetime: lambda d: d.isoformat(),
            },
        )
    )


def _error(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


def _page_context(f: FilterContext, gateway: RowStoreGateway, periode: Optional[str] = None) -> Dict[str, Any]:
    settings = get_settings()
    data_ctx = load_data_context(gateway, max_workers=settings.fetch_workers)
    rolling = rolling_period(periode) if periode else None
    if rolling is not None and f.fiscal_period_id is None:
        data_ctx["periods"] = [rolling] + list(data_ctx.get("periods", []))
        f = FilterContext(
            fiscal_period_id=rolling.id,
            meeting_id=f.meeting_id,
            custom_start=f.custom_start,
            custom_end=f.custom_end,
            search=f.search,
        )
    ctx = prepare_context(f, data_ctx)
    ctx["settings"] = settings
    return ctx


def _run_page(page: str, f: FilterContext, gateway: RowStoreGateway, periode: Optional[str] = None) -> Dict[str, Any]:
    ctx = _page_context(f, gateway, periode)
    return PAGES[page](ctx["filters"], ctx)


@app.get("/meta/exercices")
def meta_exercices(gateway: RowStoreGateway = Depends(get_gateway)):
    try:
        data_ctx = load_data_context(gateway, max_workers=get_settings().fetch_workers)
        periods = [
            FiscalPeriodModel(id=p.id, name=p.name, start_date=p.start_date.isoformat(), end_date=p.end_date.isoformat(), status=p.status)
            for p in data_ctx.get("periods", [])
        ]
        return _json(MetaPeriodsResponse(exercices=periods).model_dump())
    except Exception as exc:
        logger.exception("meta_exercices failed")
        return _error(exc)


@app.get("/meta/reunions")
def meta_reunions(exercice_id: str = Query(default=""), gateway: RowStoreGateway = Depends(get_gateway)):
    try:
        data_ctx = load_data_context(gateway, max_workers=get_settings().fetch_workers)
        period = resolve_period(data_ctx.get("periods", []), exercice_id.strip() or None)
        meetings = [
            MeetingModel(id=m.id, subject=m.subject, date=m.date.isoformat() if m.date else None, status=m.status)
            for m in meetings_in_period(data_ctx.get("meetings", []), period)
        ]
        return _json(MetaMeetingsResponse(reunions=meetings).model_dump())
    except Exception as exc:
        logger.exception("meta_reunions failed")
        return _error(exc)


@app.post("/cotisations")
def cotisations(filters: FilterContextModel, gateway: RowStoreGateway = Depends(get_gateway)):
    try:
        return _json(_run_page("cotisations", _filters_from_model(filters), gateway))
    except Exception as exc:
        logger.exception("cotisations failed")
        return _error(exc)


@app.post("/epargnes")
def epargnes(filters: FilterContextModel, gateway: RowStoreGateway = Depends(get_gateway)):
    try:
        return _json(_run_page("epargnes", _filters_from_model(filters), gateway))
    except Exception as exc:
        logger.exception("epargnes failed")
        return _error(exc)


@app.post("/prets")
def prets(filters: FilterContextModel, gateway: RowStoreGateway = Depends(get_gateway)):
    try:
        return _json(_run_page("prets", _filters_from_model(filters), gateway))
    except Exception as exc:
        logger.exception("prets failed")
        return _error(exc)


@app.post("/sanctions")
def sanctions(filters: FilterContextModel, gateway: RowStoreGateway = Depends(get_gateway)):
    try:
        return _json(_run_page("sanctions", _filters_from_model(filters), gateway))
    except Exception as exc:
        logger.exception("sanctions failed")
        return _error(exc)


@app.post("/aides")
def aides(filters: FilterContextModel, gateway: RowStoreGateway = Depends(get_gateway)):
    try:
        return _json(_run_page("aides", _filters_from_model(filters), gateway))
    except Exception as exc:
        logger.exception("aides failed")
        return _error(exc)


@app.post("/rapport-financier")
def rapport_financier(
    filters: FilterContextModel,
    periode: Optional[Literal["mois", "trimestre", "annee"]] = Query(default=None),
    gateway: RowStoreGateway = Depends(get_gateway),
):
    try:
        return _json(_run_page("rapport-financier", _filters_from_model(filters), gateway, periode))
    except Exception as exc:
        logger.exception("rapport_financier failed")
        return _error(exc)


@app.post("/epargnants-benefices")
def epargnants_benefices(filters: FilterContextModel, gateway: RowStoreGateway = Depends(get_gateway)):
    try:
        return _json(_run_page("epargnants-benefices", _filters_from_model(filters), gateway))
    except Exception as exc:
        logger.exception("epargnants_benefices failed")
        return _error(exc)


def _export_rows(page: str, payload: Dict[str, Any]):
    if page == "rapport-financier":
        return payload.get("export_rows", [])
    if page == "epargnants-benefices":
        return [s["export"] for s in payload.get("savers", [])]
    return payload.get("view", {}).get("export_rows", [])


@app.post("/export/{page}")
def export_page(
    page: str,
    filters: FilterContextModel,
    format: Literal["csv", "xlsx"] = Query(default="csv"),
    periode: Optional[Literal["mois", "trimestre", "annee"]] = Query(default=None),
    gateway: RowStoreGateway = Depends(get_gateway),
):
    if page not in PAGES:
        return JSONResponse(status_code=404, content={"error": f"unknown page: {page}", "type": "NotFound"})
    try:
        payload = _run_page(page, _filters_from_model(filters), gateway, periode)
        export = build_export(
            EXPORT_TITLES[page],
            _export_rows(page, payload),
            period=payload.get("period"),
            stats=payload.get("stats"),
        )
        if format == "xlsx":
            return Response(
                content=to_excel_bytes(export),
                media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
                headers={"Content-Disposition": f"attachment; filename={page}.xlsx"},
            )
        return Response(content=to_csv_bytes(export), media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={page}.csv"})
    except Exception as exc:
        logger.exception("export %s failed", page)
        return _error(exc)
