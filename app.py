import pandas as pd
import streamlit as st
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from e2d_core.config import configure_logging, get_settings
from e2d_core.data import FileRowStore, load_data_context, prepare_context
from e2d_core.export import build_export, to_csv_bytes
from e2d_core.filters import FilterContext, meetings_in_period, resolve_period
from e2d_core.metrics_aid import compute_aid
from e2d_core.metrics_dues import compute_dues
from e2d_core.metrics_loans import compute_loans
from e2d_core.metrics_report import compute_financial_report
from e2d_core.metrics_sanctions import compute_sanctions
from e2d_core.metrics_savings import compute_savers_benefits, compute_savings
from e2d_core.viewmodels import format_fcfa


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;margin-bottom: 8px;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        .chip-warn {background: #fef3c7;border-color: #f59e0b;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card'><div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def format_filter_summary(period_name: Optional[str], meeting_label: Optional[str], f: FilterContext, consistency: Dict[str, Any]) -> str:
    chips = [f"Exercice : {period_name or 'Tous'}"]
    if period_name:
        chips.append(f"Réunion : {meeting_label or 'Toutes'}")
        if f.custom_start or f.custom_end:
            start = f.custom_start.strftime("%d/%m/%Y") if f.custom_start else "début"
            end = f.custom_end.strftime("%d/%m/%Y") if f.custom_end else "fin"
            chips.append(f"Du {start} au {end}")
    if f.search:
        chips.append(f"Recherche : {f.search}")
    html = "".join(f"<span class='chip'>{txt}</span>" for txt in chips)
    if consistency.get("meeting_in_period") is False:
        html += "<span class='chip chip-warn'>Réunion hors de l'exercice sélectionné</span>"
    return html


def render_page_header(title: str, filter_summary_html: str, export: Optional[Dict[str, Any]] = None, export_name: str = "export.csv"):
    inject_base_styles()
    c1, c2 = st.columns([8, 2])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>E2D / Finances</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        if export is not None and export.get("rows"):
            st.download_button("Exporter CSV", data=to_csv_bytes(export), file_name=export_name, mime="text/csv")
    st.markdown(f"<div class='chip-row'>{filter_summary_html}</div>", unsafe_allow_html=True)


def render_chart(spec: Optional[Dict[str, Any]], empty_text: str = "Aucune donnée pour ce filtre."):
    if spec:
        st.vega_lite_chart(spec, use_container_width=True)
    else:
        st.info(empty_text)


def render_rows(rows: List[Dict[str, Any]], columns: Dict[str, str]):
    if not rows:
        st.info("Aucun enregistrement.")
        return
    df = pd.DataFrame(rows)
    df = df[[c for c in columns if c in df.columns]].rename(columns=columns)
    st.dataframe(df, use_container_width=True, hide_index=True)


ROW_COLUMNS = {"date_display": "Date", "member": "Membre", "category": "Type", "amount_display": "Montant", "status_label": "Statut"}


# ---------- UI setup ----------
settings = get_settings()
configure_logging(settings)
st.set_page_config(page_title="E2D - Tableau de bord financier", layout="wide")
inject_base_styles()
st.title("Association E2D - Tableau de bord financier")

data_ctx = load_data_context(FileRowStore(settings.data_dir), max_workers=settings.fetch_workers)
periods = data_ctx.get("periods", [])
meetings = data_ctx.get("meetings", [])

# ----- Sidebar: navigation + filters -----
with st.sidebar:
    st.markdown("### Navigation")
    page = st.radio(
        "Page",
        ["Rapport financier", "Cotisations", "Épargnes", "Prêts", "Sanctions", "Aides", "Épargnants - bénéfices"],
        index=0,
    )
    st.markdown("---")
    st.markdown("### Filtres")
    period_options = {"": "Tous les exercices"} | {p.id: p.name for p in periods}
    period_id = st.selectbox("Exercice", options=list(period_options), format_func=lambda k: period_options[k])
    period = resolve_period(periods, period_id or None)

    scoped = meetings_in_period(meetings, period)
    meeting_options = {"": "Toutes les réunions"} | {m.id: f"{m.date:%d/%m/%Y} - {m.subject}" for m in scoped}
    meeting_id = st.selectbox(
        "Réunion",
        options=list(meeting_options),
        format_func=lambda k: meeting_options[k],
        disabled=period is None,
    )
    use_range = st.checkbox("Période personnalisée", value=False, disabled=period is None)
    custom_start = custom_end = None
    if period is not None and use_range:
        custom_start = st.date_input("Du", value=period.start_date, min_value=period.start_date, max_value=period.end_date)
        custom_end = st.date_input("Au", value=period.end_date, min_value=period.start_date, max_value=period.end_date)
    search = st.text_input("Rechercher (membre ou type)", "")

filters = FilterContext(
    fiscal_period_id=period.id if period else None,
    meeting_id=(meeting_id or None) if period else None,
    custom_start=custom_start,
    custom_end=custom_end,
    search=search.strip(),
)
ctx = prepare_context(filters, data_ctx)
ctx["settings"] = settings
meeting_label = meeting_options.get(meeting_id) if meeting_id else None
summary_html = format_filter_summary(period.name if period else None, meeting_label, filters, ctx["consistency"])


def render_module_page(title: str, payload: Dict[str, Any], kpis: List[tuple]):
    view = payload["view"]
    export = build_export(title, view["export_rows"], period=period.name if period else None)
    render_page_header(title, summary_html, export, export_name=f"{title.lower()}.csv")
    cols = st.columns(len(kpis))
    for col, (label, value) in zip(cols, kpis):
        col.metric(label, value)
    left, right = st.columns(2)
    with left:
        with card("Répartition"):
            render_chart(payload["charts"].get("status") or payload["charts"].get("by_category"))
    with right:
        with card("Évolution"):
            render_chart(payload["charts"].get("monthly"))
    with card("Détail"):
        render_rows(view["rows"], ROW_COLUMNS)


def money(value) -> str:
    return format_fcfa(value, locale=settings.locale, currency=settings.currency_label)


if page == "Rapport financier":
    payload = compute_financial_report(filters, ctx)
    export = build_export("Rapport Financier Global", payload["export_rows"], period=payload["period"], stats=payload["stats"])
    render_page_header("Rapport financier global", summary_html, export, export_name="rapport_financier.csv")
    k = payload["kpis"]
    cols = st.columns(4)
    cols[0].metric("Trésorerie nette", k["net_balance"])
    cols[1].metric("Cotisations", k["dues_collected"])
    cols[2].metric("Prêts en cours", k["loans_outstanding"])
    cols[3].metric("Épargnes", k["savings_total"])
    left, right = st.columns(2)
    with left:
        with card("Composition de la trésorerie"):
            render_chart(payload["charts"]["composition"])
    with right:
        with card("Montants par module"):
            render_chart(payload["charts"]["by_module"])
    with card("Synthèse"):
        st.dataframe(
            pd.DataFrame([{"Module": r["module"], "Montant": money(r["amount"])} for r in payload["table"]]),
            use_container_width=True,
            hide_index=True,
        )
elif page == "Cotisations":
    payload = compute_dues(filters, ctx)
    k = payload["kpis"]
    render_module_page(
        "Cotisations",
        payload,
        [("Total", money(k["total"])), ("Payées", k["paid"]), ("En retard", k["late"]), ("Ce mois", money(k["current_month_total"]))],
    )
elif page == "Épargnes":
    payload = compute_savings(filters, ctx)
    k = payload["kpis"]
    render_module_page(
        "Épargnes",
        payload,
        [("Total épargné", money(k["total_saved"])), ("Épargnants", k["savers"]), ("Intérêts estimés", money(k["estimated_interest"]))],
    )
elif page == "Prêts":
    payload = compute_loans(filters, ctx)
    k = payload["kpis"]
    render_module_page(
        "Prêts",
        payload,
        [("Total prêté", money(k["total_lent"])), ("Remboursé", money(k["total_repaid"])), ("En cours", k["ongoing"]), ("En retard", k["late"] + k["overdue"])],
    )
elif page == "Sanctions":
    payload = compute_sanctions(filters, ctx)
    k = payload["kpis"]
    render_module_page(
        "Sanctions",
        payload,
        [("Total", money(k["total"])), ("Payé", money(k["paid"])), ("Impayé", money(k["unpaid"]))],
    )
elif page == "Aides":
    payload = compute_aid(filters, ctx)
    k = payload["kpis"]
    render_module_page("Aides", payload, [("Total", money(k["total"])), ("Nombre", k["count"]), ("Bénéficiaires", k["beneficiaries"])])
else:
    payload = compute_savers_benefits(filters, ctx)
    export = build_export("Épargnants - Bénéfices Attendus", [s["export"] for s in payload["savers"]], period=period.name if period else None, stats=payload["stats"])
    render_page_header("Épargnants - bénéfices attendus", summary_html, export, export_name="epargnants_benefices.csv")
    cols = st.columns(len(payload["stats"]))
    for col, stat in zip(cols, payload["stats"]):
        col.metric(stat["label"], stat["value"])
    with card("Gains estimés"):
        render_chart(payload["charts"]["gains"])
    with card("Épargnants"):
        st.dataframe(
            pd.DataFrame([{c["header"]: c["value"] for c in s["export"]} for s in payload["savers"]]),
            use_container_width=True,
            hide_index=True,
        )
