from __future__ import annotations

from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def _series_frame(series: List[Dict[str, Any]]) -> pd.DataFrame:
    df = pd.DataFrame(series, columns=["name", "value"])
    df["value"] = pd.to_numeric(df["value"].astype(str), errors="coerce").fillna(0.0)
    return df


def pie_chart(series: List[Dict[str, Any]], *, title: str = "", color_map: Optional[Dict[str, str]] = None) -> Optional[Dict[str, Any]]:
    if not series:
        return None
    df = _series_frame(series)
    color = alt.Color("name:N", title=None)
    if color_map:
        names = df["name"].tolist()
        color = alt.Color(
            "name:N",
            title=None,
            scale=alt.Scale(domain=names, range=[color_map.get(n, "#9ca3af") for n in names]),
        )
    chart = (
        alt.Chart(df)
        .mark_arc(innerRadius=40)
        .encode(
            theta=alt.Theta("value:Q", stack=True),
            color=color,
            tooltip=[alt.Tooltip("name:N", title="Catégorie"), alt.Tooltip("value:Q", format=",.0f")],
        )
        .properties(height=260, title=title)
    )
    return to_vega_spec(chart)


def bar_chart(series: List[Dict[str, Any]], *, title: str = "", x_title: str = "", y_title: str = "Montant (FCFA)") -> Optional[Dict[str, Any]]:
    if not series:
        return None
    df = _series_frame(series)
    chart = (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("name:O", title=x_title, sort=None),
            y=alt.Y("value:Q", title=y_title, axis=alt.Axis(format="~s", gridDash=[4, 4], domain=False, ticks=False)),
            tooltip=[alt.Tooltip("name:N", title=x_title or "Libellé"), alt.Tooltip("value:Q", format=",.0f")],
        )
        .properties(height=260, title=title)
    )
    return to_vega_spec(chart)
