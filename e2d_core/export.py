from __future__ import annotations

import io
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from e2d_core.config import get_settings


ExportRow = Sequence[Dict[str, str]]


def build_export(
    title: str,
    rows: Sequence[ExportRow],
    *,
    period: Optional[str] = None,
    stats: Optional[List[Dict[str, Any]]] = None,
    generated_at: Optional[datetime] = None,
    association: Optional[str] = None,
) -> Dict[str, Any]:
    """Package ``{header, value}`` rows with the metadata the export service prints."""
    columns: List[str] = []
    for row in rows:
        for cell in row:
            if cell["header"] not in columns:
                columns.append(cell["header"])
    return {
        "title": title,
        "metadata": {
            "association": association or get_settings().association_name,
            "generated_at": (generated_at or datetime.now()).isoformat(timespec="seconds"),
            "period": period,
        },
        "columns": columns,
        "rows": [{cell["header"]: cell["value"] for cell in row} for row in rows],
        "stats": list(stats or []),
    }


def to_frame(export: Dict[str, Any]) -> pd.DataFrame:
    return pd.DataFrame(export.get("rows", []), columns=export.get("columns") or None)


def to_csv_bytes(export: Dict[str, Any]) -> bytes:
    return to_frame(export).to_csv(index=False).encode("utf-8")


def to_excel_bytes(export: Dict[str, Any]) -> bytes:
    buffer = io.BytesIO()
    meta = export.get("metadata", {})
    header = pd.DataFrame(
        [
            {"Libellé": "Titre", "Valeur": export.get("title", "")},
            {"Libellé": "Association", "Valeur": meta.get("association", "")},
            {"Libellé": "Généré le", "Valeur": meta.get("generated_at", "")},
            {"Libellé": "Période", "Valeur": meta.get("period") or ""},
        ]
        + [{"Libellé": s.get("label", ""), "Valeur": s.get("value", "")} for s in export.get("stats", [])]
    )
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        to_frame(export).to_excel(writer, sheet_name="Données", index=False)
        header.to_excel(writer, sheet_name="Informations", index=False)
    return buffer.getvalue()
