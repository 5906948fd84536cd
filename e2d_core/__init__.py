"""Core (UI-agnostic) reporting logic for the E2D association.

This package contains:
- row loading (gateway -> typed records)
- filter normalization and the exercice / réunion / date-range evaluator
- per-module aggregation and the treasury rollup
- view-model assembly and page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
