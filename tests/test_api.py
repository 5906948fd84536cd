import io

import pytest
from openpyxl import load_workbook
from fastapi.testclient import TestClient

from e2d_api import main
from e2d_api.main import app, get_gateway


@pytest.fixture
def client(row_store):
    app.dependency_overrides[get_gateway] = lambda: row_store
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestMeta:
    def test_exercices(self, client):
        resp = client.get("/meta/exercices")

        assert resp.status_code == 200
        periods = resp.json()["exercices"]
        assert [p["id"] for p in periods] == ["ex-2024", "ex-2023"]
        assert periods[0]["start_date"] == "2024-01-01"

    def test_reunions_scoped_to_exercice(self, client):
        resp = client.get("/meta/reunions", params={"exercice_id": "ex-2024"})
        assert [m["id"] for m in resp.json()["reunions"]] == ["reu-mars"]

    def test_reunions_need_an_exercice(self, client):
        assert client.get("/meta/reunions").json() == {"reunions": []}


class TestPages:
    def test_cotisations(self, client):
        resp = client.post("/cotisations", json={"fiscal_period_id": "ex-2024"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["kpis"]["total"] == 4500
        assert body["kpis"]["count"] == 3
        assert body["filters"]["fiscal_period_id"] == "ex-2024"

    def test_source_field_names_and_search(self, client):
        body = client.post("/cotisations", json={"exercice_id": "ex-2024", "search": "moussa"}).json()
        assert body["kpis"]["count"] == 1

    def test_source_field_names_select_the_period(self, client):
        body = client.post("/cotisations", json={"exercice_id": "ex-2024", "reunion_id": "reu-mars", "date_fin": "2024-06-30"}).json()

        assert body["filters"]["fiscal_period_id"] == "ex-2024"
        assert body["filters"]["meeting_id"] == "reu-mars"
        assert body["filters"]["custom_end"] == "2024-06-30"
        assert body["kpis"]["total"] == 3000

    def test_source_period_name_excludes_other_years(self, client):
        body = client.post("/cotisations", json={"exercice_id": "ex-2023"}).json()
        assert body["kpis"]["total"] == 700
        assert body["kpis"]["count"] == 1

    def test_custom_range(self, client):
        body = client.post("/cotisations", json={"fiscal_period_id": "ex-2024", "custom_end": "2024-06-30"}).json()
        assert body["kpis"]["total"] == 3000
        assert body["filters"]["custom_end"] == "2024-06-30"

    def test_unknown_meeting_is_empty_not_an_error(self, client):
        resp = client.post("/cotisations", json={"fiscal_period_id": "ex-2024", "meeting_id": "reu-inconnue"})
        assert resp.status_code == 200
        assert resp.json()["kpis"]["total"] == 0

    @pytest.mark.parametrize("path", ["/epargnes", "/prets", "/sanctions", "/aides", "/epargnants-benefices"])
    def test_every_page_answers(self, client, path):
        resp = client.post(path, json={"fiscal_period_id": "ex-2024"})
        assert resp.status_code == 200
        assert "kpis" in resp.json()

    def test_financial_report(self, client):
        body = client.post("/rapport-financier", json={"fiscal_period_id": "ex-2024"}).json()
        assert body["treasury"]["net_balance"] == 8700
        assert body["period"] == "Exercice 2024"

    def test_financial_report_rolling_period(self, client):
        body = client.post("/rapport-financier", params={"periode": "annee"}, json={}).json()
        assert body["period"] == "Dernière année"
        assert body["filters"]["fiscal_period_id"] == "rolling:annee"

    def test_invalid_rolling_period(self, client):
        assert client.post("/rapport-financier", params={"periode": "semaine"}, json={}).status_code == 422

    def test_failure_returns_error_payload(self, client, monkeypatch):
        def boom(filters, ctx):
            raise ValueError("boom")

        monkeypatch.setitem(main.PAGES, "cotisations", boom)
        resp = client.post("/cotisations", json={})

        assert resp.status_code == 500
        assert resp.json() == {"error": "boom", "type": "ValueError"}


class TestExport:
    def test_csv(self, client):
        resp = client.post("/export/cotisations", json={"fiscal_period_id": "ex-2024"})

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        lines = resp.content.decode("utf-8").splitlines()
        assert lines[0] == "Date,Membre,Type,Montant (FCFA),Statut"
        assert len(lines) == 4

    def test_xlsx(self, client):
        resp = client.post("/export/rapport-financier", params={"format": "xlsx"}, json={"fiscal_period_id": "ex-2024"})

        assert resp.status_code == 200
        assert resp.headers["content-disposition"] == "attachment; filename=rapport-financier.xlsx"
        assert resp.content[:2] == b"PK"

    def test_rolling_period_reaches_export_metadata(self, client):
        resp = client.post("/export/rapport-financier", params={"periode": "annee", "format": "xlsx"}, json={})

        assert resp.status_code == 200
        wb = load_workbook(io.BytesIO(resp.content))
        info = {row[0]: row[1] for row in wb["Informations"].iter_rows(min_row=2, values_only=True)}
        assert info["Période"] == "Dernière année"

    def test_invalid_export_rolling_period(self, client):
        assert client.post("/export/rapport-financier", params={"periode": "semaine"}, json={}).status_code == 422

    def test_serialization_failure_returns_error_payload(self, client, monkeypatch):
        def boom(export):
            raise ValueError("cannot write")

        monkeypatch.setattr(main, "to_csv_bytes", boom)
        resp = client.post("/export/cotisations", json={"fiscal_period_id": "ex-2024"})

        assert resp.status_code == 500
        assert resp.json() == {"error": "cannot write", "type": "ValueError"}

    def test_unknown_page(self, client):
        resp = client.post("/export/inconnue", json={})
        assert resp.status_code == 404
        assert resp.json()["type"] == "NotFound"
