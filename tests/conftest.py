from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from e2d_core.config import Settings, reset_settings
from e2d_core.data import InMemoryRowStore
from e2d_core.records import FinancialRecord, FiscalPeriod, Meeting, RecordKind


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(data_dir=tmp_path, locale="fr")


@pytest.fixture
def period_2024() -> FiscalPeriod:
    return FiscalPeriod(id="ex-2024", name="Exercice 2024", start_date=date(2024, 1, 1), end_date=date(2024, 12, 31))


@pytest.fixture
def period_2023() -> FiscalPeriod:
    return FiscalPeriod(id="ex-2023", name="Exercice 2023", start_date=date(2023, 1, 1), end_date=date(2023, 12, 31))


@pytest.fixture
def periods(period_2024, period_2023):
    return [period_2024, period_2023]


@pytest.fixture
def meetings():
    return [
        Meeting(id="reu-mars", subject="Réunion de mars", date=date(2024, 3, 10)),
        Meeting(id="reu-sept", subject="Réunion de septembre", date=date(2024, 9, 8)),
        Meeting(id="reu-2023", subject="Réunion de clôture", date=date(2023, 12, 3)),
    ]


def make_record(rid, amount, day, *, kind=RecordKind.COTISATION, status="paye", **kwargs) -> FinancialRecord:
    return FinancialRecord(id=rid, kind=kind, amount=Decimal(str(amount)), record_date=day, status=status, **kwargs)


@pytest.fixture
def dues():
    """Three dues inside 2024: two before June 30, one after."""
    return [
        make_record("c1", 1000, date(2024, 3, 10), meeting_id="reu-mars", member_name="Awa Ndiaye", category="Cotisation mensuelle"),
        make_record("c2", 2000, date(2024, 5, 15), status="en_retard", meeting_id="reu-mars", member_name="Moussa Diop", category="Fonds de solidarité"),
        make_record("c3", 1500, date(2024, 9, 8), status="en_attente", meeting_id="reu-sept", member_name="Fatou Sow", category="Cotisation mensuelle"),
    ]


@pytest.fixture
def backend_tables():
    """Rows shaped like the association's backend tables."""
    return {
        "membres": [
            {"id": "m1", "nom": "Ndiaye", "prenom": "Awa"},
            {"id": "m2", "nom": "Diop", "prenom": "Moussa"},
        ],
        "exercices": [
            {"id": "ex-2024", "nom": "Exercice 2024", "date_debut": "2024-01-01", "date_fin": "2024-12-31", "statut": "actif"},
            {"id": "ex-2023", "nom": "Exercice 2023", "date_debut": "2023-01-01", "date_fin": "2023-12-31", "statut": "cloture"},
        ],
        "reunions": [
            {"id": "reu-mars", "sujet": "Réunion de mars", "date_reunion": "2024-03-10", "statut": "terminee"},
            {"id": "reu-2023", "sujet": "Réunion de clôture", "date_reunion": "2023-12-03", "statut": "terminee"},
        ],
        "cotisations_types": [{"id": "t1", "nom": "Cotisation mensuelle"}],
        "cotisations": [
            {"id": "c1", "montant": 1000, "date_paiement": "2024-03-10", "statut": "paye", "membre_id": "m1", "reunion_id": "reu-mars", "type_cotisation_id": "t1"},
            {"id": "c2", "montant": 2000, "date_paiement": "2024-05-15", "statut": "en_retard", "membre_id": "m2", "reunion_id": "reu-mars", "type_cotisation_id": "t1"},
            {"id": "c3", "montant": 1500, "date_paiement": "2024-09-08", "statut": "paye", "membre_id": "m1", "type_cotisation_id": "t1"},
            {"id": "c-old", "montant": 700, "date_paiement": "2023-06-01", "statut": "paye", "membre_id": "m2"},
        ],
        "reunion_beneficiaires": [
            {"id": "b1", "montant_benefice": 1000, "date_benefice_prevue": "2024-04-01", "statut": "paye", "membre_id": "m2", "reunion_id": "reu-mars"},
        ],
        "prets": [
            {"id": "p1", "montant": 100000, "montant_paye": 2000, "taux_interet": 5, "date_pret": "2024-02-01", "echeance": "2024-08-01", "statut": "en_cours", "membre_id": "m1", "reconductions": 0},
        ],
        "epargnes": [
            {"id": "e1", "montant": 2000, "date_depot": "2024-02-10", "statut": "actif", "membre_id": "m1"},
            {"id": "e2", "montant": 1000, "date_depot": "2024-06-10", "statut": "actif", "membre_id": "m2"},
            {"id": "e3", "montant": 500, "date_depot": "2024-07-10", "statut": "retire", "membre_id": "m2"},
        ],
        "sanctions": [
            {"id": "s1", "montant": 500, "montant_paye": 200, "date_sanction": "2024-03-10", "statut": "partiel", "membre_id": "m2"},
        ],
        "aides": [
            {"id": "a1", "montant": 25000, "date_allocation": "2024-05-02", "statut": "alloue", "beneficiaire_id": "m1"},
        ],
    }


@pytest.fixture
def row_store(backend_tables) -> InMemoryRowStore:
    return InMemoryRowStore(backend_tables)
