from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from e2d_core.records import UNKNOWN_STATUS, FinancialRecord


ZERO = Decimal(0)
HUNDRED = Decimal(100)

LOAN_ONGOING = "en_cours"
LOAN_LATE_STATUSES = ("en_retard", "retard_partiel")
LOAN_REPAID = "rembourse"


@dataclass(frozen=True)
class AggregateResult:
    total: Decimal = ZERO
    count: int = 0
    average: Decimal = ZERO
    breakdown_by_status: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class LoanSummary:
    total_lent: Decimal = ZERO
    total_repaid: Decimal = ZERO
    interest_accrued: Decimal = ZERO
    ongoing: int = 0
    late: int = 0
    repaid: int = 0
    overdue: int = 0


@dataclass(frozen=True)
class SavingsSummary:
    total_saved: Decimal = ZERO
    count: int = 0
    estimated_interest: Decimal = ZERO


@dataclass(frozen=True)
class DuesSummary:
    collected: Decimal = ZERO
    paid: int = 0
    pending: int = 0
    late: int = 0


@dataclass(frozen=True)
class SanctionSummary:
    total: Decimal = ZERO
    paid: Decimal = ZERO
    unpaid: Decimal = ZERO


@dataclass(frozen=True)
class TontineSummary:
    dues_collected: Decimal = ZERO
    beneficiaries_paid_out: Decimal = ZERO
    balance: Decimal = ZERO


@dataclass(frozen=True)
class TreasuryRollup:
    dues_collected: Decimal = ZERO
    beneficiaries_paid_out: Decimal = ZERO
    loans_repaid: Decimal = ZERO
    savings_total: Decimal = ZERO
    sanctions_paid: Decimal = ZERO
    net_balance: Decimal = ZERO


@dataclass(frozen=True)
class SaverShare:
    member_id: str
    member_name: str
    total_saved: Decimal
    percentage: Decimal
    estimated_gain: Decimal

    @property
    def expected_total(self) -> Decimal:
        return self.total_saved + self.estimated_gain


def _sum(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


def aggregate(records: Sequence[FinancialRecord]) -> AggregateResult:
    records = list(records or [])
    if not records:
        return AggregateResult()
    total = _sum(r.amount for r in records)
    count = len(records)
    breakdown: Dict[str, int] = {}
    for r in records:
        status = r.status or UNKNOWN_STATUS
        breakdown[status] = breakdown.get(status, 0) + 1
    return AggregateResult(total=total, count=count, average=total / count, breakdown_by_status=breakdown)


def loan_interest(loan: FinancialRecord) -> Decimal:
    return loan.amount * loan.interest_rate / HUNDRED


def loan_interest_due(loan: FinancialRecord) -> Decimal:
    """Interest owed including every renewal (each renewal re-applies the rate)."""
    return loan_interest(loan) * (1 + loan.renewals)


def is_overdue(loan: FinancialRecord, as_of: date) -> bool:
    return loan.status == LOAN_ONGOING and loan.due_date is not None and loan.due_date < as_of


def summarize_loans(loans: Sequence[FinancialRecord], *, as_of: Optional[date] = None) -> LoanSummary:
    loans = list(loans or [])
    return LoanSummary(
        total_lent=_sum(p.amount for p in loans),
        total_repaid=_sum(p.amount_paid for p in loans),
        interest_accrued=_sum(loan_interest(p) for p in loans),
        ongoing=sum(1 for p in loans if p.status == LOAN_ONGOING),
        late=sum(1 for p in loans if p.status in LOAN_LATE_STATUSES),
        repaid=sum(1 for p in loans if p.status == LOAN_REPAID),
        overdue=sum(1 for p in loans if is_overdue(p, as_of)) if as_of is not None else 0,
    )


def summarize_savings(savings: Sequence[FinancialRecord], loan_interest_total: Decimal, share: Decimal) -> SavingsSummary:
    savings = list(savings or [])
    return SavingsSummary(
        total_saved=_sum(e.amount for e in savings),
        count=len(savings),
        estimated_interest=Decimal(loan_interest_total) * Decimal(share),
    )


def summarize_dues(dues: Sequence[FinancialRecord]) -> DuesSummary:
    dues = list(dues or [])
    return DuesSummary(
        collected=_sum(c.amount for c in dues),
        paid=sum(1 for c in dues if c.status == "paye"),
        pending=sum(1 for c in dues if c.status == "en_attente"),
        late=sum(1 for c in dues if c.status == "en_retard"),
    )


def summarize_sanctions(sanctions: Sequence[FinancialRecord]) -> SanctionSummary:
    sanctions = list(sanctions or [])
    total = _sum(s.amount for s in sanctions)
    paid = _sum(s.amount_paid for s in sanctions)
    return SanctionSummary(total=total, paid=paid, unpaid=total - paid)


def summarize_tontine(dues: Sequence[FinancialRecord], payouts: Sequence[FinancialRecord]) -> TontineSummary:
    collected = _sum(c.amount for c in dues or [])
    paid_out = _sum(b.amount for b in payouts or [])
    return TontineSummary(dues_collected=collected, beneficiaries_paid_out=paid_out, balance=collected - paid_out)


def treasury_rollup(
    dues_collected: Decimal,
    beneficiaries_paid_out: Decimal,
    loans_repaid: Decimal,
    savings_total: Decimal,
    sanctions_paid: Decimal,
) -> TreasuryRollup:
    parts = [Decimal(x) for x in (dues_collected, beneficiaries_paid_out, loans_repaid, savings_total, sanctions_paid)]
    net = parts[0] - parts[1] + parts[2] + parts[3] + parts[4]
    return TreasuryRollup(*parts, net_balance=net)


def savers_shares(savings: Sequence[FinancialRecord], loan_interest_total: Decimal) -> List[SaverShare]:
    """Group savings per member and prorate ``loan_interest_total`` by amount saved."""
    by_member: Dict[str, Dict[str, object]] = {}
    for e in savings or []:
        key = e.member_id or e.member_name or e.id
        entry = by_member.setdefault(key, {"name": e.member_name, "total": ZERO})
        entry["total"] = entry["total"] + e.amount  # type: ignore[operator]
        if not entry["name"] and e.member_name:
            entry["name"] = e.member_name

    grand_total = _sum(v["total"] for v in by_member.values())  # type: ignore[misc]
    interest = Decimal(loan_interest_total)
    out: List[SaverShare] = []
    for member_id, v in by_member.items():
        saved: Decimal = v["total"]  # type: ignore[assignment]
        ratio = saved / grand_total if grand_total > 0 else ZERO
        out.append(
            SaverShare(
                member_id=member_id,
                member_name=str(v["name"] or ""),
                total_saved=saved,
                percentage=ratio * HUNDRED,
                estimated_gain=ratio * interest,
            )
        )
    out.sort(key=lambda s: (-s.total_saved, s.member_name, s.member_id))
    return out
