"""
Unit tests for the Amortization Simulator.
Validates Price, SAC and SAF schedules, the legal parallel schedule and paid-installment totals.
"""
import pytest
from pydantic import ValidationError

from ruralcalc.amortizacao.schemas import AmortizationRequest, AmortizationSystem
from ruralcalc.amortizacao.service import (
    SAF_EQUIVALENCE_NOTE,
    amortization_simulator,
    build_dual_schedule,
    generate_schedule,
)
from ruralcalc.conformidade.schemas import ComplianceStatus
from ruralcalc.core.exceptions import InvalidInputError
from ruralcalc.taxas.schemas import Compounding


@pytest.mark.parametrize("rate", [0.01, 0.08, 0.12])
@pytest.mark.parametrize("installments", [1, 5, 12, 60])
def test_price_closes_with_equal_installments(rate: float, installments: int):
    """Price schedules close at zero and every installment is equal."""
    schedule = generate_schedule(100000.0, rate, installments, AmortizationSystem.PRICE)

    assert len(schedule) == installments
    assert schedule[-1].closing_balance == pytest.approx(0.0, abs=1e-6)
    first = schedule[0].installment
    assert all(line.installment == pytest.approx(first) for line in schedule)


@pytest.mark.parametrize("rate", [0.0, 0.05, 0.12])
def test_sac_constant_amortization(rate: float):
    """SAC amortizes principal/n every period and payments never increase."""
    principal, installments = 90000.0, 9
    schedule = generate_schedule(principal, rate, installments, AmortizationSystem.SAC)

    for line in schedule:
        assert line.amortization == pytest.approx(principal / installments, abs=1e-9)
    assert schedule[-1].closing_balance == pytest.approx(0.0, abs=1e-6)
    if rate > 0:
        payments = [line.installment for line in schedule]
        assert all(later < earlier for earlier, later in zip(payments, payments[1:]))


def test_saf_matches_price_without_grace_period():
    """Recomputing the payment each period reproduces the Price schedule."""
    price = generate_schedule(50000.0, 0.1, 8, AmortizationSystem.PRICE)
    saf = generate_schedule(50000.0, 0.1, 8, AmortizationSystem.SAF)

    for p, s in zip(price, saf):
        assert s.installment == pytest.approx(p.installment)
        assert s.interest == pytest.approx(p.interest)
    assert saf[-1].closing_balance == pytest.approx(0.0, abs=1e-6)


def test_zero_rate_price():
    """Zero rate produces principal/n installments without interest."""
    schedule = generate_schedule(1200.0, 0.0, 12, AmortizationSystem.PRICE)
    assert all(line.installment == pytest.approx(100.0) for line in schedule)
    assert all(line.interest == 0.0 for line in schedule)


@pytest.mark.parametrize("system", list(AmortizationSystem))
def test_equal_rates_have_no_excess(system: AmortizationSystem):
    """Contracted rate equal to the legal rate yields zero excess on every line."""
    lines = build_dual_schedule(100000.0, 0.12, 0.12, 10, system)
    assert all(line.excess == pytest.approx(0.0, abs=1e-6) for line in lines)


@pytest.mark.parametrize("installments", [0, -1])
def test_generate_schedule_rejects_non_positive_count(installments: int):
    """Non-positive installment count is a contract violation."""
    with pytest.raises(InvalidInputError) as exc:
        generate_schedule(1000.0, 0.01, installments, AmortizationSystem.PRICE)
    assert exc.value.field == "installments"


def test_request_rejects_invalid_counts():
    """Requests validate installment counts before simulating."""
    with pytest.raises(ValidationError):
        AmortizationRequest(principal=1000.0, annual_rate_aa=10.0, installments=0)
    with pytest.raises(ValidationError):
        AmortizationRequest(principal=1000.0, annual_rate_aa=10.0, installments=5, paid_installments=6)


def test_simulate_totals_over_paid_installments():
    """Totals only cover paid installments and excess equals the interest difference."""
    request = AmortizationRequest(
        principal=100000.0,
        annual_rate_aa=18.0,
        installments=5,
        paid_installments=3,
        system=AmortizationSystem.PRICE,
    )
    result = amortization_simulator.simulate(request)
    paid = result.schedule[:3]

    assert result.legal_rate_aa == 12.0
    assert result.total_paid == pytest.approx(sum(line.installment for line in paid))
    assert result.total_interest == pytest.approx(sum(line.interest for line in paid))
    assert result.total_legal_interest == pytest.approx(sum(line.legal.interest for line in paid))
    assert result.total_excess == pytest.approx(result.total_interest - result.total_legal_interest)
    assert result.total_excess > 0
    assert result.current_balance == pytest.approx(paid[-1].closing_balance)
    assert result.legal_balance == pytest.approx(paid[-1].legal.closing_balance)
    assert result.initial_installment == pytest.approx(result.schedule[0].installment)
    assert result.compliance.status == ComplianceStatus.NON_COMPLIANT
    assert any("EXCEDE" in alert for alert in result.alerts)
    assert result.precedents


def test_simulate_without_paid_installments():
    """Nothing paid means zero totals and balances equal to the principal."""
    result = amortization_simulator.simulate(
        AmortizationRequest(principal=10000.0, annual_rate_aa=8.0, installments=4)
    )
    assert result.total_paid == 0.0
    assert result.total_excess == 0.0
    assert result.current_balance == 10000.0
    assert result.legal_balance == 10000.0


def test_simulate_uses_modality_ceiling():
    """The legal schedule uses the modality ceiling and its citation."""
    result = amortization_simulator.simulate(AmortizationRequest(
        principal=10000.0,
        annual_rate_aa=14.0,
        installments=4,
        paid_installments=4,
        modality="custeio_obrigatorio",
    ))
    assert result.legal_rate_aa == 14.0
    assert "MCR 7-1" in result.legal_citation
    assert result.total_excess == pytest.approx(0.0, abs=1e-6)


def test_paid_amounts_and_deltas():
    """Declared payments are attached per line with the delta over the installment."""
    request = AmortizationRequest(
        principal=12000.0,
        annual_rate_aa=0.0,
        installments=3,
        paid_installments=2,
        paid_amounts=[4100.0, 3900.0],
    )
    result = amortization_simulator.simulate(request)

    assert result.schedule[0].paid_amount == 4100.0
    assert result.schedule[0].paid_delta == pytest.approx(100.0)
    assert result.schedule[1].paid_delta == pytest.approx(-100.0)
    assert result.schedule[2].paid_amount is None
    assert result.schedule[2].paid_delta is None
    assert result.total_paid_declared == pytest.approx(8000.0)


def test_monthly_price_and_saf_alerts():
    """Monthly Price warns about anatocism; SAF carries the equivalence caveat."""
    monthly_price = amortization_simulator.simulate(AmortizationRequest(
        principal=10000.0, annual_rate_aa=10.0, installments=12, compounding=Compounding.MONTHLY,
    ))
    saf = amortization_simulator.simulate(AmortizationRequest(
        principal=10000.0, annual_rate_aa=10.0, installments=4, system=AmortizationSystem.SAF,
    ))

    assert any("anatocismo" in alert for alert in monthly_price.alerts)
    assert SAF_EQUIVALENCE_NOTE in saf.alerts


def test_analyze_paid_installments():
    """Paid installments above the legal installment produce a floored excess."""
    analysis = amortization_simulator.analyze_paid_installments(
        principal=100000.0,
        contracted_rate_aa=18.0,
        installments=5,
        paid_installments=2,
        average_paid=32000.0,
        declared_balance=70000.0,
    )

    legal_installment = 100000.0 * 0.12 * 1.12 ** 5 / (1.12 ** 5 - 1)
    assert analysis.legal_installment == pytest.approx(legal_installment)
    assert analysis.total_paid == pytest.approx(64000.0)
    assert analysis.legal_total == pytest.approx(2 * legal_installment)
    assert analysis.excess_paid == pytest.approx(64000.0 - 2 * legal_installment)
    assert analysis.excess_pct == pytest.approx(analysis.excess_paid / analysis.legal_total * 100)
    assert analysis.balance_difference == pytest.approx(max(0.0, 70000.0 - analysis.revised_balance))


def test_analyze_paid_installments_floors_at_zero():
    """Paying less than the legal installment never yields a negative excess."""
    analysis = amortization_simulator.analyze_paid_installments(
        principal=100000.0,
        contracted_rate_aa=10.0,
        installments=5,
        paid_installments=1,
        average_paid=1000.0,
        declared_balance=1000.0,
    )
    assert analysis.excess_paid == 0.0
    assert analysis.balance_difference == 0.0


def test_analyze_paid_installments_rejects_inconsistent_counts():
    """Paid count cannot exceed the total."""
    with pytest.raises(InvalidInputError) as exc:
        amortization_simulator.analyze_paid_installments(1000.0, 10.0, 3, 4, 100.0, 100.0)
    assert exc.value.field == "paid_installments"
