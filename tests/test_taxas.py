"""
Unit tests for the Rate Composer.
Validates rate conversions, TCR formulas, default interest and the full TCR calculation.
"""
from datetime import date

import pytest
from pydantic import ValidationError

from ruralcalc.core.exceptions import InvalidInputError
from ruralcalc.taxas.schemas import Compounding, IndexInputs, LoanTerms, RateRegime
from ruralcalc.taxas.service import (
    annual_to_periodic,
    compute_tcr,
    correction_factor,
    daily_mora_rate,
    equal_installment_payment,
    fixed_tcr,
    implicit_inflation_factor,
    indexed_tcr,
    mora_interest,
    penalty_amount,
    periodic_to_annual,
)


def make_terms(**overrides) -> LoanTerms:
    data = dict(
        principal=100000.0,
        contracting_date=date(2024, 1, 1),
        maturity_date=date(2025, 1, 1),
        evaluation_date=date(2025, 1, 1),
        term_months=12,
        remuneratory_rate_aa=12.0,
        mora_rate_aa=1.0,
        penalty_pct=2.0,
    )
    data.update(overrides)
    return LoanTerms(**data)


@pytest.mark.parametrize("annual", [0.0, 0.5, 5.0, 12.0, 14.5, 100.0])
@pytest.mark.parametrize("compounding", [Compounding.ANNUAL, Compounding.MONTHLY])
def test_rate_round_trip(annual: float, compounding: Compounding):
    """Annual -> periodic -> annual returns the original rate."""
    periodic = annual_to_periodic(annual, compounding)
    assert periodic_to_annual(periodic, compounding) == pytest.approx(annual, abs=1e-9)


def test_annual_to_periodic():
    """Annual regime is direct; monthly regime is the compound root."""
    assert annual_to_periodic(12.0, Compounding.ANNUAL) == pytest.approx(0.12)
    monthly = annual_to_periodic(12.0, Compounding.MONTHLY)
    assert (1 + monthly) ** 12 == pytest.approx(1.12)
    assert monthly < 0.01


def test_equal_installment_payment():
    """Price payment matches the annuity formula."""
    assert equal_installment_payment(1000.0, 0.035, 12) == pytest.approx(103.48, abs=0.01)


def test_equal_installment_payment_zero_rate():
    """Zero rate splits the principal evenly."""
    assert equal_installment_payment(1200.0, 0.0, 12) == pytest.approx(100.0)


@pytest.mark.parametrize("installments", [0, -3])
def test_equal_installment_payment_rejects_non_positive_count(installments: int):
    """Installment count must be positive."""
    with pytest.raises(InvalidInputError) as exc:
        equal_installment_payment(1000.0, 0.01, installments)
    assert exc.value.field == "installments"


def test_correction_factor():
    """FAM is the product of monthly index factors; empty readings give 1."""
    assert correction_factor([]) == 1.0
    assert correction_factor([1.0, 1.0]) == pytest.approx(1.0201)


@pytest.mark.parametrize("benchmark, fixed, expected", [
    (10.25, 5.0, 1.05),
    (10.0, 10.0, 1.0),
    (10.0, 0.0, 1.0),
    (0.0, 5.0, 1 / 1.05),
])
def test_implicit_inflation_factor(benchmark: float, fixed: float, expected: float):
    """FII divides the benchmark by the fixed rate and is 1 when the fixed rate is zero."""
    assert implicit_inflation_factor(benchmark, fixed) == pytest.approx(expected)


def test_tcr_formulas():
    """Both regimes compose their factors multiplicatively."""
    assert indexed_tcr(1.05) == pytest.approx(0.05)
    assert indexed_tcr(1.05, 0.1, 0.0) == pytest.approx(1.05 * 1.1 - 1)
    assert fixed_tcr(5.0, 1.05) == pytest.approx(0.1025)
    assert fixed_tcr(5.0, 1.0, -0.1750162, 0.0) == pytest.approx(1.05 * (1 - 0.1750162) - 1)


def test_daily_mora_rate_compounds_to_annual():
    """365 daily periods compound back to the annual mora rate."""
    assert (1 + daily_mora_rate(1.0)) ** 365 == pytest.approx(1.01)


def test_mora_and_penalty_edge_cases():
    """No rate or no overdue days means no default charges."""
    assert mora_interest(1000.0, None, 30) == 0.0
    assert mora_interest(1000.0, 1.0, 0) == 0.0
    assert penalty_amount(1000.0, 2.0, False) == 0.0
    assert penalty_amount(1000.0, 2.0, True) == pytest.approx(20.0)


def test_compute_tcr_fixed_regime_on_maturity():
    """Fixed regime without indexes uses the remuneratory rate as Jm."""
    result = compute_tcr(make_terms())

    assert result.rate_regime == RateRegime.FIXED_INDEXED
    assert result.fixed_rate_aa == 12.0
    assert result.implicit_inflation_factor == 1.0
    assert result.effective_rate == pytest.approx(12.0)
    assert result.months_elapsed == 12
    assert result.updated_balance == pytest.approx(112000.0)
    assert result.remuneratory_interest == pytest.approx(12000.0)
    assert result.overdue_days == 0
    assert result.mora_interest == 0.0
    assert result.penalty == 0.0
    assert result.total_due == pytest.approx(112000.0)
    assert result.steps[-1].description == "Total devido"


def test_compute_tcr_overdue():
    """Past maturity, mora compounds daily and the penalty applies once."""
    result = compute_tcr(make_terms(evaluation_date=date(2025, 1, 31)))

    assert result.overdue_days == 30
    expected_mora = 112000.0 * (1.01 ** (30 / 365) - 1)
    assert result.mora_interest == pytest.approx(expected_mora)
    assert result.penalty == pytest.approx(2240.0)
    assert result.total_due == pytest.approx(112000.0 + expected_mora + 2240.0)
    assert any(step.description == "Juros de mora" for step in result.steps)


def test_compute_tcr_fixed_regime_with_benchmark():
    """FII is derived from the benchmark rate when not supplied directly."""
    indexes = IndexInputs(benchmark_rate_aa=10.25, fixed_rate_aa=5.0)
    result = compute_tcr(make_terms(), indexes)

    assert result.implicit_inflation_factor == pytest.approx(1.05)
    assert result.effective_rate == pytest.approx(10.25)


def test_compute_tcr_indexed_regime():
    """Indexed regime corrects the principal by FAM and accrues remuneratory interest on top."""
    indexes = IndexInputs(monthly_index_readings=[0.5] * 12)
    result = compute_tcr(make_terms(rate_regime=RateRegime.INFLATION_INDEXED, remuneratory_rate_aa=6.0), indexes)

    fam = 1.005 ** 12
    assert result.correction_factor == pytest.approx(fam)
    assert result.accumulated_index_pct == pytest.approx((fam - 1) * 100)
    assert result.effective_rate == pytest.approx((fam - 1) * 100)
    assert result.annualized_rate_aa == pytest.approx((fam - 1) * 100)
    assert result.updated_balance == pytest.approx(100000.0 * fam)
    assert result.remuneratory_interest == pytest.approx(100000.0 * fam * 0.06)
    assert result.total_due == pytest.approx(100000.0 * fam * 1.06)


def test_compute_tcr_indexed_regime_without_readings():
    """No readings means FAM = 1 and no monetary correction."""
    result = compute_tcr(make_terms(rate_regime=RateRegime.INFLATION_INDEXED))
    assert result.correction_factor == 1.0
    assert result.effective_rate == pytest.approx(0.0)
    assert result.updated_balance == pytest.approx(100000.0)


@pytest.mark.parametrize("field, value", [
    ("principal", -1.0),
    ("principal", 0.0),
    ("term_months", 0),
])
def test_loan_terms_reject_invalid_values(field: str, value):
    """Negative principal and non-positive term are rejected with the field name."""
    with pytest.raises(ValidationError) as exc:
        make_terms(**{field: value})
    assert field in str(exc.value)
