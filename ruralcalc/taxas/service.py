"""
Rate Composer.
Pure conversions between annual and periodic rates, the regulatory TCR formulas
(CMN Res. 4.883/2020 and 4.913/2021), and default-interest accrual.

    TCRpós = FAM × (1 + FP) × (1 + FA) - 1
    TCRpré = (1 + Jm) × FII × (1 + FP) × (1 + FA) - 1
"""
from functools import reduce
from typing import Iterable, List, Optional

from ruralcalc.core.exceptions import InvalidInputError
from ruralcalc.core.logger import logger
from ruralcalc.core.utils import days_between, format_brl, months_between
from ruralcalc.taxas.schemas import (
    CalculationStep,
    Compounding,
    IndexInputs,
    LoanTerms,
    RateRegime,
    TcrResult,
)

DAYS_PER_YEAR = 365
MONTHS_PER_YEAR = 12


def annual_to_periodic(annual_rate: float, compounding: Compounding) -> float:
    """
    Converts an annual percentage rate into a periodic decimal rate.
    Annual regime: direct. Monthly regime: (1 + i_aa)^(1/12) - 1.
    """
    if compounding == Compounding.ANNUAL:
        return annual_rate / 100
    return (1 + annual_rate / 100) ** (1 / MONTHS_PER_YEAR) - 1


def periodic_to_annual(periodic_rate: float, compounding: Compounding) -> float:
    """Inverse of annual_to_periodic. Returns a percentage."""
    if compounding == Compounding.ANNUAL:
        return periodic_rate * 100
    return ((1 + periodic_rate) ** MONTHS_PER_YEAR - 1) * 100


def equal_installment_payment(principal: float, periodic_rate: float, installments: int) -> float:
    """
    Constant installment (Price table).
    PMT = PV × [i × (1+i)^n] / [(1+i)^n - 1], or PV / n when i = 0.
    """
    if installments <= 0:
        raise InvalidInputError("installments", "must be a positive integer")
    if periodic_rate == 0:
        return principal / installments
    factor = (1 + periodic_rate) ** installments
    return principal * (periodic_rate * factor) / (factor - 1)


def correction_factor(monthly_index_readings: Iterable[float]) -> float:
    """FAM: product of (1 + index/100) over the readings. Empty sequence -> 1."""
    return reduce(lambda acc, reading: acc * (1 + reading / 100), monthly_index_readings, 1.0)


def implicit_inflation_factor(benchmark_rate_aa: float, fixed_rate_aa: float) -> float:
    """FII = (1 + PRE/100) / (1 + Jm/100). Jm = 0 -> 1."""
    if fixed_rate_aa == 0:
        return 1.0
    return (1 + benchmark_rate_aa / 100) / (1 + fixed_rate_aa / 100)


def indexed_tcr(fam: float, program_factor: float = 0.0, adjustment_factor: float = 0.0) -> float:
    """TCRpós as a decimal rate."""
    return fam * (1 + program_factor) * (1 + adjustment_factor) - 1


def fixed_tcr(fixed_rate_aa: float, fii: float, program_factor: float = 0.0, adjustment_factor: float = 0.0) -> float:
    """TCRpré as a decimal rate."""
    return (1 + fixed_rate_aa / 100) * fii * (1 + program_factor) * (1 + adjustment_factor) - 1


def daily_mora_rate(mora_rate_aa: float) -> float:
    """Daily compounding equivalent of an annual default rate."""
    return (1 + mora_rate_aa / 100) ** (1 / DAYS_PER_YEAR) - 1


def mora_interest(balance: float, mora_rate_aa: Optional[float], overdue_days: int) -> float:
    """Default interest compounded daily over the exact overdue day count."""
    if not mora_rate_aa or overdue_days <= 0:
        return 0.0
    return balance * ((1 + daily_mora_rate(mora_rate_aa)) ** overdue_days - 1)


def penalty_amount(balance: float, penalty_pct: Optional[float], overdue: bool) -> float:
    """Flat penalty over the current balance, applied once when overdue."""
    if not overdue or not penalty_pct:
        return 0.0
    return balance * penalty_pct / 100


def compute_tcr(terms: LoanTerms, indexes: Optional[IndexInputs] = None) -> TcrResult:
    """
    Calculates the effective TCR and the updated debt on the evaluation date.
    Returns the numeric result together with the step-by-step calculation memory.
    """
    indexes = indexes or IndexInputs()
    fp = indexes.program_factor
    fa = indexes.adjustment_factor

    days_elapsed = days_between(terms.contracting_date, terms.evaluation_date)
    months_elapsed = months_between(terms.contracting_date, terms.evaluation_date)
    accrual_months = max(months_elapsed, 0)

    fam: Optional[float] = None
    fii: Optional[float] = None
    jm: Optional[float] = None
    accumulated_index: Optional[float] = None

    if terms.rate_regime == RateRegime.INFLATION_INDEXED:
        fam = correction_factor(indexes.monthly_index_readings)
        accumulated_index = (fam - 1) * 100
        tcr = indexed_tcr(fam, fp, fa)
        annualized = ((1 + tcr) ** (MONTHS_PER_YEAR / max(months_elapsed, 1)) - 1) * 100

        updated_balance = terms.principal * fam
        monthly_rate = annual_to_periodic(terms.remuneratory_rate_aa, Compounding.MONTHLY)
        remuneratory = updated_balance * ((1 + monthly_rate) ** accrual_months - 1)
    else:
        jm = indexes.fixed_rate_aa if indexes.fixed_rate_aa is not None else terms.remuneratory_rate_aa
        if indexes.implicit_inflation_factor is not None:
            fii = indexes.implicit_inflation_factor
        elif indexes.benchmark_rate_aa is not None:
            fii = implicit_inflation_factor(indexes.benchmark_rate_aa, jm)
        else:
            fii = 1.0
        tcr = fixed_tcr(jm, fii, fp, fa)
        annualized = tcr * 100

        monthly_rate = annual_to_periodic(tcr * 100, Compounding.MONTHLY)
        updated_balance = terms.principal * (1 + monthly_rate) ** accrual_months
        remuneratory = updated_balance - terms.principal

    overdue_days = max(0, days_between(terms.maturity_date, terms.evaluation_date))
    mora = mora_interest(updated_balance, terms.mora_rate_aa, overdue_days)
    penalty = penalty_amount(updated_balance, terms.penalty_pct, overdue_days > 0)

    if terms.rate_regime == RateRegime.INFLATION_INDEXED:
        total_due = updated_balance + remuneratory + mora + penalty
    else:
        # remuneratory interest is already capitalized into the balance
        total_due = updated_balance + mora + penalty

    result = TcrResult(
        rate_regime=terms.rate_regime,
        principal=terms.principal,
        contracting_date=terms.contracting_date,
        maturity_date=terms.maturity_date,
        evaluation_date=terms.evaluation_date,
        days_elapsed=days_elapsed,
        months_elapsed=months_elapsed,
        correction_factor=fam,
        accumulated_index_pct=accumulated_index,
        implicit_inflation_factor=fii,
        fixed_rate_aa=jm,
        program_factor=fp,
        adjustment_factor=fa,
        effective_rate=tcr * 100,
        annualized_rate_aa=annualized,
        updated_balance=updated_balance,
        remuneratory_interest=remuneratory,
        overdue_days=overdue_days,
        mora_interest=mora,
        penalty=penalty,
        total_due=total_due,
    )
    result.steps = build_calculation_steps(terms, indexes, result)

    logger.info(
        f"TCR calculated: regime={terms.rate_regime.value}, tcr={result.effective_rate:.4f}%, "
        f"total_due={round(total_due, 2)}, overdue_days={overdue_days}"
    )
    return result


def build_calculation_steps(terms: LoanTerms, indexes: IndexInputs, result: TcrResult) -> List[CalculationStep]:
    """Calculation memory in the order the figures were derived."""
    steps: List[CalculationStep] = []

    if result.rate_regime == RateRegime.INFLATION_INDEXED:
        readings = indexes.monthly_index_readings
        steps.append(CalculationStep(
            description="Fator de Atualização Monetária (FAM)",
            formula="FAM = ∏(1 + IPCAm/100)",
            values={
                "IPCA acumulado": f"{result.accumulated_index_pct:.4f}%",
                "Meses informados": len(readings),
                "Variações mensais": ", ".join(f"{v:.4f}%" for v in readings) or "Não informado",
            },
            result=f"FAM = {result.correction_factor:.6f}",
        ))
        steps.append(CalculationStep(
            description="TCRpós",
            formula="TCRpós = FAM × (1 + FP) × (1 + FA) - 1",
            values={"FAM": f"{result.correction_factor:.6f}", "FP": f"{result.program_factor:.7f}", "FA": f"{result.adjustment_factor:.7f}"},
            result=f"TCRpós = {result.effective_rate:.4f}% ({result.annualized_rate_aa:.4f}% a.a.)",
        ))
        steps.append(CalculationStep(
            description="Atualização do saldo devedor",
            formula="SD = Principal × FAM",
            values={"Principal": format_brl(terms.principal), "Período": f"{result.months_elapsed} meses ({result.days_elapsed} dias)"},
            result=f"Saldo devedor atualizado = {format_brl(result.updated_balance)}",
        ))
        steps.append(CalculationStep(
            description="Juros remuneratórios",
            formula="JR = SD × [(1 + i_mensal)^n - 1]",
            values={"Taxa remuneratória": f"{terms.remuneratory_rate_aa:.4f}% a.a.", "Meses": max(result.months_elapsed, 0)},
            result=f"Juros remuneratórios = {format_brl(result.remuneratory_interest)}",
        ))
    else:
        steps.append(CalculationStep(
            description="TCRpré",
            formula="TCRpré = (1 + Jm/100) × FII × (1 + FP) × (1 + FA) - 1",
            values={
                "Jm": f"{result.fixed_rate_aa:.4f}% a.a.",
                "FII": f"{result.implicit_inflation_factor:.7f}",
                "FP": f"{result.program_factor:.7f}",
                "FA": f"{result.adjustment_factor:.7f}",
            },
            result=f"TCRpré = {result.effective_rate:.4f}% a.a.",
        ))
        steps.append(CalculationStep(
            description="Atualização do saldo devedor (prefixado)",
            formula="SD = Principal × (1 + i_mensal)^n",
            values={
                "Principal": format_brl(terms.principal),
                "Taxa mensal equivalente": f"{annual_to_periodic(result.effective_rate, Compounding.MONTHLY) * 100:.6f}% a.m.",
                "Meses": max(result.months_elapsed, 0),
            },
            result=f"Saldo devedor atualizado = {format_brl(result.updated_balance)}",
        ))

    if result.overdue_days > 0:
        steps.append(CalculationStep(
            description="Juros de mora",
            formula="JM = SD × [(1 + i_mora)^(d/365) - 1]",
            values={
                "Taxa de mora": f"{(terms.mora_rate_aa or 0):.4f}% a.a.",
                "Dias de inadimplência": result.overdue_days,
            },
            result=f"Juros de mora = {format_brl(result.mora_interest)}",
        ))
        if terms.penalty_pct:
            steps.append(CalculationStep(
                description="Multa contratual",
                formula="Multa = SD × taxa_multa",
                values={"Taxa de multa": f"{terms.penalty_pct:.2f}%"},
                result=f"Multa = {format_brl(result.penalty)}",
            ))

    steps.append(CalculationStep(
        description="Total devido",
        formula="Total = SD + JR + JM + Multa" if result.rate_regime == RateRegime.INFLATION_INDEXED else "Total = SD + JM + Multa",
        values={
            "Saldo devedor": format_brl(result.updated_balance),
            "Juros remuneratórios": format_brl(result.remuneratory_interest),
            "Juros de mora": format_brl(result.mora_interest),
            "Multa": format_brl(result.penalty),
        },
        result=f"TOTAL DEVIDO = {format_brl(result.total_due)}",
    ))
    return steps
