"""
Calculation pipeline.
Wires TCR, compliance, amortization, surcharge and chain analysis for one request.
Logging and auditing never influence the returned result.
"""
from typing import Optional
from uuid import uuid4

from ruralcalc.amortizacao.schemas import AmortizationRequest
from ruralcalc.amortizacao.service import amortization_simulator
from ruralcalc.cadeia.rules import chain_anomaly_detector
from ruralcalc.calculo.schemas import CalculationRequest, CalculationResult
from ruralcalc.conformidade.rules import compliance_classifier
from ruralcalc.core.logger import audit_log, get_logger_with_correlation
from ruralcalc.encargos.service import surcharge_analyzer
from ruralcalc.limites.table import legal_limit_table
from ruralcalc.taxas.service import compute_tcr


def run_calculation(request: CalculationRequest, correlation_id: Optional[str] = None) -> CalculationResult:
    """
    Executes the full calculation for one loan.
    Returns the TCR, the compliance verdict and every optional analysis the request asked for.
    """
    correlation_id = correlation_id or str(uuid4())
    log = get_logger_with_correlation(correlation_id)
    terms = request.terms

    log.info(
        f"Calculation started: principal={terms.principal}, regime={terms.rate_regime.value}, "
        f"modality={terms.modality.value if terms.modality else None}"
    )

    ceiling = legal_limit_table.resolve_ceiling(terms.modality)
    tcr = compute_tcr(terms, request.indexes)
    compliance = compliance_classifier.classify(
        terms.remuneratory_rate_aa,
        terms.mora_rate_aa,
        tcr.annualized_rate_aa,
        terms.modality,
        terms.penalty_pct,
    )

    if terms.modality is not None:
        rate_check = legal_limit_table.check_rate(terms.remuneratory_rate_aa, terms.modality)
        legal_grounding = legal_limit_table.citation_text(terms.modality)
    else:
        rate_check = None
        legal_grounding = ceiling.citation

    amortization = None
    if request.amortization is not None:
        options = request.amortization
        amortization = amortization_simulator.simulate(AmortizationRequest(
            principal=terms.principal,
            annual_rate_aa=terms.remuneratory_rate_aa,
            installments=options.installments or terms.term_months,
            paid_installments=options.paid_installments,
            system=options.system,
            compounding=options.compounding,
            paid_amounts=options.paid_amounts,
            modality=terms.modality,
        ))

    paid_analysis = None
    if request.paid_installments is not None:
        inputs = request.paid_installments
        paid_analysis = amortization_simulator.analyze_paid_installments(
            principal=terms.principal,
            contracted_rate_aa=terms.remuneratory_rate_aa,
            installments=inputs.installments,
            paid_installments=inputs.paid_installments,
            average_paid=inputs.average_paid,
            declared_balance=inputs.declared_balance,
            compounding=inputs.compounding,
            modality=terms.modality,
        )

    surcharges = None
    if request.charges is not None:
        surcharges = surcharge_analyzer.analyze(
            terms.principal,
            terms.remuneratory_rate_aa,
            terms.term_months,
            request.charges,
            regulated_funding=request.regulated_funding,
        )

    chain = None
    if request.contract_chain:
        chain = chain_anomaly_detector.analyze(request.contract_chain)

    result = CalculationResult(
        correlation_id=correlation_id,
        ceiling=ceiling,
        tcr=tcr,
        compliance=compliance,
        rate_check=rate_check,
        legal_grounding=legal_grounding,
        amortization=amortization,
        paid_installments=paid_analysis,
        surcharges=surcharges,
        chain=chain,
    )

    log.info(
        f"Calculation completed: tcr={tcr.effective_rate:.4f}%, total_due={round(tcr.total_due, 2)}, "
        f"compliance={compliance.status.value}"
    )

    audit_log(
        action="rural_credit_calculation",
        user="system",
        resource=f"calculation={correlation_id}",
        details={
            "correlation_id": correlation_id,
            "principal": terms.principal,
            "compliance": compliance.status.value,
            "total_due": round(tcr.total_due, 2),
        },
    )

    return result
