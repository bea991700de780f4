"""
Amortization Simulator.
Implements Price (equal installment), SAC (constant amortization) and SAF (adapted equal
installment) schedules. Each schedule is produced twice by the same generator: once at the
contracted rate and once at the legal ceiling rate.
"""
from typing import List, Optional

from ruralcalc.amortizacao.schemas import (
    AmortizationRequest,
    AmortizationResult,
    AmortizationSystem,
    PaidInstallmentAnalysis,
    ScheduleLine,
    SchedulePeriod,
)
from ruralcalc.conformidade.rules import ComplianceClassifier, compliance_classifier
from ruralcalc.core.exceptions import InvalidInputError
from ruralcalc.core.logger import logger
from ruralcalc.core.utils import format_brl, format_rate
from ruralcalc.limites.table import LegalLimitTable, ModalityKey, legal_limit_table
from ruralcalc.taxas.schemas import Compounding
from ruralcalc.taxas.service import annual_to_periodic, equal_installment_payment

SAF_EQUIVALENCE_NOTE = (
    "NOTA TÉCNICA - SAF: O Sistema de Amortização Francês Adaptado aplicado aqui, sem carência e sem "
    "atualização monetária do saldo, é matematicamente equivalente ao Sistema Price. Se o contrato prevê "
    "carência ou correção do saldo, o cálculo deve ser ajustado conforme o MCR 2-6."
)

MONTHLY_PRICE_ALERT = (
    "ATENÇÃO: O sistema Price com capitalização mensal pode configurar anatocismo (juros sobre juros), "
    "vedado pelo Decreto nº 22.626/33 e pela Súmula 121 do STF. Verifique se o contrato prevê "
    "capitalização composta mensal."
)

SYSTEM_DESCRIPTIONS = {
    AmortizationSystem.PRICE: "Tabela Francesa - prestações iguais, amortização crescente",
    AmortizationSystem.SAC: "Sistema de Amortização Constante - amortização fixa, prestações decrescentes",
    AmortizationSystem.SAF: "Sistema de Amortização Francês Adaptado - recálculo periódico",
}


def generate_schedule(
    principal: float,
    periodic_rate: float,
    installments: int,
    system: AmortizationSystem,
) -> List[SchedulePeriod]:
    """
    Builds a single-rate schedule.
    Closing balances are floored at zero to absorb floating point residue.
    """
    if installments <= 0:
        raise InvalidInputError("installments", "must be a positive integer")
    if principal <= 0:
        raise InvalidInputError("principal", "must be positive")

    fixed_payment = equal_installment_payment(principal, periodic_rate, installments)
    constant_amortization = principal / installments

    periods: List[SchedulePeriod] = []
    balance = principal

    for number in range(1, installments + 1):
        interest = balance * periodic_rate

        if system == AmortizationSystem.SAC:
            amortization = constant_amortization
            payment = amortization + interest
        elif system == AmortizationSystem.SAF:
            # PMT recomputed over the remaining balance and remaining count
            payment = equal_installment_payment(balance, periodic_rate, installments - number + 1)
            amortization = payment - interest
        else:
            payment = fixed_payment
            amortization = payment - interest

        closing = max(0.0, balance - amortization)

        periods.append(SchedulePeriod(
            number=number,
            opening_balance=balance,
            interest=interest,
            amortization=amortization,
            installment=payment,
            closing_balance=closing,
        ))
        balance = closing

    return periods


def build_dual_schedule(
    principal: float,
    periodic_rate: float,
    legal_periodic_rate: float,
    installments: int,
    system: AmortizationSystem,
    paid_amounts: Optional[List[float]] = None,
) -> List[ScheduleLine]:
    """Contracted and legal schedules side by side, with per-line excess and paid deltas."""
    contracted = generate_schedule(principal, periodic_rate, installments, system)
    legal = generate_schedule(principal, legal_periodic_rate, installments, system)
    paid_amounts = paid_amounts or []

    lines: List[ScheduleLine] = []
    for index, (period, legal_period) in enumerate(zip(contracted, legal)):
        paid = paid_amounts[index] if index < len(paid_amounts) else None
        lines.append(ScheduleLine(
            **period.model_dump(),
            legal=legal_period,
            excess=period.interest - legal_period.interest,
            paid_amount=paid,
            paid_delta=paid - period.installment if paid is not None else None,
        ))
    return lines


class AmortizationSimulator:
    """Runs dual-schedule simulations against the legal ceiling of a modality."""

    def __init__(self, table: Optional[LegalLimitTable] = None, classifier: Optional[ComplianceClassifier] = None):
        self.table = table or legal_limit_table
        self.classifier = classifier or compliance_classifier

    def simulate(self, data: AmortizationRequest) -> AmortizationResult:
        """
        Calculates both schedules and totals over the installments already paid.
        Returns the schedule, balances, calculation notes, alerts and the compliance verdict.
        """
        resolution = self.table.resolve_ceiling(data.modality)
        legal_rate_aa = resolution.rate_aa

        periodic_rate = annual_to_periodic(data.annual_rate_aa, data.compounding)
        legal_periodic_rate = annual_to_periodic(legal_rate_aa, data.compounding)

        schedule = build_dual_schedule(
            data.principal,
            periodic_rate,
            legal_periodic_rate,
            data.installments,
            data.system,
            data.paid_amounts,
        )

        paid = schedule[:data.paid_installments]
        total_paid = sum(line.installment for line in paid)
        total_interest = sum(line.interest for line in paid)
        total_amortized = sum(line.amortization for line in paid)
        total_legal_interest = sum(line.legal.interest for line in paid)
        total_excess = total_interest - total_legal_interest

        declared = [line.paid_amount for line in paid if line.paid_amount is not None]
        total_paid_declared = sum(declared) if declared else None

        if data.paid_installments > 0:
            current_balance = paid[-1].closing_balance
            legal_balance = paid[-1].legal.closing_balance
        else:
            current_balance = data.principal
            legal_balance = data.principal

        citation = resolution.citation
        compliance = self.classifier.classify(data.annual_rate_aa, None, modality=data.modality)

        alerts: List[str] = []
        if data.annual_rate_aa > legal_rate_aa:
            alerts.append(
                f"A taxa de juros contratada de {data.annual_rate_aa:.2f}% a.a. EXCEDE o limite legal de "
                f"{legal_rate_aa:.2f}% a.a. ({citation})."
            )
            alerts.append(
                f"O excesso total cobrado de {format_brl(total_excess)} é passível de revisão judicial com "
                f"fundamento na teoria da onerosidade excessiva (art. 478 do Código Civil)."
            )
        if data.compounding == Compounding.MONTHLY and data.system == AmortizationSystem.PRICE:
            alerts.append(MONTHLY_PRICE_ALERT)
        if data.system == AmortizationSystem.SAF:
            alerts.append(SAF_EQUIVALENCE_NOTE)

        period_label = "ao ano" if data.compounding == Compounding.ANNUAL else "ao mês"
        notes = [
            f"Sistema de amortização: {data.system.value.upper()} ({SYSTEM_DESCRIPTIONS[data.system]})",
            f"Periodicidade das parcelas: {'Anual (safra a safra)' if data.compounding == Compounding.ANNUAL else 'Mensal'}",
            f"Valor financiado: {format_brl(data.principal)}",
            f"Taxa de juros contratada: {format_rate(data.annual_rate_aa, 4)} a.a. = {format_rate(periodic_rate * 100, 4)} {period_label}",
            f"Taxa legal máxima ({citation}): {format_rate(legal_rate_aa)} a.a. = {format_rate(legal_periodic_rate * 100, 4)} {period_label}",
            f"Parcelas pagas: {data.paid_installments} de {data.installments}",
            f"Total pago (pelo contrato): {format_brl(total_paid)}",
            f"Total de juros pagos (contrato): {format_brl(total_interest)}",
            f"Total de juros pela taxa legal: {format_brl(total_legal_interest)}",
            f"Excesso de juros cobrado: {format_brl(total_excess)}",
            f"Total amortizado do principal: {format_brl(total_amortized)}",
            f"Saldo devedor pelo contrato: {format_brl(current_balance)}",
            f"Saldo devedor pela taxa legal: {format_brl(legal_balance)}",
            f"Diferença (excesso no saldo): {format_brl(current_balance - legal_balance)}",
        ]
        if total_paid_declared is not None:
            notes.append(f"Total efetivamente pago (informado): {format_brl(total_paid_declared)}")

        logger.info(
            f"Amortization simulated: system={data.system.value}, installments={data.installments}, "
            f"paid={data.paid_installments}, excess={round(total_excess, 2)}"
        )

        return AmortizationResult(
            principal=data.principal,
            annual_rate_aa=data.annual_rate_aa,
            installments=data.installments,
            paid_installments=data.paid_installments,
            system=data.system,
            compounding=data.compounding,
            periodic_rate=periodic_rate,
            legal_rate_aa=legal_rate_aa,
            legal_periodic_rate=legal_periodic_rate,
            modality=resolution.modality,
            legal_citation=citation,
            initial_installment=schedule[0].installment,
            total_paid=total_paid,
            total_paid_declared=total_paid_declared,
            total_interest=total_interest,
            total_amortized=total_amortized,
            total_legal_interest=total_legal_interest,
            total_excess=total_excess,
            current_balance=current_balance,
            legal_balance=legal_balance,
            schedule=schedule,
            notes=notes,
            alerts=alerts,
            precedents=self.table.precedents("amortization"),
            compliance=compliance,
        )

    def analyze_paid_installments(
        self,
        principal: float,
        contracted_rate_aa: float,
        installments: int,
        paid_installments: int,
        average_paid: float,
        declared_balance: float,
        compounding: Compounding = Compounding.ANNUAL,
        modality: Optional[ModalityKey] = None,
    ) -> PaidInstallmentAnalysis:
        """
        Compares what was actually paid with an equal-installment schedule at the legal ceiling.
        Excess and balance difference are floored at zero.
        """
        if installments <= 0:
            raise InvalidInputError("installments", "must be a positive integer")
        if paid_installments < 0 or paid_installments > installments:
            raise InvalidInputError("paid_installments", "must be between 0 and installments")
        if average_paid < 0:
            raise InvalidInputError("average_paid", "must not be negative")

        legal_rate_aa = self.table.resolve_ceiling(modality).rate_aa
        legal_periodic = annual_to_periodic(legal_rate_aa, compounding)
        contracted_periodic = annual_to_periodic(contracted_rate_aa, compounding)

        legal_installment = equal_installment_payment(principal, legal_periodic, installments)
        contracted_installment = equal_installment_payment(principal, contracted_periodic, installments)
        legal_schedule = generate_schedule(principal, legal_periodic, installments, AmortizationSystem.PRICE)

        total_paid = average_paid * paid_installments
        legal_total = legal_installment * paid_installments
        excess_paid = max(0.0, total_paid - legal_total)
        excess_pct = excess_paid / legal_total * 100 if legal_total > 0 else 0.0

        revised_balance = legal_schedule[paid_installments - 1].closing_balance if paid_installments > 0 else principal
        balance_difference = max(0.0, declared_balance - revised_balance)

        notes = [
            f"Prestação pelo contrato ({contracted_rate_aa:.4f}% a.a.): {format_brl(contracted_installment)}",
            f"Prestação pela taxa legal ({legal_rate_aa:.2f}% a.a.): {format_brl(legal_installment)}",
            f"Valor médio pago: {format_brl(average_paid)}",
            f"Total pago em {paid_installments} parcelas: {format_brl(total_paid)}",
            f"Total legal: {format_brl(legal_total)}",
            f"Excesso cobrado: {format_brl(excess_paid)} ({excess_pct:.2f}% acima do limite legal)",
            f"Saldo informado pelo banco: {format_brl(declared_balance)}",
            f"Saldo revisado pela taxa legal: {format_brl(revised_balance)}",
            f"Diferença no saldo: {format_brl(balance_difference)}",
        ]

        logger.info(
            f"Paid installments analyzed: paid={paid_installments}/{installments}, "
            f"excess={round(excess_paid, 2)}, balance_difference={round(balance_difference, 2)}"
        )

        return PaidInstallmentAnalysis(
            installments=installments,
            paid_installments=paid_installments,
            average_paid=average_paid,
            total_paid=total_paid,
            legal_installment=legal_installment,
            legal_total=legal_total,
            excess_paid=excess_paid,
            excess_pct=excess_pct,
            legal_rate_aa=legal_rate_aa,
            declared_balance=declared_balance,
            revised_balance=revised_balance,
            balance_difference=balance_difference,
            notes=notes,
        )


# Singleton simulator instance
amortization_simulator = AmortizationSimulator()
