"""
Surcharge Analyzer.
Assesses ancillary charges against their legality rules and folds them into an effective
annual cost figure.
"""
from typing import Dict, List, Optional, Union

from pydantic import ValidationError

from ruralcalc.core.exceptions import InvalidInputError
from ruralcalc.core.logger import logger
from ruralcalc.core.utils import format_brl
from ruralcalc.encargos.schemas import (
    ChargeAssessment,
    ChargeKind,
    ChargeStatus,
    SurchargeCharges,
    SurchargeReport,
)


class ChargeRule:
    """Legality rule for one charge kind. Enforces the Strategy Pattern."""

    def __init__(self, kind: ChargeKind, label: str, citation: str):
        self.kind = kind
        self.label = label
        self.citation = citation

    def prohibited(self, regulated_funding: bool) -> bool:
        raise NotImplementedError

    def assess(self, charged: float, regulated_funding: bool) -> ChargeAssessment:
        if self.prohibited(regulated_funding):
            status = ChargeStatus.PROHIBITED
            legal_value = 0.0
            description = (
                f"Cobrança de {self.label} de {format_brl(charged)} é vedada ({self.citation}). "
                f"Valor a restituir: {format_brl(charged)}."
            )
        else:
            status = ChargeStatus.LEGAL
            legal_value = charged
            description = f"Cobrança de {self.label} de {format_brl(charged)} sem vedação específica."

        return ChargeAssessment(
            kind=self.kind,
            label=self.label,
            charged=charged,
            legal_value=legal_value,
            excess=charged - legal_value,
            status=status,
            citation=self.citation,
            description=description,
        )


class TransactionTaxRule(ChargeRule):
    """IOF has a zero rate on rural credit funded with regulated resources."""

    def __init__(self):
        super().__init__(
            kind=ChargeKind.TRANSACTION_TAX,
            label="IOF",
            citation="Decreto nº 6.306/2007, art. 8º, I (alíquota zero no crédito rural)",
        )

    def prohibited(self, regulated_funding: bool) -> bool:
        return regulated_funding


class OriginationFeeRule(ChargeRule):
    def __init__(self):
        super().__init__(
            kind=ChargeKind.ORIGINATION_FEE,
            label="TAC (Tarifa de Abertura de Crédito)",
            citation="Res. CMN 3.518/2007; STJ REsp 1.251.331/RS (Tema 618)",
        )

    def prohibited(self, regulated_funding: bool) -> bool:
        return True


class StatementFeeRule(ChargeRule):
    def __init__(self):
        super().__init__(
            kind=ChargeKind.STATEMENT_FEE,
            label="TEC (Tarifa de Emissão de Carnê)",
            citation="Res. CMN 3.518/2007; STJ REsp 1.251.331/RS (Tema 618)",
        )

    def prohibited(self, regulated_funding: bool) -> bool:
        return True


class OtherChargeRule(ChargeRule):
    def __init__(self):
        super().__init__(
            kind=ChargeKind.OTHER,
            label="outros encargos",
            citation="Presunção de legalidade, sujeita a exame contratual",
        )

    def prohibited(self, regulated_funding: bool) -> bool:
        return False


class SurchargeAnalyzer:
    """
    Ancillary Charge Engine.
    Effective cost (nominal) = rate + charges / principal / years.
    Effective cost (compound) = (1 + rate) x (1 + charges / principal)^(1 / years) - 1.
    """

    def __init__(self, regulated_funding: bool = True):
        self.regulated_funding = regulated_funding
        self.rules: Dict[ChargeKind, ChargeRule] = {
            ChargeKind.TRANSACTION_TAX: TransactionTaxRule(),
            ChargeKind.ORIGINATION_FEE: OriginationFeeRule(),
            ChargeKind.STATEMENT_FEE: StatementFeeRule(),
            ChargeKind.OTHER: OtherChargeRule(),
        }

    def analyze(
        self,
        principal: float,
        nominal_rate_aa: float,
        term_months: int,
        charges: Union[SurchargeCharges, Dict[str, float]],
        regulated_funding: Optional[bool] = None,
    ) -> SurchargeReport:
        """Assesses every supplied charge and aggregates totals and effective cost."""
        if principal <= 0:
            raise InvalidInputError("principal", "must be positive")
        if term_months <= 0:
            raise InvalidInputError("term_months", "must be a positive integer")

        if not isinstance(charges, SurchargeCharges):
            try:
                charges = SurchargeCharges.model_validate(charges)
            except ValidationError as e:
                raise InvalidInputError("charges", str(e)) from e
        regulated = self.regulated_funding if regulated_funding is None else regulated_funding

        amounts = {
            ChargeKind.TRANSACTION_TAX: charges.transaction_tax,
            ChargeKind.ORIGINATION_FEE: charges.origination_fee,
            ChargeKind.STATEMENT_FEE: charges.statement_fee,
            ChargeKind.OTHER: charges.other,
        }

        items: List[ChargeAssessment] = []
        alerts: List[str] = []
        for kind, charged in amounts.items():
            if charged is None:
                continue
            item = self.rules[kind].assess(charged, regulated)
            items.append(item)
            if item.excess > 0:
                alerts.append(item.description)
                logger.info(f"Charge rule triggered: {kind.value} excess={item.excess}")

        total_charged = sum(item.charged for item in items)
        total_legal = sum(item.legal_value for item in items)
        total_excess = sum(item.excess for item in items)

        term_years = term_months / 12
        charge_ratio = total_charged / principal
        effective_nominal = nominal_rate_aa + charge_ratio / term_years * 100
        effective_compound = ((1 + nominal_rate_aa / 100) * (1 + charge_ratio) ** (1 / term_years) - 1) * 100

        logger.info(
            f"Surcharge analysis completed: charged={round(total_charged, 2)}, "
            f"excess={round(total_excess, 2)}, effective_cost={round(effective_compound, 4)}%"
        )

        return SurchargeReport(
            principal=principal,
            nominal_rate_aa=nominal_rate_aa,
            term_months=term_months,
            term_years=term_years,
            items=items,
            total_charged=total_charged,
            total_legal=total_legal,
            total_excess=total_excess,
            effective_cost_nominal_aa=effective_nominal,
            effective_cost_compound_aa=effective_compound,
            alerts=alerts,
        )


# Singleton analyzer instance
surcharge_analyzer = SurchargeAnalyzer()
