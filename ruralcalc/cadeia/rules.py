"""
Contract Chain Rule Engine.
Detects roll-over ("mata-mata") refinancing, capitalized charges and rates above the legal
ceilings across an ordered sequence of contracts. Each contract is compared with its
immediate predecessor only.
"""
from typing import Iterable, List, Optional

from ruralcalc.cadeia.schemas import (
    ROLLOVER_CODES,
    ChainContract,
    ChainFinding,
    ChainReport,
    ContractAnalysis,
    ContractType,
    FindingCode,
    FindingSeverity,
)
from ruralcalc.core.config import settings
from ruralcalc.core.exceptions import InvalidInputError
from ruralcalc.core.logger import logger
from ruralcalc.core.utils import format_brl
from ruralcalc.limites.table import LegalLimitTable, legal_limit_table

ROLLOVER_CITATION = "AgRg no REsp 1.370.585/RS; REsp 1.286.698/RS; Decreto nº 22.626/33, art. 4º"
CAPITALIZATION_CITATION = "Decreto nº 22.626/33, art. 4º (anatocismo); REsp 1.286.698/RS; AgRg no REsp 1.370.585/RS"

REFINANCING_TYPES = (ContractType.REFINANCING, ContractType.NOVATION)


class ChainRule:
    """Abstract base class for chain rules. Enforces the Strategy Pattern."""

    def __init__(self, name: str, description: str):
        self.name = name
        self.description = description

    def evaluate(self, contract: ChainContract, previous: Optional[ChainContract]) -> Optional[ChainFinding]:
        """Evaluates the rule for a contract and its predecessor. Returns a finding if triggered."""
        raise NotImplementedError


class RateAboveCeilingRule(ChainRule):
    """Remuneratory rate above the generic ceiling."""

    def __init__(self, ceiling_aa: float):
        super().__init__(name="RATE_ABOVE_CEILING", description=f"Remuneratory rate above {ceiling_aa}% a.a.")
        self.ceiling_aa = ceiling_aa

    def evaluate(self, contract: ChainContract, previous: Optional[ChainContract]) -> Optional[ChainFinding]:
        if contract.rate_aa is None or contract.rate_aa <= self.ceiling_aa:
            return None
        return ChainFinding(
            severity=FindingSeverity.CRITICAL,
            code=FindingCode.RATE_ABOVE_CEILING,
            title="Taxa de Juros Acima do Limite Legal",
            description=(
                f"O contrato {contract.reference} prevê taxa de juros remuneratórios de {contract.rate_aa:.2f}% a.a., "
                f"superior ao limite legal de {self.ceiling_aa:.2f}% a.a. (Decreto nº 22.626/33)."
            ),
            citation="Decreto nº 22.626/33, art. 1º; Súmula 382/STJ; REsp 1.348.081/RS",
            contracts=[contract.order],
        )


class MoraAboveCeilingRule(ChainRule):
    def __init__(self, ceiling_aa: float):
        super().__init__(name="MORA_ABOVE_CEILING", description=f"Mora rate above {ceiling_aa}% a.a.")
        self.ceiling_aa = ceiling_aa

    def evaluate(self, contract: ChainContract, previous: Optional[ChainContract]) -> Optional[ChainFinding]:
        if contract.mora_rate_aa is None or contract.mora_rate_aa <= self.ceiling_aa:
            return None
        return ChainFinding(
            severity=FindingSeverity.CRITICAL,
            code=FindingCode.MORA_ABOVE_CEILING,
            title="Taxa de Mora Acima do Limite Legal",
            description=(
                f"O contrato {contract.reference} prevê taxa de juros de mora de {contract.mora_rate_aa:.2f}% a.a., "
                f"superior ao limite legal de {self.ceiling_aa:.2f}% a.a. (Decreto-Lei nº 167/67, art. 5º)."
            ),
            citation="Decreto-Lei nº 167/67, art. 5º, parágrafo único; REsp 1.509.057/RS",
            contracts=[contract.order],
        )


def principal_change_pct(contract: ChainContract, previous: ChainContract) -> float:
    return (contract.principal - previous.principal) / previous.principal * 100


class RolloverRule(ChainRule):
    """
    Classifies a refinancing or novation by the principal change over its predecessor:
    increase -> roll-over; within the flat tolerance -> suspected roll-over;
    larger reduction -> legitimate discounted renegotiation.
    """

    def __init__(self, flat_tolerance_pct: float):
        super().__init__(name="ROLLOVER", description="Refinancing that folds charges into the new principal")
        self.flat_tolerance_pct = flat_tolerance_pct

    def evaluate(self, contract: ChainContract, previous: Optional[ChainContract]) -> Optional[ChainFinding]:
        if previous is None or contract.contract_type not in REFINANCING_TYPES:
            return None

        delta = principal_change_pct(contract, previous)
        kind = "refinanciamento" if contract.contract_type == ContractType.REFINANCING else "novação"
        new_amount = format_brl(contract.principal)
        old_amount = format_brl(previous.principal)
        positions = [previous.order, contract.order]

        if delta > 0:
            return ChainFinding(
                severity=FindingSeverity.CRITICAL,
                code=FindingCode.ROLLOVER_PRINCIPAL_INCREASE,
                title="Operação Mata-Mata Detectada - Aumento do Principal",
                description=(
                    f"O contrato {contract.reference} ({kind}) quitou o contrato anterior {previous.reference}. "
                    f"O novo principal ({new_amount}) é {delta:.2f}% maior que o anterior ({old_amount}), "
                    f"evidenciando incorporação de encargos ao novo principal."
                ),
                citation=ROLLOVER_CITATION,
                contracts=positions,
            )

        if delta >= -self.flat_tolerance_pct:
            return ChainFinding(
                severity=FindingSeverity.CRITICAL,
                code=FindingCode.ROLLOVER_FLAT_PRINCIPAL,
                title="Operação Mata-Mata Detectada - Principal Mantido",
                description=(
                    f"O contrato {contract.reference} ({kind}) quitou o contrato anterior {previous.reference}. "
                    f"O novo principal ({new_amount}) é praticamente igual ao anterior ({old_amount}, variação de "
                    f"{abs(delta):.2f}%), sem redução real da dívida, indicando provável incorporação disfarçada de encargos."
                ),
                citation=ROLLOVER_CITATION,
                contracts=positions,
            )

        return ChainFinding(
            severity=FindingSeverity.INFORMATIONAL,
            code=FindingCode.DISCOUNTED_RENEGOTIATION,
            title="Renegociação com Redução de Saldo",
            description=(
                f"O contrato {contract.reference} ({kind}) renovou o contrato anterior {previous.reference} com redução "
                f"de {abs(delta):.2f}% (de {old_amount} para {new_amount}). Não configura operação mata-mata."
            ),
            citation="Código Civil, art. 385 (novação com redução); art. 840 (transação)",
            contracts=positions,
        )


class CapitalizedChargesRule(ChainRule):
    def __init__(self):
        super().__init__(name="CHARGES_CAPITALIZED", description="Charges incorporated into the new principal")

    def evaluate(self, contract: ChainContract, previous: Optional[ChainContract]) -> Optional[ChainFinding]:
        if not contract.incorporated_charges:
            return None
        return ChainFinding(
            severity=FindingSeverity.CRITICAL,
            code=FindingCode.CHARGES_CAPITALIZED,
            title="Capitalização Indevida de Encargos",
            description=(
                f"O contrato {contract.reference} incorporou {format_brl(contract.incorporated_charges)} de encargos "
                f"(juros, multas e/ou correção) ao novo principal, configurando anatocismo."
            ),
            citation=CAPITALIZATION_CITATION,
            contracts=[contract.order],
        )


class DisproportionateIncreaseRule(ChainRule):
    """New principal well above the declared balance of the previous contract."""

    def __init__(self, threshold_pct: float):
        super().__init__(name="DISPROPORTIONATE_INCREASE", description=f"Principal above prior balance by more than {threshold_pct}%")
        self.threshold_pct = threshold_pct

    def evaluate(self, contract: ChainContract, previous: Optional[ChainContract]) -> Optional[ChainFinding]:
        if previous is None or contract.prior_balance is None:
            return None

        increase = contract.principal - contract.prior_balance
        increase_pct = increase / contract.prior_balance * 100
        if increase <= 0 or increase_pct <= self.threshold_pct:
            return None

        return ChainFinding(
            severity=FindingSeverity.WARNING,
            code=FindingCode.DISPROPORTIONATE_INCREASE,
            title="Aumento Desproporcional do Principal",
            description=(
                f"O valor do contrato {contract.reference} ({format_brl(contract.principal)}) é {increase_pct:.2f}% maior "
                f"que o saldo devedor informado do contrato anterior ({format_brl(contract.prior_balance)}). "
                f"A diferença de {format_brl(increase)} pode indicar incorporação de encargos não autorizados."
            ),
            citation="CDC, art. 39, V; Código Civil, arts. 422 e 478",
            contracts=[contract.order],
        )


class ChainAnomalyDetector:
    """
    Contract Chain Analysis Engine.
    Runs every rule over each contract and its predecessor, then aggregates chain totals and
    chain-level findings. A chain with fewer than two contracts yields no pairwise findings.
    """

    def __init__(
        self,
        table: Optional[LegalLimitTable] = None,
        rate_ceiling_aa: Optional[float] = None,
        mora_ceiling_aa: Optional[float] = None,
        flat_tolerance_pct: Optional[float] = None,
        disproportionate_pct: Optional[float] = None,
    ):
        self.table = table or legal_limit_table
        rate_ceiling = rate_ceiling_aa if rate_ceiling_aa is not None else settings.JUDICIAL_REVIEW_RATE_AA
        mora_ceiling = mora_ceiling_aa if mora_ceiling_aa is not None else settings.MORA_CEILING_AA
        tolerance = flat_tolerance_pct if flat_tolerance_pct is not None else settings.ROLLOVER_FLAT_TOLERANCE_PCT
        threshold = disproportionate_pct if disproportionate_pct is not None else settings.DISPROPORTIONATE_INCREASE_PCT

        self.rules: List[ChainRule] = [
            RateAboveCeilingRule(rate_ceiling),
            MoraAboveCeilingRule(mora_ceiling),
            RolloverRule(tolerance),
            CapitalizedChargesRule(),
            DisproportionateIncreaseRule(threshold),
        ]

    def analyze(self, contracts: Iterable[ChainContract]) -> ChainReport:
        """
        Executes the rule chain over the contracts sorted by order.
        Returns per-contract analyses, chain-level findings and the growth of the debt.
        """
        ordered = sorted(contracts, key=lambda c: c.order)
        duplicates = sorted({b.order for a, b in zip(ordered, ordered[1:]) if a.order == b.order})
        if duplicates:
            raise InvalidInputError("order", f"duplicate contract positions: {duplicates}")

        analyses: List[ContractAnalysis] = []
        charges_total = 0.0
        rate_above_ceiling = False

        for index, contract in enumerate(ordered):
            previous = ordered[index - 1] if index > 0 else None
            findings: List[ChainFinding] = []

            for rule in self.rules:
                finding = rule.evaluate(contract, previous)
                if finding:
                    findings.append(finding)
                    logger.info(f"Chain rule triggered: {rule.name} contract={contract.order} severity={finding.severity.value}")

            if contract.incorporated_charges:
                charges_total += contract.incorporated_charges
            if any(f.code == FindingCode.RATE_ABOVE_CEILING for f in findings):
                rate_above_ceiling = True

            change = None
            if previous is not None and contract.contract_type in REFINANCING_TYPES:
                change = principal_change_pct(contract, previous)

            analyses.append(ContractAnalysis(
                contract=contract,
                findings=findings,
                rollover_detected=any(f.code in ROLLOVER_CODES for f in findings),
                capitalization_detected=any(f.code == FindingCode.CHARGES_CAPITALIZED for f in findings),
                change_over_previous_pct=change,
            ))

        rollover = any(a.rollover_detected for a in analyses)
        capitalization = any(a.capitalization_detected for a in analyses)
        positions = [c.order for c in ordered]

        chain_findings: List[ChainFinding] = []
        if rollover:
            refinancings = sum(1 for c in ordered if c.contract_type in REFINANCING_TYPES)
            chain_findings.append(ChainFinding(
                severity=FindingSeverity.CRITICAL,
                code=FindingCode.CHAIN_ROLLOVER,
                title="Cadeia de Operações Mata-Mata Identificada",
                description=(
                    f"A análise identificou {refinancings} operação(ões) de refinanciamento/novação na cadeia "
                    f"contratual, com quitação de contratos vencidos por novos contratos e perpetuação da dívida."
                ),
                citation="AgRg no REsp 1.370.585/RS; REsp 1.061.530/RS; AC 5003210-21.2018.4.04.7112 (TRF-4)",
                contracts=positions,
            ))
        if charges_total > 0:
            chain_findings.append(ChainFinding(
                severity=FindingSeverity.CRITICAL,
                code=FindingCode.TOTAL_CHARGES_CAPITALIZED,
                title=f"Total de Encargos Capitalizados: {format_brl(charges_total)}",
                description=(
                    f"Ao longo da cadeia foram incorporados {format_brl(charges_total)} de encargos ao principal de "
                    f"novos contratos. Este valor deve ser expurgado do saldo devedor atual."
                ),
                citation="Decreto nº 22.626/33, art. 4º; REsp 1.286.698/RS; REsp 1.509.057/RS",
                contracts=positions,
            ))

        original = ordered[0].principal if ordered else 0.0
        current = ordered[-1].principal if ordered else 0.0
        growth = current - original
        growth_pct = growth / original * 100 if original > 0 else 0.0

        logger.info(
            f"Chain analysis completed: contracts={len(ordered)}, rollover={rollover}, "
            f"capitalization={capitalization}, growth={growth_pct:.2f}%"
        )

        return ChainReport(
            original_principal=original,
            current_principal=current,
            total_growth=growth,
            growth_pct=growth_pct,
            incorporated_charges_total=charges_total,
            contracts=analyses,
            chain_findings=chain_findings,
            rollover_detected=rollover,
            capitalization_detected=capitalization,
            rate_above_ceiling_detected=rate_above_ceiling,
            precedents=self.table.precedents("rollover") if rollover or capitalization else [],
        )


# Singleton detector instance
chain_anomaly_detector = ChainAnomalyDetector()
