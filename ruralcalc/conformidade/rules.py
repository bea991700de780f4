"""
Compliance Rule Engine.
Classifies contracted remuneratory, mora and penalty rates against their legal ceilings.
Remuneratory ceilings come from the legal limit table; mora and penalty ceilings are fixed.
"""
from typing import List, Optional, Tuple

from ruralcalc.conformidade.schemas import ComplianceStatus, ComplianceVerdict, RateType, RateVerdict
from ruralcalc.core.config import settings
from ruralcalc.core.logger import logger
from ruralcalc.limites.schemas import CreditModality
from ruralcalc.limites.table import LegalLimitTable, ModalityKey, legal_limit_table

MORA_CITATION = "Decreto-Lei nº 167/67, art. 5º, parágrafo único"
PENALTY_CITATION = "CDC, art. 52, § 1º (Lei nº 9.298/96)"

RATE_LABELS = {
    RateType.REMUNERATORY: "juros remuneratórios",
    RateType.MORA: "juros de mora",
    RateType.PENALTY: "multa contratual",
}


class ComplianceRule:
    """Base class for rate ceiling rules. Enforces the Strategy Pattern."""

    def __init__(self, rate_type: RateType, limit: float, citation: str, unit: str = "% a.a."):
        self.rate_type = rate_type
        self.limit = limit
        self.citation = citation
        self.unit = unit

    @property
    def label(self) -> str:
        return RATE_LABELS[self.rate_type]

    def status_for(self, rate: float) -> ComplianceStatus:
        raise NotImplementedError

    def evaluate(self, rate: Optional[float]) -> Tuple[RateVerdict, Optional[str], Optional[str]]:
        """
        Classifies a rate. Returns the verdict, the alert (if any) and a note (if any).
        A missing rate is undetermined and produces a note, never an alert.
        """
        if rate is None:
            verdict = RateVerdict(
                rate_type=self.rate_type,
                limit=self.limit,
                status=ComplianceStatus.UNDETERMINED,
                citation=self.citation,
            )
            note = f"Taxa de {self.label} não informada: conformidade indeterminada."
            return verdict, None, note

        status = self.status_for(rate)
        excess = rate - self.limit if status == ComplianceStatus.NON_COMPLIANT else None
        verdict = RateVerdict(
            rate_type=self.rate_type,
            rate=rate,
            limit=self.limit,
            status=status,
            excess=excess,
            citation=self.citation,
        )
        return verdict, self.alert_for(rate, status), None

    def alert_for(self, rate: float, status: ComplianceStatus) -> Optional[str]:
        if status == ComplianceStatus.NON_COMPLIANT:
            return (
                f"ATENÇÃO: Taxa de {self.label} de {rate:.2f}{self.unit} EXCEDE o limite legal de "
                f"{self.limit:.2f}{self.unit} ({self.citation})."
            )
        if status == ComplianceStatus.WARNING:
            return (
                f"ATENÇÃO: Taxa de {self.label} de {rate:.2f}{self.unit} está próxima do limite legal de "
                f"{self.limit:.2f}{self.unit} ({self.citation})."
            )
        return None

    def grounding_for(self, verdict: RateVerdict) -> str:
        if verdict.status == ComplianceStatus.COMPLIANT:
            return (
                f"Taxa de {self.label} de {verdict.rate:.2f}{self.unit} em conformidade com o limite de "
                f"{self.limit:.2f}{self.unit} ({self.citation})."
            )
        return f"Limite de {self.label}: {self.limit:.2f}{self.unit} ({self.citation})."


class RemuneratoryRateRule(ComplianceRule):
    """Three-state rule: a warning band sits just below the ceiling."""

    def __init__(self, limit: float, citation: str, warning_ratio: float):
        super().__init__(RateType.REMUNERATORY, limit, citation)
        self.warning_floor = limit * warning_ratio

    def status_for(self, rate: float) -> ComplianceStatus:
        if rate > self.limit:
            return ComplianceStatus.NON_COMPLIANT
        if rate > self.warning_floor:
            return ComplianceStatus.WARNING
        return ComplianceStatus.COMPLIANT


class TwoStateRule(ComplianceRule):
    """Compliant up to the ceiling, non-compliant above it. No warning band."""

    def status_for(self, rate: float) -> ComplianceStatus:
        if rate > self.limit:
            return ComplianceStatus.NON_COMPLIANT
        return ComplianceStatus.COMPLIANT


class MoraRateRule(TwoStateRule):
    def __init__(self, limit: float):
        super().__init__(RateType.MORA, limit, MORA_CITATION)


class PenaltyRule(TwoStateRule):
    def __init__(self, limit: float):
        super().__init__(RateType.PENALTY, limit, PENALTY_CITATION, unit="%")


class ComplianceClassifier:
    """
    Compliance Classification Engine.
    Overall status: non-compliant if any rate is non-compliant; undetermined when neither
    the remuneratory nor the mora rate was supplied; warning if any rate is in its warning
    band; otherwise compliant.
    """

    def __init__(
        self,
        table: Optional[LegalLimitTable] = None,
        mora_ceiling_aa: Optional[float] = None,
        penalty_ceiling: Optional[float] = None,
        warning_ratio: Optional[float] = None,
    ):
        self.table = table or legal_limit_table
        self.mora_ceiling_aa = mora_ceiling_aa if mora_ceiling_aa is not None else settings.MORA_CEILING_AA
        self.penalty_ceiling = penalty_ceiling if penalty_ceiling is not None else settings.PENALTY_CEILING
        self.warning_ratio = warning_ratio if warning_ratio is not None else settings.WARNING_BAND_RATIO

    def rules_for(self, modality: Optional[ModalityKey] = None) -> Tuple[List[ComplianceRule], bool, Optional[CreditModality]]:
        """Builds the rule chain for a modality. Returns the rules, the fallback flag and the parsed modality."""
        resolution = self.table.resolve_ceiling(modality)
        rules: List[ComplianceRule] = [
            RemuneratoryRateRule(resolution.rate_aa, resolution.citation, self.warning_ratio),
            MoraRateRule(self.mora_ceiling_aa),
            PenaltyRule(self.penalty_ceiling),
        ]
        return rules, resolution.free_negotiation, resolution.modality

    def classify(
        self,
        remuneratory_rate_aa: Optional[float],
        mora_rate_aa: Optional[float],
        tcr_aa: Optional[float] = None,
        modality: Optional[ModalityKey] = None,
        penalty_pct: Optional[float] = None,
    ) -> ComplianceVerdict:
        """
        Executes the rule chain against the contracted rates.
        Unknown modality keys raise UnknownModalityError before anything is evaluated.
        """
        rules, free_negotiation, parsed_modality = self.rules_for(modality)
        rates = [remuneratory_rate_aa, mora_rate_aa, penalty_pct]

        verdicts: List[RateVerdict] = []
        alerts: List[str] = []
        notes: List[str] = []
        grounding: List[str] = []

        for rule, rate in zip(rules, rates):
            verdict, alert, note = rule.evaluate(rate)
            verdicts.append(verdict)
            if alert:
                alerts.append(alert)
                logger.info(f"Compliance rule triggered: {rule.rate_type.value} status={verdict.status.value}")
            if note:
                notes.append(note)
            if rate is not None:
                grounding.append(rule.grounding_for(verdict))

        remuneratory, mora, penalty = verdicts

        if free_negotiation and parsed_modality is not None and remuneratory_rate_aa is not None:
            notes.append(
                f"Modalidade de livre pactuação: comparação feita com o limite de revisão judicial de "
                f"{remuneratory.limit:.2f}% a.a."
            )

        if tcr_aa is not None and tcr_aa > remuneratory.limit:
            notes.append(
                f"A TCR efetiva de {tcr_aa:.4f}% a.a. supera o limite de {remuneratory.limit:.2f}% a.a. "
                f"aplicável aos juros remuneratórios."
            )

        statuses = [v.status for v in verdicts]
        if ComplianceStatus.NON_COMPLIANT in statuses:
            status = ComplianceStatus.NON_COMPLIANT
        elif remuneratory_rate_aa is None and mora_rate_aa is None:
            status = ComplianceStatus.UNDETERMINED
        elif ComplianceStatus.WARNING in statuses:
            status = ComplianceStatus.WARNING
        else:
            status = ComplianceStatus.COMPLIANT

        logger.info(
            f"Compliance classification completed: status={status.value}, "
            f"ceiling={remuneratory.limit}, alerts={len(alerts)}"
        )

        return ComplianceVerdict(
            status=status,
            remuneratory=remuneratory,
            mora=mora,
            penalty=penalty,
            tcr_aa=tcr_aa,
            modality=parsed_modality,
            free_negotiation=free_negotiation,
            alerts=alerts,
            notes=notes,
            grounding=grounding,
        )


# Singleton classifier instance
compliance_classifier = ComplianceClassifier()
