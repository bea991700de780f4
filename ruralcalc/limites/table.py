"""
Legal Limit Table.
Resolves the maximum annual rate for a credit modality, with the judicial-review fallback
for modalities under free negotiation. The table itself is versioned data, not code.
"""
import json
import os
from typing import Dict, List, Optional, Union

from pydantic import ValidationError

from ruralcalc.core.config import settings
from ruralcalc.core.exceptions import (
    InvalidInputError,
    LegalTableError,
    UnknownCreditLineError,
    UnknownModalityError,
)
from ruralcalc.core.logger import logger
from ruralcalc.core.utils import format_brl
from ruralcalc.limites.schemas import (
    CeilingResolution,
    CreditLine,
    CreditLineComparison,
    CreditLineVerdict,
    CreditModality,
    CreditPurpose,
    LegalLimitDocument,
    LegalLimitEntry,
    ModalityOption,
    Precedent,
    ProgramComparison,
    ProgramKind,
    ProgramSuggestion,
    ProgramTable,
    ProgramVerdict,
    RateExcessCheck,
)
from ruralcalc.taxas.schemas import Compounding
from ruralcalc.taxas.service import annual_to_periodic, equal_installment_payment

DEFAULT_TABLE_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data", "legal_limits.json")

ModalityKey = Union[CreditModality, str]


def total_interest(principal: float, rate_aa: float, term_months: int) -> float:
    """Total interest of a monthly equal-installment schedule at an annual rate."""
    periodic = annual_to_periodic(rate_aa, Compounding.MONTHLY)
    if periodic == 0:
        return 0.0
    return equal_installment_payment(principal, periodic, term_months) * term_months - principal


def load_legal_document(path: Optional[str] = None) -> LegalLimitDocument:
    """
    Loads and validates the legal limit data file.
    Raises LegalTableError when the file is unreadable, malformed, or misses a modality.
    """
    path = path or settings.LEGAL_LIMITS_FILE or DEFAULT_TABLE_PATH

    try:
        with open(path, encoding="utf-8") as fh:
            raw = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        raise LegalTableError(f"Cannot read legal limit table at {path}: {e}") from e

    try:
        document = LegalLimitDocument.model_validate(raw)
    except ValidationError as e:
        raise LegalTableError(f"Legal limit table at {path} is malformed: {e}") from e

    missing = [m.value for m in CreditModality if m not in document.modalities]
    if missing:
        raise LegalTableError(f"Legal limit table at {path} has no entry for: {', '.join(missing)}")

    logger.info(f"Legal limit table loaded: revision={document.revision}, modalities={len(document.modalities)}")
    return document


class LegalLimitTable:
    """
    Read-only registry of legal ceilings.
    Free-negotiation entries always resolve to the judicial-review rate, so every
    modality yields a usable comparison rate.
    """

    def __init__(self, document: LegalLimitDocument, judicial_review_rate_aa: Optional[float] = None):
        self.document = document
        self.judicial_review_rate_aa = (
            judicial_review_rate_aa if judicial_review_rate_aa is not None else settings.JUDICIAL_REVIEW_RATE_AA
        )
        self.judicial_review_citation = document.judicial_review.citation
        self._lines: Dict[str, CreditLine] = {line.id: line for line in document.credit_lines}

    @classmethod
    def from_file(cls, path: Optional[str] = None, judicial_review_rate_aa: Optional[float] = None) -> "LegalLimitTable":
        return cls(load_legal_document(path), judicial_review_rate_aa)

    @property
    def revision(self) -> str:
        return self.document.revision

    @staticmethod
    def parse_modality(modality: ModalityKey) -> CreditModality:
        """Normalizes a modality key. Unknown keys fail fast."""
        if isinstance(modality, CreditModality):
            return modality
        try:
            return CreditModality(modality)
        except ValueError:
            raise UnknownModalityError(str(modality))

    def entry(self, modality: ModalityKey) -> LegalLimitEntry:
        return self.document.modalities[self.parse_modality(modality)]

    def resolve_ceiling(self, modality: Optional[ModalityKey] = None) -> CeilingResolution:
        """
        Returns the comparison rate for a modality.
        No modality -> judicial-review rate. Free negotiation -> judicial-review rate.
        """
        if modality is None:
            return CeilingResolution(
                rate_aa=self.judicial_review_rate_aa,
                free_negotiation=True,
                citation=self.judicial_review_citation,
            )

        key = self.parse_modality(modality)
        entry = self.document.modalities[key]

        if entry.free_negotiation:
            return CeilingResolution(
                rate_aa=self.judicial_review_rate_aa,
                free_negotiation=True,
                modality=key,
                entry=entry,
                citation=f"{entry.citation.short()}; {self.judicial_review_citation}",
            )

        return CeilingResolution(
            rate_aa=entry.ceiling_aa,
            free_negotiation=False,
            modality=key,
            entry=entry,
            citation=entry.citation.full(),
        )

    def check_rate(self, contracted_rate_aa: float, modality: ModalityKey) -> RateExcessCheck:
        """Checks a contracted rate against the modality ceiling and drafts the report paragraph."""
        resolution = self.resolve_ceiling(modality)
        entry = resolution.entry
        ceiling = resolution.rate_aa
        exceeds = contracted_rate_aa > ceiling
        excess_points = max(0.0, contracted_rate_aa - ceiling)
        citation = entry.citation

        if not exceeds:
            text = (
                f"A taxa de juros contratada de {contracted_rate_aa:.2f}% a.a. está dentro do limite legal de "
                f"{ceiling:.2f}% a.a. estabelecido pelo {citation.short()}."
            )
        elif resolution.free_negotiation:
            text = (
                f"A taxa de juros contratada de {contracted_rate_aa:.2f}% a.a. excede em {excess_points:.2f} pontos "
                f"percentuais o limite de {ceiling:.2f}% a.a. aplicado pelo STJ como parâmetro de abusividade para "
                f"recursos não controlados ({self.judicial_review_citation}). Embora o {citation.short()} permita a "
                f"livre pactuação, o Judiciário aplica este limite na revisão contratual."
            )
        else:
            text = (
                f"A taxa de juros contratada de {contracted_rate_aa:.2f}% a.a. excede em {excess_points:.2f} pontos "
                f"percentuais o limite legal de {ceiling:.2f}% a.a. estabelecido pelo {citation.full()}. A cobrança "
                f"acima deste limite é passível de revisão judicial com devolução em dobro (art. 42, parágrafo único, CDC)."
            )

        return RateExcessCheck(
            exceeds=exceeds,
            excess_points=excess_points,
            ceiling_aa=ceiling,
            free_negotiation=resolution.free_negotiation,
            citation=citation,
            report_text=text,
        )

    def citation_text(self, modality: ModalityKey) -> str:
        """Full legal grounding paragraph for a modality."""
        key = self.parse_modality(modality)
        entry = self.document.modalities[key]

        if entry.free_negotiation:
            return (
                f"Para a modalidade \"{key.value}\", o {entry.citation.short()} permite a livre pactuação dos "
                f"encargos financeiros. Contudo, o STJ consolidou o entendimento de que o limite de "
                f"{self.judicial_review_rate_aa:.1f}% a.a. ({self.judicial_review_citation}) serve como parâmetro "
                f"de abusividade na revisão judicial de contratos de crédito rural."
            )

        text = (
            f"Para a modalidade \"{entry.citation.description}\", o {entry.citation.full()} estabelece taxa "
            f"efetiva de juros de até {entry.ceiling_aa:.1f}% a.a. como encargo financeiro máximo."
        )
        if entry.notes:
            text += f" {entry.notes}"
        return text

    def list_modalities(self) -> List[ModalityOption]:
        return [
            ModalityOption(value=key, label=entry.label, ceiling_aa=entry.ceiling_aa, program=entry.program)
            for key, entry in self.document.modalities.items()
        ]

    def precedents(self, topic: str) -> List[Precedent]:
        return list(self.document.precedents.get(topic, []))

    # ── Credit lines ────────────────────────────────────────────────────────

    @property
    def credit_lines(self) -> List[CreditLine]:
        return list(self._lines.values())

    def credit_line(self, line_id: str) -> CreditLine:
        try:
            return self._lines[line_id]
        except KeyError:
            raise UnknownCreditLineError(line_id)

    def compare_credit_line(
        self,
        contracted_rate_aa: float,
        line_id: str,
        principal: Optional[float] = None,
        term_months: Optional[int] = None,
    ) -> CreditLineComparison:
        """
        Compares a contracted rate with a credit line ceiling.
        With principal and term, the currency excess is the difference in total interest of two
        monthly equal-installment schedules (contracted vs. ceiling).
        """
        line = self.credit_line(line_id)
        free = line.ceiling_aa is None
        ceiling = self.judicial_review_rate_aa if free else line.ceiling_aa
        difference = contracted_rate_aa - ceiling
        exceeds = difference > 0

        interest_excess: Optional[float] = None
        if principal and term_months and term_months > 0:
            interest_excess = (
                max(0.0, total_interest(principal, contracted_rate_aa, term_months)
                    - total_interest(principal, ceiling, term_months))
                if exceeds else 0.0
            )

        if free:
            verdict = CreditLineVerdict.FREE_NEGOTIATION
        elif exceeds:
            verdict = CreditLineVerdict.EXCESS
        else:
            verdict = CreditLineVerdict.REGULAR

        if not exceeds:
            text = (
                f"A taxa contratada de {contracted_rate_aa:.2f}% a.a. está dentro do limite de {ceiling:.2f}% a.a. "
                f"estabelecido para a linha {line.label} ({line.citation})."
            )
        elif free:
            text = (
                f"A taxa contratada de {contracted_rate_aa:.2f}% a.a. excede em {difference:.2f} p.p. o limite de "
                f"{ceiling:.2f}% a.a. aplicado pelo STJ como parâmetro de abusividade para recursos livres "
                f"({self.judicial_review_citation})."
            )
        else:
            text = (
                f"A taxa contratada de {contracted_rate_aa:.2f}% a.a. excede em {difference:.2f} p.p. o limite legal de "
                f"{ceiling:.2f}% a.a. estabelecido para a linha {line.label} ({line.citation})."
            )
        if interest_excess:
            text += f" Excesso estimado de juros: {format_brl(interest_excess)}."

        return CreditLineComparison(
            line=line,
            ceiling_aa=ceiling,
            contracted_rate_aa=contracted_rate_aa,
            difference_pp=difference,
            exceeds=exceeds,
            interest_excess=interest_excess,
            verdict=verdict,
            verdict_text=text,
            citation=line.citation,
        )

    # ── Program factors ─────────────────────────────────────────────────────

    @property
    def program_factors(self) -> Dict[float, float]:
        return dict(self.document.program_factors)

    def program_factor(self, program_rate_aa: float) -> Optional[float]:
        """CMN program factor (FP) for a program rate, None when the rate has no published factor."""
        return self.document.program_factors.get(float(program_rate_aa))

    # ── Federal programs (Pronaf / Pronamp) ─────────────────────────────────

    @property
    def programs(self) -> ProgramTable:
        return self.document.programs

    def compare_program(
        self,
        contracted_rate_aa: float,
        purpose: Union[CreditPurpose, str],
        program: Union[ProgramKind, str] = ProgramKind.PRONAF,
        group: Optional[str] = None,
        principal: Optional[float] = None,
        term_months: Optional[int] = None,
    ) -> ProgramComparison:
        """
        Compares a contracted rate with the Pronaf group or Pronamp ceiling for a credit purpose.
        Rates within the excess tolerance are regular. Groups entitled to the on-time payment bonus
        report the reduced rate and, with principal and term, the interest it saves.
        """
        try:
            purpose = CreditPurpose(purpose)
        except ValueError:
            raise InvalidInputError("purpose", f"unknown credit purpose: {purpose}")
        try:
            program = ProgramKind(program)
        except ValueError:
            raise InvalidInputError("program", f"unknown program: {program}")
        if principal is not None and principal <= 0:
            raise InvalidInputError("principal", "must be positive")
        if term_months is not None and term_months <= 0:
            raise InvalidInputError("term_months", "must be a positive integer")

        table = self.document.programs
        priced = principal is not None and term_months is not None

        if program == ProgramKind.PRONAMP:
            info = table.pronamp
            group = "Custeio" if purpose == CreditPurpose.OPERATING else "Investimento"
            group_name = f"Pronamp — {group}"
            citation = f"{info.section}; {info.regulation}"
        else:
            group = group or table.default_pronaf_group
            info = table.pronaf_groups.get(group)
            if info is None:
                return self._unlisted_pronaf_group(contracted_rate_aa, purpose, group)
            group_name = info.name
            citation = f"{info.section}; {info.regulation}; {table.pronaf_statute}"

        ceiling = info.ceiling_for(purpose)
        difference = contracted_rate_aa - ceiling
        exceeds = difference > table.excess_tolerance_pp
        excess_pct = difference / ceiling * 100 if ceiling > 0 else 0.0

        interest_excess: Optional[float] = None
        if priced and exceeds:
            interest_excess = max(
                0.0, total_interest(principal, contracted_rate_aa, term_months) - total_interest(principal, ceiling, term_months)
            )

        bonus_pct = table.on_time_bonus_pct if info.on_time_bonus else 0.0
        bonus_rate: Optional[float] = None
        bonus_saving: Optional[float] = None
        if info.on_time_bonus:
            bonus_rate = ceiling * (1 - bonus_pct / 100)
            if priced:
                bonus_saving = max(
                    0.0, total_interest(principal, ceiling, term_months) - total_interest(principal, bonus_rate, term_months)
                )

        alerts: List[str] = []
        if exceeds:
            alerts.append(
                f"Taxa contratada ({contracted_rate_aa:.2f}% a.a.) excede o limite do {group_name} em {difference:.2f} p.p."
            )
            alerts.append(f"Fundamentação para revisão: {info.section} ({info.regulation})")
            if interest_excess:
                alerts.append(f"Excesso estimado de juros: {format_brl(interest_excess)}")
            alerts.append(
                "Cabível revisão judicial com devolução em dobro dos valores cobrados a maior "
                "(art. 42, parágrafo único, CDC)."
            )
            text = (
                f"EXCESSO IDENTIFICADO: A taxa contratada de {contracted_rate_aa:.2f}% a.a. excede em {difference:.2f} "
                f"pontos percentuais ({excess_pct:.1f}% acima) o limite legal de {ceiling:.2f}% a.a. estabelecido "
                f"para o {group_name} pelo {info.section} ({info.regulation})."
            )
        else:
            alerts.append(f"Taxa contratada dentro do limite legal para o {group_name} ({ceiling:.1f}% a.a.).")
            text = (
                f"REGULAR: A taxa contratada de {contracted_rate_aa:.2f}% a.a. está dentro do limite legal de "
                f"{ceiling:.2f}% a.a. para o {group_name} ({info.section})."
            )
        if info.notes:
            alerts.append(f"Observação: {info.notes}")

        logger.info(
            f"Program comparison: program={program.value}, group={group}, purpose={purpose.value}, "
            f"rate={contracted_rate_aa}, ceiling={ceiling}, exceeds={exceeds}"
        )

        return ProgramComparison(
            program=program,
            group=group,
            group_name=group_name,
            purpose=purpose,
            contracted_rate_aa=contracted_rate_aa,
            ceiling_aa=ceiling,
            difference_pp=difference,
            exceeds=exceeds,
            excess_pct=excess_pct,
            interest_excess=interest_excess,
            on_time_bonus=info.on_time_bonus,
            bonus_pct=bonus_pct,
            bonus_rate_aa=bonus_rate,
            bonus_saving=bonus_saving,
            verdict=ProgramVerdict.EXCESS if exceeds else ProgramVerdict.REGULAR,
            verdict_text=text,
            citation=citation,
            alerts=alerts,
        )

    def _unlisted_pronaf_group(self, contracted_rate_aa: float, purpose: CreditPurpose, group: str) -> ProgramComparison:
        """Unlisted groups are measured against the default group so the rate is still reported."""
        table = self.document.programs
        ceiling = table.pronaf_groups[table.default_pronaf_group].ceiling_for(purpose)
        difference = contracted_rate_aa - ceiling
        logger.info(f"Program comparison: unlisted Pronaf group {group}")
        return ProgramComparison(
            program=ProgramKind.PRONAF,
            group=group,
            group_name=f"Pronaf Grupo {group}",
            purpose=purpose,
            contracted_rate_aa=contracted_rate_aa,
            ceiling_aa=ceiling,
            difference_pp=difference,
            exceeds=difference > table.excess_tolerance_pp,
            excess_pct=0.0,
            verdict=ProgramVerdict.NOT_ELIGIBLE,
            verdict_text="Grupo Pronaf não identificado. Verificar enquadramento.",
            citation=table.pronaf_regulation,
            alerts=["Grupo Pronaf não reconhecido. Verificar DAP/CAF e enquadramento."],
        )

    def suggest_program(self, gross_annual_income: float) -> ProgramSuggestion:
        """Suggests the federal program a producer fits by gross annual income."""
        if gross_annual_income < 0:
            raise InvalidInputError("gross_annual_income", "must not be negative")

        for bracket in self.document.programs.brackets:
            if bracket.income_ceiling is None or gross_annual_income <= bracket.income_ceiling:
                return ProgramSuggestion(
                    program=bracket.program,
                    group=bracket.group,
                    name=bracket.name,
                    operating_rate_aa=bracket.operating_rate_aa,
                    investment_rate_aa=bracket.investment_rate_aa,
                    note=bracket.note,
                )
        # unreachable: the last bracket is validated as open-ended
        raise LegalTableError("Program brackets have no open-ended entry")


# Singleton table instance
legal_limit_table = LegalLimitTable.from_file()
