"""
Pydantic schemas for the legal limit table.
The table file is validated against these models on load.
"""
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CreditModality(str, Enum):
    """Credit purpose / funding source keys used to select the legal ceiling."""
    MANDATORY_FUNDS_OPERATING = "custeio_obrigatorio"
    FREE_FUNDS_OPERATING = "custeio_livre"
    SUBSIDIZED_INVESTMENT = "investimento_subvencionado"
    FREE_FUNDS_INVESTMENT = "investimento_livre"
    MARKETING = "comercializacao"
    PROCESSING = "industrializacao"
    PRONAF_B = "pronaf_b"
    PRONAF_OPERATING = "pronaf_custeio"
    PRONAF_INVESTMENT = "pronaf_investimento"
    PRONAF_AGROECOLOGY = "pronaf_agroecologia"
    PRONAMP_OPERATING = "pronamp_custeio"
    PRONAMP_INVESTMENT = "pronamp_investimento"
    UNCONTROLLED_FUNDS = "nao_controlado"


class LegalCitation(BaseModel):
    """Citation bundle attached to every ceiling."""
    model_config = ConfigDict(frozen=True)

    section: str = Field(..., description="MCR section, e.g. 'MCR 7-1, Tabela 1, item 1.1-1'")
    regulation: str = Field(..., description="Resolution, e.g. 'Res. CMN 5.234, art. 2º'")
    revision: str = Field(..., description="MCR revision tag")
    description: str = Field(..., description="Plain text used in reports")

    def short(self) -> str:
        return f"{self.section} ({self.regulation})"

    def full(self) -> str:
        return f"{self.section} ({self.regulation}, {self.revision})"


class LegalLimitEntry(BaseModel):
    """Ceiling for one modality. ceiling_aa=None means free negotiation."""
    model_config = ConfigDict(frozen=True)

    label: str
    ceiling_aa: Optional[float] = Field(None, ge=0, description="Maximum annual nominal rate (%)")
    floating_ceiling: Optional[str] = Field(None, description="Post-fixed ceiling description")
    program: Optional[str] = None
    citation: LegalCitation
    notes: Optional[str] = None

    @property
    def free_negotiation(self) -> bool:
        return self.ceiling_aa is None


class JudicialReview(BaseModel):
    model_config = ConfigDict(frozen=True)

    rate_aa: float = Field(..., gt=0)
    citation: str


class CreditLine(BaseModel):
    """Row of the credit-line comparison table."""
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    group: str = Field(..., description="pronaf | pronamp | moderacao | fundos | livre")
    ceiling_aa: Optional[float] = Field(None, ge=0)
    citation: str
    notes: Optional[str] = None


class Precedent(BaseModel):
    model_config = ConfigDict(frozen=True)

    court: str
    number: str
    summary: str

    def reference(self) -> str:
        return f"{self.court} - {self.number}"


class CeilingResolution(BaseModel):
    """Usable comparison rate for a modality, after the judicial fallback."""
    model_config = ConfigDict(frozen=True)

    rate_aa: float
    free_negotiation: bool
    modality: Optional[CreditModality] = None
    entry: Optional[LegalLimitEntry] = None
    citation: str


class RateExcessCheck(BaseModel):
    exceeds: bool
    excess_points: float
    ceiling_aa: float
    free_negotiation: bool
    citation: LegalCitation
    report_text: str


class CreditLineVerdict(str, Enum):
    REGULAR = "regular"
    EXCESS = "excess"
    FREE_NEGOTIATION = "free_negotiation"


class CreditLineComparison(BaseModel):
    line: CreditLine
    ceiling_aa: float
    contracted_rate_aa: float
    difference_pp: float
    exceeds: bool
    interest_excess: Optional[float] = Field(None, description="Currency excess, when principal and term are given")
    verdict: CreditLineVerdict
    verdict_text: str
    citation: str


class ModalityOption(BaseModel):
    value: CreditModality
    label: str
    ceiling_aa: Optional[float]
    program: Optional[str] = None


class ProgramSuggestion(BaseModel):
    program: str = Field(..., description="Pronaf | Pronamp | Convencional")
    group: Optional[str] = None
    name: str
    operating_rate_aa: float
    investment_rate_aa: float
    note: str


class CreditPurpose(str, Enum):
    OPERATING = "custeio"
    INVESTMENT = "investimento"
    MARKETING = "comercializacao"


class ProgramKind(str, Enum):
    PRONAF = "pronaf"
    PRONAMP = "pronamp"


class ProgramGroup(BaseModel):
    """Pronaf group or Pronamp ceilings by credit purpose."""
    model_config = ConfigDict(frozen=True)

    name: str
    operating_rate_aa: Optional[float] = Field(None, ge=0)
    investment_rate_aa: Optional[float] = Field(None, ge=0)
    max_income: Optional[float] = Field(None, gt=0, description="Gross annual income cap (R$), None when not income-based")
    annual_limit: Optional[float] = Field(None, gt=0, description="Financing limit per beneficiary per year (R$)")
    section: str
    regulation: str
    on_time_bonus: bool = False
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_rates(self) -> "ProgramGroup":
        if self.operating_rate_aa is None and self.investment_rate_aa is None:
            raise ValueError(f"{self.name} has no operating or investment rate")
        return self

    def ceiling_for(self, purpose: CreditPurpose) -> float:
        """Operating ceiling for custeio, investment ceiling otherwise; each falls back to the other."""
        if purpose == CreditPurpose.OPERATING:
            return self.operating_rate_aa if self.operating_rate_aa is not None else self.investment_rate_aa
        return self.investment_rate_aa if self.investment_rate_aa is not None else self.operating_rate_aa


class ProgramBracket(BaseModel):
    """Income bracket for program eligibility. income_ceiling=None closes the table."""
    model_config = ConfigDict(frozen=True)

    income_ceiling: Optional[float] = Field(None, gt=0)
    program: str = Field(..., description="Pronaf | Pronamp | Convencional")
    group: Optional[str] = None
    name: str
    operating_rate_aa: float
    investment_rate_aa: float
    note: str


class ProgramTable(BaseModel):
    excess_tolerance_pp: float = Field(..., ge=0)
    on_time_bonus_pct: float = Field(..., ge=0, le=100)
    default_pronaf_group: str
    pronaf_regulation: str
    pronaf_statute: str
    pronaf_groups: Dict[str, ProgramGroup]
    pronamp: ProgramGroup
    brackets: List[ProgramBracket] = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_brackets(self) -> "ProgramTable":
        if self.default_pronaf_group not in self.pronaf_groups:
            raise ValueError(f"default Pronaf group {self.default_pronaf_group} is not listed")
        ceilings = [b.income_ceiling for b in self.brackets]
        if ceilings[-1] is not None or None in ceilings[:-1]:
            raise ValueError("only the last income bracket may be open-ended")
        if ceilings[:-1] != sorted(ceilings[:-1]):
            raise ValueError("income brackets must be in ascending order")
        return self


class ProgramVerdict(str, Enum):
    REGULAR = "regular"
    EXCESS = "excesso"
    NOT_ELIGIBLE = "nao_enquadrado"


class ProgramComparison(BaseModel):
    """Contracted rate against the Pronaf group or Pronamp ceiling for a credit purpose."""
    program: ProgramKind
    group: str
    group_name: str
    purpose: CreditPurpose
    contracted_rate_aa: float
    ceiling_aa: float
    difference_pp: float = Field(..., description="Positive means excess")
    exceeds: bool
    excess_pct: float = Field(..., description="Excess relative to the ceiling (%)")
    interest_excess: Optional[float] = Field(None, description="Currency excess, when principal and term are given and the rate exceeds")
    on_time_bonus: bool = False
    bonus_pct: float = 0.0
    bonus_rate_aa: Optional[float] = Field(None, description="Ceiling after the on-time payment bonus")
    bonus_saving: Optional[float] = Field(None, description="Interest saved with the bonus (R$)")
    verdict: ProgramVerdict
    verdict_text: str
    citation: str
    alerts: List[str] = Field(default_factory=list)


class LegalLimitDocument(BaseModel):
    """Root shape of the legal limit data file."""
    revision: str
    judicial_review: JudicialReview
    modalities: Dict[CreditModality, LegalLimitEntry]
    credit_lines: List[CreditLine]
    program_factors: Dict[float, float]
    programs: ProgramTable
    precedents: Dict[str, List[Precedent]] = Field(default_factory=dict)
