"""
Pydantic schemas for contract chain analysis.
Findings are immutable once created.
"""
from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ruralcalc.limites.schemas import Precedent


class ContractType(str, Enum):
    ORIGINAL = "original"
    AMENDMENT = "aditivo"
    REFINANCING = "refinanciamento"
    NOVATION = "novacao"
    RENEGOTIATION = "renegociacao"


class FindingSeverity(str, Enum):
    CRITICAL = "critico"
    WARNING = "atencao"
    INFORMATIONAL = "informativo"


class FindingCode(str, Enum):
    RATE_ABOVE_CEILING = "TAXA_ACIMA_LEGAL"
    MORA_ABOVE_CEILING = "MORA_ACIMA_LEGAL"
    ROLLOVER_PRINCIPAL_INCREASE = "MATA_MATA_AUMENTO"
    ROLLOVER_FLAT_PRINCIPAL = "MATA_MATA_MANTIDO"
    DISCOUNTED_RENEGOTIATION = "RENEGOCIACAO_COM_DESCONTO"
    CHARGES_CAPITALIZED = "CAPITALIZACAO_INDEVIDA"
    DISPROPORTIONATE_INCREASE = "AUMENTO_DESPROPORCIONAL"
    CHAIN_ROLLOVER = "CADEIA_MATA_MATA"
    TOTAL_CHARGES_CAPITALIZED = "TOTAL_ENCARGOS_CAPITALIZADOS"


ROLLOVER_CODES = (FindingCode.ROLLOVER_PRINCIPAL_INCREASE, FindingCode.ROLLOVER_FLAT_PRINCIPAL)


class ChainContract(BaseModel):
    """One contract in a refinancing chain."""
    model_config = ConfigDict(frozen=True)

    order: int = Field(..., ge=1, description="Position in the chain")
    contract_type: ContractType = Field(ContractType.ORIGINAL, description="Contract type")
    contract_number: Optional[str] = Field(None, description="Contract identifier as printed")
    principal: float = Field(..., gt=0, description="Nominal contract amount (R$)")
    prior_balance: Optional[float] = Field(None, gt=0, description="Declared balance of the previous contract (R$)")
    incorporated_charges: Optional[float] = Field(None, ge=0, description="Interest/penalties folded into the principal (R$)")
    rate_aa: Optional[float] = Field(None, ge=0, le=100, description="Remuneratory rate (% a.a.)")
    mora_rate_aa: Optional[float] = Field(None, ge=0, le=100, description="Mora rate (% a.a.)")
    contracting_date: Optional[date] = None
    maturity_date: Optional[date] = None

    @property
    def reference(self) -> str:
        return f"nº {self.contract_number}" if self.contract_number else f"{self.order}"


class ChainFinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    severity: FindingSeverity
    code: FindingCode
    title: str
    description: str
    citation: str
    contracts: List[int] = Field(..., description="Chain positions concerned")


class ContractAnalysis(BaseModel):
    contract: ChainContract
    findings: List[ChainFinding] = Field(default_factory=list)
    rollover_detected: bool = False
    capitalization_detected: bool = False
    change_over_previous_pct: Optional[float] = Field(None, description="Principal change over the predecessor (%)")


class ChainReport(BaseModel):
    """Chain-wide totals, per-contract findings and chain-level findings."""
    original_principal: float
    current_principal: float
    total_growth: float
    growth_pct: float
    incorporated_charges_total: float
    contracts: List[ContractAnalysis] = Field(default_factory=list)
    chain_findings: List[ChainFinding] = Field(default_factory=list)
    rollover_detected: bool
    capitalization_detected: bool
    rate_above_ceiling_detected: bool
    precedents: List[Precedent] = Field(default_factory=list)

    @property
    def findings(self) -> List[ChainFinding]:
        """Chain-level findings first, then per-contract findings in chain order."""
        return self.chain_findings + [f for analysis in self.contracts for f in analysis.findings]
