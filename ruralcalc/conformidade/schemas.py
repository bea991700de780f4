"""
Pydantic schemas for legal compliance verdicts.
Alert strings always embed the rate, the limit and a citation token.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from ruralcalc.limites.schemas import CreditModality


class ComplianceStatus(str, Enum):
    COMPLIANT = "conforme"
    WARNING = "atencao"
    NON_COMPLIANT = "nao_conforme"
    UNDETERMINED = "indeterminado"


class RateType(str, Enum):
    REMUNERATORY = "remuneratorios"
    MORA = "mora"
    PENALTY = "multa"


class RateVerdict(BaseModel):
    """Verdict for one rate type."""
    rate_type: RateType
    rate: Optional[float] = Field(None, description="Contracted rate (%), None when not supplied")
    limit: float = Field(..., description="Ceiling used for the comparison (%)")
    status: ComplianceStatus
    excess: Optional[float] = Field(None, description="Rate minus limit when above the ceiling")
    citation: str


class ComplianceVerdict(BaseModel):
    """Aggregated compliance result for one set of contracted rates."""
    status: ComplianceStatus
    remuneratory: RateVerdict
    mora: RateVerdict
    penalty: RateVerdict
    tcr_aa: Optional[float] = Field(None, description="Effective TCR considered, if supplied")
    modality: Optional[CreditModality] = None
    free_negotiation: bool = Field(..., description="Ceiling came from the judicial-review fallback")
    alerts: List[str] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)
    grounding: List[str] = Field(default_factory=list)
