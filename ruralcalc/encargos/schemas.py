"""
Pydantic schemas for ancillary charge (IOF, TAC, TEC) analysis.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChargeKind(str, Enum):
    TRANSACTION_TAX = "iof"
    ORIGINATION_FEE = "tac"
    STATEMENT_FEE = "tec"
    OTHER = "outros"


class ChargeStatus(str, Enum):
    LEGAL = "legal"
    PROHIBITED = "vedado"


class SurchargeCharges(BaseModel):
    """
    Amounts charged by the lender. Absent charges are not assessed.
    Accepts snake_case or camelCase keys; any other key is rejected.
    """
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    transaction_tax: Optional[float] = Field(None, ge=0, alias="transactionTax", description="IOF charged (R$)")
    origination_fee: Optional[float] = Field(None, ge=0, alias="originationFee", description="TAC charged (R$)")
    statement_fee: Optional[float] = Field(None, ge=0, alias="statementFee", description="TEC charged (R$)")
    other: Optional[float] = Field(None, ge=0, description="Other charges (R$)")


class ChargeAssessment(BaseModel):
    kind: ChargeKind
    label: str
    charged: float
    legal_value: float
    excess: float = Field(..., ge=0)
    status: ChargeStatus
    citation: str
    description: str


class SurchargeReport(BaseModel):
    principal: float
    nominal_rate_aa: float
    term_months: int
    term_years: float
    items: List[ChargeAssessment] = Field(default_factory=list)
    total_charged: float
    total_legal: float
    total_excess: float
    effective_cost_nominal_aa: float = Field(..., description="Nominal rate plus charges spread linearly (%)")
    effective_cost_compound_aa: float = Field(..., description="Compounded approximation of the total cost (%)")
    alerts: List[str] = Field(default_factory=list)
