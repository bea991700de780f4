"""
Pydantic schemas for amortization simulation.
Every schedule line carries its contracted figures and the parallel figures at the legal ceiling.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from ruralcalc.conformidade.schemas import ComplianceVerdict
from ruralcalc.limites.schemas import CreditModality, Precedent
from ruralcalc.taxas.schemas import Compounding


class AmortizationSystem(str, Enum):
    PRICE = "price"
    SAC = "sac"
    SAF = "saf"


class SchedulePeriod(BaseModel):
    """One period of a single-rate schedule."""
    number: int = Field(..., ge=1, description="Installment number")
    opening_balance: float = Field(..., ge=0)
    interest: float
    amortization: float
    installment: float
    closing_balance: float = Field(..., ge=0, description="Floored at zero")


class ScheduleLine(SchedulePeriod):
    """Contracted period plus the same period at the legal ceiling rate."""
    legal: SchedulePeriod
    excess: float = Field(..., description="Contracted interest minus legal interest")
    paid_amount: Optional[float] = Field(None, description="Amount actually paid, when supplied")
    paid_delta: Optional[float] = Field(None, description="Paid amount minus contracted installment")


class AmortizationRequest(BaseModel):
    """Amortization simulation request payload."""
    principal: float = Field(..., gt=0, description="Financed amount (R$)")
    annual_rate_aa: float = Field(..., ge=0, le=100, description="Contracted annual rate (%)")
    installments: int = Field(..., ge=1, description="Total number of installments")
    paid_installments: int = Field(0, ge=0, description="Installments already paid")
    system: AmortizationSystem = AmortizationSystem.PRICE
    compounding: Compounding = Compounding.ANNUAL
    paid_amounts: Optional[List[float]] = Field(None, description="Amounts actually paid per installment")
    modality: Optional[CreditModality] = None

    @model_validator(mode="after")
    def validate_paid_installments(self) -> "AmortizationRequest":
        if self.paid_installments > self.installments:
            raise ValueError("paid_installments cannot exceed installments")
        if self.paid_amounts is not None and len(self.paid_amounts) > self.installments:
            raise ValueError("paid_amounts cannot be longer than the schedule")
        return self


class AmortizationResult(BaseModel):
    """Dual schedule with totals over the paid installments."""
    principal: float
    annual_rate_aa: float
    installments: int
    paid_installments: int
    system: AmortizationSystem
    compounding: Compounding
    periodic_rate: float = Field(..., description="Contracted rate per period (decimal)")

    legal_rate_aa: float = Field(..., description="Ceiling used for the legal schedule (%)")
    legal_periodic_rate: float
    modality: Optional[CreditModality] = None
    legal_citation: str

    initial_installment: float
    total_paid: float = Field(..., description="Contracted installments over the paid subset")
    total_paid_declared: Optional[float] = Field(None, description="Sum of the amounts actually paid")
    total_interest: float
    total_amortized: float
    total_legal_interest: float
    total_excess: float = Field(..., description="total_interest - total_legal_interest")
    current_balance: float
    legal_balance: float

    schedule: List[ScheduleLine]
    notes: List[str] = Field(default_factory=list)
    alerts: List[str] = Field(default_factory=list)
    precedents: List[Precedent] = Field(default_factory=list)
    compliance: ComplianceVerdict


class PaidInstallmentAnalysis(BaseModel):
    """Paid installments compared with an equal-installment schedule at the legal ceiling."""
    installments: int
    paid_installments: int
    average_paid: float
    total_paid: float
    legal_installment: float
    legal_total: float
    excess_paid: float = Field(..., ge=0)
    excess_pct: float = Field(..., description="Excess as a percentage of the legal total")
    legal_rate_aa: float
    declared_balance: float
    revised_balance: float
    balance_difference: float = Field(..., ge=0)
    notes: List[str] = Field(default_factory=list)
