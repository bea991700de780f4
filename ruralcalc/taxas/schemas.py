"""
Pydantic schemas for rate composition (TCR) inputs and results.
Loan terms are immutable once constructed.
"""
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ruralcalc.limites.schemas import CreditModality


class Compounding(str, Enum):
    """Installment periodicity. Annual is the rural-credit default (crop to crop)."""
    ANNUAL = "anual"
    MONTHLY = "mensal"


class RateRegime(str, Enum):
    """TCR regime: inflation-indexed (TCRpós) or fixed-indexed (TCRpré)."""
    INFLATION_INDEXED = "pos_fixada"
    FIXED_INDEXED = "pre_fixada"


class LoanTerms(BaseModel):
    """Loan terms supplied by the caller for one calculation."""
    model_config = ConfigDict(frozen=True)

    principal: float = Field(..., gt=0, description="Principal amount (R$)")
    contracting_date: date = Field(..., description="Contract signature date")
    maturity_date: date = Field(..., description="Contract maturity date")
    evaluation_date: date = Field(..., description="Reference date of the calculation")
    term_months: int = Field(..., ge=1, description="Term in installments/months")
    remuneratory_rate_aa: float = Field(..., ge=0, le=100, description="Nominal annual remuneratory rate (%)")
    mora_rate_aa: Optional[float] = Field(None, ge=0, le=100, description="Nominal annual default rate (%)")
    penalty_pct: Optional[float] = Field(None, ge=0, le=100, description="Penalty over the outstanding balance (%)")
    rate_regime: RateRegime = Field(RateRegime.FIXED_INDEXED, description="TCR regime")
    modality: Optional[CreditModality] = Field(None, description="Credit modality; absent -> judicial ceiling")


class IndexInputs(BaseModel):
    """Macro-index readings and CMN factors, supplied by the caller (never fetched)."""
    model_config = ConfigDict(frozen=True)

    monthly_index_readings: List[float] = Field(default_factory=list, description="Monthly IPCA variations (%)")
    benchmark_rate_aa: Optional[float] = Field(None, ge=0, description="PRE benchmark rate (%)")
    fixed_rate_aa: Optional[float] = Field(None, ge=0, description="Jm fixed reference rate (%); defaults to the remuneratory rate")
    implicit_inflation_factor: Optional[float] = Field(None, gt=0, description="FII published by the central bank")
    program_factor: float = Field(0.0, gt=-1, description="FP (CMN)")
    adjustment_factor: float = Field(0.0, gt=-1, description="FA (CMN)")


class CalculationStep(BaseModel):
    """One step of the calculation memory consumed by document generation."""
    description: str
    formula: str
    values: Dict[str, Union[str, int, float]] = Field(default_factory=dict)
    result: str


class TcrResult(BaseModel):
    """Outcome of the TCR calculation for one set of loan terms."""
    rate_regime: RateRegime
    principal: float
    contracting_date: date
    maturity_date: date
    evaluation_date: date
    days_elapsed: int
    months_elapsed: int

    correction_factor: Optional[float] = Field(None, description="FAM (inflation-indexed)")
    accumulated_index_pct: Optional[float] = None
    implicit_inflation_factor: Optional[float] = Field(None, description="FII (fixed-indexed)")
    fixed_rate_aa: Optional[float] = Field(None, description="Jm (fixed-indexed)")
    program_factor: float
    adjustment_factor: float

    effective_rate: float = Field(
        ..., description="Effective TCR (%): over the elapsed period when indexed, per year when fixed"
    )
    annualized_rate_aa: float = Field(..., description="TCR per year (%), compared against annual ceilings")

    updated_balance: float
    remuneratory_interest: float
    overdue_days: int
    mora_interest: float
    penalty: float
    total_due: float

    steps: List[CalculationStep] = Field(default_factory=list)
