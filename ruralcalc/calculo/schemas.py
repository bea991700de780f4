"""
Pydantic schemas for the end-to-end calculation pipeline.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ruralcalc.amortizacao.schemas import AmortizationResult, AmortizationSystem, PaidInstallmentAnalysis
from ruralcalc.cadeia.schemas import ChainContract, ChainReport
from ruralcalc.conformidade.schemas import ComplianceVerdict
from ruralcalc.encargos.schemas import SurchargeCharges, SurchargeReport
from ruralcalc.limites.schemas import CeilingResolution, RateExcessCheck
from ruralcalc.taxas.schemas import Compounding, IndexInputs, LoanTerms, TcrResult


class AmortizationOptions(BaseModel):
    """Schedule options. The principal and rate come from the loan terms."""
    system: AmortizationSystem = AmortizationSystem.PRICE
    compounding: Compounding = Compounding.ANNUAL
    installments: Optional[int] = Field(None, ge=1, description="Defaults to the loan term in months")
    paid_installments: int = Field(0, ge=0)
    paid_amounts: Optional[List[float]] = None


class PaidInstallmentInputs(BaseModel):
    """Figures declared by the borrower and the bank for the paid-installment analysis."""
    installments: int = Field(..., ge=1)
    paid_installments: int = Field(..., ge=0)
    average_paid: float = Field(..., gt=0, description="Average amount paid per installment (R$)")
    declared_balance: float = Field(..., gt=0, description="Outstanding balance declared by the bank (R$)")
    compounding: Compounding = Compounding.ANNUAL


class CalculationRequest(BaseModel):
    """Full calculation request payload."""
    terms: LoanTerms
    indexes: Optional[IndexInputs] = None
    amortization: Optional[AmortizationOptions] = None
    paid_installments: Optional[PaidInstallmentInputs] = None
    charges: Optional[SurchargeCharges] = None
    regulated_funding: bool = Field(True, description="Loan funded with regulated (controlled) resources")
    contract_chain: Optional[List[ChainContract]] = None


class CalculationResult(BaseModel):
    """Structured engine output consumed by persistence and document generation."""
    correlation_id: str
    ceiling: CeilingResolution
    tcr: TcrResult
    compliance: ComplianceVerdict
    rate_check: Optional[RateExcessCheck] = None
    legal_grounding: str
    amortization: Optional[AmortizationResult] = None
    paid_installments: Optional[PaidInstallmentAnalysis] = None
    surcharges: Optional[SurchargeReport] = None
    chain: Optional[ChainReport] = None

    def to_record(self) -> Dict[str, Any]:
        """JSON-safe representation for storage."""
        return self.model_dump(mode="json")
