"""
Unit tests for the Chain Anomaly Detector.
Validates roll-over classification, capitalization, rate findings and chain totals.
"""
import pytest

from ruralcalc.cadeia.rules import ChainAnomalyDetector, RolloverRule, chain_anomaly_detector
from ruralcalc.cadeia.schemas import ChainContract, ContractType, FindingCode, FindingSeverity
from ruralcalc.core.exceptions import InvalidInputError


def contract(order: int, principal: float, contract_type: ContractType = ContractType.ORIGINAL, **extra) -> ChainContract:
    return ChainContract(order=order, principal=principal, contract_type=contract_type, **extra)


def codes(report):
    return [f.code for f in report.findings]


def test_refinancing_with_principal_increase():
    """100k refinanced into 115k is a critical roll-over with 15% growth."""
    report = chain_anomaly_detector.analyze([
        contract(1, 100000.0),
        contract(2, 115000.0, ContractType.REFINANCING),
    ])

    finding = report.contracts[1].findings[0]
    assert finding.code == FindingCode.ROLLOVER_PRINCIPAL_INCREASE
    assert finding.severity == FindingSeverity.CRITICAL
    assert finding.contracts == [1, 2]
    assert report.rollover_detected is True
    assert report.growth_pct == pytest.approx(15.0)
    assert report.total_growth == pytest.approx(15000.0)
    assert report.contracts[1].change_over_previous_pct == pytest.approx(15.0)
    assert FindingCode.CHAIN_ROLLOVER in codes(report)
    assert report.precedents


def test_novation_with_large_discount():
    """100k renegotiated into 70k is an informational finding, not a roll-over."""
    report = chain_anomaly_detector.analyze([
        contract(1, 100000.0),
        contract(2, 70000.0, ContractType.NOVATION),
    ])

    finding = report.contracts[1].findings[0]
    assert finding.code == FindingCode.DISCOUNTED_RENEGOTIATION
    assert finding.severity == FindingSeverity.INFORMATIONAL
    assert report.rollover_detected is False
    assert report.growth_pct == pytest.approx(-30.0)
    assert report.chain_findings == []


@pytest.mark.parametrize("new_principal, expected_code, expected_severity", [
    (100001.0, FindingCode.ROLLOVER_PRINCIPAL_INCREASE, FindingSeverity.CRITICAL),
    (100000.0, FindingCode.ROLLOVER_FLAT_PRINCIPAL, FindingSeverity.CRITICAL),
    (95000.0, FindingCode.ROLLOVER_FLAT_PRINCIPAL, FindingSeverity.CRITICAL),
    (90500.0, FindingCode.ROLLOVER_FLAT_PRINCIPAL, FindingSeverity.CRITICAL),
    (89999.0, FindingCode.DISCOUNTED_RENEGOTIATION, FindingSeverity.INFORMATIONAL),
])
def test_rollover_thresholds(new_principal: float, expected_code: FindingCode, expected_severity: FindingSeverity):
    """Increase, flat band and discount are split at 0% and -10%."""
    rule = RolloverRule(flat_tolerance_pct=10.0)
    finding = rule.evaluate(
        contract(2, new_principal, ContractType.REFINANCING),
        contract(1, 100000.0),
    )
    assert finding.code == expected_code
    assert finding.severity == expected_severity


@pytest.mark.parametrize("contract_type", [ContractType.AMENDMENT, ContractType.RENEGOTIATION, ContractType.ORIGINAL])
def test_other_contract_types_are_not_rollovers(contract_type: ContractType):
    """Only refinancing and novation are classified as roll-over candidates."""
    report = chain_anomaly_detector.analyze([
        contract(1, 100000.0),
        contract(2, 150000.0, contract_type),
    ])
    assert report.rollover_detected is False
    assert report.contracts[1].change_over_previous_pct is None


def test_unordered_input_is_sorted():
    """Contracts are evaluated in order, whatever the input order."""
    report = chain_anomaly_detector.analyze([
        contract(2, 115000.0, ContractType.REFINANCING),
        contract(1, 100000.0),
    ])
    assert [a.contract.order for a in report.contracts] == [1, 2]
    assert report.original_principal == 100000.0
    assert report.current_principal == 115000.0
    assert report.rollover_detected is True


def test_comparison_is_pairwise_only():
    """Each contract is compared with its immediate predecessor."""
    report = chain_anomaly_detector.analyze([
        contract(1, 100000.0),
        contract(2, 50000.0, ContractType.NOVATION),
        contract(3, 60000.0, ContractType.REFINANCING),
    ])
    assert report.contracts[1].findings[0].code == FindingCode.DISCOUNTED_RENEGOTIATION
    assert report.contracts[2].findings[0].code == FindingCode.ROLLOVER_PRINCIPAL_INCREASE
    assert report.contracts[2].change_over_previous_pct == pytest.approx(20.0)


def test_rate_and_mora_findings():
    """Rates above the generic and mora ceilings are critical."""
    report = chain_anomaly_detector.analyze([
        contract(1, 100000.0, rate_aa=14.0, mora_rate_aa=12.0),
    ])
    found = codes(report)
    assert FindingCode.RATE_ABOVE_CEILING in found
    assert FindingCode.MORA_ABOVE_CEILING in found
    assert report.rate_above_ceiling_detected is True
    assert all(f.severity == FindingSeverity.CRITICAL for f in report.findings)


def test_incorporated_charges_accumulate():
    """Incorporated charges are critical and summed across the chain."""
    report = chain_anomaly_detector.analyze([
        contract(1, 100000.0),
        contract(2, 60000.0, ContractType.NOVATION, incorporated_charges=5000.0),
        contract(3, 30000.0, ContractType.NOVATION, incorporated_charges=2500.0),
    ])

    assert report.incorporated_charges_total == pytest.approx(7500.0)
    assert report.capitalization_detected is True
    assert report.contracts[1].capitalization_detected is True
    total = [f for f in report.chain_findings if f.code == FindingCode.TOTAL_CHARGES_CAPITALIZED]
    assert len(total) == 1
    assert total[0].contracts == [1, 2, 3]


@pytest.mark.parametrize("new_principal, expected", [
    (130000.0, True),
    (120500.0, True),
    (120000.0, False),
    (95000.0, False),
])
def test_disproportionate_increase_over_prior_balance(new_principal: float, expected: bool):
    """Only a principal more than 20% above the declared prior balance is a warning."""
    report = chain_anomaly_detector.analyze([
        contract(1, 100000.0),
        contract(2, new_principal, ContractType.AMENDMENT, prior_balance=100000.0),
    ])
    findings = [f for f in report.contracts[1].findings if f.code == FindingCode.DISPROPORTIONATE_INCREASE]
    assert bool(findings) is expected
    if expected:
        assert findings[0].severity == FindingSeverity.WARNING


def test_prior_balance_ignored_on_first_contract():
    """The first contract has no predecessor to compare with."""
    report = chain_anomaly_detector.analyze([contract(1, 130000.0, prior_balance=100000.0)])
    assert report.findings == []


@pytest.mark.parametrize("contracts", [[], [ChainContract(order=1, principal=100000.0)]])
def test_short_chains_have_no_pairwise_findings(contracts):
    """Chains shorter than two contracts report no pairwise findings."""
    report = chain_anomaly_detector.analyze(contracts)
    assert report.rollover_detected is False
    assert report.growth_pct == 0.0
    assert report.findings == []


def test_injected_thresholds():
    """Thresholds can be injected."""
    detector = ChainAnomalyDetector(flat_tolerance_pct=40.0)
    report = detector.analyze([
        contract(1, 100000.0),
        contract(2, 70000.0, ContractType.NOVATION),
    ])
    assert report.contracts[1].findings[0].code == FindingCode.ROLLOVER_FLAT_PRINCIPAL
    assert report.rollover_detected is True


def test_duplicate_order_rejected():
    """Two contracts in the same position break the sequence and are rejected."""
    with pytest.raises(InvalidInputError) as exc:
        chain_anomaly_detector.analyze([
            contract(1, 100000.0),
            contract(1, 115000.0, ContractType.REFINANCING),
        ])
    assert exc.value.field == "order"
