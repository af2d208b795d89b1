"""Unit tests for JSON remittance documents"""

import json

import pytest

from hcbs_gateway.domain.exceptions import RemittanceParseError
from hcbs_gateway.domain.json_format import parse_json, remittance_to_document, render_json


def test_camel_case_document_with_header_block():
    content = json.dumps(
        {
            "header": {
                "remittanceNumber": "REM-9",
                "remittanceDate": "2024-03-01",
                "payerId": "MCD001",
                "payerName": "State Medicaid",
                "totalAmount": "175.00",
            },
            "details": [
                {"claimNumber": "CLM001", "serviceDate": "2024-02-01", "billedAmount": 100, "paidAmount": 95.5},
                {"claimNumber": "CLM002", "serviceDate": "2024-02-02", "billedAmount": "80.00", "paidAmount": "79.50"},
            ],
        }
    )

    remittance = parse_json(content)

    assert remittance.header.remittance_number == "REM-9"
    assert remittance.header.payer_identifier == "MCD001"
    assert remittance.header.total_amount == 17500
    assert remittance.header.claim_count == 2
    assert [d.paid_amount for d in remittance.details] == [9550, 7950]
    assert remittance.details[0].billed_amount == 10000


def test_flat_document_with_snake_case_and_claims_list():
    content = json.dumps(
        {
            "remittance_number": "REM-10",
            "date": "2024-03-01",
            "claims": [
                {
                    "claim": "C1",
                    "date": "2024-02-01",
                    "billed": "10",
                    "paid": "8",
                    "adjustments": [{"code": "CO45", "amount": "2.00"}, "PR2"],
                }
            ],
        }
    )

    remittance = parse_json(content)

    detail = remittance.details[0]
    assert remittance.header.remittance_date == "2024-03-01"
    assert detail.claim_number == "C1"
    assert detail.adjustment_codes == {"ADJ0": "CO45:200", "ADJ1": "PR2"}


@pytest.mark.parametrize(
    "content",
    ["{not json", "[1, 2]", json.dumps({"details": []}), json.dumps({"header": "REM-1"})],
)
def test_malformed_documents_fail(content):
    with pytest.raises(RemittanceParseError):
        parse_json(content)


def test_non_numeric_amount_fails():
    content = json.dumps({"remittanceNumber": "R", "details": [{"claimNumber": "C", "paidAmount": "n/a"}]})

    with pytest.raises(RemittanceParseError, match="Invalid amount"):
        parse_json(content)


def test_infinite_amount_fails():
    content = '{"remittanceNumber": "R", "details": [{"claimNumber": "C", "billed": Infinity, "paidAmount": "1.00"}]}'

    with pytest.raises(RemittanceParseError, match="Invalid amount"):
        parse_json(content)


def test_document_uses_decimal_strings(sample_remittance):
    document = remittance_to_document(sample_remittance)

    assert document["header"]["totalAmount"] == "175.00"
    assert document["header"]["fileType"] == "CUSTOM"
    assert document["details"][0]["paidAmount"] == "95.00"
    assert document["details"][1]["serviceCode"] is None


def test_rendered_json_parses_back(sample_remittance):
    parsed = parse_json(render_json(sample_remittance))

    assert parsed.header.remittance_number == "REM-2024-001"
    assert [d.paid_amount for d in parsed.details] == [9500, 8000]
    assert parsed.details[0].adjustment_codes == {"CO45": "CO:45:500"}
