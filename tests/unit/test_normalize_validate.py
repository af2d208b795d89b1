"""Unit tests for remittance normalization, validation and format detection"""

import pytest

from hcbs_gateway.domain.enums import DataFormat
from hcbs_gateway.domain.exceptions import RemittanceValidationError
from hcbs_gateway.domain.models import RemittanceDetail, RemittanceInfo
from hcbs_gateway.domain.remittance import collect_violations, detect_format, normalize, validate


def detail(**overrides) -> RemittanceDetail:
    values = dict(
        claim_number="CLM001",
        service_date="2024-01-02",
        billed_amount=10000,
        paid_amount=9500,
    )
    values.update(overrides)
    return RemittanceDetail(**values)


def header(**overrides) -> RemittanceInfo:
    values = dict(remittance_number="REM-1", remittance_date="2024-01-15", total_amount=9500, claim_count=1)
    values.update(overrides)
    return RemittanceInfo(**values)


class TestNormalize:
    def test_header_totals_come_from_details(self):
        stated = header(total_amount=1, claim_count=7)

        normalized_header, _ = normalize(stated, [detail(), detail(claim_number="CLM002", paid_amount=500)])

        assert normalized_header.total_amount == 10000
        assert normalized_header.claim_count == 2
        assert stated.total_amount == 1

    def test_dates_and_amounts_are_canonicalized(self):
        _, details = normalize(
            header(remittance_date="01/15/2024"),
            [detail(service_date="20240102", billed_amount="100.00", paid_amount="$95", claim_number=" C1 ")],
        )

        assert details[0].service_date == "2024-01-02"
        assert details[0].billed_amount == 10000
        assert details[0].paid_amount == 9500
        assert details[0].claim_number == "C1"

    def test_adjustment_derived_when_absent(self):
        _, details = normalize(header(), [detail(adjustment_amount=None)])

        assert details[0].adjustment_amount == 500

    def test_unparseable_date_is_left_for_review(self):
        _, details = normalize(header(), [detail(service_date="sometime")])

        assert details[0].service_date == "sometime"


class TestValidate:
    def test_valid_remittance_passes(self):
        validate(header(), [detail()])

    def test_every_violation_is_reported_at_once(self):
        with pytest.raises(RemittanceValidationError) as exc_info:
            validate(
                header(remittance_number=""),
                [detail(claim_number=""), detail(claim_number="CLM002", billed_amount=None)],
            )

        violations = exc_info.value.violations
        assert [(v.field, v.index) for v in violations] == [
            ("remittance_number", None),
            ("claim_number", 0),
            ("billed_amount", 1),
            ("total_amount", None),
        ]
        assert exc_info.value.to_dict()["details"]["violations"][1]["index"] == 0

    def test_total_within_one_cent_is_accepted(self):
        assert collect_violations(header(total_amount=9501), [detail()]) == []

    def test_total_mismatch_is_reported(self):
        violations = collect_violations(header(total_amount=9000), [detail()])

        assert len(violations) == 1
        assert "90.00" in violations[0].message
        assert "95.00" in violations[0].message

    def test_empty_details_fail(self):
        violations = collect_violations(header(), [])

        assert [v.field for v in violations] == ["details"]


@pytest.mark.parametrize(
    "file_name,content,expected",
    [
        ("payment.835", "", DataFormat.X12),
        ("payment.EDI", "", DataFormat.X12),
        ("payment.csv", "", DataFormat.CSV),
        ("payment.json", "", DataFormat.JSON),
        ("upload", "ISA*00*", DataFormat.X12),
        ("upload", '{"remittanceNumber": "R"}', DataFormat.JSON),
        ("upload", "a,b,c\n1,2,3\n", DataFormat.CSV),
        ("upload", "something else", DataFormat.X12),
    ],
)
def test_detect_format(file_name, content, expected):
    assert detect_format(file_name, content) == expected
