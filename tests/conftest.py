"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timedelta, timezone
from fastapi.testclient import TestClient

from hcbs_gateway.api.main import create_app
from hcbs_gateway.domain.enums import RemittanceFileType
from hcbs_gateway.domain.models import Remittance, RemittanceDetail, RemittanceInfo
from hcbs_gateway.domain.transformer import RemittanceTransformer


class FakeClock:
    """Settable clock for breaker and generator tests"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc))


@pytest.fixture
def control_numbers():
    """Deterministic control numbers: 111111111, 222222222, 3333"""
    digits = iter("123")
    return lambda length: next(digits) * length


@pytest.fixture
def transformer(clock: FakeClock, control_numbers) -> RemittanceTransformer:
    return RemittanceTransformer(clock=clock, control_numbers=control_numbers)


@pytest.fixture
def client() -> TestClient:
    """Create FastAPI test client"""
    return TestClient(create_app())


@pytest.fixture
def sample_x12() -> str:
    """Minimal 835: one claim billed 100.00, paid 95.00, CO-45 adjustment of 5.00"""
    return (
        "ISA*00*          *00*          *ZZ*STATEMEDICAID  *ZZ*HOMECARELLC    "
        "*240115*1030*^*00501*000000001*0*P*:~\n"
        "GS*HP*STATEMEDICAID*HOMECARELLC*20240115*1030*1*X*005010X221A1~\n"
        "ST*835*0001*005010X221A1~\n"
        "BPR*I*95.00*C*ACH*CCP*01*111000025*DA*123456*1234567890**01*222000025*DA*654321*20240115~\n"
        "TRN*1*REM12345*1234567890~\n"
        "N1*PR*STATE MEDICAID*XV*MCD001~\n"
        "N1*PE*HOME CARE LLC*XX*1234567893~\n"
        "CLP*CLM001*1*100.00*95.00**MC~\n"
        "SVC*HC:T1019*100.00*95.00~\n"
        "DTM*472*20240110~\n"
        "CAS*CO*45*5.00~\n"
        "SE*10*0001~\n"
        "GE*1*1~\n"
        "IEA*1*000000001~"
    )


@pytest.fixture
def sample_remittance() -> Remittance:
    """Two-claim remittance already in normalized form"""
    return Remittance(
        header=RemittanceInfo(
            remittance_number="REM-2024-001",
            remittance_date="2024-01-15",
            payer_identifier="MCD001",
            payer_name="State Medicaid",
            total_amount=17500,
            claim_count=2,
            file_type=RemittanceFileType.CUSTOM,
        ),
        details=[
            RemittanceDetail(
                claim_number="CLM001",
                service_date="2024-01-02",
                billed_amount=10000,
                paid_amount=9500,
                adjustment_amount=500,
                adjustment_codes={"CO45": "CO:45:500"},
                service_code="T1019",
            ),
            RemittanceDetail(
                claim_number="CLM002",
                service_date="2024-01-03",
                billed_amount=8000,
                paid_amount=8000,
                adjustment_amount=0,
            ),
        ],
    )
