"""
Shared fakes and fixtures.
"""

from __future__ import annotations

from typing import Any, Optional

import pytest

from solux_api.codes import InMemoryCodeStore, VerificationCodeService
from solux_api.enrollment import Address, EnrollmentOrchestrator, EnrollmentProfile
from solux_api.errors import PermissionDenied
from solux_api.lithic import LithicAPIError


class FakeClock:
    """Manually advanced clock (unix seconds)."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMailer:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, to_address: str, subject: str, html_body: str) -> None:
        if self.fail:
            raise ConnectionError("mail provider unreachable")
        self.sent.append((to_address, subject, html_body))


class FakeIssuing:
    """Issuing API double recording every call."""

    def __init__(
        self,
        account: Optional[dict[str, Any]] = None,
        card: Optional[dict[str, Any]] = None,
        account_error: Optional[LithicAPIError] = None,
        card_error: Optional[LithicAPIError] = None,
    ):
        self.account = account if account is not None else {"token": "ah_123", "account_token": "acct_123"}
        self.card = card if card is not None else {
            "token": "card_456",
            "pan": "4111111289144142",
            "cvv": "776",
            "exp_month": "06",
            "exp_year": "2029",
            "last_four": "4142",
            "spend_limit": 1_000_000,
            "state": "OPEN",
        }
        self.account_error = account_error
        self.card_error = card_error
        self.account_calls: list[dict[str, Any]] = []
        self.card_calls: list[dict[str, Any]] = []

    async def create_account_holder(self, first_name, last_name, email, address=None, dob=None, ssn_last_four=None):
        self.account_calls.append(
            {
                "first_name": first_name,
                "last_name": last_name,
                "email": email,
                "address": address,
                "dob": dob,
                "ssn_last_four": ssn_last_four,
            }
        )
        if self.account_error:
            raise self.account_error
        return self.account

    async def create_card(self, account_token, spend_limit, spend_limit_duration="MONTHLY", memo=None):
        self.card_calls.append(
            {
                "account_token": account_token,
                "spend_limit": spend_limit,
                "spend_limit_duration": spend_limit_duration,
                "memo": memo,
            }
        )
        if self.card_error:
            raise self.card_error
        return self.card


class FakeCamera:
    def __init__(self, allow: bool = True):
        self.allow = allow
        self.active = False
        self.acquired = 0
        self.released = 0

    async def acquire(self) -> None:
        if not self.allow:
            raise PermissionDenied()
        self.active = True
        self.acquired += 1

    async def release(self) -> None:
        if self.active:
            self.active = False
            self.released += 1


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def store() -> InMemoryCodeStore:
    return InMemoryCodeStore()


@pytest.fixture
def code_service(store, mailer, clock) -> VerificationCodeService:
    return VerificationCodeService(store, mailer, ttl_seconds=600, clock=clock)


@pytest.fixture
def issuing() -> FakeIssuing:
    return FakeIssuing()


@pytest.fixture
def orchestrator(issuing) -> EnrollmentOrchestrator:
    return EnrollmentOrchestrator(issuing)


@pytest.fixture
def profile() -> EnrollmentProfile:
    return EnrollmentProfile(
        first_name="Ada",
        last_name="Lovelace",
        email="a@b.com",
        date_of_birth="1990-12-10",
        address=Address(line1="1 Analytical Way", city="New York", state="NY", postal_code="10001"),
        ssn_last_four="1234",
    )
