"""
Account and card enrollment.

The orchestrator creates an account holder on the issuing API and then a
virtual card bound to it. If account creation fails the card is never
requested. Nothing is persisted locally.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

import structlog

from .errors import AccountCreationFailed, CardCreationFailed, ProfileIncomplete
from .lithic import LithicAPIError, provider_message

logger = structlog.get_logger()

STATUS_HANDSHAKE = "Executing Cryptographic Handshake..."
STATUS_PROVISIONING = "Provisioning Virtual Asset Vault..."
STATUS_FINALIZING = "Finalizing Global Credit Line..."


@dataclass
class Address:
    line1: str = ""
    city: str = ""
    state: str = "NY"
    postal_code: str = ""
    country: str = "USA"

    def to_payload(self) -> dict[str, str]:
        return {
            "address1": self.line1,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
        }


@dataclass
class EnrollmentProfile:
    """Operator identity, filled in field by field by the enrollment form."""

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    date_of_birth: str = ""  # ISO date, e.g. 1990-04-01
    address: Address = field(default_factory=Address)
    ssn_last_four: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def missing_identity_fields(self) -> list[str]:
        """Fields the profile step requires that are still empty."""
        required = {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "address.line1": self.address.line1,
            "address.city": self.address.city,
            "address.postal_code": self.address.postal_code,
        }
        return [name for name, value in required.items() if not value]

    def missing_fields(self) -> list[str]:
        """Fields still missing before the profile can be submitted."""
        missing = self.missing_identity_fields()
        for name in ("state", "country"):
            if not getattr(self.address, name):
                missing.append(f"address.{name}")
        if not self.date_of_birth:
            missing.append("date_of_birth")
        if len(self.ssn_last_four) != 4 or not self.ssn_last_four.isdigit():
            missing.append("ssn_last_four")
        return missing

    def is_complete(self) -> bool:
        return not self.missing_fields()


@dataclass(frozen=True)
class CardDetails:
    """Issued card as returned by the sandbox (test PAN data only)."""

    token: str
    pan: str
    cvv: str
    exp_month: str
    exp_year: str
    last_four: str
    spend_limit: int
    state: str

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "CardDetails":
        return cls(
            token=str(data["token"]),
            pan=str(data.get("pan", "")),
            cvv=str(data.get("cvv", "")),
            exp_month=str(data.get("exp_month", "")),
            exp_year=str(data.get("exp_year", "")),
            last_four=str(data.get("last_four", "")),
            spend_limit=int(data.get("spend_limit") or 0),
            state=str(data.get("state", "")),
        )


@dataclass(frozen=True)
class EnrollmentResult:
    """
    Outcome of a successful enrollment.

    `account_token` is the financial account the card is bound to;
    `account_holder_token` is the holder record created for the operator.
    The sandbox may return only one of them, in which case both carry it.
    """

    account_token: str
    card_token: str
    card_details: Optional[CardDetails] = None
    account_holder_token: Optional[str] = None


class IssuingClient(Protocol):
    """The subset of the issuing API the orchestrator uses."""

    async def create_account_holder(
        self,
        first_name: str,
        last_name: str,
        email: str,
        address: Optional[dict[str, Any]] = None,
        dob: Optional[str] = None,
        ssn_last_four: Optional[str] = None,
    ) -> dict[str, Any]:
        ...

    async def create_card(
        self,
        account_token: str,
        spend_limit: int,
        spend_limit_duration: str = "MONTHLY",
        memo: Optional[str] = None,
    ) -> dict[str, Any]:
        ...


def _failure_message(e: LithicAPIError, fallback: str) -> str:
    # No payload means the request never got a response.
    if e.payload is None:
        return e.message
    return provider_message(e.payload, fallback)


class EnrollmentOrchestrator:
    """
    Sequences account holder creation and card creation.

    Args:
        issuing: Issuing API client
        spend_limit: Spend limit for new cards, in minor units
        spend_limit_duration: Reset cadence for the spend limit
        memo: Card memo
    """

    def __init__(
        self,
        issuing: IssuingClient,
        spend_limit: int = 1_000_000,
        spend_limit_duration: str = "MONTHLY",
        memo: Optional[str] = "Solux Virtual Card",
    ):
        self.issuing = issuing
        self.spend_limit = spend_limit
        self.spend_limit_duration = spend_limit_duration
        self.memo = memo

    async def enroll(
        self,
        profile: EnrollmentProfile,
        on_status: Optional[Callable[[str], None]] = None,
    ) -> EnrollmentResult:
        """
        Create an account holder and a virtual card for `profile`.

        Raises:
            ProfileIncomplete: the profile is missing required fields
            AccountCreationFailed: account holder creation was rejected or failed
            CardCreationFailed: card creation was rejected or failed
        """
        missing = profile.missing_fields()
        if missing:
            raise ProfileIncomplete(f"Missing required fields: {', '.join(missing)}")

        def status(message: str) -> None:
            if on_status is not None:
                on_status(message)

        status(STATUS_HANDSHAKE)
        try:
            account = await self.issuing.create_account_holder(
                first_name=profile.first_name,
                last_name=profile.last_name,
                email=profile.email,
                address=profile.address.to_payload(),
                dob=profile.date_of_birth,
                ssn_last_four=profile.ssn_last_four,
            )
        except LithicAPIError as e:
            logger.error("Account creation failed", email=profile.email, status=e.status_code, payload=e.payload)
            raise AccountCreationFailed(
                _failure_message(e, AccountCreationFailed.default_message),
                payload=e.payload,
                status_code=e.status_code,
            ) from e

        account_token = account.get("account_token") or account.get("token")
        if not account_token:
            raise AccountCreationFailed("Account holder response did not include a token", payload=account)
        holder_token = account.get("token") or account_token
        logger.info("Account holder created", account_token=account_token, account_holder_token=holder_token)

        status(STATUS_PROVISIONING)
        try:
            card = await self.issuing.create_card(
                account_token=account_token,
                spend_limit=self.spend_limit,
                spend_limit_duration=self.spend_limit_duration,
                memo=self.memo,
            )
        except LithicAPIError as e:
            logger.error("Card creation failed", account_token=account_token, status=e.status_code, payload=e.payload)
            raise CardCreationFailed(
                _failure_message(e, CardCreationFailed.default_message),
                payload=e.payload,
                status_code=e.status_code,
            ) from e

        if not card.get("token"):
            raise CardCreationFailed("Card response did not include a token", payload=card)
        details = CardDetails.from_response(card)
        logger.info("Card created", account_token=account_token, card_token=details.token, last_four=details.last_four)

        status(STATUS_FINALIZING)
        return EnrollmentResult(
            account_token=account_token,
            card_token=details.token,
            card_details=details,
            account_holder_token=holder_token,
        )
