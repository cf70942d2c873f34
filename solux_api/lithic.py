"""
Lithic issuing API client.

Simplified async client for the sandbox card-issuing endpoints the
enrollment flow needs: account holders, virtual cards and simulated
authorizations. The API key is attached here, server-side.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import structlog

logger = structlog.get_logger()

# Placeholders used when the enrollment request leaves address parts out.
DEFAULT_ADDRESS = {
    "address1": "123 Main St",
    "city": "New York",
    "state": "NY",
    "postal_code": "10001",
    "country": "USA",
}
PLACEHOLDER_PHONE = "+10000000000"


class LithicAPIError(Exception):
    """
    Non-success response from (or failure to reach) the issuing API.

    `status_code` and `payload` are None when no response was received.
    """

    def __init__(self, status_code: Optional[int], payload: Any, message: Optional[str] = None):
        self.status_code = status_code
        self.payload = payload
        self.message = message or provider_message(payload, f"HTTP Error {status_code}")
        super().__init__(self.message)


def provider_message(payload: Any, fallback: str) -> str:
    """Extract the provider's human-readable message from an error payload."""
    if isinstance(payload, dict):
        if isinstance(payload.get("message"), str) and payload["message"]:
            return payload["message"]
        error = payload.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str) and error["message"]:
            return error["message"]
        if isinstance(error, str) and error:
            return error
    return fallback


def build_account_holder_payload(
    first_name: str,
    last_name: str,
    email: str,
    address: Optional[dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Build a KYC-exempt account holder request.

    The sandbox enrolls the operator as an authorized user, so identity
    documents are not forwarded; missing address parts get placeholders.
    """
    address = address or {}
    now = now or datetime.now(timezone.utc)
    return {
        "workflow": "KYC_EXEMPT",
        "tos_timestamp": now.isoformat().replace("+00:00", "Z"),
        "kyc_exemption_type": "AUTHORIZED_USER",
        "first_name": first_name,
        "last_name": last_name,
        "email": email,
        "phone_number": PLACEHOLDER_PHONE,
        "address": {key: address.get(key) or default for key, default in DEFAULT_ADDRESS.items()},
    }


@dataclass
class LithicConfig:
    """Lithic API configuration."""

    api_key: Optional[str] = None
    base_url: str = "https://sandbox.lithic.com/v1"
    timeout: float = 30.0


class LithicClient:
    """
    Async Lithic API client.
    """

    def __init__(self, config: LithicConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.config.api_key:
                headers["Authorization"] = self.config.api_key
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers=headers,
                timeout=self.config.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def request(self, method: str, endpoint: str, body: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Make an API call.

        Raises:
            LithicAPIError: on transport failure or any non-2xx response
        """
        client = await self._get_client()
        try:
            response = await client.request(method, endpoint, json=body)
        except httpx.HTTPError as e:
            logger.error("Lithic request failed", endpoint=endpoint, error=str(e))
            raise LithicAPIError(None, None, message="Connection failed. Please try again.") from e

        try:
            data = response.json()
        except ValueError:
            data = {"error": response.text} if response.text else {}

        if response.is_error:
            logger.error("Lithic error response", endpoint=endpoint, status=response.status_code, payload=data)
            raise LithicAPIError(response.status_code, data)

        return data

    async def create_account_holder(
        self,
        first_name: str,
        last_name: str,
        email: str,
        address: Optional[dict[str, Any]] = None,
        dob: Optional[str] = None,
        ssn_last_four: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Create an account holder. Returns the provider body (token, account_token, ...).

        `dob` and `ssn_last_four` are accepted for the enrollment record but
        not sent: the KYC_EXEMPT workflow does not take them.
        """
        payload = build_account_holder_payload(first_name, last_name, email, address)
        logger.info(
            "Creating account holder",
            email=email,
            dob_provided=bool(dob),
            ssn_provided=bool(ssn_last_four),
        )
        return await self.request("POST", "/account_holders", payload)

    async def create_card(
        self,
        account_token: str,
        spend_limit: int,
        spend_limit_duration: str = "MONTHLY",
        memo: Optional[str] = None,
    ) -> dict[str, Any]:
        """Create a virtual card bound to `account_token`."""
        payload: dict[str, Any] = {
            "account_token": account_token,
            "type": "VIRTUAL",
            "spend_limit": spend_limit,
            "spend_limit_duration": spend_limit_duration,
        }
        if memo:
            payload["memo"] = memo
        return await self.request("POST", "/cards", payload)

    async def simulate_authorization(self, card_token: str, amount: int, descriptor: str) -> dict[str, Any]:
        """Simulate a card authorization of `amount` minor units at `descriptor`."""
        payload = {
            "card_token": card_token,
            "amount": amount,
            "descriptor": descriptor,
        }
        return await self.request("POST", "/simulate/authorize", payload)
