"""
Pydantic models for API requests and responses.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Session Codes
# ============================================================================

class SendCodeRequest(BaseModel):
    """Request a one-time login code by email."""

    email: Optional[str] = Field(None, description="Email address to send the code to")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"email": "satoshi@example.com"}
            ]
        }
    }


class SendCodeResponse(BaseModel):
    success: bool = Field(..., description="Whether the code was sent")
    message: str = Field(..., description="Human-readable status")


class VerifyCodeRequest(BaseModel):
    """Verify a one-time login code."""

    email: Optional[str] = Field(None, description="Email address the code was sent to")
    code: Optional[str] = Field(None, description="6-digit code")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"email": "satoshi@example.com", "code": "482913"}
            ]
        }
    }


class VerifyCodeResponse(BaseModel):
    success: bool = Field(..., description="Whether the code was accepted")
    verified: bool = Field(..., description="Whether the email is now verified")


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Error message")


# ============================================================================
# Issuing Proxy
# ============================================================================

class AddressModel(BaseModel):
    address1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class CreateAccountRequest(BaseModel):
    """Enrollment data for a new account holder."""

    first_name: str = Field(..., description="Legal first name")
    last_name: str = Field(..., description="Legal last name")
    email: str = Field(..., description="Verified email address")
    dob: Optional[str] = Field(None, description="Date of birth (YYYY-MM-DD)")
    address: Optional[AddressModel] = Field(None, description="Residential address")
    ssn_last_four: Optional[str] = Field(None, description="Last four digits of SSN")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "first_name": "Ada",
                    "last_name": "Lovelace",
                    "email": "ada@example.com",
                    "dob": "1990-12-10",
                    "address": {
                        "address1": "1 Analytical Way",
                        "city": "New York",
                        "state": "NY",
                        "postal_code": "10001",
                        "country": "USA"
                    },
                    "ssn_last_four": "1234"
                }
            ]
        }
    }


class CreateCardRequest(BaseModel):
    """Card creation request, forwarded to the issuing API as-is."""

    model_config = ConfigDict(extra="allow")

    account_token: str = Field(..., description="Account token the card is bound to")
    type: str = Field("VIRTUAL", description="Card type")
    spend_limit: Optional[int] = Field(None, ge=0, description="Spend limit in minor units")
    spend_limit_duration: Optional[str] = Field(None, description="Spend limit reset cadence")
    memo: Optional[str] = Field(None, description="Card memo")


class SimulateAuthorizationRequest(BaseModel):
    """Sandbox authorization simulation."""

    card_token: str = Field(..., description="Card to authorize against")
    amount: int = Field(..., gt=0, description="Amount in minor units")
    descriptor: str = Field(..., description="Merchant descriptor")


# ============================================================================
# Health Check
# ============================================================================

class HealthResponse(BaseModel):
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    lithic_configured: bool = Field(..., description="Whether an issuing API key is configured")
    mail_configured: bool = Field(..., description="Whether a mail API key is configured")
