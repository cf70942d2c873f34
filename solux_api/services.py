"""
Construction of the process-wide services from settings.

Used by the API lifespan and by the CLI so both wire the same objects.
"""

from dataclasses import dataclass
from typing import Union

import structlog

from .codes import InMemoryCodeStore, VerificationCodeService
from .config import Settings
from .enrollment import EnrollmentOrchestrator
from .lithic import LithicClient, LithicConfig
from .mailer import LogMailer, ResendConfig, ResendMailer

logger = structlog.get_logger()


@dataclass
class Services:
    codes: VerificationCodeService
    mailer: Union[ResendMailer, LogMailer]
    lithic: LithicClient
    orchestrator: EnrollmentOrchestrator

    async def close(self) -> None:
        await self.mailer.close()
        await self.lithic.close()


def build_mailer(settings: Settings) -> Union[ResendMailer, LogMailer]:
    if not settings.resend_api_key:
        logger.warning("RESEND_API_KEY is not set; verification codes will only be logged")
        return LogMailer()
    return ResendMailer(
        ResendConfig(
            api_key=settings.resend_api_key,
            from_email=settings.mail_from,
            base_url=settings.resend_base_url,
            timeout=settings.http_timeout_seconds,
        )
    )


def build_services(settings: Settings) -> Services:
    if not settings.lithic_api_key:
        logger.warning("LITHIC_API_KEY is not set; issuing API calls will fail")

    store = InMemoryCodeStore()
    mailer = build_mailer(settings)
    codes = VerificationCodeService(
        store,
        mailer,
        ttl_seconds=settings.code_ttl_seconds,
        rollback_on_mail_failure=settings.code_rollback_on_mail_failure,
    )
    lithic = LithicClient(
        LithicConfig(
            api_key=settings.lithic_api_key,
            base_url=settings.lithic_base_url,
            timeout=settings.http_timeout_seconds,
        )
    )
    orchestrator = EnrollmentOrchestrator(
        lithic,
        spend_limit=settings.card_spend_limit,
        spend_limit_duration=settings.card_spend_limit_duration,
        memo=settings.card_memo,
    )
    return Services(
        codes=codes,
        mailer=mailer,
        lithic=lithic,
        orchestrator=orchestrator,
    )
