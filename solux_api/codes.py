"""
One-time email verification codes.

A code is a 6-digit numeric string keyed by email address (exact match,
no normalization). Issuing a code replaces any live code for that email.
Codes are single-use: a successful verification deletes the entry.

Expired entries are deleted lazily when they are next looked up. An
optional periodic sweep can be enabled by calling `sweep()` from a timer.
"""

from __future__ import annotations

import re
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import structlog

from .errors import (
    CodeExpired,
    CodeFormatInvalid,
    CodeMismatch,
    EmailInvalid,
    MailDispatchFailed,
    NoCodeIssued,
)
from .mailer import Mailer, render_code_email

logger = structlog.get_logger()

CODE_TTL_SECONDS = 10 * 60
CODE_MIN = 100_000
CODE_MAX = 999_999

_CODE_RE = re.compile(r"[0-9]{6}")


@dataclass(frozen=True)
class VerificationEntry:
    """A live verification code."""

    code: str
    expires_at: float  # unix seconds

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class CodeStore(Protocol):
    """Keyed store for verification entries."""

    def get(self, email: str) -> Optional[VerificationEntry]:
        ...

    def set(self, email: str, entry: VerificationEntry) -> None:
        ...

    def delete(self, email: str) -> None:
        ...

    def sweep(self, now: float) -> int:
        ...


class InMemoryCodeStore:
    """Process-local code store guarded by a lock."""

    def __init__(self) -> None:
        self._entries: dict[str, VerificationEntry] = {}
        self._lock = threading.Lock()

    def get(self, email: str) -> Optional[VerificationEntry]:
        with self._lock:
            return self._entries.get(email)

    def set(self, email: str, entry: VerificationEntry) -> None:
        with self._lock:
            self._entries[email] = entry

    def delete(self, email: str) -> None:
        with self._lock:
            self._entries.pop(email, None)

    def sweep(self, now: float) -> int:
        """Remove every expired entry. Returns the number removed."""
        with self._lock:
            expired = [email for email, entry in self._entries.items() if entry.is_expired(now)]
            for email in expired:
                del self._entries[email]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, email: object) -> bool:
        with self._lock:
            return email in self._entries


def generate_code() -> str:
    """Return a code drawn uniformly from [100000, 999999]."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def is_valid_email(email: Optional[str]) -> bool:
    # Syntactic gate only; deliverability is never checked.
    return bool(email) and "@" in email


def is_valid_code(code: Optional[str]) -> bool:
    return code is not None and _CODE_RE.fullmatch(code) is not None


class VerificationCodeService:
    """
    Issues and verifies one-time email codes.

    Args:
        store: Backing code store
        mailer: Mail dispatch collaborator
        ttl_seconds: Code lifetime
        clock: Returns the current unix time in seconds (injectable for tests)
        rollback_on_mail_failure: Delete the freshly stored code when the mail
            cannot be dispatched. Off by default: the code then stays valid
            even though the operator never received it.
    """

    def __init__(
        self,
        store: CodeStore,
        mailer: Mailer,
        ttl_seconds: int = CODE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        rollback_on_mail_failure: bool = False,
    ):
        self.store = store
        self.mailer = mailer
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.rollback_on_mail_failure = rollback_on_mail_failure

    async def issue(self, email: str) -> None:
        """
        Issue a new code for `email` and mail it.

        Raises:
            EmailInvalid: email is empty or has no "@"
            MailDispatchFailed: the mailer failed or was unreachable
        """
        if not is_valid_email(email):
            raise EmailInvalid()

        code = generate_code()
        entry = VerificationEntry(code=code, expires_at=self.clock() + self.ttl_seconds)
        self.store.set(email, entry)

        subject, html = render_code_email(code, ttl_minutes=max(1, self.ttl_seconds // 60))
        try:
            await self.mailer.send(email, subject, html)
        except Exception as e:
            logger.error("Failed to dispatch verification code", email=email, error=str(e))
            if self.rollback_on_mail_failure:
                self.store.delete(email)
            raise MailDispatchFailed() from e

        logger.info("Verification code sent", email=email, expires_at=int(entry.expires_at))

    def verify(self, email: str, code: str) -> None:
        """
        Verify `code` for `email`, consuming it on success.

        Raises:
            CodeFormatInvalid: code is not exactly 6 ASCII digits
            NoCodeIssued: no live entry for email
            CodeExpired: the entry expired (it is deleted)
            CodeMismatch: wrong code (the entry is kept)
        """
        if not is_valid_code(code):
            raise CodeFormatInvalid()

        entry = self.store.get(email)
        if entry is None:
            raise NoCodeIssued()

        if entry.is_expired(self.clock()):
            self.store.delete(email)
            logger.info("Verification code expired", email=email)
            raise CodeExpired()

        if entry.code != code:
            logger.info("Verification code mismatch", email=email)
            raise CodeMismatch()

        self.store.delete(email)
        logger.info("Verification code accepted", email=email)

    def sweep_expired(self) -> int:
        """Sweep expired entries from the store."""
        removed = self.store.sweep(self.clock())
        if removed:
            logger.info("Swept expired verification codes", removed=removed)
        return removed
