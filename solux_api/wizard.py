"""
Enrollment wizard state machine.

Drives the linear enrollment flow:

    WELCOME -> EMAIL_ENTRY -> CODE_ENTRY -> FACE_CAPTURE -> DOCUMENT_CAPTURE
        -> PROFILE_FORM -> COMPLIANCE_FORM -> ENROLLING -> SUCCESS

Forward transitions are gated on per-step validation and on the outcome of
the code service and the enrollment orchestrator. Operator-facing failures
never raise: they set `error` and leave the wizard in its current step.
Calling an operation in a step that does not allow it raises
InvalidTransition.

Long-running steps (code issuance, scans, enrollment) run as a tracked
task so that `abandon()` can cancel them and release the camera.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import fields
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar, Union

import structlog

from .codes import VerificationCodeService, is_valid_email
from .enrollment import Address, EnrollmentOrchestrator, EnrollmentProfile, EnrollmentResult
from .errors import (
    CodeFormatInvalid,
    DocumentMissing,
    EmailInvalid,
    EnrollmentError,
    InvalidTransition,
    PermissionDenied,
    ProfileIncomplete,
)
from .progress import DOCUMENT_SCAN, FACE_SCAN, ScanCadence, run_scan

logger = structlog.get_logger()

T = TypeVar("T")

FINALIZE_DELAY_SECONDS = 2.0

STAGES = ("Email", "Face ID", "Documents", "Profile", "Vault")


class WizardStep(str, Enum):
    WELCOME = "welcome"
    EMAIL_ENTRY = "email_entry"
    CODE_ENTRY = "code_entry"
    FACE_CAPTURE = "face_capture"
    DOCUMENT_CAPTURE = "document_capture"
    PROFILE_FORM = "profile_form"
    COMPLIANCE_FORM = "compliance_form"
    ENROLLING = "enrolling"
    SUCCESS = "success"


_STAGE_INDEX = {
    WizardStep.EMAIL_ENTRY: 0,
    WizardStep.CODE_ENTRY: 0,
    WizardStep.FACE_CAPTURE: 1,
    WizardStep.DOCUMENT_CAPTURE: 2,
    WizardStep.PROFILE_FORM: 3,
    WizardStep.COMPLIANCE_FORM: 4,
}

_PROFILE_FIELDS = {f.name for f in fields(EnrollmentProfile)} - {"address"}
_ADDRESS_FIELDS = {f.name for f in fields(Address)}


class Camera(Protocol):
    """
    Camera device used during face capture.

    `acquire` may suspend while the OS asks the operator for permission and
    raises PermissionDenied if it is refused. `release` must be idempotent.
    """

    async def acquire(self) -> None:
        ...

    async def release(self) -> None:
        ...


CompletionCallback = Callable[[str, EnrollmentResult], None]


def sanitize_digits(value: str, limit: int) -> str:
    """Strip non-digits and truncate, as the code and SSN inputs do."""
    return re.sub(r"\D", "", value)[:limit]


class EnrollmentWizard:
    """
    One enrollment session for one operator.

    Args:
        codes: Verification code service
        orchestrator: Account/card orchestrator
        camera: Camera used for the face capture step
        on_complete: Called with (full name, result) once SUCCESS is reached
        face_scan: Cadence of the simulated face scan
        document_scan: Cadence of the simulated document scan
        finalize_delay: Pause between a successful enrollment and SUCCESS
        sleep: Awaitable sleep (injectable for tests)
    """

    def __init__(
        self,
        codes: VerificationCodeService,
        orchestrator: EnrollmentOrchestrator,
        camera: Camera,
        on_complete: Optional[CompletionCallback] = None,
        face_scan: ScanCadence = FACE_SCAN,
        document_scan: ScanCadence = DOCUMENT_SCAN,
        finalize_delay: float = FINALIZE_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.codes = codes
        self.orchestrator = orchestrator
        self.camera = camera
        self.on_complete = on_complete
        self.face_scan = face_scan
        self.document_scan = document_scan
        self.finalize_delay = finalize_delay
        self.sleep = sleep

        self._inflight: Optional[asyncio.Future] = None
        self._reset()

    def _reset(self) -> None:
        self.step = WizardStep.WELCOME
        self.profile = EnrollmentProfile()
        self.code_input = ""
        self.document: Optional[Path] = None
        self.progress = 0
        self.error: Optional[str] = None
        self.status: Optional[str] = None
        self.result: Optional[EnrollmentResult] = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @property
    def busy(self) -> bool:
        """True while a tracked operation is in flight."""
        return self._inflight is not None and not self._inflight.done()

    @property
    def stage_index(self) -> int:
        """Index into STAGES for the progress tracker, -1 when hidden."""
        return _STAGE_INDEX.get(self.step, -1)

    def _require(self, *steps: WizardStep) -> None:
        if self.step not in steps:
            allowed = ", ".join(s.value for s in steps)
            raise InvalidTransition(f"Operation not allowed in step {self.step.value} (requires {allowed})")
        if self.busy:
            raise InvalidTransition(f"An operation is already in progress in step {self.step.value}")

    def _go(self, step: WizardStep) -> None:
        logger.info("Wizard transition", from_step=self.step.value, to_step=step.value)
        self.step = step

    def _set_progress(self, percent: int) -> None:
        self.progress = percent

    def _set_status(self, status: str) -> None:
        self.status = status

    async def _track(self, awaitable: Awaitable[T]) -> T:
        task = asyncio.ensure_future(awaitable)
        self._inflight = task
        try:
            return await task
        finally:
            if self._inflight is task:
                self._inflight = None

    # ------------------------------------------------------------------
    # Welcome / email / code
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._require(WizardStep.WELCOME)
        self.error = None
        self._go(WizardStep.EMAIL_ENTRY)

    def set_email(self, email: str) -> None:
        self._require(WizardStep.EMAIL_ENTRY)
        self.profile.email = email
        self.error = None

    async def submit_email(self) -> bool:
        """Request a code for the entered email. Advances to CODE_ENTRY on success."""
        self._require(WizardStep.EMAIL_ENTRY)
        if not is_valid_email(self.profile.email):
            self.error = EmailInvalid().message
            return False

        self.error = None
        try:
            await self._track(self.codes.issue(self.profile.email))
        except EnrollmentError as e:
            self.error = e.message
            return False

        self._go(WizardStep.CODE_ENTRY)
        return True

    def enter_code(self, text: str) -> None:
        self._require(WizardStep.CODE_ENTRY)
        self.code_input = sanitize_digits(text, 6)
        self.error = None

    def back_to_email(self) -> None:
        """
        Return to EMAIL_ENTRY to use a different address.

        The code already issued stays valid server-side until it expires
        or is used.
        """
        self._require(WizardStep.CODE_ENTRY)
        self.code_input = ""
        self.error = None
        self._go(WizardStep.EMAIL_ENTRY)

    async def submit_code(self) -> bool:
        """Verify the typed code. Advances to FACE_CAPTURE on success."""
        self._require(WizardStep.CODE_ENTRY)
        if len(self.code_input) != 6:
            self.error = CodeFormatInvalid().message
            return False

        self.error = None
        try:
            self.codes.verify(self.profile.email, self.code_input)
        except EnrollmentError as e:
            self.error = e.message
            return False

        self.code_input = ""
        self._go(WizardStep.FACE_CAPTURE)
        return True

    # ------------------------------------------------------------------
    # Simulated captures
    # ------------------------------------------------------------------

    async def run_face_capture(self) -> bool:
        """
        Acquire the camera and run the simulated face scan.

        Advances to DOCUMENT_CAPTURE once the scan settles. If camera access
        is refused the wizard aborts to WELCOME and False is returned.
        """
        self._require(WizardStep.FACE_CAPTURE)
        return await self._track(self._face_capture())

    async def _face_capture(self) -> bool:
        try:
            await self.camera.acquire()
        except PermissionDenied as e:
            logger.warning("Camera access denied", email=self.profile.email)
            self.error = e.message
            self.progress = 0
            self._go(WizardStep.WELCOME)
            return False

        try:
            self.progress = 0
            await run_scan(self.face_scan, self._set_progress, self.sleep)
        finally:
            await self.camera.release()

        self.progress = 0
        self._go(WizardStep.DOCUMENT_CAPTURE)
        return True

    def select_document(self, document: Union[str, Path]) -> None:
        self._require(WizardStep.DOCUMENT_CAPTURE)
        self.document = Path(document)
        self.error = None

    async def run_document_scan(self) -> bool:
        """Run the simulated document scan. Advances to PROFILE_FORM."""
        self._require(WizardStep.DOCUMENT_CAPTURE)
        if self.document is None:
            self.error = DocumentMissing().message
            return False

        self.error = None
        self.progress = 0
        await self._track(run_scan(self.document_scan, self._set_progress, self.sleep))
        self._go(WizardStep.PROFILE_FORM)
        return True

    # ------------------------------------------------------------------
    # Profile forms
    # ------------------------------------------------------------------

    def update_profile(self, **values: Any) -> None:
        """Set identity fields (first_name, last_name, date_of_birth, ssn_last_four, ...)."""
        self._require(WizardStep.PROFILE_FORM, WizardStep.COMPLIANCE_FORM)
        unknown = set(values) - _PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
        for name, value in values.items():
            if name == "ssn_last_four":
                value = sanitize_digits(value, 4)
            setattr(self.profile, name, value)
        self.error = None

    def update_address(self, **values: Any) -> None:
        self._require(WizardStep.PROFILE_FORM, WizardStep.COMPLIANCE_FORM)
        unknown = set(values) - _ADDRESS_FIELDS
        if unknown:
            raise ValueError(f"Unknown address fields: {', '.join(sorted(unknown))}")
        for name, value in values.items():
            setattr(self.profile.address, name, value)
        self.error = None

    def continue_to_compliance(self) -> bool:
        self._require(WizardStep.PROFILE_FORM)
        missing = self.profile.missing_identity_fields()
        if missing:
            self.error = ProfileIncomplete().message
            return False
        self.error = None
        self._go(WizardStep.COMPLIANCE_FORM)
        return True

    def back_to_profile(self) -> None:
        self._require(WizardStep.COMPLIANCE_FORM)
        self.error = None
        self._go(WizardStep.PROFILE_FORM)

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    async def submit_enrollment(self) -> bool:
        """
        Submit the profile to the orchestrator.

        On success the wizard reaches SUCCESS and `on_complete` is notified.
        On failure it stays in ENROLLING with `error` and an "Error: ..."
        status; `retry()` returns to COMPLIANCE_FORM.
        """
        self._require(WizardStep.COMPLIANCE_FORM)
        if not self.profile.is_complete():
            self.error = ProfileIncomplete().message
            return False

        self.error = None
        self._go(WizardStep.ENROLLING)
        try:
            result = await self._track(self._enroll())
        except EnrollmentError as e:
            logger.warning("Enrollment failed", email=self.profile.email, error=e.message)
            self.error = e.message
            self.status = f"Error: {e.message}"
            return False

        self.result = result
        self._go(WizardStep.SUCCESS)
        if self.on_complete is not None:
            self.on_complete(self.profile.full_name, result)
        return True

    async def _enroll(self) -> EnrollmentResult:
        result = await self.orchestrator.enroll(self.profile, on_status=self._set_status)
        await self.sleep(self.finalize_delay)
        return result

    def retry(self) -> None:
        """Leave a failed ENROLLING step and return to COMPLIANCE_FORM."""
        self._require(WizardStep.ENROLLING)
        if self.error is None:
            raise InvalidTransition("Enrollment has not failed")
        self.error = None
        self.status = None
        self._go(WizardStep.COMPLIANCE_FORM)

    # ------------------------------------------------------------------
    # Abandonment
    # ------------------------------------------------------------------

    async def abandon(self) -> None:
        """
        Abandon the session: cancel any in-flight operation, release the
        camera and discard all wizard state.
        """
        task = self._inflight
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        self._inflight = None
        await self.camera.release()
        logger.info("Wizard abandoned", step=self.step.value)
        self._reset()
