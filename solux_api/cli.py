"""
CLI entry point for Solux API.
"""

import asyncio
from pathlib import Path
from typing import Optional

import typer
import structlog

from .config import Settings, get_settings
from .enrollment import EnrollmentResult
from .errors import EnrollmentError, PermissionDenied
from .services import build_services
from .wizard import STAGES, EnrollmentWizard, WizardStep

# Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ]
)

app = typer.Typer(
    name="solux",
    help="Solux enrollment backend",
    add_completion=False,
)


def _load_settings(config_path: Optional[Path]) -> Settings:
    return Settings(_env_file=config_path) if config_path else get_settings()


class ConsoleCamera:
    """Camera stand-in that asks the operator for permission on the terminal."""

    def __init__(self) -> None:
        self.active = False

    async def acquire(self) -> None:
        if not typer.confirm("Allow camera access for face verification?", default=True):
            raise PermissionDenied()
        self.active = True

    async def release(self) -> None:
        if self.active:
            self.active = False
            typer.echo("Camera released")


@app.command()
def serve() -> None:
    """
    Run the API server.
    """
    from .main import run

    run()


@app.command("send-code")
def send_code(
    email: str = typer.Argument(..., help="Email address to send the code to"),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to .env configuration file",
    ),
) -> None:
    """
    Issue a one-time login code to EMAIL.
    """
    services = build_services(_load_settings(config_path))

    async def _send() -> None:
        try:
            await services.codes.issue(email)
        finally:
            await services.close()

    try:
        asyncio.run(_send())
    except EnrollmentError as e:
        typer.echo(f"✗ {e.message}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"✓ Code sent to {email}")


@app.command()
def enroll(
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to .env configuration file",
    ),
) -> None:
    """
    Walk through identity enrollment in the terminal and issue a virtual card.
    """
    settings = _load_settings(config_path)
    result = asyncio.run(_run_wizard(settings))
    if result is None:
        typer.echo("Enrollment abandoned")
        raise typer.Exit(code=1)

    typer.echo(f"Holder:  {result.account_holder_token}")
    typer.echo(f"Account: {result.account_token}")
    typer.echo(f"Card:    {result.card_token}")
    if result.card_details:
        details = result.card_details
        typer.echo(f"         **** {details.last_four}  exp {details.exp_month}/{details.exp_year}  ({details.state})")


async def _run_wizard(settings: Settings) -> Optional[EnrollmentResult]:
    services = build_services(settings)
    camera = ConsoleCamera()

    def on_complete(name: str, result: EnrollmentResult) -> None:
        typer.echo(f"✓ Welcome, {name}. Your card is ready.")

    wizard = EnrollmentWizard(services.codes, services.orchestrator, camera, on_complete=on_complete)
    try:
        wizard.start()
        while wizard.step is not WizardStep.SUCCESS:
            if wizard.stage_index >= 0:
                typer.echo(f"[{wizard.stage_index + 1}/{len(STAGES)}] {STAGES[wizard.stage_index]}")
            if not await _prompt_step(wizard):
                return None
            if wizard.error:
                typer.echo(f"✗ {wizard.error}")
        return wizard.result
    finally:
        if wizard.step is not WizardStep.SUCCESS:
            await wizard.abandon()
        await services.close()


async def _prompt_step(wizard: EnrollmentWizard) -> bool:
    """Prompt for and perform the current step. Returns False to abort."""
    step = wizard.step

    if step is WizardStep.WELCOME:
        if not typer.confirm("Restart enrollment?", default=False):
            return False
        wizard.start()

    elif step is WizardStep.EMAIL_ENTRY:
        wizard.set_email(typer.prompt("Email address"))
        if await wizard.submit_email():
            typer.echo(f"We sent a 6-digit code to {wizard.profile.email}")

    elif step is WizardStep.CODE_ENTRY:
        text = typer.prompt("6-digit code (or 'back' to use a different email)")
        if text.strip().lower() == "back":
            wizard.back_to_email()
        else:
            wizard.enter_code(text)
            await wizard.submit_code()

    elif step is WizardStep.FACE_CAPTURE:
        typer.echo("Analyzing landmarks...")
        if await wizard.run_face_capture():
            typer.echo("✓ Identity verified")

    elif step is WizardStep.DOCUMENT_CAPTURE:
        path = Path(typer.prompt("Path to identity document (image or PDF)"))
        if not path.is_file():
            typer.echo(f"✗ No such file: {path}")
            return True
        wizard.select_document(path)
        typer.echo("Scanning document...")
        await wizard.run_document_scan()

    elif step is WizardStep.PROFILE_FORM:
        wizard.update_profile(
            first_name=typer.prompt("First name"),
            last_name=typer.prompt("Last name"),
        )
        wizard.update_address(
            line1=typer.prompt("Street address"),
            city=typer.prompt("City"),
            state=typer.prompt("State", default=wizard.profile.address.state),
            postal_code=typer.prompt("Postal code"),
        )
        wizard.continue_to_compliance()

    elif step is WizardStep.COMPLIANCE_FORM:
        wizard.update_profile(
            date_of_birth=typer.prompt("Date of birth (YYYY-MM-DD)"),
            ssn_last_four=typer.prompt("Last four of SSN", hide_input=True),
        )
        typer.echo("Submitting enrollment...")
        await wizard.submit_enrollment()

    elif step is WizardStep.ENROLLING:
        typer.echo(wizard.status or "Enrollment failed")
        if not typer.confirm("Try again?", default=True):
            return False
        wizard.retry()

    return True


if __name__ == "__main__":
    app()
