"""
Tests for verification code issuance and verification.
"""

import pytest

from solux_api import codes as codes_module
from solux_api.codes import (
    InMemoryCodeStore,
    VerificationCodeService,
    VerificationEntry,
    generate_code,
    is_valid_code,
)
from solux_api.errors import (
    CodeExpired,
    CodeFormatInvalid,
    CodeMismatch,
    EmailInvalid,
    ExpiredOrConsumed,
    MailDispatchFailed,
    NoCodeIssued,
    ValidationError,
)

from conftest import FakeClock, FakeMailer


class TestGenerateCode:
    """Tests for code generation."""

    def test_codes_are_six_digits_without_leading_zero(self):
        for _ in range(2000):
            code = generate_code()
            assert len(code) == 6
            assert code.isdigit()
            assert 100_000 <= int(code) <= 999_999

    def test_code_format_check(self):
        assert is_valid_code("123456")
        assert not is_valid_code("12345")
        assert not is_valid_code("1234567")
        assert not is_valid_code("12a456")
        assert not is_valid_code("")
        assert not is_valid_code(None)
        # Non-ASCII digits are rejected
        assert not is_valid_code("١٢٣٤٥٦")


class TestIssue:
    """Tests for VerificationCodeService.issue."""

    @pytest.mark.asyncio
    async def test_issue_stores_one_entry_with_ttl(self, code_service, store, clock):
        await code_service.issue("a@b.com")

        entry = store.get("a@b.com")
        assert entry is not None
        assert len(store) == 1
        assert is_valid_code(entry.code)
        assert entry.expires_at == clock.now + 600

    @pytest.mark.asyncio
    async def test_issue_mails_the_code(self, code_service, store, mailer):
        await code_service.issue("a@b.com")

        assert len(mailer.sent) == 1
        to_address, subject, html = mailer.sent[0]
        assert to_address == "a@b.com"
        assert subject == "Solux - Your Login Code"
        assert store.get("a@b.com").code in html
        assert "10 minutes" in html

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email", ["", "not-an-email", None])
    async def test_issue_rejects_invalid_email(self, code_service, store, mailer, email):
        with pytest.raises(EmailInvalid):
            await code_service.issue(email)
        assert len(store) == 0
        assert mailer.sent == []

    @pytest.mark.asyncio
    async def test_reissue_invalidates_previous_code(self, code_service, monkeypatch):
        issued = iter(["111111", "222222"])
        monkeypatch.setattr(codes_module, "generate_code", lambda: next(issued))

        await code_service.issue("a@b.com")
        await code_service.issue("a@b.com")

        with pytest.raises(CodeMismatch):
            code_service.verify("a@b.com", "111111")
        code_service.verify("a@b.com", "222222")

    @pytest.mark.asyncio
    async def test_mail_failure_keeps_stored_code_by_default(self, store, clock):
        service = VerificationCodeService(store, FakeMailer(fail=True), clock=clock)

        with pytest.raises(MailDispatchFailed) as exc_info:
            await service.issue("a@b.com")

        assert exc_info.value.message == "Failed to send verification code"
        assert "a@b.com" in store

    @pytest.mark.asyncio
    async def test_mail_failure_rolls_back_when_enabled(self, store, clock):
        service = VerificationCodeService(
            store, FakeMailer(fail=True), clock=clock, rollback_on_mail_failure=True
        )

        with pytest.raises(MailDispatchFailed):
            await service.issue("a@b.com")

        assert "a@b.com" not in store


class TestVerify:
    """Tests for VerificationCodeService.verify."""

    @pytest.mark.asyncio
    async def test_correct_code_succeeds_exactly_once(self, code_service, store):
        await code_service.issue("a@b.com")
        code = store.get("a@b.com").code

        code_service.verify("a@b.com", code)
        assert "a@b.com" not in store

        with pytest.raises(NoCodeIssued):
            code_service.verify("a@b.com", code)

    @pytest.mark.asyncio
    async def test_mismatch_keeps_entry(self, code_service, store, monkeypatch):
        monkeypatch.setattr(codes_module, "generate_code", lambda: "123456")
        await code_service.issue("a@b.com")

        with pytest.raises(CodeMismatch):
            code_service.verify("a@b.com", "000000")

        assert store.get("a@b.com").code == "123456"
        # The right code still works afterwards
        code_service.verify("a@b.com", "123456")

    @pytest.mark.asyncio
    async def test_expired_code_is_rejected_and_removed(self, code_service, store, clock):
        await code_service.issue("a@b.com")
        code = store.get("a@b.com").code

        clock.advance(601)
        with pytest.raises(CodeExpired):
            code_service.verify("a@b.com", code)
        assert "a@b.com" not in store

        with pytest.raises(NoCodeIssued):
            code_service.verify("a@b.com", code)

    @pytest.mark.asyncio
    async def test_code_valid_at_exact_expiry(self, code_service, store, clock):
        await code_service.issue("a@b.com")
        code = store.get("a@b.com").code

        clock.advance(600)
        code_service.verify("a@b.com", code)

    def test_no_code_issued(self, code_service):
        with pytest.raises(NoCodeIssued):
            code_service.verify("nobody@b.com", "123456")

    @pytest.mark.asyncio
    async def test_email_is_case_sensitive(self, code_service, store):
        await code_service.issue("A@b.com")
        code = store.get("A@b.com").code

        with pytest.raises(NoCodeIssued):
            code_service.verify("a@b.com", code)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_code", ["12345", "1234567", "abcdef", ""])
    async def test_malformed_code_rejected_before_lookup(self, code_service, store, bad_code):
        await code_service.issue("a@b.com")

        with pytest.raises(CodeFormatInvalid):
            code_service.verify("a@b.com", bad_code)
        assert "a@b.com" in store

    def test_error_taxonomy(self):
        assert issubclass(CodeMismatch, ValidationError)
        assert issubclass(CodeFormatInvalid, ValidationError)
        assert issubclass(CodeExpired, ExpiredOrConsumed)
        assert issubclass(NoCodeIssued, ExpiredOrConsumed)


class TestStore:
    """Tests for InMemoryCodeStore."""

    def test_set_get_delete(self):
        store = InMemoryCodeStore()
        entry = VerificationEntry(code="123456", expires_at=100.0)

        store.set("a@b.com", entry)
        assert store.get("a@b.com") == entry

        store.delete("a@b.com")
        assert store.get("a@b.com") is None
        # Deleting a missing key is a no-op
        store.delete("a@b.com")

    def test_sweep_removes_only_expired_entries(self):
        store = InMemoryCodeStore()
        store.set("old@b.com", VerificationEntry(code="111111", expires_at=100.0))
        store.set("new@b.com", VerificationEntry(code="222222", expires_at=300.0))

        assert store.sweep(now=200.0) == 1
        assert "old@b.com" not in store
        assert "new@b.com" in store

    @pytest.mark.asyncio
    async def test_service_sweep_uses_clock(self, code_service, store, clock):
        await code_service.issue("a@b.com")
        assert code_service.sweep_expired() == 0

        clock.advance(601)
        assert code_service.sweep_expired() == 1
        assert len(store) == 0

    def test_entries_persist_without_lookup(self):
        clock = FakeClock()
        store = InMemoryCodeStore()
        store.set("a@b.com", VerificationEntry(code="111111", expires_at=clock.now))

        clock.advance(10_000)
        # No background expiry: the entry stays until looked up or swept
        assert "a@b.com" in store
