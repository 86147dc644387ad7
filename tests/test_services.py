"""
Tests for external service wrappers.

SDK entry points (cloudinary.uploader, resend.Emails, the Plaid client)
are replaced so nothing leaves the machine.
"""

import asyncio
from decimal import Decimal

import plaid
import pytest
import resend

from hsa_tracker.config import get_settings
from hsa_tracker.models.expense import DocumentKind
from hsa_tracker.models.stats import DigestExpenseLine, DigestSummary
from hsa_tracker.services.banking import BankLinkError, PlaidBankService
from hsa_tracker.services.documents import (
    CloudinaryDocumentService,
    DocumentDeleteError,
    DocumentUploadError,
    display_name,
    safe_file_name,
)
from hsa_tracker.services.documents import cloudinary_service
from hsa_tracker.services.email import (
    DigestEmailRenderer,
    EmailSendError,
    ResendEmailService,
    create_environment,
    digest_subject,
)


IMAGE_URL = (
    "https://res.cloudinary.com/demo/image/upload/v1712345678/"
    "hsa-documents/user-1/receipt/1700000000000-eye_exam.png"
)
RAW_URL = (
    "https://res.cloudinary.com/demo/raw/upload/v1712345678/"
    "hsa-documents/user-1/eob/1700000000000-claim.pdf"
)


@pytest.fixture
def service_env(monkeypatch):
    monkeypatch.setenv("CLOUDINARY_CLOUD_NAME", "demo")
    monkeypatch.setenv("CLOUDINARY_API_KEY", "key")
    monkeypatch.setenv("CLOUDINARY_API_SECRET", "secret")
    monkeypatch.setenv("PLAID_CLIENT_ID", "client")
    monkeypatch.setenv("PLAID_SECRET", "secret")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestDocumentNames:

    def test_safe_file_name(self):
        assert safe_file_name("my receipt (1).pdf") == "my_receipt__1_.pdf"

    def test_safe_file_name_truncates(self):
        assert len(safe_file_name("a" * 80 + ".pdf")) == 50

    def test_display_name(self):
        assert display_name(IMAGE_URL) == "eye exam.png"


class TestCloudinaryDocumentService:
    """Tests for paths, checks and ownership."""

    def test_build_public_id(self, service_env):
        service = CloudinaryDocumentService()
        public_id = service.build_public_id(
            "user-1", DocumentKind.RECEIPT, "eye exam.png", timestamp_ms=1700000000000
        )
        assert public_id == "hsa-documents/user-1/receipt/1700000000000-eye_exam"

    def test_rejects_oversize_file(self, service_env):
        service = CloudinaryDocumentService()
        with pytest.raises(DocumentUploadError):
            service.check_file("scan.pdf", 11 * 1024 * 1024)

    def test_rejects_unsupported_format(self, service_env):
        service = CloudinaryDocumentService()
        with pytest.raises(DocumentUploadError):
            service.check_file("setup.exe", 100)
        service.check_file("SCAN.PDF", 100)

    def test_parse_url(self, service_env):
        service = CloudinaryDocumentService()
        assert service.parse_url(IMAGE_URL) == (
            "image", "hsa-documents/user-1/receipt/1700000000000-eye_exam",
        )
        assert service.parse_url(RAW_URL) == (
            "raw", "hsa-documents/user-1/eob/1700000000000-claim.pdf",
        )

    def test_parse_url_rejects_other_hosts(self, service_env):
        with pytest.raises(DocumentDeleteError):
            CloudinaryDocumentService().parse_url("https://example.com/receipt.png")

    def test_upload(self, service_env, monkeypatch):
        calls = []

        def fake_upload(file_bytes, **kwargs):
            calls.append(kwargs)
            return {"secure_url": IMAGE_URL}

        monkeypatch.setattr(cloudinary_service.cloudinary.uploader, "upload", fake_upload)

        url = asyncio.run(CloudinaryDocumentService().upload_document(
            b"png-bytes", "eye exam.png", "user-1", DocumentKind.RECEIPT
        ))
        assert url == IMAGE_URL
        assert calls[0]["public_id"].startswith("hsa-documents/user-1/receipt/")
        assert calls[0]["overwrite"] is False

    def test_delete_refuses_other_users_document(self, service_env, monkeypatch):
        def fail_destroy(*args, **kwargs):
            raise AssertionError("destroy must not be called")

        monkeypatch.setattr(cloudinary_service.cloudinary.uploader, "destroy", fail_destroy)

        with pytest.raises(DocumentDeleteError):
            asyncio.run(CloudinaryDocumentService().delete_document(IMAGE_URL, "user-2"))

    def test_delete(self, service_env, monkeypatch):
        calls = []

        def fake_destroy(public_id, **kwargs):
            calls.append((public_id, kwargs))
            return {"result": "ok"}

        monkeypatch.setattr(cloudinary_service.cloudinary.uploader, "destroy", fake_destroy)

        assert asyncio.run(CloudinaryDocumentService().delete_document(RAW_URL, "user-1")) is True
        public_id, kwargs = calls[0]
        assert public_id == "hsa-documents/user-1/eob/1700000000000-claim.pdf"
        assert kwargs["resource_type"] == "raw"


def make_summary(**overrides) -> DigestSummary:
    data = {
        "first_name": "Dana",
        "period_label": "October 2026",
        "hsa_balance": 12345.6,
        "total_expenses": Decimal("1500.00"),
        "pending_reimbursement": Decimal("1000.00"),
        "new_expense_count": 3,
        "reimbursed_this_period": Decimal("500.00"),
        "projected_growth": Decimal("2869.68"),
        "time_horizon": 20,
        "annual_return": 7.0,
        "audit_ready_pct": 67,
        "top_expenses": [
            DigestExpenseLine(description="Eye exam", amount=Decimal("150.00"), date="Oct 5"),
        ],
    }
    data.update(overrides)
    return DigestSummary(**data)


class TestDigestEmailRenderer:
    """Tests for the digest HTML."""

    def test_subject(self):
        assert digest_subject("Week of Oct 11") == "Your HSA Plus Week of Oct 11 Summary"

    def test_render_contents(self):
        html = DigestEmailRenderer("https://hsa.example.com/").render(make_summary())

        assert "Hi Dana," in html
        assert "Your October 2026 Summary" in html
        assert "$12,346" in html
        assert "$1,000" in html
        assert "+$2,870" in html
        assert "Recent Expenses" in html
        assert "Eye exam" in html
        assert "Oct 5" in html
        assert "67%" in html
        assert "7% × 20 yrs" in html
        assert 'href="https://hsa.example.com"' in html
        assert 'href="https://hsa.example.com/dashboard/profile"' in html

    def test_recent_expenses_omitted_when_empty(self):
        html = DigestEmailRenderer().render(make_summary(top_expenses=[]))
        assert "Recent Expenses" not in html

    def test_user_text_is_escaped(self):
        html = DigestEmailRenderer().render(make_summary(first_name="<b>Dana</b>"))
        assert "<b>Dana</b>" not in html
        assert "&lt;b&gt;Dana&lt;/b&gt;" in html

    def test_expense_description_is_escaped(self):
        line = DigestExpenseLine(
            description='Eye exam <script>alert("x")</script>',
            amount=Decimal("150.00"),
            date="Oct 5",
        )
        html = DigestEmailRenderer().render(make_summary(top_expenses=[line]))
        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_renders_with_shared_environment(self):
        env = create_environment()
        first = DigestEmailRenderer(env=env).render(make_summary())
        second = DigestEmailRenderer(env=env).render(make_summary())
        assert first == second
        assert env.filters["currency"](Decimal("1000.40")) == "$1,000"

    def test_audit_color_threshold(self):
        good = DigestEmailRenderer().render(make_summary(audit_ready_pct=80))
        poor = DigestEmailRenderer().render(make_summary(audit_ready_pct=79))
        assert "#f59e0b" not in good
        assert "#f59e0b" in poor


class TestResendEmailService:

    def test_send(self, monkeypatch):
        sent = []

        def fake_send(params):
            sent.append(params)
            return {"id": "email-123"}

        monkeypatch.setattr(resend.Emails, "send", fake_send)

        service = ResendEmailService(api_key="re_test", from_email="HSA Plus <noreply@example.com>")
        message_id = asyncio.run(service.send("dana@example.com", "Subject", "<p>Hi</p>"))

        assert message_id == "email-123"
        assert sent == [{
            "from": "HSA Plus <noreply@example.com>",
            "to": ["dana@example.com"],
            "subject": "Subject",
            "html": "<p>Hi</p>",
        }]
        assert resend.api_key == "re_test"

    def test_empty_recipient(self):
        service = ResendEmailService(api_key="re_test", from_email="noreply@example.com")
        with pytest.raises(EmailSendError):
            asyncio.run(service.send("", "Subject", "<p>Hi</p>"))


class FakePlaidClient:
    def __init__(self):
        self.removed = []

    def link_token_create(self, request):
        return {"link_token": f"link-sandbox-{request.user.client_user_id}"}

    def item_public_token_exchange(self, request):
        if request.public_token == "bad":
            raise plaid.ApiException(status=400, reason="INVALID_PUBLIC_TOKEN")
        return {"access_token": "access-sandbox-1", "item_id": "item-1"}

    def accounts_balance_get(self, request):
        return {"accounts": [
            {"account_id": "checking", "balances": {"current": 250.0}},
            {"account_id": "hsa", "balances": {"current": 12000.55}},
            {"account_id": "pending", "balances": {"current": None}},
        ]}

    def item_remove(self, request):
        self.removed.append(request.access_token)


class TestPlaidBankService:

    def test_link_token(self, service_env):
        service = PlaidBankService(client=FakePlaidClient())
        assert asyncio.run(service.create_link_token("user-1")) == "link-sandbox-user-1"

    def test_exchange(self, service_env):
        service = PlaidBankService(client=FakePlaidClient())
        assert asyncio.run(service.exchange_public_token("public-1")) == (
            "access-sandbox-1", "item-1",
        )

    def test_exchange_error(self, service_env):
        service = PlaidBankService(client=FakePlaidClient())
        with pytest.raises(BankLinkError):
            asyncio.run(service.exchange_public_token("bad"))

    @pytest.mark.parametrize("account_id,expected", [
        ("hsa", 12000.55),
        (None, 250.0),
        ("pending", 0.0),
        ("closed", 0.0),
    ])
    def test_get_balance(self, service_env, account_id, expected):
        service = PlaidBankService(client=FakePlaidClient())
        assert asyncio.run(service.get_balance("access-1", account_id)) == expected

    def test_remove_item(self, service_env):
        client = FakePlaidClient()
        asyncio.run(PlaidBankService(client=client).remove_item("access-1"))
        assert client.removed == ["access-1"]
