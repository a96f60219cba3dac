"""Tests for the exception hierarchy."""

import pytest

from cardauth.core.exceptions import (
    AuthorizationTimeout,
    CardAuthError,
    CardNotFoundError,
    CustomHTTPException,
    ForbiddenOrigin,
    IdempotencyConflict,
    LimitExceededError,
    ProviderNotConfiguredError,
    UnauthorizedWebhook,
)
from cardauth.core.utils import Deadline
from cardauth.schemas.authorization_schema import DeclineReason


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc",
        [
            CardNotFoundError("missing"),
            LimitExceededError(DeclineReason.MONTHLY_LIMIT_EXCEEDED, "over"),
            AuthorizationTimeout("ledger"),
            ProviderNotConfiguredError("nope"),
            IdempotencyConflict("busy"),
        ],
    )
    def test_engine_errors_share_base(self, exc) -> None:
        assert isinstance(exc, CardAuthError)

    def test_limit_error_keeps_reason(self) -> None:
        exc = LimitExceededError(DeclineReason.SPENDING_LIMIT_EXCEEDED, "Total spending limit exceeded")
        assert exc.reason == DeclineReason.SPENDING_LIMIT_EXCEEDED
        assert str(exc) == "Total spending limit exceeded"

    def test_timeout_names_stage(self) -> None:
        exc = AuthorizationTimeout("commit")
        assert exc.stage == "commit"
        assert "commit" in str(exc)


class TestHttpErrors:
    def test_unauthorized_envelope(self) -> None:
        exc = UnauthorizedWebhook("Webhook signature verification failed", "invalid_signature")
        assert isinstance(exc, CustomHTTPException)
        assert exc.status_code == 401
        assert exc.detail == {
            "success": False,
            "message": "Webhook signature verification failed",
            "data": {"reason": "invalid_signature"},
        }

    def test_forbidden(self) -> None:
        assert ForbiddenOrigin("Origin not allowed", "ip_not_allowed").status_code == 403


class TestDeadline:
    def test_check_passes_before_expiry(self) -> None:
        Deadline(60).check("status")

    def test_expired(self) -> None:
        deadline = Deadline(0)
        assert deadline.expired is True
        with pytest.raises(AuthorizationTimeout) as excinfo:
            deadline.check("velocity")
        assert excinfo.value.stage == "velocity"

    def test_cancel(self) -> None:
        deadline = Deadline(60)
        assert deadline.cancel() is True
        assert deadline.cancelled is True
        with pytest.raises(AuthorizationTimeout):
            deadline.check("commit")

    def test_commit_refused_after_cancel(self) -> None:
        deadline = Deadline(60)
        deadline.cancel()
        with pytest.raises(AuthorizationTimeout) as excinfo:
            deadline.begin_commit()
        assert excinfo.value.stage == "commit"
        assert deadline.committing is False

    def test_commit_refused_after_expiry(self) -> None:
        with pytest.raises(AuthorizationTimeout):
            Deadline(0).begin_commit()

    def test_cancel_refused_once_committing(self) -> None:
        deadline = Deadline(60)
        deadline.begin_commit()

        assert deadline.cancel() is False
        assert deadline.cancelled is False
        assert deadline.committing is True
