import asyncio
import json
from typing import Callable, Optional

from fastapi import BackgroundTasks, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from cardauth.controllers.authorizations.pipeline import (
    Approved,
    DecisionPipeline,
    Declined,
    Fault,
    Outcome,
)
from cardauth.core import rate_limiter
from cardauth.core.config import Settings
from cardauth.core.event_emitter import notify_transaction
from cardauth.core.exceptions import (
    AuthorizationTimeout,
    CustomHTTPException,
    ForbiddenOrigin,
    IdempotencyConflict,
    UnauthorizedWebhook,
)
from cardauth.core.executor import get_executor
from cardauth.core.logging import get_logger
from cardauth.core.responses import decision_response
from cardauth.core.security import (
    PROVIDER_HEADER,
    REFERENCE_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    client_ip,
    guard_webhook,
)
from cardauth.core.utils import Deadline
from cardauth.providers.base import CardProvider
from cardauth.schemas.authorization_schema import (
    AuthorizationRequest,
    AuthorizationResponse,
    DeclineReason,
)

logger = get_logger(__name__)

SYSTEM_ERROR_MESSAGE = "Unable to process authorization"


def to_response(outcome: Outcome) -> AuthorizationResponse:
    if isinstance(outcome, Approved):
        return AuthorizationResponse(
            approved=True,
            transactionId=outcome.transaction_id,
            cashbackAmount=float(outcome.cashback_amount),
            message="Transaction approved",
        )
    if isinstance(outcome, Declined):
        return AuthorizationResponse(
            approved=False, declineReason=outcome.reason, message=outcome.message
        )
    return AuthorizationResponse(
        approved=False,
        declineReason=DeclineReason.SYSTEM_ERROR,
        message=SYSTEM_ERROR_MESSAGE,
    )


def run_pipeline(
    session_factory: Callable[[], Session],
    settings: Settings,
    provider: CardProvider,
    payload: AuthorizationRequest,
    deadline: Deadline,
    reference: Optional[str] = None,
) -> Outcome:
    """Evaluate one authorization on a session owned by the calling thread."""
    db = session_factory()
    try:
        pipeline = DecisionPipeline(
            db, settings, provider, deadline=deadline, reference=reference
        )
        return pipeline.evaluate(payload)
    finally:
        db.close()


async def evaluate_with_timeout(
    session_factory: Callable[[], Session],
    settings: Settings,
    provider: CardProvider,
    payload: AuthorizationRequest,
    reference: Optional[str] = None,
) -> Outcome:
    deadline = Deadline(settings.authorization_timeout_seconds)
    work = get_executor(settings).submit(
        run_pipeline, session_factory, settings, provider, payload, deadline, reference
    )
    try:
        return await asyncio.wait_for(
            asyncio.shield(work), timeout=settings.authorization_timeout_seconds
        )
    except asyncio.TimeoutError:
        if not deadline.cancel():
            # The ledger commit already started; its result is the decision
            logger.warning(
                "Authorization for card %s passed its deadline while committing",
                payload.cardId,
            )
            return await work
        logger.error(
            "Authorization timed out for card %s amount %s after %ss",
            payload.cardId,
            payload.amount,
            settings.authorization_timeout_seconds,
        )
        return Fault(AuthorizationTimeout("handler"), "timeout")


def parse_request(raw_body: bytes) -> AuthorizationRequest:
    try:
        data = json.loads(raw_body)
    except ValueError:
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, message="Malformed JSON body"
        )
    try:
        return AuthorizationRequest.model_validate(data)
    except ValidationError as e:
        raise CustomHTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            message="Invalid authorization request",
            details={"errors": json.loads(e.json(include_url=False))},
        )


def lookup_reference(key: str, settings: Settings) -> Optional[dict]:
    """Return a cached response for a retried reference, None for a first attempt."""
    if rate_limiter.claim_reference(key, settings.idempotency_ttl_seconds):
        return None
    cached = rate_limiter.get_from_cache(key)
    if isinstance(cached, dict):
        return cached
    raise IdempotencyConflict(f"Reference {key} is still being processed")


def remember_reference(key: str, outcome: Outcome, body: dict, settings: Settings) -> None:
    try:
        if isinstance(outcome, Fault):
            # Let the processor's next retry be evaluated from scratch
            rate_limiter.invalidate_cache(key)
        else:
            rate_limiter.set_to_cache(key, body, settings.idempotency_ttl_seconds)
    except Exception:
        logger.exception("Failed to record idempotency entry %s", key)


def log_decision(payload: AuthorizationRequest, outcome: Outcome) -> None:
    fields = {
        "card_id": payload.cardId,
        "amount": str(payload.amount),
        "currency": payload.currency,
        "mcc": payload.mcc,
    }
    if isinstance(outcome, Approved):
        fields.update(
            outcome="approved",
            transaction_id=outcome.transaction_id,
            anomaly=list(outcome.anomaly_reasons),
        )
    elif isinstance(outcome, Declined):
        fields.update(outcome="declined", decline_reason=outcome.reason.value)
    else:
        fields.update(
            outcome="fault", decline_reason=DeclineReason.SYSTEM_ERROR.value, stage=outcome.stage
        )
    logger.info(
        "Authorization %s for card %s amount %s %s",
        fields["outcome"],
        payload.cardId,
        payload.amount,
        payload.currency,
        extra={"extra": fields},
    )


async def authorize_transaction(
    request: Request,
    background_tasks: BackgroundTasks,
    session_factory: Callable[[], Session],
    settings: Settings,
) -> JSONResponse:
    raw_body = await request.body()
    headers = request.headers

    verdict = guard_webhook(
        raw_body,
        headers.get(SIGNATURE_HEADER),
        headers.get(TIMESTAMP_HEADER),
        client_ip(request),
        headers.get(PROVIDER_HEADER),
        settings,
    )
    if not verdict.valid:
        if verdict.status_code == status.HTTP_403_FORBIDDEN:
            raise ForbiddenOrigin("Origin not allowed", verdict.reason)
        raise UnauthorizedWebhook("Webhook signature verification failed", verdict.reason)

    payload = parse_request(raw_body)

    cache_key = None
    reference = headers.get(REFERENCE_HEADER)
    if settings.idempotency_enabled and reference:
        cache_key = rate_limiter.get_cache_key(verdict.provider.name, reference)
        try:
            cached = lookup_reference(cache_key, settings)
        except Exception as e:
            logger.warning("Idempotency lookup failed for %s: %s", cache_key, e)
            outcome = Fault(e, "idempotency")
            log_decision(payload, outcome)
            return decision_response(to_response(outcome).to_wire())
        if cached is not None:
            logger.info("Replaying cached decision for reference %s", reference)
            return decision_response(cached)

    outcome = await evaluate_with_timeout(
        session_factory, settings, verdict.provider, payload, reference=reference
    )
    body = to_response(outcome).to_wire()
    log_decision(payload, outcome)

    if cache_key:
        remember_reference(cache_key, outcome, body, settings)

    if isinstance(outcome, Approved):
        background_tasks.add_task(
            notify_transaction,
            session_factory,
            outcome.user_id,
            {
                "cardId": payload.cardId,
                "transactionId": outcome.transaction_id,
                "merchantName": payload.merchantName,
                "currency": payload.currency,
                "amount": float(payload.amount),
                "cashback": float(outcome.cashback_amount),
            },
        )

    return decision_response(body)
