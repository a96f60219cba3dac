# cardauth/routes/webhooks.py
from fastapi import APIRouter, BackgroundTasks, Depends, Request

from cardauth.controllers.authorizations.webhook import authorize_transaction
from cardauth.core.config import Settings, get_settings
from cardauth.core.database import get_session_factory
from cardauth.core.rate_limiter import limiter
from cardauth.schemas.authorization_schema import AuthorizationResponse

router = APIRouter()


@router.post("/authorize", response_model=AuthorizationResponse)
@limiter.limit(get_settings().rate_limit_webhook)
async def authorize_transaction_route(
    request: Request,
    background_tasks: BackgroundTasks,
    session_factory=Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
):
    return await authorize_transaction(request, background_tasks, session_factory, settings)
