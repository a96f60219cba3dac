from typing import Optional

from cardauth.core.config import Settings, get_settings
from cardauth.core.exceptions import ProviderNotConfiguredError
from cardauth.providers.base import CardProvider
from cardauth.providers.signed import HmacCardProvider, SandboxCardProvider


def get_provider(provider_id: Optional[str], settings: Optional[Settings] = None) -> CardProvider:
    """Resolve a provider id to a configured provider.

    Providers with a secret in ``WEBHOOK_SECRETS`` verify HMAC signatures. The
    sandbox provider exists only outside production.
    """
    settings = settings or get_settings()
    provider_id = (provider_id or settings.default_provider).strip().lower()

    secret = settings.webhook_secrets.get(provider_id)
    if secret:
        return HmacCardProvider(
            provider_id, secret, tolerance_seconds=settings.webhook_tolerance_seconds
        )
    if provider_id == "sandbox" and not settings.is_production:
        return SandboxCardProvider()

    raise ProviderNotConfiguredError(f"Card provider '{provider_id}' is not configured")
