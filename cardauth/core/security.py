"""Signature and origin checks for inbound processor webhooks.

Runs on the raw request bytes before anything is parsed.
"""
import ipaddress
from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import Request, status

from cardauth.core.config import Settings
from cardauth.core.exceptions import ProviderNotConfiguredError
from cardauth.core.logging import audit_event
from cardauth.providers.base import CardProvider
from cardauth.providers.registry import get_provider

SIGNATURE_HEADER = "x-webhook-signature"
TIMESTAMP_HEADER = "x-webhook-timestamp"
PROVIDER_HEADER = "x-card-provider"
REFERENCE_HEADER = "x-request-reference"

MISSING_SIGNATURE = "missing_signature"
IP_NOT_ALLOWED = "ip_not_allowed"
UNKNOWN_PROVIDER = "unknown_provider"
INVALID_SIGNATURE = "invalid_signature"


@dataclass
class GuardVerdict:
    valid: bool
    status_code: int = status.HTTP_200_OK
    reason: Optional[str] = None
    provider: Optional[CardProvider] = None


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def ip_allowed(ip: str, allowlist: Iterable[str]) -> bool:
    entries = list(allowlist)
    if not entries:
        # Open mode
        return True
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    for entry in entries:
        try:
            if address in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            continue
    return False


def _reject(status_code: int, reason: str, ip: str, provider_id: Optional[str]) -> GuardVerdict:
    audit_event("webhook_rejected", reason=reason, ip=ip, provider=provider_id)
    return GuardVerdict(valid=False, status_code=status_code, reason=reason)


def guard_webhook(
    raw_body: bytes,
    signature: Optional[str],
    timestamp: Optional[str],
    ip: str,
    provider_id: Optional[str],
    settings: Settings,
) -> GuardVerdict:
    if not signature:
        return _reject(status.HTTP_401_UNAUTHORIZED, MISSING_SIGNATURE, ip, provider_id)

    if not ip_allowed(ip, settings.webhook_ip_allowlist):
        return _reject(status.HTTP_403_FORBIDDEN, IP_NOT_ALLOWED, ip, provider_id)

    try:
        provider = get_provider(provider_id, settings)
    except ProviderNotConfiguredError:
        return _reject(status.HTTP_401_UNAUTHORIZED, UNKNOWN_PROVIDER, ip, provider_id)

    if not provider.verify_webhook(raw_body, signature, timestamp):
        return _reject(status.HTTP_401_UNAUTHORIZED, INVALID_SIGNATURE, ip, provider.name)

    return GuardVerdict(valid=True, provider=provider)
