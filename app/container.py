"""Service wiring.

One ServiceContainer per FastAPI app, stored on ``app.state.services``.
Routers reach it through get_services(); nothing below the HTTP layer looks
up a global.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from app.core import config
from app.oca.assets import AssetCache
from app.oca.repositories import RepositoryRegistry
from app.oca.resolver import BrandingResolver
from app.oca.service import BrandingService
from app.stores import (
    CredentialStore,
    FormStore,
    InMemoryCredentialStore,
    InMemoryFormStore,
)
from app.verification.credential_types import CredentialTypeRegistry
from app.verification.dispatcher import NotificationDispatcher
from app.verification.invitation_cache import InvitationCache
from app.verification.service import VerificationService
from app.verification.sessions import SessionRegistry
from app.verifier import VerifierClient, create_verifier_client

log = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    forms: FormStore
    credentials: CredentialStore
    verifier: VerifierClient
    sessions: SessionRegistry
    dispatcher: NotificationDispatcher
    invitations: InvitationCache
    assets: AssetCache
    verification: VerificationService
    branding: BrandingService


def build_services(
    forms: Optional[FormStore] = None,
    credentials: Optional[CredentialStore] = None,
    verifier: Optional[VerifierClient] = None,
    registry: Optional[CredentialTypeRegistry] = None,
) -> ServiceContainer:
    """Assemble the service graph from config, with optional overrides."""
    if forms is None:
        forms = InMemoryFormStore.from_file(config.FORMS_FILE)
    if credentials is None:
        credentials = InMemoryCredentialStore.from_file(config.CREDENTIALS_FILE)
    if verifier is None:
        verifier = create_verifier_client()
    if registry is None:
        registry = CredentialTypeRegistry.load(config.CREDENTIAL_TYPES_FILE)

    sessions = SessionRegistry(
        ttl_seconds=config.SESSION_TTL_SECONDS,
        retired_memory=config.SESSION_RETIRED_MEMORY,
    )
    dispatcher = NotificationDispatcher(
        pending_ttl_seconds=config.PENDING_NOTIFICATION_TTL_SECONDS,
        pending_max=config.PENDING_NOTIFICATION_MAX,
    )
    invitations = InvitationCache(ttl_seconds=config.INVITATION_TTL_SECONDS)
    assets = AssetCache()

    verification = VerificationService(
        forms=forms,
        credentials=credentials,
        verifier=verifier,
        sessions=sessions,
        dispatcher=dispatcher,
        invitations=invitations,
        registry=registry,
    )
    branding = BrandingService(
        credentials,
        BrandingResolver(asset_cache=assets),
        repositories=RepositoryRegistry(),
    )

    log.info(
        f"Services ready (verifier={verifier.mode}, credential_types={len(registry)})"
    )
    return ServiceContainer(
        forms=forms,
        credentials=credentials,
        verifier=verifier,
        sessions=sessions,
        dispatcher=dispatcher,
        invitations=invitations,
        assets=assets,
        verification=verification,
        branding=branding,
    )


def get_services(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the app's container."""
    return request.app.state.services
