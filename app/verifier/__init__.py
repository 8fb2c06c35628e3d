"""External verifier clients.

create_verifier_client() picks the implementation once, at startup:
the live client when the verifier is enabled and non-placeholder
credentials are configured, otherwise the mock client.
"""

import logging
from typing import Optional

from app.core import config

from .client import VERIFIED_STATUSES, PreparedInvitation, ProofStatus, VerifierClient, VerifierEvent
from .exceptions import (
    InvalidInvitationError,
    VerifierError,
    VerifierRequestError,
    VerifierResponseError,
    VerifierUnavailableError,
)
from .live import LiveVerifierClient
from .mock import MockVerifierClient

log = logging.getLogger(__name__)


def create_verifier_client(
    enabled: Optional[bool] = None,
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
    lob_id: Optional[str] = None,
) -> VerifierClient:
    """Select the verifier implementation.

    Arguments default to app.core.config values.
    """
    enabled = config.VERIFIER_ENABLED if enabled is None else enabled
    api_key = config.VERIFIER_API_KEY if api_key is None else api_key
    lob_id = config.VERIFIER_LOB_ID if lob_id is None else lob_id
    base_url = base_url or config.VERIFIER_BASE_URL

    if not enabled:
        log.info("Verifier disabled, using mock verifier")
        return MockVerifierClient()
    if not api_key or not lob_id or api_key in config.VERIFIER_PLACEHOLDER_KEYS:
        log.warning("Verifier enabled but credentials missing or placeholder, using mock verifier")
        return MockVerifierClient()

    log.info(f"Using live verifier at {base_url}")
    return LiveVerifierClient(base_url=base_url, api_key=api_key, lob_id=lob_id)


__all__ = [
    "VERIFIED_STATUSES",
    "PreparedInvitation",
    "ProofStatus",
    "VerifierClient",
    "VerifierEvent",
    "LiveVerifierClient",
    "MockVerifierClient",
    "create_verifier_client",
    "VerifierError",
    "VerifierUnavailableError",
    "VerifierRequestError",
    "VerifierResponseError",
    "InvalidInvitationError",
]
