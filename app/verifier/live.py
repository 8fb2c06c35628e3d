"""HTTP client for an Orbit-style line-of-business verifier API.

Endpoints (relative to VERIFIER_BASE_URL):
- POST api/lob/{lobId}/define-proof-request  → {proofDefineId}
- POST api/lob/{lobId}/proof/url             → {shortUrl|longUrl|oobInvitation, proofRequestId|txId}
- GET  api/lob/{lobId}/proof/status/{id}     → {status|state, attributes|verifiedAttributes}

Authentication is by ``apiKey`` and ``lobId`` headers. Responses are wrapped
either directly or under ``data``; both shapes are accepted.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.core.config import ACCEPTED_INVITATION_SCHEMES, VERIFIER_TIMEOUT_SECONDS
from app.verification.proof_definition import ProofDefinition, extract_invitation_url

from .client import PreparedInvitation, ProofStatus, VerifierClient
from .exceptions import (
    InvalidInvitationError,
    VerifierRequestError,
    VerifierResponseError,
    VerifierUnavailableError,
)

log = logging.getLogger(__name__)


class _DefineProofResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    proof_define_id: str | int = Field(alias="proofDefineId")


class _ProofUrlResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    proof_request_id: Optional[str | int] = Field(default=None, alias="proofRequestId")
    tx_id: Optional[str | int] = Field(default=None, alias="txId")
    qr_svg: Optional[str] = Field(default=None, alias="svg")


class _ProofStatusResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: Optional[str] = None
    state: Optional[str] = None
    attributes: Optional[Dict[str, Any]] = None
    verified_attributes: Optional[Dict[str, Any]] = Field(default=None, alias="verifiedAttributes")


def _unwrap(body: Any) -> Any:
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        return body["data"]
    return body


def validate_invitation_url(url: Optional[str]) -> str:
    """Reject invitation URLs a wallet cannot open."""
    if not url or not url.startswith(ACCEPTED_INVITATION_SCHEMES):
        raise InvalidInvitationError(f"Invalid invitation URL format: {str(url)[:80]!r}")
    return url


class LiveVerifierClient(VerifierClient):
    """Talks to the real verifier over HTTPS."""

    mode = "live"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        lob_id: str,
        timeout: float = VERIFIER_TIMEOUT_SECONDS,
    ):
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._api_key = api_key
        self._lob_id = lob_id
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    def _url(self, path: str) -> str:
        return f"{self._base_url}api/lob/{self._lob_id}/{path}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "apiKey": self._api_key,
            "lobId": self._lob_id,
        }

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Perform one verifier call and return the decoded JSON body.

        Raises:
            VerifierUnavailableError: Timeout or connection failure.
            VerifierRequestError: Non-2xx response.
            VerifierResponseError: Body is not JSON.
        """
        url = self._url(path)
        log.info(f"Verifier {operation}: {method} {url}")
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(
                    method, url, headers=self._headers(), json=json, params=params
                )
                response.raise_for_status()
                return _unwrap(response.json())
        except httpx.TimeoutException:
            log.error(f"Verifier {operation} timed out after {self._timeout}s")
            raise VerifierUnavailableError(
                f"Timeout after {self._timeout}s during {operation}", operation
            )
        except httpx.HTTPStatusError as e:
            log.error(f"Verifier {operation} failed: HTTP {e.response.status_code}")
            raise VerifierRequestError(
                f"HTTP {e.response.status_code} during {operation}",
                operation,
                status_code=e.response.status_code,
            )
        except httpx.RequestError as e:
            log.error(f"Verifier {operation} request failed: {e}")
            raise VerifierUnavailableError(f"Request failed during {operation}: {e}", operation)
        except ValueError as e:
            log.error(f"Verifier {operation} returned non-JSON body: {e}")
            raise VerifierResponseError(f"Non-JSON response during {operation}", operation)

    async def define_proof(self, definition: ProofDefinition) -> str:
        body = await self._request(
            "define_proof", "POST", "define-proof-request", json=definition.to_payload()
        )
        try:
            parsed = _DefineProofResponse.model_validate(body)
        except ValidationError:
            raise VerifierResponseError("Response has no proofDefineId", "define_proof")
        log.info(f"Verifier proof definition created: {parsed.proof_define_id}")
        return str(parsed.proof_define_id)

    async def prepare_invitation(self, definition_id: str) -> PreparedInvitation:
        body = await self._request(
            "prepare_invitation",
            "POST",
            "proof/url",
            json={"proofDefineId": definition_id},
            params={"connectionless": "true"},
        )
        try:
            parsed = _ProofUrlResponse.model_validate(body)
        except ValidationError:
            raise VerifierResponseError("Malformed proof URL response", "prepare_invitation")

        invitation_url = validate_invitation_url(extract_invitation_url(body))
        request_id = parsed.proof_request_id or parsed.tx_id
        if request_id is None:
            raise VerifierResponseError(
                "Response has no proofRequestId or txId", "prepare_invitation"
            )
        return PreparedInvitation(
            request_id=str(request_id),
            invitation_url=invitation_url,
            qr_svg=parsed.qr_svg,
        )

    async def get_status(self, request_id: str) -> ProofStatus:
        body = await self._request("get_status", "GET", f"proof/status/{request_id}")
        try:
            parsed = _ProofStatusResponse.model_validate(body)
        except ValidationError:
            raise VerifierResponseError("Malformed proof status response", "get_status")

        status = parsed.status or parsed.state
        if not status:
            raise VerifierResponseError("Response has no status", "get_status")
        attributes = parsed.attributes or parsed.verified_attributes or {}
        return ProofStatus(status=status, attributes=attributes)
