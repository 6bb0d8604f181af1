"""HTTP Fund Verifier — asks the payments service whether a funding reference is locked.

Invariants:
    - verify() returns True only on an explicit {"verified": true} answer
    - The reference is percent-encoded as a single path segment: it can never
      add path segments, a query or a fragment to the request
      ("." and ".." are refused outright: URL normalization would resolve them)
    - 404 means "unknown reference" -> False (the service raises FundingVerificationFailed)
    - Transport errors and other non-2xx answers raise ExternalServiceError:
      an unreachable verifier is never read as "not funded"
"""

import logging
from urllib.parse import quote

import httpx

from escrow_engine.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)

SERVICE_NAME = "fund_verifier"


class HttpFundVerifier:
    """FundVerifier backed by GET {base_url}/v1/funding/{reference}."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.base_url = base_url.rstrip("/")
        self.headers = headers
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def verify(self, reference: str) -> bool:
        if reference.strip(".") == "":
            logger.warning("Dot-segment funding reference refused")
            return False
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout_seconds,
            transport=self.transport,
        ) as client:
            try:
                response = await client.get(f"/v1/funding/{quote(reference, safe='')}")
            except httpx.HTTPError as e:
                raise ExternalServiceError(str(e), SERVICE_NAME)

        if response.status_code == 404:
            return False
        if response.is_error:
            raise ExternalServiceError(
                f"unexpected status {response.status_code}", SERVICE_NAME,
            )
        try:
            data = response.json()
        except ValueError:
            raise ExternalServiceError("response was not JSON", SERVICE_NAME)
        verified = isinstance(data, dict) and data.get("verified") is True
        logger.info("Funding reference checked", extra={"verdict": str(verified)})
        return verified
