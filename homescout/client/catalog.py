"""
MLS catalog client: OAuth client-credentials token plus OData property queries.
"""
import logging
import threading
from typing import Any, Optional

import requests
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..config import CatalogConfig, get_config
from ..errors import RequestCancelled, UpstreamError


logger = logging.getLogger(__name__)


# Fields pulled for subject matching and comps; search and nearby also expand Media.
PROPERTY_SELECT = (
    "ListingKey,UnparsedAddress,StreetNumber,StreetName,City,CountyOrParish,"
    "StateOrProvince,PostalCode,MLSAreaMajor,PropertyType,PropertySubType,"
    "BedroomsTotal,BathroomsTotalInteger,LivingArea,Latitude,Longitude,"
    "StandardStatus,ClosePrice,ListPrice,CloseDate,ModificationTimestamp"
)


def _retry_once(service: str):
    """One retry on network failures, gateway errors, and (catalog only) an expired token."""

    def is_transient(exc: BaseException) -> bool:
        if not isinstance(exc, UpstreamError) or exc.service != service:
            return False
        return exc.is_transient or (service == CatalogClient.SERVICE and exc.status == 401)

    return retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        retry=retry_if_exception(is_transient),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            f"Retrying {service} call after transient failure (attempt {retry_state.attempt_number})"
        ),
    )


class CatalogClient:
    """
    Thin wrapper around the catalog's OData Property endpoint.
    Returns raw PascalCase records; callers normalize them into Listing models.

    One instance serves one request: the bearer token is cached on the
    instance and the cancel flag belongs to that request.
    """

    SERVICE = "MLS catalog"
    PROPERTY_PATH = "odata/Property"

    def __init__(
        self,
        config: Optional[CatalogConfig] = None,
        session: Optional[requests.Session] = None,
        cancel: Optional[threading.Event] = None,
    ):
        self.config = config or get_config().catalog
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.cancel = cancel
        self._token: Optional[str] = None
        self.calls = 0

    def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session:
            self.session.close()

    def _check_cancelled(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise RequestCancelled("client disconnected")

    @_retry_once("MLS token")
    def _fetch_token(self) -> str:
        """POST client credentials to the token endpoint."""
        self._check_cancelled()
        try:
            response = self.session.post(
                self.config.token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "scope": self.config.scope,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as e:
            raise UpstreamError("MLS token", reason=type(e).__name__) from e

        if not response.ok:
            raise UpstreamError("MLS token", status=response.status_code)

        try:
            token = (response.json() or {}).get("access_token")
        except (ValueError, AttributeError) as e:
            raise UpstreamError("MLS token", status=response.status_code, reason="invalid JSON") from e

        if not token:
            raise UpstreamError("MLS token", status=response.status_code, reason="missing access_token")
        return token

    def token(self) -> str:
        if self._token is None:
            if not self.config.client_id or not self.config.client_secret:
                raise UpstreamError("MLS token", reason="credentials not configured", transient=False)
            self._token = self._fetch_token()
        return self._token

    @_retry_once("MLS catalog")
    def _get(self, params: dict[str, str]) -> dict[str, Any]:
        self._check_cancelled()
        url = f"{self.config.base_url}/{self.PROPERTY_PATH}"
        self.calls += 1
        try:
            response = self.session.get(
                url,
                params=params,
                headers={
                    "Authorization": f"Bearer {self.token()}",
                    "Accept": "application/json",
                },
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as e:
            raise UpstreamError(self.SERVICE, reason=type(e).__name__) from e

        if response.status_code == 401:
            # Token expired mid-request; drop it so the retry fetches a new one
            self._token = None
            raise UpstreamError(self.SERVICE, status=401)
        if not response.ok:
            raise UpstreamError(self.SERVICE, status=response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(self.SERVICE, status=response.status_code, reason="invalid JSON") from e
        if not isinstance(payload, dict):
            raise UpstreamError(self.SERVICE, status=response.status_code, reason="unexpected payload")
        return payload

    def query(
        self,
        filter: str,
        select: Optional[str] = None,
        orderby: Optional[str] = None,
        top: int = 25,
        skip: int = 0,
        expand_media: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Run one OData Property query.

        Args:
            filter: Composed $filter expression
            select: Optional $select field list
            orderby: Optional $orderby clause
            top: Page size
            skip: Offset
            expand_media: Add $expand=Media

        Returns:
            The response's ``value`` array (empty list when absent)

        Raises:
            UpstreamError: token or catalog call failed after one retry
            RequestCancelled: the caller disconnected
        """
        params = {"$filter": filter, "$top": str(top), "$skip": str(skip)}
        if select:
            params["$select"] = select
        if orderby:
            params["$orderby"] = orderby
        if expand_media:
            params["$expand"] = "Media"

        if get_config().logging.log_requests:
            logger.info(f"Catalog query: {params}")

        payload = self._get(params)
        rows = payload.get("value")
        if not isinstance(rows, list):
            return []
        return [row for row in rows if isinstance(row, dict)]
