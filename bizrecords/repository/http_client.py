"""HTTP record service implementation.

Talks to the remote backend-as-a-service over JSON/HTTP using a single
``httpx.AsyncClient``. Every operation is a ``POST`` to
``{api_url}/tables/{table}/{operation}`` with the operation's params as the
body; the response body is the service envelope and is returned untouched.

Transport-level failures are translated here so the repositories only ever
see envelopes or ``RecordServiceError`` subclasses:

- HTTP 404 -> ``RecordNotFoundError``
- any other non-2xx, network error, or non-JSON body -> ``RemoteUnavailableError``
"""

from typing import Any, Dict, Optional

import httpx

from bizrecords.common.logging import get_logger

from .base import RecordNotFoundError, RecordService, RemoteUnavailableError

logger = get_logger("repository.http_client")


def _error_message(response: httpx.Response) -> str:
    """Pull the service's ``message`` out of an error body, if it sent one."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code} from record service"


class HttpRecordService(RecordService):
    """Record service reached over HTTP."""

    def __init__(
        self,
        api_url: str,
        project_id: str,
        public_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the HTTP record service.

        Args:
            api_url: Base URL of the record service API
            project_id: Project the tables belong to
            public_key: Public API key sent with every request
            timeout: Client-level timeout in seconds
            transport: Optional httpx transport (e.g. ``httpx.MockTransport``)
        """
        if not api_url:
            raise ValueError("HttpRecordService requires 'api_url'")
        if not project_id:
            raise ValueError("HttpRecordService requires 'project_id'")

        self.api_url = api_url.rstrip("/")
        self.project_id = project_id
        self.public_key = public_key
        self.timeout = timeout
        self._transport = transport
        self.client: Optional[httpx.AsyncClient] = None

    def _headers(self) -> Dict[str, str]:
        headers = {"X-Project-Id": self.project_id, "Accept": "application/json"}
        if self.public_key:
            headers["X-Public-Key"] = self.public_key
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self.client is None:
            self.client = httpx.AsyncClient(
                base_url=self.api_url,
                headers=self._headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self.client

    async def _post(self, table: str, operation: str, body: Dict[str, Any]) -> Dict[str, Any]:
        path = f"/tables/{table}/{operation}"
        try:
            response = await self._get_client().post(path, json=body)
        except httpx.HTTPError as e:
            logger.error("Record service request failed", table=table, operation=operation, error=str(e))
            raise RemoteUnavailableError(f"Record service unreachable: {e}", remote_message=str(e))

        if response.status_code == 404:
            message = _error_message(response)
            raise RecordNotFoundError(message, remote_message=message)

        if response.status_code >= 400:
            message = _error_message(response)
            logger.error(
                "Record service returned an error",
                table=table,
                operation=operation,
                status_code=response.status_code,
                error=message
            )
            raise RemoteUnavailableError(message, remote_message=message, status_code=response.status_code)

        try:
            envelope = response.json()
        except ValueError:
            raise RemoteUnavailableError(
                "Malformed response from record service",
                remote_message=response.text[:500],
                status_code=response.status_code
            )

        if not isinstance(envelope, dict):
            raise RemoteUnavailableError(
                "Malformed response from record service",
                remote_message=str(envelope)[:500],
                status_code=response.status_code
            )
        return envelope

    async def fetch_records(self, table: str, params: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post(table, "fetchRecords", params)

    async def get_record_by_id(
        self,
        table: str,
        record_id: int,
        params: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self._post(table, "getRecordById", {"recordId": record_id, **params})

    async def create_record(self, table: str, params: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post(table, "createRecord", params)

    async def update_record(self, table: str, params: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post(table, "updateRecord", params)

    async def delete_record(self, table: str, params: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post(table, "deleteRecord", params)

    async def health_check(self) -> bool:
        """Check the service answers ``GET /health`` with a 2xx."""
        try:
            response = await self._get_client().get("/health")
            return response.status_code < 400
        except httpx.HTTPError as e:
            logger.warning("Record service health check failed", error=str(e))
            return False

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None
