# coffeevibes/services/data_service.py
"""Thin async wrapper around the hosted data service's REST and RPC endpoints.

It speaks the PostgREST dialect (``column=eq.value`` filters, ``Prefer``
headers, ``/rpc/<name>`` procedures) and turns every non-2xx response into a
``DataServiceError`` carrying the server's status code and message.
"""
from typing import Any, Dict, List, Optional

import httpx
import structlog

from coffeevibes.core.config import settings
from coffeevibes.core.errors import DataServiceError, DecodeError

logger = structlog.get_logger(__name__)


def eq(value: Any) -> str:
    """PostgREST equality filter."""
    return f"eq.{value}"


class DataServiceClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        key = api_key if api_key is not None else settings.SUPABASE_ANON_KEY
        if key:
            headers["apikey"] = key
            headers["Authorization"] = f"Bearer {key}"
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.rest_url,
            headers=headers,
            timeout=timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, str]] = None,
        columns: str = "*",
        order: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, str] = {"select": columns}
        if filters:
            params.update(filters)
        if order:
            params["order"] = order
        return await self._request("GET", f"/{table}", params=params)

    async def insert(self, table: str, row: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self._request(
            "POST",
            f"/{table}",
            json=row,
            headers={"Prefer": "return=representation"},
        )

    async def update(
        self, table: str, values: Dict[str, Any], filters: Dict[str, str]
    ) -> List[Dict[str, Any]]:
        return await self._request(
            "PATCH",
            f"/{table}",
            params=filters,
            json=values,
            headers={"Prefer": "return=representation"},
        )

    async def delete(self, table: str, filters: Dict[str, str]) -> List[Dict[str, Any]]:
        # An unmatched filter is a successful no-op on the server.
        return await self._request(
            "DELETE",
            f"/{table}",
            params=filters,
            headers={"Prefer": "return=representation"},
        )

    async def rpc(self, name: str, params: Dict[str, Any]) -> Any:
        return await self._request("POST", f"/rpc/{name}", json=params)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("data_service_timeout", method=method, path=path)
            raise DataServiceError(f"Request to {path} timed out.") from e
        except httpx.HTTPError as e:
            logger.error("data_service_transport_error", method=method, path=path, error=str(e))
            raise DataServiceError(f"Could not reach the data service: {e}") from e

        if not response.is_success:
            message = _error_message(response)
            logger.error(
                "data_service_status_error",
                method=method,
                path=path,
                status_code=response.status_code,
                message=message,
            )
            raise DataServiceError(message, status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return []
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"Invalid JSON from {path}: {e}") from e


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)
