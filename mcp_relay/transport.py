"""
Transport layer for calls to the remote backend.

Every call returns a RemoteResponse holding either a decoded result or a
CallFailure. Nothing raised by the HTTP stack crosses this boundary, so the
tool path (which recovers) and the resource/prompt path (which re-raises)
consume failures the same way.

Currently implements:
  - HttpTransport: JSON over HTTP(S) with a static bearer token
"""

from __future__ import annotations

import enum
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class FailureKind(str, enum.Enum):
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    NETWORK_ERROR = "network_error"
    MALFORMED_RESPONSE = "malformed_response"


@dataclass(frozen=True)
class CallFailure:
    """Why a remote call did not produce a usable result."""
    kind: FailureKind
    detail: str
    status: int | None = None
    body: Any = None

    def describe(self) -> str:
        if self.status is not None:
            return f"{self.kind.value} (status {self.status}): {self.detail}"
        return f"{self.kind.value}: {self.detail}"


@dataclass(frozen=True)
class RemoteRequest:
    """One call against the backend API root."""
    method: str
    path: str
    params: dict[str, str] = field(default_factory=dict)
    json: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None


@dataclass(frozen=True)
class RemoteResponse:
    """Tagged result of a RemoteRequest: exactly one of result/failure is meaningful."""
    result: Any = None
    failure: CallFailure | None = None

    @property
    def is_error(self) -> bool:
        return self.failure is not None


class Transport(ABC):
    """Abstract transport to the backend."""

    @abstractmethod
    async def send(self, request: RemoteRequest) -> RemoteResponse:
        """Send a request and return the tagged response. Never raises for remote errors."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


def error_detail(body: Any, text: str = "") -> str:
    """Pick the most useful diagnostic out of an upstream error body."""
    if isinstance(body, dict):
        for key in ("error", "details"):
            value = body.get(key)
            if value:
                return value if isinstance(value, str) else json.dumps(value, default=str)
    if body is not None:
        return json.dumps(body, default=str)
    return text or "<empty response>"


class HttpTransport(Transport):
    """
    Backend transport over httpx.

    Authorization and Accept headers are attached to every request. A
    request-level timeout overrides the client default.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Args:
            base_url: API root, e.g. "http://localhost:3002/mcp"
            api_key: Static bearer token
            timeout: Default timeout in seconds for requests without their own
            client: Optional preconfigured client (tests pass one with a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
        }
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def send(self, request: RemoteRequest) -> RemoteResponse:
        url = self.url_for(request.path)
        headers = {**self._headers, **request.headers}
        timeout = request.timeout if request.timeout is not None else self.timeout
        logger.debug(f"{request.method} {url} params={request.params}")

        try:
            response = await self._client.request(
                request.method,
                url,
                params=request.params or None,
                json=request.json,
                headers=headers,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            return RemoteResponse(failure=CallFailure(
                FailureKind.TIMEOUT,
                f"No response received within {timeout}s (timeout): {e.__class__.__name__}",
            ))
        except httpx.RequestError as e:
            detail = f"{e.__class__.__name__}: {e}" if str(e) else e.__class__.__name__
            return RemoteResponse(failure=CallFailure(FailureKind.NETWORK_ERROR, detail))

        body = _decode(response)

        if response.is_error:
            return RemoteResponse(failure=CallFailure(
                FailureKind.HTTP_STATUS,
                error_detail(None if body is _UNDECODABLE else body, response.text),
                status=response.status_code,
                body=None if body is _UNDECODABLE else body,
            ))

        if body is _UNDECODABLE:
            return RemoteResponse(failure=CallFailure(
                FailureKind.MALFORMED_RESPONSE,
                f"Response is not valid JSON: {response.text[:200]}",
                status=response.status_code,
            ))

        return RemoteResponse(result=body)

    async def close(self) -> None:
        await self._client.aclose()


_UNDECODABLE = object()


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return _UNDECODABLE
