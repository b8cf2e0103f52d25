"""
Megaverse API interface.

This module provides the aiohttp transport for the megaverse challenge API,
the wire encoding of create and delete requests, and a repository-style
facade that routes every call through the resilient call pipeline.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from ..core.cancellation import CancellationToken
from ..core.exceptions import (
    CancellationError, MegataskError, PermanentRemoteError, ValidationError
)
from ..core.models import (
    Cometh, ComethDirection, CreateOperation, ObjectKind, Polyanet, Position,
    Soloon, SoloonColor
)
from ..core.pipeline import ApiRequest, RawResponse, ResilientCallPipeline, Transport

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://challenge.crossmint.io/api"

# Numeric type codes used by the current-map endpoint
_MAP_TYPE_CODES = {0: ObjectKind.POLYANET, 1: ObjectKind.SOLOON, 2: ObjectKind.COMETH}


def build_create_request(operation: CreateOperation, candidate_id: str) -> ApiRequest:
    """
    Encode a create operation as an API request.

    This is the single place mapping each operation variant to its payload.
    """
    if isinstance(operation, Polyanet):
        attributes: Dict[str, Any] = {}
    elif isinstance(operation, Soloon):
        attributes = {"color": operation.color.value}
    elif isinstance(operation, Cometh):
        attributes = {"direction": operation.direction.value}
    else:
        raise ValidationError(f"unknown object type: {type(operation).__name__}")

    payload: Dict[str, Any] = {
        "row": operation.position.row,
        "column": operation.position.column,
        "candidateId": candidate_id,
    }
    payload.update(attributes)
    return ApiRequest("POST", operation.kind.endpoint, payload)


def build_delete_request(kind: ObjectKind, position: Position, candidate_id: str) -> ApiRequest:
    """Encode the deletion of whatever ``kind`` object sits at ``position``."""
    if not isinstance(kind, ObjectKind):
        raise ValidationError(f"unknown object type: {kind}")
    payload = {"row": position.row, "column": position.column, "candidateId": candidate_id}
    return ApiRequest("DELETE", kind.endpoint, payload)


class MegaverseClient(Transport):
    """
    aiohttp transport for the megaverse API.

    The session is created lazily and reused; use the client as an async
    context manager or call ``close()`` when done.
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = 30.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "MegaverseClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Content-Type": "application/json", "Accept": "application/json"}
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def send(self, request: ApiRequest, timeout: Optional[float] = None) -> RawResponse:
        total = self.timeout if timeout is None else min(self.timeout, timeout)
        # aiohttp reads a zero total as "no timeout"
        if total <= 0:
            raise asyncio.TimeoutError(f"{request}: no time left to send")
        session = self._get_session()
        async with session.request(
            request.method,
            self.base_url + request.endpoint,
            json=request.payload,
            timeout=aiohttp.ClientTimeout(total=total),
        ) as response:
            if response.content_type == "application/json":
                body = await response.json()
            else:
                body = await response.text()
            return RawResponse(status=response.status, body=body,
                               headers=dict(response.headers))


class MegaverseAPI:
    """
    Repository-style access to the megaverse.

    Args:
        pipeline: Resilient call pipeline wrapping the transport
        candidate_id: Candidate identifier sent with every request
    """

    def __init__(self, pipeline: ResilientCallPipeline, candidate_id: str):
        self.pipeline = pipeline
        self.candidate_id = candidate_id

    def build_request(self, operation: CreateOperation) -> ApiRequest:
        return build_create_request(operation, self.candidate_id)

    async def create(self, operation: CreateOperation,
                     token: Optional[CancellationToken] = None) -> RawResponse:
        operation.validate()
        return await self.pipeline.call(self.build_request(operation), token)

    async def delete(self, kind: ObjectKind, position: Position,
                     token: Optional[CancellationToken] = None) -> RawResponse:
        position.validate()
        request = build_delete_request(kind, position, self.candidate_id)
        return await self.pipeline.call(request, token)

    async def get_goal_map(self, token: Optional[CancellationToken] = None) -> List[List[str]]:
        """Fetch the goal grid as rows of cell names (e.g. ``"RED_SOLOON"``)."""
        request = ApiRequest("GET", f"/map/{self.candidate_id}/goal")
        response = await self.pipeline.call(request, token)
        if not isinstance(response.body, dict) or "goal" not in response.body:
            raise PermanentRemoteError("failed to decode goal map", status=response.status,
                                       endpoint=request.endpoint, body=response.text)
        return response.body["goal"] or []

    async def get_current_map(
        self, token: Optional[CancellationToken] = None
    ) -> List[List[Optional[CreateOperation]]]:
        """
        Fetch the current megaverse as a grid of operations (None for empty cells).

        Raises:
            PermanentRemoteError: 404 when the endpoint is not available
        """
        request = ApiRequest("GET", f"/map/{self.candidate_id}")
        try:
            response = await self.pipeline.call(request, token)
        except PermanentRemoteError as exc:
            if exc.status == 404:
                raise PermanentRemoteError("current map endpoint not available",
                                           status=404, endpoint=request.endpoint,
                                           original_error=exc)
            raise

        body = response.body if isinstance(response.body, dict) else {}
        content = (body.get("map") or {}).get("content") or []
        return [
            [_decode_cell(cell, row, column) for column, cell in enumerate(cells)]
            for row, cells in enumerate(content)
        ]

    async def clear(self, width: int, height: int,
                    token: Optional[CancellationToken] = None) -> "ClearResult":
        """
        Delete every object in a ``width`` x ``height`` grid.

        Each cell is tried with one delete per object kind until one
        succeeds, and every deletion goes through the shared pipeline. A cell
        where every kind is rejected is left unchanged; only transient
        failures that outlast the retries are reported as errors.
        """
        logger.info("Clearing megaverse (%dx%d)", width, height)
        result = ClearResult()

        for row in range(height):
            for column in range(width):
                if token is not None and token.cancelled:
                    result.cancelled = True
                    break
                position = Position(row, column)
                result.checked += 1
                deleted = await self._clear_cell(position, result, token)
                if not deleted:
                    result.unchanged += 1
            if result.cancelled:
                break

        logger.info("Clear complete: %d objects removed, %d positions checked, "
                    "%d positions unchanged", result.removed, result.checked, result.unchanged)
        return result

    async def _clear_cell(self, position: Position, result: "ClearResult",
                          token: Optional[CancellationToken]) -> bool:
        for kind in ObjectKind:
            try:
                await self.delete(kind, position, token)
            except PermanentRemoteError:
                continue
            except CancellationError as exc:
                result.errors.append((position, exc))
                result.cancelled = True
                return False
            except MegataskError as exc:
                result.errors.append((position, exc))
                return False
            result.removed += 1
            logger.info("Deleted %s at %s", kind.value, position)
            return True
        return False


@dataclass
class ClearResult:
    """Summary of a clear run."""
    checked: int = 0
    removed: int = 0
    unchanged: int = 0
    errors: List[Tuple[Position, BaseException]] = field(default_factory=list)
    cancelled: bool = False


def _decode_cell(cell: Optional[Dict[str, Any]], row: int, column: int) -> Optional[CreateOperation]:
    if not cell or cell.get("type") is None:
        return None
    kind = _MAP_TYPE_CODES.get(cell["type"])
    position = Position(row, column)
    try:
        if kind is ObjectKind.POLYANET:
            return Polyanet(position)
        if kind is ObjectKind.SOLOON:
            return Soloon(position, SoloonColor(str(cell.get("color") or "").lower()))
        if kind is ObjectKind.COMETH:
            return Cometh(position, ComethDirection(str(cell.get("direction") or "").lower()))
    except ValueError:
        pass
    logger.warning("Unknown map cell %r at (%d, %d)", cell, row, column)
    return None
