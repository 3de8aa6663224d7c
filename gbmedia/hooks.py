"""Event callbacks from a stream node to the session service."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from gbmedia.models import BaseStreamInfo, StreamPlayInfo, StreamRecordInfo, StreamState

logger = logging.getLogger(__name__)

STREAM_IN = "/stream/in"
STREAM_IDLE = "/stream/idle"
ON_PLAY = "/on/play"
OFF_PLAY = "/off/play"
END_RECORD = "/end/record"
STREAM_INPUT_TIMEOUT = "/stream/input/timeout"

_U16_MAX = 0xFFFF


def _parse_resp_bo(resp: httpx.Response) -> Optional[tuple[int, Optional[bool]]]:
    """Return (code, data) if the body is a valid boolean response envelope."""
    try:
        body = resp.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    code, msg, data = body.get("code"), body.get("msg"), body.get("data")
    if isinstance(code, bool) or not isinstance(code, int) or not 0 <= code <= _U16_MAX:
        return None
    if msg is not None and not isinstance(msg, str):
        return None
    if data is not None and not isinstance(data, bool):
        return None
    return code, data


class HookClient:
    """Posts stream events to the session service's hook endpoints.

    Each call returns None when the request could not be made.
    """

    def __init__(self, hook_uri: str, timeout: float = 8.0) -> None:
        self.hook_uri = hook_uri.rstrip("/")
        self.timeout = timeout

    async def _post(self, path: str, payload: Any) -> Optional[httpx.Response]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.post(f"{self.hook_uri}{path}", json=payload)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.error("%s", exc)
            return None

    async def _status_only(self, path: str, payload: Any) -> Optional[bool]:
        resp = await self._post(path, payload)
        return None if resp is None else resp.is_success

    async def _granted(self, path: str, payload: Any) -> Optional[bool]:
        resp = await self._post(path, payload)
        if resp is None:
            return None
        return resp.is_success and _parse_resp_bo(resp) == (200, True)

    async def _acknowledged(self, path: str, payload: Any) -> Optional[bool]:
        resp = await self._post(path, payload)
        if resp is None:
            return None
        return resp.is_success and _parse_resp_bo(resp) is not None

    async def stream_in(self, info: BaseStreamInfo) -> Optional[bool]:
        """Report that a stream started arriving."""
        return await self._status_only(STREAM_IN, info.to_dict())

    async def stream_idle(self, info: BaseStreamInfo) -> Optional[bool]:
        """Report that a stream has no viewers and no recording."""
        return await self._status_only(STREAM_IDLE, info.to_dict())

    async def on_play(self, info: StreamPlayInfo) -> Optional[bool]:
        """Ask whether a viewer may play a stream; True only when granted."""
        return await self._granted(ON_PLAY, info.to_dict())

    async def off_play(self, info: StreamPlayInfo) -> Optional[bool]:
        """Report that a viewer stopped playing."""
        return await self._granted(OFF_PLAY, info.to_dict())

    async def end_record(self, info: StreamRecordInfo) -> Optional[bool]:
        """Report a finished recording."""
        return await self._acknowledged(END_RECORD, info.to_dict())

    async def stream_input_timeout(self, state: StreamState) -> Optional[bool]:
        """Report that the awaited stream never arrived."""
        return await self._acknowledged(STREAM_INPUT_TIMEOUT, state.to_dict())