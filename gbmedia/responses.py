"""JSON responses and request helpers of a stream node's HTTP interface."""

from __future__ import annotations

import json as _json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from gbmedia.callback import _parse_u32
from gbmedia.models import BizError, ResMsg, SysError

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/json"
_U32_MAX = 0xFFFFFFFF


def _jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


@dataclass
class JsonResponse:
    """An HTTP response carrying a JSON-encoded response envelope."""

    status: int
    body: bytes
    headers: dict[str, str] = field(default_factory=lambda: {"Content-Type": CONTENT_TYPE})

    @classmethod
    def _build(cls, status: int, message: ResMsg[Any]) -> "JsonResponse":
        envelope = message.to_dict()
        envelope["data"] = _jsonable(envelope["data"])
        body = _json.dumps(envelope, ensure_ascii=False).encode("utf-8")
        return cls(status, body)

    def json(self) -> Any:
        """Decode the body."""
        return _json.loads(self.body.decode("utf-8"))


@dataclass(frozen=True)
class RtpMap:
    """RTP payload-type to media-name mapping of an SSRC."""

    ssrc: int
    map: dict[int, str]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RtpMap":
        if not isinstance(data, Mapping):
            raise SysError("rtp map must be a mapping")
        try:
            ssrc, raw_map = data["ssrc"], data["map"]
        except KeyError as exc:
            raise SysError(f"missing field: {exc.args[0]}") from exc
        if isinstance(ssrc, bool) or not isinstance(ssrc, int) or not 0 <= ssrc <= _U32_MAX:
            raise SysError(f"invalid ssrc: {ssrc!r}")
        if not isinstance(raw_map, Mapping):
            raise SysError("map must be a mapping")
        mapping: dict[int, str] = {}
        for key, value in raw_map.items():
            if isinstance(key, str) and key.isascii() and key.isdigit():
                payload_type = int(key)
            elif isinstance(key, int) and not isinstance(key, bool):
                payload_type = key
            else:
                raise SysError(f"invalid payload type: {key!r}")
            if not 0 <= payload_type <= 255:
                raise SysError(f"invalid payload type: {key!r}")
            if not isinstance(value, str):
                raise SysError(f"invalid media name: {value!r}")
            mapping[payload_type] = value
        return cls(ssrc, mapping)


def get_ssrc(params: Mapping[str, str]) -> int:
    """Read the ``ssrc`` query parameter as an unsigned 32-bit number."""
    if "ssrc" not in params:
        logger.error("ssrc does not exist")
        raise BizError(1100, "ssrc does not exist")
    return _parse_u32(params["ssrc"])


def get_stream_id(params: Mapping[str, str]) -> str:
    """Read the ``stream_id`` query parameter."""
    if "stream_id" not in params:
        logger.error("stream_id does not exist")
        raise BizError(1100, "stream_id does not exist")
    return str(params["stream_id"])


def res_401() -> JsonResponse:
    return JsonResponse._build(401, ResMsg.failure("401 no token"))


def res_404() -> JsonResponse:
    return JsonResponse._build(404, ResMsg.failure("404"))


def res_400() -> JsonResponse:
    return JsonResponse._build(400, ResMsg.failure("400"))


def res_204() -> JsonResponse:
    return JsonResponse._build(204, ResMsg.success("No Content; media stream ended by device"))


def res_500(msg: str) -> JsonResponse:
    return JsonResponse._build(500, ResMsg.failure(msg))


def res_404_stream_timeout() -> JsonResponse:
    return JsonResponse._build(404, ResMsg.failure("404:media stream disconnected"))


def res_422() -> JsonResponse:
    return JsonResponse._build(422, ResMsg.failure("invalid parameters"))


def res_ok(data: Any = None) -> JsonResponse:
    """A 200 response with a success envelope around ``data``."""
    return JsonResponse._build(200, ResMsg.success(data))


def res_failed(msg: str) -> JsonResponse:
    """A 200 response whose envelope reports a failure."""
    return JsonResponse._build(200, ResMsg.failure(msg))