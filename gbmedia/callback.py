"""Calls from the session service to stream media nodes and alarm receivers."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from ipaddress import IPv4Address
from typing import Any, Mapping, Optional, Union

import httpx

from gbmedia.models import ResMsg, StreamRecordInfo, SysError

logger = logging.getLogger(__name__)

EXPIRES = 8
TOKEN_HEADER = "gmv-token"

LISTEN_SSRC = "/listen/ssrc"
ON_RECORD = "/on/record"
QUERY_STREAM_COUNT = "/query/stream/count"
RTP_MEDIA = "/rtp/media"

_U32_MAX = 0xFFFFFFFF
_I32_MIN, _I32_MAX = -(2 ** 31), 2 ** 31 - 1
_U32_TEXT = re.compile(r"\+?[0-9]+")
_DOWNLOAD_KINDS = ("Mp4", "Picture")
_HLS_KINDS = ("Hls", "FlvHls")

Address = Union[str, IPv4Address]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_u32(text: str) -> int:
    if not isinstance(text, str) or not text.isascii() or not _U32_TEXT.fullmatch(text):
        raise SysError(f"invalid digit found in string: {text!r}")
    value = int(text, 10)
    if value > _U32_MAX:
        raise SysError(f"number too large to fit in target type: {text!r}")
    return value


def _single_entry(data: Any, what: str) -> tuple[str, Any]:
    if not isinstance(data, Mapping) or len(data) != 1:
        raise SysError(f"invalid {what}: {data!r}")
    ((key, value),) = data.items()
    return key, value


@dataclass(frozen=True)
class HlsPiece:
    """HLS segmenting: segment length in seconds and whether the list is live."""

    duration: int = 0
    live: bool = False

    def __post_init__(self) -> None:
        if not _is_int(self.duration) or not 0 <= self.duration <= 255:
            raise SysError(f"invalid hls duration: {self.duration!r}")
        if not isinstance(self.live, bool):
            raise SysError(f"invalid hls live flag: {self.live!r}")

    def _to_wire(self) -> dict[str, Any]:
        return {"duration": self.duration, "live": self.live}

    @classmethod
    def _from_wire(cls, data: Any) -> "HlsPiece":
        if not isinstance(data, Mapping) or "duration" not in data or "live" not in data:
            raise SysError(f"invalid hls piece: {data!r}")
        return cls(data["duration"], data["live"])


@dataclass(frozen=True)
class Download:
    """A download job: ``Mp4`` recording or ``Picture`` snapshot, with file name and type."""

    kind: str
    file_name: str
    file_type: Optional[str] = None

    def __post_init__(self) -> None:
        if self.kind not in _DOWNLOAD_KINDS:
            raise SysError(f"unknown download kind: {self.kind!r}")
        if not isinstance(self.file_name, str):
            raise SysError("download file name must be a string")
        if self.file_type is not None and not isinstance(self.file_type, str):
            raise SysError("download file type must be a string")

    def _to_wire(self) -> dict[str, Any]:
        return {self.kind: [self.file_name, self.file_type]}

    @classmethod
    def _from_wire(cls, data: Any) -> "Download":
        kind, value = _single_entry(data, "download")
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise SysError(f"invalid download value: {value!r}")
        return cls(kind, value[0], value[1])


@dataclass(frozen=True)
class Play:
    """A play job: ``Flv``, ``Hls`` or ``FlvHls``; the HLS kinds carry an ``HlsPiece``."""

    kind: str
    hls: Optional[HlsPiece] = None

    def __post_init__(self) -> None:
        if self.kind == "Flv":
            if self.hls is not None:
                raise SysError("Flv play takes no hls piece")
        elif self.kind in _HLS_KINDS:
            if not isinstance(self.hls, HlsPiece):
                raise SysError(f"{self.kind} play requires an hls piece")
        else:
            raise SysError(f"unknown play kind: {self.kind!r}")

    def _to_wire(self) -> Any:
        if self.hls is None:
            return self.kind
        return {self.kind: self.hls._to_wire()}

    @classmethod
    def _from_wire(cls, data: Any) -> "Play":
        if data == "Flv":
            return cls("Flv")
        kind, value = _single_entry(data, "play")
        if kind not in _HLS_KINDS:
            raise SysError(f"unknown play kind: {kind!r}")
        return cls(kind, HlsPiece._from_wire(value))


@dataclass(frozen=True)
class MediaAction:
    """What a stream node does with a stream: play it or download it. Exactly one is set."""

    play: Optional[Play] = None
    download: Optional[Download] = None

    def __post_init__(self) -> None:
        if (self.play is None) == (self.download is None):
            raise SysError("media action needs exactly one of play or download")

    def to_dict(self) -> dict[str, Any]:
        if self.play is not None:
            return {"Play": self.play._to_wire()}
        return {"Download": self.download._to_wire()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MediaAction":
        key, value = _single_entry(data, "media action")
        if key == "Play":
            return cls(play=Play._from_wire(value))
        if key == "Download":
            return cls(download=Download._from_wire(value))
        raise SysError(f"unknown media action: {key!r}")


@dataclass(frozen=True)
class SsrcLisDto:
    """Request to a stream node to listen for an SSRC.

    ``expires`` None means the node's default; a negative value closes at once.
    """

    ssrc: int
    stream_id: str
    expires: Optional[int]
    media_action: MediaAction

    def __post_init__(self) -> None:
        if not _is_int(self.ssrc) or not 0 <= self.ssrc <= _U32_MAX:
            raise SysError(f"invalid ssrc: {self.ssrc!r}")
        if not isinstance(self.stream_id, str):
            raise SysError("stream_id must be a string")
        if self.expires is not None and (
            not _is_int(self.expires) or not _I32_MIN <= self.expires <= _I32_MAX
        ):
            raise SysError(f"invalid expires: {self.expires!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "ssrc": self.ssrc,
            "stream_id": self.stream_id,
            "expires": self.expires,
            "media_action": self.media_action.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SsrcLisDto":
        if not isinstance(data, Mapping):
            raise SysError("ssrc listen request must be a mapping")
        try:
            return cls(
                ssrc=data["ssrc"],
                stream_id=data["stream_id"],
                expires=data.get("expires"),
                media_action=MediaAction.from_dict(data["media_action"]),
            )
        except KeyError as exc:
            raise SysError(f"missing field: {exc.args[0]}") from exc


def _check_token(token: str) -> None:
    if not isinstance(token, str) or any(
        not (ch == "\t" or " " <= ch <= "~") for ch in token
    ):
        raise SysError("failed to parse header value")


def _node_uri(token: str, local_ip: Address, local_port: int) -> tuple[str, dict[str, str]]:
    _check_token(token)
    return f"http://{local_ip}:{local_port}", {TOKEN_HEADER: token}


async def _exchange(
    method: str,
    url: str,
    *,
    headers: Optional[Mapping[str, str]] = None,
    params: Optional[Mapping[str, str]] = None,
    json: Any = None,
) -> ResMsg[Any]:
    try:
        async with httpx.AsyncClient(timeout=EXPIRES, headers=headers) as client:
            res = await client.request(method, url, params=params, json=json)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.error("%s", exc)
        raise SysError(str(exc)) from exc
    if not res.is_success:
        message = f"{res.status_code} {res.reason_phrase}"
        logger.error("%s", message)
        raise SysError(message)
    try:
        body = res.json()
    except ValueError as exc:
        logger.error("%s", exc)
        raise SysError(f"invalid response body: {exc}") from exc
    return ResMsg.from_dict(body)


async def get_stream_count(
    stream_id: Optional[str], token: str, local_ip: Address, local_port: int
) -> int:
    """Ask a stream node how many streams it holds, optionally for one stream id."""
    uri, headers = _node_uri(token, local_ip, local_port)
    params = {"stream_id": stream_id} if stream_id is not None else None
    body = await _exchange("GET", f"{uri}{QUERY_STREAM_COUNT}", headers=headers, params=params)
    if body.code == 200 and _is_int(body.data):
        return body.data
    logger.error("%s", body.msg)
    raise SysError(body.msg)


async def call_listen_ssrc(
    stream_id: str,
    ssrc: str,
    token: str,
    local_ip: Address,
    local_port: int,
    media_action: MediaAction,
) -> bool:
    """Tell a stream node to listen for an SSRC; True when the node accepts."""
    dto = SsrcLisDto(_parse_u32(ssrc), stream_id, None, media_action)
    uri, headers = _node_uri(token, local_ip, local_port)
    body = await _exchange("POST", f"{uri}{LISTEN_SSRC}", headers=headers, json=dto.to_dict())
    return body.code == 200


async def ident_rtp_media_info(
    ssrc: str, media_map: Mapping[int, str], token: str, local_ip: Address, local_port: int
) -> bool:
    """Send the RTP payload-type to media mapping of an SSRC to a stream node."""
    ssrc_value = _parse_u32(ssrc)
    wire_map: dict[str, str] = {}
    for payload_type, media in media_map.items():
        if not _is_int(payload_type) or not 0 <= payload_type <= 255:
            raise SysError(f"invalid payload type: {payload_type!r}")
        wire_map[str(payload_type)] = media
    uri, headers = _node_uri(token, local_ip, local_port)
    body = await _exchange(
        "POST", f"{uri}{RTP_MEDIA}", headers=headers, json={"ssrc": ssrc_value, "map": wire_map}
    )
    return body.code == 200


async def get_stream_record_info_by_biz_id(
    stream_id: str, token: str, local_ip: Address, local_port: int
) -> StreamRecordInfo:
    """Fetch the progress of a recording from a stream node."""
    uri, headers = _node_uri(token, local_ip, local_port)
    body = await _exchange(
        "GET", f"{uri}{ON_RECORD}", headers=headers, params={"stream_id": stream_id}
    )
    if body.data is None:
        logger.error("record info is empty")
        raise SysError("record info is empty")
    return StreamRecordInfo.from_dict(body.data)


async def call_alarm_info(info: Any, push_url: Optional[str]) -> bool:
    """Push alarm information to the configured receiver; True when it answers code 200."""
    if not push_url:
        raise SysError("push_url is required")
    payload = info.to_dict() if hasattr(info, "to_dict") else info
    body = await _exchange("POST", push_url, json=payload)
    return body.code == 200