"""Errors, stream event models and media payload containers."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Generic, Mapping, Optional, TypeVar

T = TypeVar("T")

_U32_MAX = 0xFFFFFFFF


class GmvError(Exception):
    """Base class for every error raised by the package."""

    def __init__(self, msg: str) -> None:
        super().__init__(msg)
        self.msg = msg


class BizError(GmvError):
    """A business rule was violated; carries a numeric code."""

    def __init__(self, code: int, msg: str) -> None:
        super().__init__(msg)
        self.code = code

    def __str__(self) -> str:
        return f"[{self.code}] {self.msg}"


class SysError(GmvError):
    """An internal or transport failure."""


def _get(data: Mapping[str, Any], key: str) -> Any:
    try:
        return data[key]
    except (KeyError, TypeError) as exc:
        raise SysError(f"missing field: {key}") from exc


def _u32(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _U32_MAX:
        raise SysError(f"invalid u32 value for {name}: {value!r}")
    return value


class PlayType(enum.Enum):
    """How a stream is delivered to a viewer."""

    FLV = "Flv"
    HLS = "Hls"


@dataclass
class ResMsg(Generic[T]):
    """Generic response envelope: code, message and optional data."""

    code: int
    msg: str
    data: Optional[T] = None

    @classmethod
    def success(cls, data: Optional[T] = None) -> "ResMsg[T]":
        return cls(200, "success", data)

    @classmethod
    def failure(cls, msg: str) -> "ResMsg[T]":
        return cls(500, msg, None)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "msg": self.msg, "data": self.data}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResMsg[Any]":
        code = _get(data, "code")
        if isinstance(code, bool) or not isinstance(code, int):
            raise SysError(f"invalid code: {code!r}")
        return cls(code, data.get("msg") or "", data.get("data"))


@dataclass
class NetSource:
    """Origin address and transport protocol of a media stream."""

    remote_addr: str
    protocol: str

    def to_dict(self) -> dict[str, Any]:
        return {"remote_addr": self.remote_addr, "protocol": self.protocol}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NetSource":
        return cls(str(_get(data, "remote_addr")), str(_get(data, "protocol")))


@dataclass
class RtpInfo:
    """RTP-level identification of a stream."""

    ssrc: int
    origin_trans: Optional[NetSource]
    server_name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "ssrc": self.ssrc,
            "origin_trans": self.origin_trans.to_dict() if self.origin_trans else None,
            "server_name": self.server_name,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RtpInfo":
        origin = data.get("origin_trans") if isinstance(data, Mapping) else None
        return cls(
            ssrc=_u32(_get(data, "ssrc"), "ssrc"),
            origin_trans=NetSource.from_dict(origin) if origin is not None else None,
            server_name=str(_get(data, "server_name")),
        )


@dataclass
class BaseStreamInfo:
    """Stream identity and the time it started arriving."""

    rtp_info: RtpInfo
    stream_id: str
    in_time: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "rtp_info": self.rtp_info.to_dict(),
            "stream_id": self.stream_id,
            "in_time": self.in_time,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BaseStreamInfo":
        return cls(
            rtp_info=RtpInfo.from_dict(_get(data, "rtp_info")),
            stream_id=str(_get(data, "stream_id")),
            in_time=_u32(_get(data, "in_time"), "in_time"),
        )


@dataclass
class StreamState:
    """A stream together with its current viewer count."""

    base_stream_info: BaseStreamInfo
    user_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_stream_info": self.base_stream_info.to_dict(),
            "user_count": self.user_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StreamState":
        return cls(
            base_stream_info=BaseStreamInfo.from_dict(_get(data, "base_stream_info")),
            user_count=_u32(_get(data, "user_count"), "user_count"),
        )


@dataclass
class StreamPlayInfo:
    """A viewer's play request on a stream."""

    base_stream_info: BaseStreamInfo
    remote_addr: str
    token: str
    play_type: PlayType
    user_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_stream_info": self.base_stream_info.to_dict(),
            "remote_addr": self.remote_addr,
            "token": self.token,
            "play_type": self.play_type.value,
            "user_count": self.user_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StreamPlayInfo":
        try:
            play_type = PlayType(_get(data, "play_type"))
        except ValueError as exc:
            raise SysError(f"unknown play_type: {data['play_type']!r}") from exc
        return cls(
            base_stream_info=BaseStreamInfo.from_dict(_get(data, "base_stream_info")),
            remote_addr=str(_get(data, "remote_addr")),
            token=str(_get(data, "token")),
            play_type=play_type,
            user_count=_u32(_get(data, "user_count"), "user_count"),
        )


@dataclass
class StreamRecordInfo:
    """Progress or result of a recording."""

    file_name: Optional[str]
    file_size: Optional[int]
    timestamp: int
    bytes_sec: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_name": self.file_name,
            "file_size": self.file_size,
            "timestamp": self.timestamp,
            "bytes_sec": self.bytes_sec,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StreamRecordInfo":
        bytes_sec = _get(data, "bytes_sec")
        if isinstance(bytes_sec, bool) or not isinstance(bytes_sec, int) or bytes_sec < 0:
            raise SysError(f"invalid bytes_sec: {bytes_sec!r}")
        return cls(
            file_name=data.get("file_name"),
            file_size=data.get("file_size"),
            timestamp=_u32(_get(data, "timestamp"), "timestamp"),
            bytes_sec=bytes_sec,
        )


class VideoCodec(enum.Enum):
    H264 = "H264"
    H265 = "H265"


class AudioCodec(enum.Enum):
    G711 = "G711"


@dataclass
class FrameData:
    """One decoded frame with its payload type and timestamp."""

    pay_type: Any
    timestamp: int
    data: bytes


@dataclass
class CodecPayload:
    """Accumulated elementary-stream units for video and audio."""

    video_codec: Optional[VideoCodec] = None
    video_nals: list[bytes] = field(default_factory=list)
    video_timestamp: int = 0
    audio_codec: Optional[AudioCodec] = None
    audio_frames: list[bytes] = field(default_factory=list)
    audio_timestamp: int = 0


def ssrc_to_sn(ssrc: int | str) -> int:
    """Return the in-domain stream number: the last four decimal digits of an SSRC."""
    if isinstance(ssrc, str):
        if not ssrc.isdigit() or not ssrc.isascii():
            raise SysError(f"invalid ssrc: {ssrc!r}")
        ssrc = int(ssrc, 10)
    return _u32(ssrc, "ssrc") % 10000