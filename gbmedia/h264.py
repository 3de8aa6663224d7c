"""H.264 RTP depacketizing, Annex B splitting and SPS parsing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from gbmedia.models import CodecPayload, SysError

logger = logging.getLogger(__name__)

_ANNEXB_START_CODE = b"\x00\x00\x00\x01"
_ANNEXB_DELIMITER = b"\x00\x00\x01"
_NALU_TYPE_MASK = 0x1F
_NALU_REF_IDC_MASK = 0x60
_STAPA_NALU_TYPE = 24
_FUA_NALU_TYPE = 28
_FUA_HEADER_SIZE = 2
_FU_END_MASK = 0x40
_NAL_LENGTH_SIZE = 4
_DEFAULT_FPS = 25.0
_HIGH_PROFILES = {100, 110, 122, 244, 44, 83, 86, 118, 128, 138, 139, 134, 135}


def is_new_access_unit(nal_type: int, first_mb: int) -> bool:
    """Tell whether a NAL unit of this type starts a new access unit."""
    if 6 <= nal_type <= 9 or 14 <= nal_type <= 18:
        return True
    if nal_type in (1, 2, 5):
        return first_mb != 0
    return False


def decode_rbsp(nal: bytes) -> bytes:
    """Strip the NAL header byte and emulation-prevention bytes."""
    if not nal:
        raise SysError("empty NAL unit")
    out = bytearray()
    zeros = 0
    for byte in nal[1:]:
        if zeros >= 2 and byte == 3:
            zeros = 0
            continue
        out.append(byte)
        zeros = zeros + 1 if byte == 0 else 0
    return bytes(out)


class _BitReader:
    def __init__(self, data: bytes) -> None:
        self._value = int.from_bytes(data, "big")
        self._total = len(data) * 8
        self._pos = 0

    def bits(self, count: int) -> int:
        if self._pos + count > self._total:
            raise SysError("sps: unexpected end of data")
        shift = self._total - self._pos - count
        self._pos += count
        return (self._value >> shift) & ((1 << count) - 1)

    def flag(self) -> bool:
        return self.bits(1) == 1

    def ue(self) -> int:
        zeros = 0
        while not self.flag():
            zeros += 1
            if zeros > 31:
                raise SysError("sps: exp-golomb value too large")
        return (1 << zeros) - 1 + self.bits(zeros)

    def se(self) -> int:
        k = self.ue()
        return (k + 1) // 2 if k % 2 else -(k // 2)


def _skip_scaling_list(reader: _BitReader, size: int) -> None:
    last_scale = 8
    next_scale = 8
    for _ in range(size):
        if next_scale != 0:
            next_scale = (last_scale + reader.se() + 256) % 256
        if next_scale != 0:
            last_scale = next_scale


@dataclass
class SeqParameterSet:
    """The fields of an H.264 sequence parameter set needed for geometry and timing."""

    profile_idc: int
    constraint_flags: int
    level_idc: int
    seq_parameter_set_id: int
    chroma_format_idc: int
    separate_colour_plane: bool
    bit_depth_luma_minus8: int
    bit_depth_chroma_minus8: int
    log2_max_frame_num_minus4: int
    pic_order_cnt_type: int
    max_num_ref_frames: int
    pic_width_in_mbs_minus1: int
    pic_height_in_map_units_minus1: int
    frame_mbs_only: bool
    frame_cropping: Optional[tuple[int, int, int, int]]
    num_units_in_tick: Optional[int] = None
    time_scale: Optional[int] = None

    @classmethod
    def parse(cls, sps_nal: bytes) -> "SeqParameterSet":
        reader = _BitReader(decode_rbsp(sps_nal))
        profile_idc = reader.bits(8)
        constraint_flags = reader.bits(8)
        level_idc = reader.bits(8)
        sps_id = reader.ue()

        chroma_format_idc = 1
        separate_colour_plane = False
        bit_depth_luma = bit_depth_chroma = 0
        if profile_idc in _HIGH_PROFILES:
            chroma_format_idc = reader.ue()
            if chroma_format_idc > 3:
                raise SysError(f"sps: invalid chroma_format_idc {chroma_format_idc}")
            if chroma_format_idc == 3:
                separate_colour_plane = reader.flag()
            bit_depth_luma = reader.ue()
            bit_depth_chroma = reader.ue()
            reader.flag()  # qpprime_y_zero_transform_bypass
            if reader.flag():
                for index in range(8 if chroma_format_idc != 3 else 12):
                    if reader.flag():
                        _skip_scaling_list(reader, 16 if index < 6 else 64)

        log2_max_frame_num_minus4 = reader.ue()
        pic_order_cnt_type = reader.ue()
        if pic_order_cnt_type == 0:
            reader.ue()
        elif pic_order_cnt_type == 1:
            reader.flag()
            reader.se()
            reader.se()
            for _ in range(reader.ue()):
                reader.se()
        elif pic_order_cnt_type != 2:
            raise SysError(f"sps: invalid pic_order_cnt_type {pic_order_cnt_type}")

        max_num_ref_frames = reader.ue()
        reader.flag()  # gaps_in_frame_num_value_allowed
        width_mbs = reader.ue()
        height_units = reader.ue()
        frame_mbs_only = reader.flag()
        if not frame_mbs_only:
            reader.flag()  # mb_adaptive_frame_field
        reader.flag()  # direct_8x8_inference
        cropping = None
        if reader.flag():
            cropping = (reader.ue(), reader.ue(), reader.ue(), reader.ue())

        num_units_in_tick = time_scale = None
        if reader.flag():
            num_units_in_tick, time_scale = cls._parse_vui_timing(reader)

        return cls(
            profile_idc=profile_idc,
            constraint_flags=constraint_flags,
            level_idc=level_idc,
            seq_parameter_set_id=sps_id,
            chroma_format_idc=chroma_format_idc,
            separate_colour_plane=separate_colour_plane,
            bit_depth_luma_minus8=bit_depth_luma,
            bit_depth_chroma_minus8=bit_depth_chroma,
            log2_max_frame_num_minus4=log2_max_frame_num_minus4,
            pic_order_cnt_type=pic_order_cnt_type,
            max_num_ref_frames=max_num_ref_frames,
            pic_width_in_mbs_minus1=width_mbs,
            pic_height_in_map_units_minus1=height_units,
            frame_mbs_only=frame_mbs_only,
            frame_cropping=cropping,
            num_units_in_tick=num_units_in_tick,
            time_scale=time_scale,
        )

    @staticmethod
    def _parse_vui_timing(reader: _BitReader) -> tuple[Optional[int], Optional[int]]:
        if reader.flag():  # aspect_ratio_info_present
            if reader.bits(8) == 255:
                reader.bits(16)
                reader.bits(16)
        if reader.flag():  # overscan_info_present
            reader.flag()
        if reader.flag():  # video_signal_type_present
            reader.bits(3)
            reader.flag()
            if reader.flag():
                reader.bits(24)
        if reader.flag():  # chroma_loc_info_present
            reader.ue()
            reader.ue()
        if reader.flag():  # timing_info_present
            num_units_in_tick = reader.bits(32)
            time_scale = reader.bits(32)
            return num_units_in_tick, time_scale
        return None, None

    def pixel_dimensions(self) -> tuple[int, int]:
        """Return the cropped picture size in pixels."""
        field_mul = 1 if self.frame_mbs_only else 2
        width = (self.pic_width_in_mbs_minus1 + 1) * 16
        height = (self.pic_height_in_map_units_minus1 + 1) * 16 * field_mul
        if self.frame_cropping is None:
            return width, height
        chroma_array_type = 0 if self.separate_colour_plane else self.chroma_format_idc
        if chroma_array_type == 0:
            crop_x, crop_y = 1, field_mul
        else:
            sub_width = 1 if self.chroma_format_idc == 3 else 2
            sub_height = 2 if self.chroma_format_idc == 1 else 1
            crop_x, crop_y = sub_width, sub_height * field_mul
        left, right, top, bottom = self.frame_cropping
        width -= (left + right) * crop_x
        height -= (top + bottom) * crop_y
        if width <= 0 or height <= 0:
            raise SysError("sps: cropping exceeds picture size")
        return width, height

    def fps(self) -> Optional[float]:
        """Frame rate from VUI timing info, or None when absent."""
        if self.time_scale is None or not self.num_units_in_tick:
            return None
        return self.time_scale / (2.0 * self.num_units_in_tick)


def get_width_height_frame_rate(sps_nal: bytes) -> tuple[int, int, float]:
    """Return (width, height, fps) from an SPS NAL unit; fps defaults to 25."""
    sps = SeqParameterSet.parse(sps_nal)
    width, height = sps.pixel_dimensions()
    fps = sps.fps()
    if fps is None:
        logger.warning("fps unknown; using default %s", _DEFAULT_FPS)
        fps = _DEFAULT_FPS
    return width, height, fps


def _length_prefixed(nal: bytes) -> bytes:
    return len(nal).to_bytes(4, "big") + nal


def extract_nal_annexb_to_len(bytes_annexb: bytes) -> list[bytes]:
    """Split an Annex B buffer into NAL units, each prefixed with a 4-byte length."""
    if not bytes_annexb.startswith(b"\x00"):
        raise SysError("h264 invalid start annexb code")
    positions = []
    index = bytes_annexb.find(_ANNEXB_DELIMITER)
    while index != -1:
        positions.append(index)
        index = bytes_annexb.find(_ANNEXB_DELIMITER, index + len(_ANNEXB_DELIMITER))

    start = 3
    if positions:
        first = positions.pop(0)
        if first == 1:
            start = 4
        elif first > 1:
            raise SysError("h264 invalid start annexb code")

    nals = []
    for index in positions:
        end = index - 1 if bytes_annexb[index - 1] == 0 else index
        if end < start:
            raise SysError("h264 malformed annexb stream")
        nals.append(_length_prefixed(bytes_annexb[start:end]))
        start = index + 3
    if start > len(bytes_annexb):
        raise SysError("h264 malformed annexb stream")
    nals.append(_length_prefixed(bytes_annexb[start:]))
    return nals


def extract_nal_by_annexb1(bytes_annexb: bytes) -> list[bytes]:
    """Split an Annex B buffer into bare NAL units with a byte-wise scanner."""
    nals: list[bytes] = []
    nal = bytearray()
    zeros = 0
    for byte in bytes_annexb:
        if byte == 0:
            if zeros == 3:
                nal.append(0)
            else:
                zeros += 1
        elif byte == 1:
            if zeros == 0:
                nal.append(1)
            elif zeros == 1:
                nal += b"\x00\x01"
                zeros = 0
            else:
                if nal:
                    nals.append(bytes(nal))
                    nal = bytearray()
                zeros = 0
        else:
            nal += b"\x00" * zeros
            zeros = 0
            nal.append(byte)
    nal += b"\x00" * zeros
    if nal:
        nals.append(bytes(nal))
    return nals


class H264Context:
    """Reassembles H.264 NAL units from RTP payloads."""

    def __init__(self, is_avc: bool = False) -> None:
        self.is_avc = is_avc
        self._fua_buffer = bytearray()

    @classmethod
    def init_annexb(cls) -> "H264Context":
        return cls(is_avc=False)

    @classmethod
    def init_avc(cls) -> "H264Context":
        return cls(is_avc=True)

    def _prefix(self, size: int) -> bytes:
        return size.to_bytes(4, "big") if self.is_avc else _ANNEXB_START_CODE

    def depacketize(self, payload: bytes) -> bytes:
        """Turn one RTP payload into zero or more prefixed NAL units."""
        if len(payload) <= 2:
            raise SysError("short packet")
        header = payload[0]
        nalu_type = header & _NALU_TYPE_MASK
        if 1 <= nalu_type <= 23:
            return self._prefix(len(payload)) + bytes(payload)
        if nalu_type == _STAPA_NALU_TYPE:
            out = bytearray()
            offset = 1
            while offset < len(payload):
                if offset + 2 > len(payload):
                    raise SysError("STAP-A size field truncated")
                size = int.from_bytes(payload[offset:offset + 2], "big")
                offset += 2
                if len(payload) < offset + size:
                    raise SysError(f"STAP-A declared size {size} larger than buffer")
                out += self._prefix(size) + payload[offset:offset + size]
                offset += size
            return bytes(out)
        if nalu_type == _FUA_NALU_TYPE:
            self._fua_buffer += payload[_FUA_HEADER_SIZE:]
            fu_header = payload[1]
            if not fu_header & _FU_END_MASK:
                return b""
            nal = bytes([(header & _NALU_REF_IDC_MASK) | (fu_header & _NALU_TYPE_MASK)])
            nal += bytes(self._fua_buffer)
            self._fua_buffer = bytearray()
            return self._prefix(len(nal)) + nal
        raise SysError(f"nalu type {nalu_type} is not handled")

    def parse(self, payload: bytes, timestamp: int, codec_payload: CodecPayload) -> None:
        """Depacketize a payload and append its length-prefixed NAL units."""
        try:
            raw = self.depacketize(payload)
        except SysError as err:
            logger.warning("%s", err)
            return
        offset = 0
        while offset + _NAL_LENGTH_SIZE < len(raw):
            size = int.from_bytes(raw[offset:offset + _NAL_LENGTH_SIZE], "big")
            last = offset + _NAL_LENGTH_SIZE + size
            if last > len(raw):
                logger.info("nal size larger than raw buffer")
                break
            codec_payload.video_timestamp = timestamp
            codec_payload.video_nals.append(raw[offset:last])
            offset = last