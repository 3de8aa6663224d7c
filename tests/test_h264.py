import pytest

from gbmedia.h264 import (
    H264Context,
    SeqParameterSet,
    decode_rbsp,
    extract_nal_annexb_to_len,
    extract_nal_by_annexb1,
    get_width_height_frame_rate,
    is_new_access_unit,
)
from gbmedia.models import CodecPayload, SysError

ANNEXB = bytes([
    0x00, 0x00, 0x00, 0x01, 0x67, 0x42, 0x00, 0x1e,
    0x00, 0x00, 0x00, 0x01, 0x68, 0xce, 0x06, 0xf2,
    0x00, 0x00, 0x01, 0x65, 0x88, 0x84, 0x00, 0x0a, 0x02,
    0x00, 0x00, 0x00, 0x00, 0x01, 0x65, 0x88, 0x84, 0x00, 0x0a, 0x00,
])

SPS_BASELINE_1080 = bytes([
    0x67, 0x42, 0xc0, 0x28, 0xd9, 0x00, 0x78, 0x02,
    0x27, 0xe5, 0x84, 0x00, 0x00, 0x03, 0x00, 0x04,
    0x00, 0x00, 0x03, 0x00, 0xf0, 0x3c, 0x60, 0xc9, 0x20,
])

SPS_HIGH_1080 = bytes([
    0x67, 0x64, 0x00, 0x28, 0xac, 0xd9, 0x40, 0x78,
    0x02, 0x27, 0xe5, 0x84, 0x00, 0x00, 0x03, 0x00,
    0x04, 0x00, 0x00, 0x03, 0x00, 0xf0, 0x3c, 0x60,
    0xc6, 0x58,
])

SPS_NO_VUI_320x240 = bytes([0x67, 0x42, 0x00, 0x1e, 0xda, 0x0a, 0x0f, 0xc8])


@pytest.mark.parametrize("sps", [SPS_BASELINE_1080, SPS_HIGH_1080])
def test_width_height_frame_rate(sps):
    assert get_width_height_frame_rate(sps) == (1920, 1080, 30.0)


def test_sps_fields():
    sps = SeqParameterSet.parse(SPS_HIGH_1080)
    assert sps.profile_idc == 100
    assert sps.level_idc == 0x28
    assert sps.chroma_format_idc == 1
    assert sps.frame_cropping == (0, 0, 0, 4)
    assert sps.pixel_dimensions() == (1920, 1080)
    assert sps.fps() == 30.0


def test_default_fps_without_vui():
    sps = SeqParameterSet.parse(SPS_NO_VUI_320x240)
    assert sps.fps() is None
    assert get_width_height_frame_rate(SPS_NO_VUI_320x240) == (320, 240, 25.0)


def test_truncated_sps_raises():
    with pytest.raises(SysError):
        SeqParameterSet.parse(b"\x67\x42")


def test_decode_rbsp_removes_emulation_prevention():
    assert decode_rbsp(b"\x67\x00\x00\x03\x01\xaa") == b"\x00\x00\x01\xaa"


def test_decode_rbsp_empty():
    with pytest.raises(SysError):
        decode_rbsp(b"")


@pytest.mark.parametrize(
    "nal_type, first_mb, expected",
    [(6, 0, True), (9, 0, True), (14, 0, True), (18, 0, True),
     (1, 0, False), (1, 1, True), (5, 3, True), (2, 0, False),
     (3, 1, False), (10, 0, False), (19, 1, False)],
)
def test_is_new_access_unit(nal_type, first_mb, expected):
    assert is_new_access_unit(nal_type, first_mb) is expected


def test_extract_nal_annexb_to_len():
    assert extract_nal_annexb_to_len(ANNEXB) == [
        bytes.fromhex("00000004" "6742001e"),
        bytes.fromhex("00000004" "68ce06f2"),
        bytes.fromhex("00000007" "658884000a0200"),
        bytes.fromhex("00000006" "658884000a00"),
    ]


def test_extract_nal_annexb_to_len_rejects_bad_start():
    with pytest.raises(SysError):
        extract_nal_annexb_to_len(b"\x67\x42\x00\x00\x01\x68")


def test_extract_nal_annexb_to_len_rejects_late_start_code():
    with pytest.raises(SysError):
        extract_nal_annexb_to_len(b"\x00\x55\x00\x00\x01\x68")


def test_extract_nal_by_annexb1():
    assert extract_nal_by_annexb1(ANNEXB) == [
        bytes.fromhex("6742001e"),
        bytes.fromhex("68ce06f2"),
        bytes.fromhex("658884000a0200"),
        bytes.fromhex("658884000a00"),
    ]


def test_depacketize_single_nal():
    payload = b"\x65\xaa\xbb"
    assert H264Context.init_annexb().depacketize(payload) == b"\x00\x00\x00\x01" + payload
    assert H264Context.init_avc().depacketize(payload) == b"\x00\x00\x00\x03" + payload


def test_depacketize_stap_a():
    payload = bytes.fromhex("18" "0002" "09f0" "0003" "67421e")
    assert H264Context.init_annexb().depacketize(payload) == bytes.fromhex(
        "00000001" "09f0" "00000001" "67421e"
    )
    assert H264Context.init_avc().depacketize(payload) == bytes.fromhex(
        "00000002" "09f0" "00000003" "67421e"
    )


def test_depacketize_stap_a_oversized():
    with pytest.raises(SysError):
        H264Context.init_annexb().depacketize(bytes.fromhex("18" "0009" "09f0"))


def test_depacketize_fu_a():
    ctx = H264Context.init_avc()
    assert ctx.depacketize(bytes.fromhex("7c85aabb")) == b""
    assert ctx.depacketize(bytes.fromhex("7c45cc")) == bytes.fromhex("00000004" "65aabbcc")
    assert ctx.depacketize(bytes.fromhex("7c45dd")) == bytes.fromhex("00000002" "65dd")


@pytest.mark.parametrize("payload", [b"\x65\x01", b"\x00\x01\x02", b"\x1f\x01\x02"])
def test_depacketize_errors(payload):
    with pytest.raises(SysError):
        H264Context.init_annexb().depacketize(payload)


def test_parse_collects_length_prefixed_nals():
    ctx = H264Context.init_avc()
    codec_payload = CodecPayload()
    ctx.parse(bytes.fromhex("18" "0002" "09f0" "0003" "67421e"), 9000, codec_payload)
    assert codec_payload.video_nals == [
        bytes.fromhex("00000002" "09f0"),
        bytes.fromhex("00000003" "67421e"),
    ]
    assert codec_payload.video_timestamp == 9000


def test_parse_ignores_bad_packet():
    codec_payload = CodecPayload()
    H264Context.init_avc().parse(b"\x65", 1, codec_payload)
    assert codec_payload.video_nals == []
    assert codec_payload.video_timestamp == 0