import pytest

from gbmedia.models import BizError, NetSource, RtpInfo, StreamRecordInfo, SysError
from gbmedia.responses import (
    JsonResponse,
    RtpMap,
    get_ssrc,
    get_stream_id,
    res_204,
    res_400,
    res_401,
    res_404,
    res_404_stream_timeout,
    res_422,
    res_500,
    res_failed,
    res_ok,
)


@pytest.mark.parametrize(
    "factory,status",
    [(res_401, 401), (res_404, 404), (res_400, 400), (res_422, 422),
     (res_404_stream_timeout, 404), (res_204, 204)],
)
def test_status_and_content_type(factory, status):
    response = factory()
    assert response.status == status
    assert response.headers["Content-Type"] == "application/json"


@pytest.mark.parametrize(
    "factory,msg",
    [(res_404, "404"), (res_400, "400"), (res_404_stream_timeout, "404:media stream disconnected")],
)
def test_failure_messages(factory, msg):
    body = factory().json()
    assert body["msg"] == msg
    assert body["data"] is None
    assert body["code"] != 200


def test_res_500_carries_message():
    response = res_500("boom")
    assert response.status == 500
    assert response.json()["msg"] == "boom"


def test_res_204_is_success_envelope():
    body = res_204().json()
    assert body["code"] == 200
    assert isinstance(body["data"], str)


def test_res_ok_wraps_data():
    response = res_ok(7)
    assert response.status == 200
    assert response.json()["data"] == 7
    assert response.json()["code"] == 200


def test_res_ok_serializes_models():
    info = StreamRecordInfo("a.mp4", 10, 3, 100)
    assert res_ok(info).json()["data"] == info.to_dict()
    rtp = RtpInfo(1, NetSource("1.2.3.4:5", "udp"), "node")
    assert RtpInfo.from_dict(res_ok(rtp).json()["data"]) == rtp


def test_res_failed_keeps_status_ok():
    response = res_failed("busy")
    assert response.status == 200
    assert response.json()["msg"] == "busy"
    assert response.json()["code"] != 200


def test_json_round_trip_non_ascii():
    response = res_ok("通道")
    assert isinstance(response, JsonResponse)
    assert response.json()["data"] == "通道"


def test_get_ssrc():
    assert get_ssrc({"ssrc": "1100000001"}) == 1100000001


def test_get_ssrc_missing():
    with pytest.raises(BizError) as info:
        get_ssrc({})
    assert info.value.code == 1100


@pytest.mark.parametrize("text", ["abc", "-1", "4294967296", ""])
def test_get_ssrc_invalid(text):
    with pytest.raises(SysError):
        get_ssrc({"ssrc": text})


def test_get_stream_id():
    assert get_stream_id({"stream_id": "s1"}) == "s1"
    with pytest.raises(BizError) as info:
        get_stream_id({"ssrc": "1"})
    assert info.value.code == 1100


def test_rtp_map_from_dict():
    rtp_map = RtpMap.from_dict({"ssrc": 1100000001, "map": {"96": "PS", 98: "H264"}})
    assert rtp_map.ssrc == 1100000001
    assert rtp_map.map == {96: "PS", 98: "H264"}


@pytest.mark.parametrize(
    "data",
    [
        {"map": {}},
        {"ssrc": 1},
        {"ssrc": -1, "map": {}},
        {"ssrc": True, "map": {}},
        {"ssrc": 1, "map": {"256": "PS"}},
        {"ssrc": 1, "map": {"x": "PS"}},
        {"ssrc": 1, "map": {"96": 5}},
        {"ssrc": 1, "map": []},
    ],
)
def test_rtp_map_invalid(data):
    with pytest.raises(SysError):
        RtpMap.from_dict(data)