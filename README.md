# gbmedia

Building blocks for a GB/T 28181 video platform that is split into a
signalling session side and a media stream side, which talk to each other
over HTTP.

## What is in the package

- **`gbmedia.models`**: the error types `GmvError`, `BizError` (with a
  numeric `code`) and `SysError`; the `ResMsg` response envelope
  (`ResMsg.success(data)`, `ResMsg.failure(msg)`); the `PlayType` enum; the
  stream models `NetSource`, `RtpInfo`, `BaseStreamInfo`, `StreamState`,
  `StreamPlayInfo` and `StreamRecordInfo`, each with `to_dict()` and
  `from_dict()`; the media containers `VideoCodec`, `AudioCodec`,
  `FrameData` and `CodecPayload`; and `ssrc_to_sn(ssrc)`, which returns the
  last four decimal digits of an SSRC.
- **`gbmedia.h264`**: `extract_nal_annexb_to_len` splits an Annex B buffer
  into NAL units each prefixed with a 4-byte big-endian length;
  `extract_nal_by_annexb1` splits it into bare NAL units; `decode_rbsp`
  strips the NAL header and emulation-prevention bytes;
  `SeqParameterSet.parse` reads an SPS, with `pixel_dimensions()` and
  `fps()`; `get_width_height_frame_rate` returns `(width, height, fps)`,
  using 25 fps when the SPS carries no timing info; `is_new_access_unit`;
  and `H264Context`, which depacketizes RTP payloads (single NAL, STAP-A,
  FU-A) in Annex B or AVC form and appends NAL units to a `CodecPayload`.
- **`gbmedia.records`**: `GmvRecord` (cloud recording tasks) and
  `GmvFileInfo` (stored media files), with insert, query, update and delete
  methods.
- **`gbmedia.devices`**: `GmvOauth`, `GmvDevice`, `GmvDeviceExt` and
  `GmvDeviceChannel`, with reads, updates and insert-or-update writes.
- **`gbmedia.mapper`**: `get_device_channel_status`,
  `get_device_status_info` and `get_snapshot_dc_by_limit`.
- **`gbmedia.pics`**: `PicsConfig` snapshot settings with defaults
  (`from_mapping`) and checks (`validate`, which also creates the storage
  directory); `validate_cron` for six- or seven-field cron expressions
  (seconds first) and `@daily`-style shorthands; and
  `image_format_from_content_type`, e.g. `"image/jpeg"` to `"jpeg"`.
  Invalid settings raise `ConfigError`.
- **`gbmedia.callback`**: calls from the session side to a stream node:
  `get_stream_count`, `call_listen_ssrc`, `ident_rtp_media_info`,
  `get_stream_record_info_by_biz_id`, and `call_alarm_info` to an alarm
  receiver; plus the request types `MediaAction`, `Play`, `Download`,
  `HlsPiece` and `SsrcLisDto`.
- **`gbmedia.hooks`**: `HookClient`, which posts stream-node events to the
  session side (`stream_in`, `stream_idle`, `on_play`, `off_play`,
  `end_record`, `stream_input_timeout`); each returns `None` when the
  request could not be made.
- **`gbmedia.responses`**: `JsonResponse` values for a stream node's API
  (`res_ok(data)`, `res_failed(msg)`, `res_400()`, `res_401()`, `res_404()`,
  `res_404_stream_timeout()`, `res_422()`, `res_500(msg)`, `res_204()`), the
  query helpers `get_ssrc` and `get_stream_id`, and `RtpMap.from_dict`.

## Install

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Examples

Splitting an Annex B stream into length-prefixed NAL units:

```python
from gbmedia.h264 import extract_nal_annexb_to_len

nals = extract_nal_annexb_to_len(
    bytes([0, 0, 0, 1, 0x67, 0x42, 0, 0x1E, 0, 0, 1, 0x68, 0xCE, 0x06, 0xF2])
)
# each item starts with a 4-byte big-endian length
```

Building and reading a response envelope:

```python
from gbmedia.models import ResMsg

msg = ResMsg.success(3)
assert ResMsg.from_dict(msg.to_dict()).data == 3
```

Asking a stream node how many streams it is carrying:

```python
import asyncio
from gbmedia.callback import get_stream_count

count = asyncio.run(get_stream_count(None, "token", "127.0.0.1", 18570))
```

Storage functions take an open DB-API connection that uses `?`
placeholders (for instance `sqlite3`); driver errors are raised as
`SysError`:

```python
import sqlite3
from gbmedia.records import GmvRecord

conn = sqlite3.connect("gmv.db")
record = GmvRecord.query_by_biz_id(conn, "some-biz-id")
```

Callback failures raise `SysError`. Business rule violations raise
`BizError`, which carries a numeric code and a message.

## What the package does not do

- It runs no servers: there is no HTTP API server, no hook receiver and no
  command to start one. `gbmedia.responses` only builds response values.
- It does no SIP signalling (device registration, invites, PTZ control) and
  does not receive RTP, mux FLV or produce HLS.
- It does not create database tables; the tables it reads and writes must
  already exist.