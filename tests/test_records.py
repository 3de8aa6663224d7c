import sqlite3
from datetime import datetime, timedelta

import pytest

from gbmedia.models import SysError
from gbmedia.records import GmvFileInfo, GmvRecord

SCHEMA = """
CREATE TABLE GMV_RECORD (
    BIZ_ID TEXT PRIMARY KEY,
    DEVICE_ID TEXT NOT NULL,
    CHANNEL_ID TEXT NOT NULL,
    USER_ID TEXT,
    ST TEXT,
    ET TEXT,
    SPEED INTEGER,
    CT TEXT,
    STATE INTEGER,
    LT TEXT,
    STREAM_APP_NAME TEXT
);
CREATE TABLE GMV_FILE_INFO (
    ID INTEGER PRIMARY KEY AUTOINCREMENT,
    DEVICE_ID TEXT,
    CHANNEL_ID TEXT,
    BIZ_TIME TEXT,
    BIZ_ID TEXT,
    FILE_TYPE INTEGER,
    FILE_SIZE INTEGER,
    FILE_NAME TEXT,
    FILE_FORMAT TEXT,
    DIR_PATH TEXT,
    ABS_PATH TEXT,
    NOTE TEXT,
    IS_DEL INTEGER,
    CREATE_TIME TEXT
);
"""

ST = datetime(2024, 5, 1, 10, 0, 0)


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    connection.executescript(SCHEMA)
    yield connection
    connection.close()


def make_record(biz_id="BIZ-A", state=0, channel_id="CH0001"):
    return GmvRecord(
        biz_id=biz_id,
        device_id="DEV0001",
        channel_id=channel_id,
        user_id=None,
        st=ST,
        et=ST + timedelta(seconds=3600),
        speed=1,
        ct=ST,
        state=state,
        lt=ST,
        stream_app_name="node-1",
    )


def make_file(biz_id, file_name, size):
    return GmvFileInfo(
        device_id="DEV0001",
        channel_id="CH0001",
        biz_time=ST,
        biz_id=biz_id,
        file_type=1,
        file_size=size,
        file_name=file_name,
        file_format="mp4",
        dir_path="/data/records/20240501",
        abs_path="/abs/records/20240501",
        note=None,
        is_del=0,
        create_time=ST,
    )


def test_insert_and_query_round_trip(conn):
    record = make_record()
    record.insert(conn)
    assert GmvRecord.query_by_biz_id(conn, "BIZ-A") == record


def test_query_missing_biz_id_returns_none(conn):
    make_record().insert(conn)
    assert GmvRecord.query_by_biz_id(conn, "BIZ-MISSING") is None


def test_query_running_only_matches_state_zero(conn):
    make_record("BIZ-A", state=0).insert(conn)
    make_record("BIZ-B", state=1, channel_id="CH0002").insert(conn)
    running = GmvRecord.query_running(conn, "DEV0001", "CH0001")
    assert running is not None and running.biz_id == "BIZ-A"
    assert GmvRecord.query_running(conn, "DEV0001", "CH0002") is None


def test_update_state_persists_state_and_last_update(conn):
    record = make_record()
    record.insert(conn)
    record.state = 2
    record.lt = ST + timedelta(hours=2)
    record.update_state(conn)
    stored = GmvRecord.query_by_biz_id(conn, "BIZ-A")
    assert stored.state == 2
    assert stored.lt == ST + timedelta(hours=2)
    assert GmvRecord.query_running(conn, "DEV0001", "CH0001") is None


def test_rm_by_biz_id_deletes(conn):
    make_record().insert(conn)
    GmvRecord.rm_by_biz_id(conn, "BIZ-A")
    assert GmvRecord.query_by_biz_id(conn, "BIZ-A") is None


def test_duplicate_insert_raises_sys_error(conn):
    make_record().insert(conn)
    with pytest.raises(SysError):
        make_record().insert(conn)


def test_total_seconds_spans_start_to_end():
    record = make_record()
    assert record.total_seconds() == 3600


def test_closed_connection_raises_sys_error():
    connection = sqlite3.connect(":memory:")
    connection.close()
    with pytest.raises(SysError):
        GmvRecord.query_by_biz_id(connection, "BIZ-A")


def test_file_info_insert_many_and_query(conn):
    GmvFileInfo.insert_many(conn, [make_file("BIZ-1", "first", 1024), make_file("BIZ-2", "second", 2048)])
    first = GmvFileInfo.query_by_id(conn, 1)
    second = GmvFileInfo.query_by_id(conn, 2)
    expected = make_file("BIZ-1", "first", 1024)
    expected.id = 1
    assert first == expected
    assert (second.biz_id, second.file_name, second.file_size) == ("BIZ-2", "second", 2048)


def test_file_info_insert_many_empty_writes_nothing(conn):
    GmvFileInfo.insert_many(conn, [])
    with pytest.raises(SysError):
        GmvFileInfo.query_by_id(conn, 1)


def test_file_info_query_missing_raises(conn):
    with pytest.raises(SysError):
        GmvFileInfo.query_by_id(conn, 42)


def test_file_info_rm_by_id(conn):
    GmvFileInfo.insert_many(conn, [make_file("BIZ-1", "first", 1024)])
    GmvFileInfo.rm_by_id(conn, 1)
    with pytest.raises(SysError):
        GmvFileInfo.query_by_id(conn, 1)