"""Cloud recording tasks and stored media file records.

Every function takes an open DB-API connection that uses the ``qmark``
parameter style (``?`` placeholders). Driver errors are raised as
``SysError``.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Iterator, Optional, Sequence

from gbmedia.models import SysError

logger = logging.getLogger(__name__)

_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_RECORD_SELECT = (
    "select biz_id,device_id,channel_id,user_id,st,et,speed,ct,state,lt,stream_app_name "
    "from GMV_RECORD"
)

_FILE_SELECT = (
    "select id,device_id,channel_id,biz_time,biz_id,file_type,file_size,file_name,"
    "file_format,dir_path,abs_path,note,is_del,create_time from GMV_FILE_INFO"
)


@contextmanager
def _cursor(conn: Any) -> Iterator[Any]:
    cursor = None
    try:
        cursor = conn.cursor()
        yield cursor
    except SysError:
        raise
    except Exception as exc:
        logger.error("%s", exc)
        raise SysError(str(exc)) from exc
    finally:
        if cursor is not None:
            try:
                cursor.close()
            except Exception:  # the cursor may belong to a closed connection
                pass


def _fetch_one(conn: Any, sql: str, params: Sequence[Any] = ()) -> Optional[tuple]:
    with _cursor(conn) as cursor:
        cursor.execute(sql, tuple(params))
        return cursor.fetchone()


def _fetch_all(conn: Any, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
    with _cursor(conn) as cursor:
        cursor.execute(sql, tuple(params))
        return list(cursor.fetchall())


def _write(conn: Any, sql: str, rows: Iterable[Sequence[Any]]) -> None:
    with _cursor(conn) as cursor:
        cursor.executemany(sql, [tuple(row) for row in rows])
        conn.commit()


def _to_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, bytes):
        value = value.decode()
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise SysError(f"invalid datetime value: {value!r}") from exc


def _to_db_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.strftime(_DATETIME_FORMAT) if value is not None else None


@dataclass
class GmvRecord:
    """A cloud recording task.

    ``state``: 0 running, 1 finished, 2 partly recorded, 3 failed.
    """

    biz_id: str
    device_id: str
    channel_id: str
    user_id: Optional[str]
    st: datetime
    et: datetime
    speed: int
    ct: datetime
    state: int
    lt: datetime
    stream_app_name: str

    @classmethod
    def _from_row(cls, row: Sequence[Any]) -> "GmvRecord":
        return cls(
            biz_id=row[0],
            device_id=row[1],
            channel_id=row[2],
            user_id=row[3],
            st=_to_datetime(row[4]),
            et=_to_datetime(row[5]),
            speed=row[6],
            ct=_to_datetime(row[7]),
            state=row[8],
            lt=_to_datetime(row[9]),
            stream_app_name=row[10],
        )

    @classmethod
    def rm_by_biz_id(cls, conn: Any, biz_id: str) -> None:
        """Delete the record with this business id."""
        _write(conn, "delete from GMV_RECORD where biz_id=?", [(biz_id,)])

    def insert(self, conn: Any) -> None:
        """Insert this record as a new row."""
        _write(
            conn,
            "insert into GMV_RECORD (BIZ_ID,DEVICE_ID,CHANNEL_ID,USER_ID,ST,ET,SPEED,CT,STATE,LT,"
            "STREAM_APP_NAME) values (?,?,?,?,?,?,?,?,?,?,?)",
            [(
                self.biz_id,
                self.device_id,
                self.channel_id,
                self.user_id,
                _to_db_datetime(self.st),
                _to_db_datetime(self.et),
                self.speed,
                _to_db_datetime(self.ct),
                self.state,
                _to_db_datetime(self.lt),
                self.stream_app_name,
            )],
        )

    @classmethod
    def query_running(cls, conn: Any, device_id: str, channel_id: str) -> Optional["GmvRecord"]:
        """Return the running task (state 0) of a channel, if any."""
        row = _fetch_one(
            conn,
            f"{_RECORD_SELECT} where state=0 and device_id=? and channel_id=?",
            (device_id, channel_id),
        )
        return cls._from_row(row) if row is not None else None

    @classmethod
    def query_by_biz_id(cls, conn: Any, biz_id: str) -> Optional["GmvRecord"]:
        """Return the record with this business id, if any."""
        row = _fetch_one(conn, f"{_RECORD_SELECT} where biz_id=?", (biz_id,))
        return cls._from_row(row) if row is not None else None

    def update_state(self, conn: Any) -> None:
        """Store this record's state and last-update time."""
        _write(
            conn,
            "update GMV_RECORD set state=?,lt=? where biz_id=?",
            [(self.state, _to_db_datetime(self.lt), self.biz_id)],
        )

    def total_seconds(self) -> int:
        """Whole seconds between the requested start and end."""
        return int((self.et - self.st).total_seconds())


@dataclass
class GmvFileInfo:
    """A media file stored on disk."""

    id: Optional[int] = None
    device_id: str = ""
    channel_id: str = ""
    biz_time: Optional[datetime] = None
    biz_id: str = ""
    file_type: Optional[int] = None
    file_size: Optional[int] = None
    file_name: str = ""
    file_format: Optional[str] = None
    dir_path: str = ""
    abs_path: str = ""
    note: Optional[str] = None
    is_del: Optional[int] = None
    create_time: Optional[datetime] = None

    @classmethod
    def _from_row(cls, row: Sequence[Any]) -> "GmvFileInfo":
        return cls(
            id=row[0],
            device_id=row[1],
            channel_id=row[2],
            biz_time=_to_datetime(row[3]),
            biz_id=row[4],
            file_type=row[5],
            file_size=row[6],
            file_name=row[7],
            file_format=row[8],
            dir_path=row[9],
            abs_path=row[10],
            note=row[11],
            is_del=row[12],
            create_time=_to_datetime(row[13]),
        )

    @classmethod
    def query_by_id(cls, conn: Any, file_id: int) -> "GmvFileInfo":
        """Return the file with this id; raise ``SysError`` when there is none."""
        row = _fetch_one(conn, f"{_FILE_SELECT} where id=?", (file_id,))
        if row is None:
            raise SysError(f"no file info with id {file_id}")
        return cls._from_row(row)

    @classmethod
    def rm_by_id(cls, conn: Any, file_id: int) -> None:
        """Delete the file row with this id."""
        _write(conn, "delete from GMV_FILE_INFO where id=?", [(file_id,)])

    @classmethod
    def insert_many(cls, conn: Any, infos: Iterable["GmvFileInfo"]) -> None:
        """Insert several file rows in one transaction; ids come from the database."""
        rows = [
            (
                info.device_id,
                info.channel_id,
                _to_db_datetime(info.biz_time),
                info.biz_id,
                info.file_type,
                info.file_size,
                info.file_name,
                info.file_format,
                info.dir_path,
                info.abs_path,
                info.note,
                info.is_del,
                _to_db_datetime(info.create_time),
            )
            for info in infos
        ]
        if not rows:
            return
        _write(
            conn,
            "INSERT INTO GMV_FILE_INFO (DEVICE_ID, CHANNEL_ID, BIZ_TIME, BIZ_ID, FILE_TYPE, FILE_SIZE, "
            "FILE_NAME, FILE_FORMAT, DIR_PATH, ABS_PATH, NOTE, IS_DEL, CREATE_TIME) "
            "VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)",
            rows,
        )