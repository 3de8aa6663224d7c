"""Read-only queries across devices, channels and access settings.

Every function takes an open DB-API connection that uses the ``qmark``
parameter style.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional

from gbmedia.models import SysError
from gbmedia.records import _fetch_all, _fetch_one, _to_datetime


def get_device_channel_status(conn: Any, device_id: str, channel_id: str) -> Optional[str]:
    """Return the channel's status, ``'ONLY'`` if the device has no such channel,
    or None if the device is unknown."""
    row = _fetch_one(
        conn,
        "SELECT IFNULL(c.`STATUS`,'ONLY') FROM GMV_DEVICE d LEFT JOIN GMV_DEVICE_CHANNEL c "
        "on d.DEVICE_ID=c.DEVICE_ID and c.CHANNEL_ID=? WHERE d.DEVICE_ID=?",
        (channel_id, device_id),
    )
    return row[0] if row is not None else None


def get_device_status_info(
    conn: Any, device_id: str
) -> Optional[tuple[int, int, int, datetime, int]]:
    """Return (heartbeat_sec, oauth_status, register_expires, register_time, device_status)."""
    row = _fetch_one(
        conn,
        "SELECT o.HEARTBEAT_SEC,o.`STATUS`,d.REGISTER_EXPIRES,d.REGISTER_TIME,d.`STATUS` "
        "FROM GMV_OAUTH o INNER JOIN GMV_DEVICE d ON o.DEVICE_ID = d.DEVICE_ID where d.device_id=?",
        (device_id,),
    )
    if row is None:
        return None
    heartbeat, oauth_status, expires, register_time, device_status = row
    return heartbeat, oauth_status, expires, _to_datetime(register_time), device_status


def get_snapshot_dc_by_limit(conn: Any, start: int, count: int) -> list[tuple[str, str]]:
    """Return a page of (device_id, channel_id) pairs eligible for snapshots.

    Eligible: access enabled, device online with a live registration and
    GB version 3 or later, channel directly under the device and not offline.
    """
    if start < 0 or count < 0:
        raise SysError("start and count must not be negative")
    rows = _fetch_all(
        conn,
        """
        SELECT c.DEVICE_ID,c.CHANNEL_ID,b.REGISTER_TIME,b.REGISTER_EXPIRES FROM GMV_OAUTH a
        INNER JOIN GMV_DEVICE b ON a.DEVICE_ID = b.DEVICE_ID
        INNER JOIN GMV_DEVICE_CHANNEL c ON a.DEVICE_ID=c.DEVICE_ID
        WHERE
        a.DEL = 0
        AND b.`status` = 1
        AND SUBSTR(b.GB_VERSION, 1, 1) >= '3'
        AND c.PARENT_ID=c.DEVICE_ID
        AND NOT (c.`status` = 'OFF' OR c.`status` = 'OFFLINE')
        ORDER BY c.DEVICE_ID,c.CHANNEL_ID
        """,
    )
    now = datetime.now()
    live = [
        (device_id, channel_id)
        for device_id, channel_id, register_time, expires in rows
        if register_time is not None
        and expires is not None
        and _to_datetime(register_time) + timedelta(seconds=expires) > now
    ]
    return live[start:start + count]