"""Device access settings, registered devices and their channels.

Every function takes an open DB-API connection that uses the ``qmark``
parameter style. Driver errors are raised as ``SysError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from gbmedia.records import _cursor, _fetch_one, _to_datetime, _to_db_datetime, _write


def _upsert(cursor: Any, table: str, keys: Mapping[str, Any], values: Mapping[str, Any]) -> None:
    """Update the row matching ``keys`` or insert it when it does not exist."""
    where = " and ".join(f"{name}=?" for name in keys)
    cursor.execute(f"select 1 from {table} where {where}", tuple(keys.values()))
    if cursor.fetchone() is None:
        columns = {**keys, **values}
        placeholders = ",".join("?" for _ in columns)
        cursor.execute(
            f"insert into {table} ({','.join(columns)}) values ({placeholders})",
            tuple(columns.values()),
        )
    else:
        assignments = ",".join(f"{name}=?" for name in values)
        cursor.execute(
            f"update {table} set {assignments} where {where}",
            (*values.values(), *keys.values()),
        )


@dataclass
class GmvOauth:
    """Access settings of a device.

    ``pwd_check``: 0 no password check, 1 check. ``status``: 0 disabled, 1 enabled.
    """

    device_id: str
    domain_id: str
    domain: str
    pwd: Optional[str]
    pwd_check: int
    alias: Optional[str]
    status: int
    heartbeat_sec: int

    @classmethod
    def read_by_device_id(cls, conn: Any, device_id: str) -> Optional["GmvOauth"]:
        """Return the access settings of a device, if any."""
        row = _fetch_one(
            conn,
            "select device_id,domain_id,domain,pwd,pwd_check,alias,status,heartbeat_sec "
            "from GMV_OAUTH where device_id=?",
            (device_id,),
        )
        return cls(*row) if row is not None else None


@dataclass
class GmvDevice:
    """A device as last registered."""

    device_id: str
    transport: str
    register_expires: int
    register_time: datetime
    local_addr: str
    sip_from: str
    sip_to: str
    status: int
    gb_version: Optional[str] = None

    @classmethod
    def query_by_device_id(cls, conn: Any, device_id: str) -> Optional["GmvDevice"]:
        """Return the device with this id, if any."""
        row = _fetch_one(
            conn,
            "select device_id,transport,register_expires,register_time,local_addr,"
            "sip_from,sip_to,status,gb_version from GMV_DEVICE where device_id=?",
            (device_id,),
        )
        if row is None:
            return None
        return cls(
            device_id=row[0],
            transport=row[1],
            register_expires=row[2],
            register_time=_to_datetime(row[3]),
            local_addr=row[4],
            sip_from=row[5],
            sip_to=row[6],
            status=row[7],
            gb_version=row[8],
        )

    def insert_by_register(self, conn: Any) -> None:
        """Store this registration, replacing the registration fields of an existing row."""
        with _cursor(conn) as cursor:
            _upsert(
                cursor,
                "GMV_DEVICE",
                {"device_id": self.device_id},
                {
                    "transport": self.transport,
                    "register_expires": self.register_expires,
                    "register_time": _to_db_datetime(self.register_time),
                    "local_addr": self.local_addr,
                    "sip_from": self.sip_from,
                    "sip_to": self.sip_to,
                    "status": self.status,
                    "gb_version": self.gb_version,
                },
            )
            conn.commit()

    @classmethod
    def update_status(cls, conn: Any, device_id: str, status: int) -> None:
        """Set the online status of a device."""
        _write(conn, "update GMV_DEVICE set status=? where device_id=?", [(status, device_id)])


@dataclass
class GmvDeviceExt:
    """Descriptive information a device reports about itself."""

    device_id: str = ""
    device_type: Optional[str] = None
    manufacturer: str = ""
    model: str = ""
    firmware: str = ""
    max_camera: Optional[int] = None

    def update(self, conn: Any) -> None:
        """Store this information on the device row."""
        _write(
            conn,
            "update GMV_DEVICE set device_type=?,manufacturer=?,model=?,firmware=?,max_camera=? "
            "where device_id=?",
            [(
                self.device_type,
                self.manufacturer,
                self.model,
                self.firmware,
                self.max_camera,
                self.device_id,
            )],
        )


_CHANNEL_COLUMNS = (
    "name", "manufacturer", "model", "owner", "status", "civil_code", "address",
    "parental", "block", "parent_id", "ip_address", "port", "password",
    "longitude", "latitude", "ptz_type", "supply_light_type", "alias_name",
)


@dataclass
class GmvDeviceChannel:
    """A channel (camera or sub-device) of a device."""

    device_id: str = ""
    channel_id: str = ""
    name: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    owner: Optional[str] = None
    status: str = ""
    civil_code: Optional[str] = None
    address: Optional[str] = None
    parental: Optional[int] = None
    block: Optional[str] = None
    parent_id: Optional[str] = None
    ip_address: Optional[str] = None
    port: Optional[int] = None
    password: Optional[str] = None
    longitude: Optional[float] = None
    latitude: Optional[float] = None
    ptz_type: Optional[int] = None
    supply_light_type: Optional[int] = None
    alias_name: Optional[str] = None

    @classmethod
    def insert_many(
        cls, conn: Any, channels: Iterable["GmvDeviceChannel"]
    ) -> list["GmvDeviceChannel"]:
        """Insert or update several channels in one transaction and return them."""
        channels = list(channels)
        if not channels:
            return channels
        with _cursor(conn) as cursor:
            for channel in channels:
                _upsert(
                    cursor,
                    "GMV_DEVICE_CHANNEL",
                    {"device_id": channel.device_id, "channel_id": channel.channel_id},
                    {column: getattr(channel, column) for column in _CHANNEL_COLUMNS},
                )
            conn.commit()
        return channels