"""Snapshot settings, cron validation and image format lookup."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional
from urllib.parse import urlsplit

from gbmedia.models import GmvError

STORAGE_FORMATS = (
    "avif", "bmp", "farbfeld", "gif", "hdr", "ico", "jpeg",
    "exr", "png", "pnm", "qoi", "tga", "tiff", "webp",
)

_EXTENSION_FORMATS = {
    "avif": "avif",
    "jpg": "jpeg",
    "jpeg": "jpeg",
    "png": "png",
    "gif": "gif",
    "webp": "webp",
    "tif": "tiff",
    "tiff": "tiff",
    "tga": "tga",
    "dds": "dds",
    "bmp": "bmp",
    "ico": "ico",
    "hdr": "hdr",
    "exr": "exr",
    "pbm": "pnm",
    "pam": "pnm",
    "ppm": "pnm",
    "pgm": "pnm",
    "ff": "farbfeld",
    "farbfeld": "farbfeld",
    "qoi": "qoi",
}

_MONTHS = {name: index for index, name in enumerate(
    ("JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"), start=1)}
_WEEKDAYS = {name: index for index, name in enumerate(
    ("SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT"), start=1)}

_CRON_FIELDS = (
    ("seconds", 0, 59, {}),
    ("minutes", 0, 59, {}),
    ("hours", 0, 23, {}),
    ("days of month", 1, 31, {}),
    ("months", 1, 12, _MONTHS),
    ("days of week", 1, 7, _WEEKDAYS),
    ("years", 1970, 2100, {}),
)

_CRON_SHORTHANDS = {
    "@yearly": "0 0 0 1 1 * *",
    "@annually": "0 0 0 1 1 * *",
    "@monthly": "0 0 0 1 * * *",
    "@weekly": "0 0 0 * * 1 *",
    "@daily": "0 0 0 * * * *",
    "@hourly": "0 0 * * * * *",
}

_URL_SCHEME = re.compile(r"[A-Za-z][A-Za-z0-9+.\-]*")


class ConfigError(GmvError):
    """A configuration value is missing or invalid."""


def _cron_value(text: str, name: str, low: int, high: int, names: Mapping[str, int]) -> int:
    upper = text.upper()
    if upper in names:
        return names[upper]
    if not text.isdigit():
        raise ConfigError(f"Invalid cron expression: bad value {text!r} in {name}")
    value = int(text)
    if not low <= value <= high:
        raise ConfigError(
            f"Invalid cron expression: {value} out of range {low}-{high} in {name}"
        )
    return value


def _cron_field(text: str, name: str, low: int, high: int, names: Mapping[str, int]) -> frozenset[int]:
    values: set[int] = set()
    for part in text.split(","):
        base, slash, step_text = part.partition("/")
        if not base:
            raise ConfigError(f"Invalid cron expression: empty element in {name}")
        step = 1
        if slash:
            if not step_text.isdigit() or int(step_text) == 0:
                raise ConfigError(f"Invalid cron expression: bad step {step_text!r} in {name}")
            step = int(step_text)
        if base in ("*", "?"):
            first, last = low, high
        elif "-" in base:
            start_text, _, end_text = base.partition("-")
            first = _cron_value(start_text, name, low, high, names)
            last = _cron_value(end_text, name, low, high, names)
            if first > last:
                raise ConfigError(f"Invalid cron expression: empty range {base!r} in {name}")
        else:
            first = _cron_value(base, name, low, high, names)
            last = high if slash else first
        values.update(range(first, last + 1, step))
    return frozenset(values)


def validate_cron(expression: str) -> tuple[frozenset[int], ...]:
    """Parse a six- or seven-field cron expression (seconds first, optional year).

    Return the allowed values of each of the seven fields; raise ``ConfigError``
    when the expression is invalid.
    """
    text = _CRON_SHORTHANDS.get(expression.strip().lower(), expression)
    fields = text.split()
    if len(fields) == 6:
        fields.append("*")
    if len(fields) != 7:
        raise ConfigError(
            f"Invalid cron expression: expected 6 or 7 fields, got {len(fields)}"
        )
    return tuple(
        _cron_field(field_text, name, low, high, names)
        for field_text, (name, low, high, names) in zip(fields, _CRON_FIELDS)
    )


def image_format_from_content_type(content_type: str) -> Optional[str]:
    """Map a MIME type such as ``image/jpeg`` to an image format name, or None."""
    _, slash, subtype = content_type.partition("/")
    if not slash:
        return None
    return _EXTENSION_FORMATS.get(subtype.lower())


def _typed(data: Mapping[str, Any], key: str, default: Any, kind: type) -> Any:
    value = data.get(key, default)
    if value is None and default is None:
        return None
    if kind is int and (isinstance(value, bool) or not isinstance(value, int)):
        raise ConfigError(f"{key} must be an integer")
    if not isinstance(value, kind):
        raise ConfigError(f"{key} must be of type {kind.__name__}")
    return value


def _u8(data: Mapping[str, Any], key: str, default: int) -> int:
    value = _typed(data, key, default, int)
    if not 0 <= value <= 255:
        raise ConfigError(f"{key} must be between 0 and 255")
    return value


@dataclass
class PicsConfig:
    """Settings for periodic channel snapshots (``server.pics``)."""

    enable: bool = False
    push_url: Optional[str] = None
    cron_cycle: str = "0 */5 * * * *"
    num: int = 1
    interval: int = 1
    storage_path: str = "./pics/raw"
    storage_format: str = "jpeg"

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "PicsConfig":
        """Build settings from a mapping, using defaults for missing keys."""
        data = data or {}
        if not isinstance(data, Mapping):
            raise ConfigError("pics settings must be a mapping")
        return cls(
            enable=_typed(data, "enable", False, bool),
            push_url=_typed(data, "push_url", None, str),
            cron_cycle=_typed(data, "cron_cycle", "0 */5 * * * *", str),
            num=_u8(data, "num", 1),
            interval=_u8(data, "interval", 1),
            storage_path=_typed(data, "storage_path", "./pics/raw", str),
            storage_format=_typed(data, "storage_format", "jpeg", str),
        )

    def validate(self) -> None:
        """Check the settings and create the storage directory; raise ``ConfigError``."""
        if self.enable:
            if self.push_url is None:
                raise ConfigError("push_url is required")
            _check_url(self.push_url)
        if self.storage_format.lower() not in STORAGE_FORMATS:
            raise ConfigError(f"storage_format must be in [{','.join(STORAGE_FORMATS)}]")
        validate_cron(self.cron_cycle)
        try:
            Path(self.storage_path).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigError(f"create raw_path dir failed: {exc}") from exc


def _check_url(url: str) -> None:
    scheme, _, rest = url.partition(":")
    if not _URL_SCHEME.fullmatch(scheme) or not rest:
        raise ConfigError(f"Invalid push_url: {url!r}")
    try:
        parts = urlsplit(url)
        parts.port
    except ValueError as exc:
        raise ConfigError(f"Invalid push_url: {exc}") from exc
    if rest.startswith("//") and not parts.hostname:
        raise ConfigError(f"Invalid push_url: empty host in {url!r}")