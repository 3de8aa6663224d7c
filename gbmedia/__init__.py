"""Stream models, H.264 helpers, storage records, snapshot settings and HTTP callbacks for GB/T 28181 video platforms."""

__version__ = "0.1.0"

__all__ = [
    "callback",
    "devices",
    "h264",
    "hooks",
    "mapper",
    "models",
    "pics",
    "records",
    "responses",
]