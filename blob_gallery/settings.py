from __future__ import annotations
"""Application settings persistence helpers."""

from dataclasses import asdict, dataclass
import json
import math
from pathlib import Path

DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024


@dataclass
class AppSettings:
    """Simple container for persistent app settings."""

    cache_ttl_seconds: float = 30.0
    page_size: int = 20
    recent_limit: int = 6
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES


class SettingsStorage:
    """JSON-backed persistence for :class:`AppSettings`."""

    def __init__(self, storage_path: str | Path | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".blob_gallery_settings.json"
        self._path = Path(storage_path)

    def load(self) -> AppSettings:
        if not self._path.exists():
            return AppSettings()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return AppSettings()
        if not isinstance(data, dict):
            return AppSettings()
        return AppSettings(
            cache_ttl_seconds=_positive(data.get("cache_ttl_seconds"), AppSettings.cache_ttl_seconds, float),
            page_size=_positive(data.get("page_size"), AppSettings.page_size, int),
            recent_limit=_positive(data.get("recent_limit"), AppSettings.recent_limit, int),
            max_upload_bytes=_positive(data.get("max_upload_bytes"), AppSettings.max_upload_bytes, int),
        )

    def save(self, settings: AppSettings) -> None:
        payload = asdict(settings)
        payload["cache_ttl_seconds"] = _positive(
            settings.cache_ttl_seconds, AppSettings.cache_ttl_seconds, float
        )
        for name in ("page_size", "recent_limit", "max_upload_bytes"):
            payload[name] = max(int(payload[name]), 1)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError:
            # Persist best-effort; ignore filesystem issues.
            return


def _positive(value, default, cast):
    if value is None or isinstance(value, bool):
        return default
    try:
        converted = cast(value)
    except (TypeError, ValueError, OverflowError):
        return default
    if not math.isfinite(converted) or converted <= 0:
        return default
    return converted
