from __future__ import annotations
"""UI-agnostic helpers for formatting and naming."""
from dataclasses import dataclass
from datetime import datetime
from importlib.metadata import PackageNotFoundError, metadata, version
from pathlib import PurePosixPath

DIST_NAME = "blob-gallery"


@dataclass(frozen=True)
class PackageInfo:
    name: str
    version: str
    summary: str
    homepage: str | None


def load_package_info(dist_name: str = DIST_NAME) -> PackageInfo:
    try:
        distribution_metadata = metadata(dist_name)
        package_version = version(dist_name)
    except PackageNotFoundError:
        return PackageInfo(
            name="Blob Gallery",
            version="",
            summary="Upload, browse and summarise images in a blob store.",
            homepage=None,
        )
    homepage = distribution_metadata.get("Home-page")
    for entry in distribution_metadata.get_all("Project-URL") or []:
        label, _, link = entry.partition(",")
        if label.strip().lower() == "homepage" and not homepage:
            homepage = link.strip()
    return PackageInfo(
        name=distribution_metadata.get("Name"),
        version=package_version,
        summary=distribution_metadata.get("Summary") or "",
        homepage=homepage or None,
    )


def format_size(size: int | float | None) -> str:
    if size is None:
        return "-"
    suffixes = ["B", "KB", "MB", "GB", "TB"]
    value = float(max(size, 0))
    for suffix in suffixes:
        if value < 1024 or suffix == suffixes[-1]:
            return f"{value:.1f} {suffix}" if suffix != "B" else f"{int(value)} {suffix}"
        value /= 1024
    return f"{size} B"


def format_uploaded_at(uploaded_at: datetime | None) -> str:
    if not uploaded_at:
        return "-"
    return uploaded_at.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def name_with_extension(new_name: str, old_pathname: str) -> str:
    """Return ``new_name``, borrowing the extension of ``old_pathname`` if it has none.

    Raises:
        ValueError: if ``new_name`` is blank.
    """
    cleaned = new_name.strip()
    if not cleaned:
        raise ValueError("Please provide a valid name")
    if "." in cleaned:
        return cleaned
    extension = PurePosixPath(old_pathname).suffix
    return f"{cleaned}{extension}" if extension else cleaned
