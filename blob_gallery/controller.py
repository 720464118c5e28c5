from __future__ import annotations
"""Mutating gallery actions; every successful change invalidates the catalog."""

import logging
import mimetypes
from typing import BinaryIO, Callable, Optional, Union

from .catalog import ImageCatalog
from .models import ActionResult, ObjectRecord
from .services import (
    STORE_ERRORS,
    BlobStoreService,
    MissingCredentialsError,
    TransferCancelledError,
    normalize_key,
)
from .settings import AppSettings
from .ui_utils import format_size, name_with_extension

LOGGER = logging.getLogger(__name__)

DUPLICATE_SKIPPED = "duplicate_skipped"


class GalleryController:
    """Coordinates uploads, deletes and renames with the listing cache."""

    def __init__(
        self,
        store: BlobStoreService,
        catalog: ImageCatalog,
        settings: AppSettings | None = None,
    ):
        self._store = store
        self._catalog = catalog
        self._settings = settings or AppSettings()

    @property
    def catalog(self) -> ImageCatalog:
        return self._catalog

    def get_image(self, url: str) -> Optional[ObjectRecord]:
        return self._catalog.find_by_url(url)

    def upload_image(
        self,
        filename: str,
        data: Union[bytes, BinaryIO],
        *,
        content_type: str | None = None,
        size: int | None = None,
        progress_callback: Optional[Callable[[int], None]] = None,
        cancel_requested: Optional[Callable[[], bool]] = None,
    ) -> ActionResult:
        """Upload an image under its exact filename.

        ``size`` must be given when ``data`` is a file object. Uploads are
        refused when the file is empty, not an image, too large, or when an
        object with the same pathname already exists.
        """
        filename = normalize_key(filename or "")
        if not filename:
            return ActionResult(success=False, error="No file provided")
        if size is None:
            size = len(data) if isinstance(data, (bytes, bytearray)) else 0
        if size <= 0:
            return ActionResult(success=False, error="File is empty")
        content_type = content_type or mimetypes.guess_type(filename)[0] or ""
        if not content_type.startswith("image/"):
            return ActionResult(success=False, error="File must be an image")
        if size > self._settings.max_upload_bytes:
            limit = format_size(self._settings.max_upload_bytes)
            return ActionResult(success=False, error=f"File size must be less than {limit}")

        existing = self._catalog.find_by_pathname(filename, force_refresh=True)
        if existing is not None:
            LOGGER.info("Duplicate upload skipped for '%s'", filename)
            return ActionResult(
                success=False,
                error=DUPLICATE_SKIPPED,
                message=f"File already exists with name {filename}. Duplicate upload skipped.",
                existing_url=existing.url,
            )

        try:
            record = self._store.put_object(
                filename,
                data,
                public_access=True,
                add_random_suffix=False,
                content_type=content_type,
                progress_callback=progress_callback,
                cancel_requested=cancel_requested,
            )
        except TransferCancelledError:
            return ActionResult(success=False, error="Upload cancelled")
        except MissingCredentialsError as exc:
            return ActionResult(success=False, error=str(exc))
        except STORE_ERRORS as exc:
            LOGGER.exception("Upload of '%s' failed", filename)
            return ActionResult(success=False, error=f"Upload failed: {exc}")

        self._catalog.invalidate()
        return ActionResult(
            success=True,
            message="Image uploaded successfully!",
            url=record.url,
            pathname=record.pathname,
        )

    def delete_image(self, url: str) -> ActionResult:
        try:
            self._store.delete_object(url)
        except MissingCredentialsError as exc:
            return ActionResult(success=False, error=str(exc))
        except STORE_ERRORS:
            LOGGER.exception("Delete of '%s' failed", url)
            return ActionResult(success=False, error="Failed to delete image. Please try again.")

        self._catalog.invalidate()
        return ActionResult(success=True, message="Image deleted successfully!")

    def rename_image(self, old_url: str, new_name: str) -> ActionResult:
        """Rename by copying to ``new_name`` and deleting the original.

        When ``new_name`` has no extension the original one is kept.
        """
        try:
            old_pathname = self._store.key_from_url(old_url)
            target_name = normalize_key(name_with_extension(new_name, old_pathname))
        except ValueError as exc:
            return ActionResult(success=False, error=str(exc))
        except STORE_ERRORS as exc:
            return ActionResult(success=False, error=str(exc))
        if target_name == old_pathname:
            return ActionResult(success=False, error="New name matches the current name")

        try:
            record = self._store.copy_object(old_url, target_name, public_access=True)
        except MissingCredentialsError as exc:
            return ActionResult(success=False, error=str(exc))
        except STORE_ERRORS:
            LOGGER.exception("Rename of '%s' to '%s' failed", old_url, target_name)
            return ActionResult(success=False, error="Failed to rename image. Please try again.")

        # The copy exists from here on, so the listing is stale either way.
        self._catalog.invalidate()
        try:
            self._store.delete_object(old_url)
        except STORE_ERRORS:
            LOGGER.exception("Copied to '%s' but could not delete '%s'", target_name, old_url)
            return ActionResult(
                success=False,
                error="Image copied but the original could not be deleted.",
                url=record.url,
                pathname=record.pathname,
            )
        return ActionResult(
            success=True,
            message="Image renamed successfully!",
            url=record.url,
            pathname=record.pathname,
        )
