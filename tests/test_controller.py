import io
import unittest
from datetime import datetime, timezone

from botocore.exceptions import ClientError

from blob_gallery.cache import ListingCache
from blob_gallery.catalog import ImageCatalog
from blob_gallery.controller import DUPLICATE_SKIPPED, GalleryController
from blob_gallery.models import ObjectRecord
from blob_gallery.services import InvalidObjectUrlError, MissingCredentialsError, TransferCancelledError
from blob_gallery.settings import AppSettings

BASE_URL = "https://cdn.example.com"
UPLOADED_AT = datetime(2024, 5, 1, tzinfo=timezone.utc)


def make_record(name, size=10):
    url = f"{BASE_URL}/{name}"
    return ObjectRecord(
        url=url,
        pathname=name,
        size=size,
        uploaded_at=UPLOADED_AT,
        download_url=f"{url}?download=1",
    )


def client_error(operation):
    return ClientError({"Error": {"Code": "InternalError", "Message": "Boom"}}, operation)


class FakeStore:
    def __init__(self, records=None):
        self.records = list(records or [])
        self.list_calls = 0
        self.put_calls = []
        self.copy_calls = []
        self.delete_calls = []
        self.put_error = None
        self.copy_error = None
        self.delete_error = None

    def list_all_objects(self):
        self.list_calls += 1
        return list(self.records)

    def put_object(self, name, data, **kwargs):
        self.put_calls.append((name, kwargs))
        if self.put_error:
            raise self.put_error
        record = make_record(name)
        self.records.append(record)
        return record

    def copy_object(self, source_url, new_name, *, public_access=True):
        self.copy_calls.append((source_url, new_name, public_access))
        if self.copy_error:
            raise self.copy_error
        record = make_record(new_name)
        self.records.append(record)
        return record

    def delete_object(self, url):
        self.delete_calls.append(url)
        if self.delete_error:
            raise self.delete_error
        self.records = [record for record in self.records if record.url != url]

    def key_from_url(self, url):
        if not url.startswith(BASE_URL + "/"):
            raise InvalidObjectUrlError(f"URL does not belong to this store: {url}")
        return url[len(BASE_URL) + 1 :]


class SpyCatalog(ImageCatalog):
    def __init__(self, cache):
        super().__init__(cache)
        self.invalidations = 0

    def invalidate(self):
        self.invalidations += 1
        super().invalidate()


def build_controller(records=None, settings=None):
    store = FakeStore(records)
    catalog = SpyCatalog(ListingCache(store.list_all_objects, ttl=30, clock=lambda: 0.0))
    controller = GalleryController(store, catalog, settings or AppSettings())
    return controller, store, catalog


class UploadTests(unittest.TestCase):
    def test_upload_uses_exact_filename_and_invalidates(self):
        controller, store, catalog = build_controller()
        catalog.list_all()

        result = controller.upload_image("cat.png", b"data")

        self.assertTrue(result.success)
        self.assertEqual(f"{BASE_URL}/cat.png", result.url)
        self.assertEqual("cat.png", result.pathname)
        name, kwargs = store.put_calls[0]
        self.assertEqual("cat.png", name)
        self.assertFalse(kwargs["add_random_suffix"])
        self.assertTrue(kwargs["public_access"])
        self.assertEqual("image/png", kwargs["content_type"])
        self.assertEqual(1, catalog.invalidations)
        self.assertTrue(catalog.exists("cat.png"))

    def test_upload_accepts_file_objects_with_size(self):
        controller, store, _ = build_controller()

        result = controller.upload_image("cat.jpg", io.BytesIO(b"data"), size=4)

        self.assertTrue(result.success)
        self.assertEqual("image/jpeg", store.put_calls[0][1]["content_type"])

    def test_upload_validation(self):
        controller, store, catalog = build_controller(settings=AppSettings(max_upload_bytes=4))

        self.assertEqual("No file provided", controller.upload_image("", b"data").error)
        self.assertEqual("File is empty", controller.upload_image("cat.png", b"").error)
        self.assertEqual("File must be an image", controller.upload_image("notes.txt", b"data").error)
        self.assertEqual(
            "File must be an image",
            controller.upload_image("cat.png", b"data", content_type="application/pdf").error,
        )
        too_big = controller.upload_image("cat.png", b"12345")
        self.assertFalse(too_big.success)
        self.assertIn("File size must be less than", too_big.error)
        self.assertEqual([], store.put_calls)
        self.assertEqual(0, catalog.invalidations)

    def test_duplicate_upload_is_skipped_with_fresh_listing(self):
        controller, store, catalog = build_controller([make_record("cat.png")])
        catalog.list_all()

        result = controller.upload_image("cat.png", b"data")

        self.assertFalse(result.success)
        self.assertEqual(DUPLICATE_SKIPPED, result.error)
        self.assertEqual(f"{BASE_URL}/cat.png", result.existing_url)
        self.assertEqual(2, store.list_calls)
        self.assertEqual([], store.put_calls)
        self.assertEqual(0, catalog.invalidations)

    def test_leading_slash_matches_existing_pathname(self):
        controller, store, catalog = build_controller([make_record("cat.png")])

        result = controller.upload_image(" /cat.png", b"data", content_type="image/png")

        self.assertEqual(DUPLICATE_SKIPPED, result.error)
        self.assertEqual(f"{BASE_URL}/cat.png", result.existing_url)
        self.assertEqual([], store.put_calls)
        self.assertEqual(0, catalog.invalidations)

    def test_upload_strips_leading_slash(self):
        controller, store, _ = build_controller()

        result = controller.upload_image("/cat.png", b"data")

        self.assertTrue(result.success)
        self.assertEqual("cat.png", store.put_calls[0][0])

    def test_slash_only_name_is_rejected(self):
        controller, store, _ = build_controller()

        self.assertEqual("No file provided", controller.upload_image("/", b"data").error)
        self.assertEqual([], store.put_calls)

    def test_duplicate_check_is_case_sensitive(self):
        controller, _, _ = build_controller([make_record("Cat.png")])

        self.assertTrue(controller.upload_image("cat.png", b"data").success)

    def test_store_failure_does_not_invalidate(self):
        controller, store, catalog = build_controller()
        store.put_error = client_error("PutObject")

        with self.assertLogs("blob_gallery.controller", level="ERROR"):
            result = controller.upload_image("cat.png", b"data")

        self.assertFalse(result.success)
        self.assertTrue(result.error.startswith("Upload failed"))
        self.assertEqual(0, catalog.invalidations)

    def test_cancelled_upload(self):
        controller, store, _ = build_controller()
        store.put_error = TransferCancelledError("Transfer cancelled by user")

        result = controller.upload_image("cat.png", b"data")

        self.assertEqual("Upload cancelled", result.error)

    def test_missing_credentials_are_reported(self):
        controller, store, _ = build_controller()
        store.put_error = MissingCredentialsError("Blob store credentials are not configured.")

        result = controller.upload_image("cat.png", b"data")

        self.assertFalse(result.success)
        self.assertIn("credentials", result.error)


class DeleteTests(unittest.TestCase):
    def test_delete_invalidates(self):
        controller, store, catalog = build_controller([make_record("cat.png")])

        result = controller.delete_image(f"{BASE_URL}/cat.png")

        self.assertTrue(result.success)
        self.assertEqual([f"{BASE_URL}/cat.png"], store.delete_calls)
        self.assertEqual(1, catalog.invalidations)
        self.assertFalse(catalog.exists("cat.png"))

    def test_failed_delete_keeps_cache(self):
        controller, store, catalog = build_controller([make_record("cat.png")])
        store.delete_error = client_error("DeleteObject")

        with self.assertLogs("blob_gallery.controller", level="ERROR"):
            result = controller.delete_image(f"{BASE_URL}/cat.png")

        self.assertFalse(result.success)
        self.assertEqual("Failed to delete image. Please try again.", result.error)
        self.assertEqual(0, catalog.invalidations)


class RenameTests(unittest.TestCase):
    def test_rename_keeps_extension(self):
        controller, store, catalog = build_controller([make_record("cat.png")])

        result = controller.rename_image(f"{BASE_URL}/cat.png", "kitten")

        self.assertTrue(result.success)
        self.assertEqual(f"{BASE_URL}/kitten.png", result.url)
        self.assertEqual([(f"{BASE_URL}/cat.png", "kitten.png", True)], store.copy_calls)
        self.assertEqual([f"{BASE_URL}/cat.png"], store.delete_calls)
        self.assertEqual(1, catalog.invalidations)
        self.assertEqual(["kitten.png"], [record.pathname for record in catalog.list_all()])

    def test_rename_with_explicit_extension(self):
        controller, store, _ = build_controller([make_record("cat.png")])

        controller.rename_image(f"{BASE_URL}/cat.png", "kitten.webp")

        self.assertEqual("kitten.webp", store.copy_calls[0][1])

    def test_rename_rejects_blank_name(self):
        controller, store, catalog = build_controller([make_record("cat.png")])

        result = controller.rename_image(f"{BASE_URL}/cat.png", "   ")

        self.assertFalse(result.success)
        self.assertEqual("Please provide a valid name", result.error)
        self.assertEqual([], store.copy_calls)
        self.assertEqual(0, catalog.invalidations)

    def test_rename_to_current_name_is_refused(self):
        controller, store, catalog = build_controller([make_record("cat.png")])

        for new_name in ("cat", "cat.png", "/cat.png"):
            result = controller.rename_image(f"{BASE_URL}/cat.png", new_name)

            self.assertFalse(result.success)
            self.assertEqual("New name matches the current name", result.error)
        self.assertEqual([], store.copy_calls)
        self.assertEqual([], store.delete_calls)
        self.assertEqual(0, catalog.invalidations)
        self.assertTrue(catalog.exists("cat.png"))

    def test_rename_rejects_foreign_url(self):
        controller, store, _ = build_controller()

        result = controller.rename_image("https://elsewhere.example.com/cat.png", "kitten")

        self.assertFalse(result.success)
        self.assertEqual([], store.copy_calls)

    def test_failed_copy_leaves_original(self):
        controller, store, catalog = build_controller([make_record("cat.png")])
        store.copy_error = client_error("CopyObject")

        with self.assertLogs("blob_gallery.controller", level="ERROR"):
            result = controller.rename_image(f"{BASE_URL}/cat.png", "kitten")

        self.assertFalse(result.success)
        self.assertEqual([], store.delete_calls)
        self.assertEqual(0, catalog.invalidations)

    def test_failed_delete_after_copy_still_invalidates(self):
        controller, store, catalog = build_controller([make_record("cat.png")])
        store.delete_error = client_error("DeleteObject")

        with self.assertLogs("blob_gallery.controller", level="ERROR"):
            result = controller.rename_image(f"{BASE_URL}/cat.png", "kitten")

        self.assertFalse(result.success)
        self.assertEqual(f"{BASE_URL}/kitten.png", result.url)
        self.assertEqual(1, catalog.invalidations)


class LookupTests(unittest.TestCase):
    def test_get_image(self):
        controller, _, _ = build_controller([make_record("cat.png")])

        self.assertEqual("cat.png", controller.get_image(f"{BASE_URL}/cat.png").pathname)
        self.assertIsNone(controller.get_image(f"{BASE_URL}/dog.png"))


if __name__ == "__main__":
    unittest.main()
