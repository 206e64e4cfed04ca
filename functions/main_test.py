# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================
# Standard library imports
import os
import unittest
from unittest.mock import patch, MagicMock

# Third-party library imports
from functions_framework import create_app
from firebase_functions import https_fn

# Local application imports
# This patch must be applied before importing 'main'
with patch("firebase_admin.initialize_app"):
    import main
from shared.types import (
    CleanupResult,
    QuotaUsage,
    RecalculationResult,
    UploadQuotaDecision,
)
from storage_quota.errors import ObjectNotFound, StoreUnavailable
from storage_quota.tests.fixtures import make_service

MAIN_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "main.py")


class TestMainCheckUploadQuota(unittest.TestCase):

    @patch("main.get_quota_service")
    def test_check_upload_quota(self, mock_get_service):
        # Arrange: The service accepts the upload.
        mock_service = MagicMock()
        mock_service.check_upload.return_value = UploadQuotaDecision(
            can_upload=True, usage=QuotaUsage(user=10, project=20)
        )
        mock_get_service.return_value = mock_service

        # Act
        result = main.handle_check_upload_quota("uid123", {"sizeBytes": 2048})

        # Assert: The decision is returned in camelCase.
        mock_service.check_upload.assert_called_once_with("uid123", 2048)
        self.assertEqual(
            result,
            {"canUpload": True, "reason": None, "usage": {"user": 10, "project": 20}},
        )

    @patch("main.get_quota_service")
    def test_check_upload_quota_rejection(self, mock_get_service):
        mock_get_service.return_value = make_service()

        result = main.handle_check_upload_quota("uid123", {"sizeBytes": 11 * 1024 * 1024})

        self.assertFalse(result["canUpload"])
        self.assertEqual(result["reason"], "File size exceeds 10 MB limit")

    @patch("main.get_quota_service")
    def test_check_upload_quota_invalid_size(self, mock_get_service):
        for size in (None, -1, "1024", True, 1.5):
            with self.assertRaises(https_fn.HttpsError) as ctx:
                main.handle_check_upload_quota("uid123", {"sizeBytes": size})
            self.assertEqual(
                ctx.exception.code, https_fn.FunctionsErrorCode.INVALID_ARGUMENT
            )
        mock_get_service.assert_not_called()

    @patch("main.get_quota_service")
    def test_check_upload_quota_store_failure(self, mock_get_service):
        mock_get_service.return_value.check_upload.side_effect = StoreUnavailable(
            "firestore down"
        )

        with self.assertRaises(https_fn.HttpsError) as ctx:
            main.handle_check_upload_quota("uid123", {"sizeBytes": 1})

        self.assertEqual(ctx.exception.code, https_fn.FunctionsErrorCode.UNAVAILABLE)

    def test_check_upload_quota_requires_auth(self):
        # Act: Call the deployed function without an ID token.
        client = create_app("check_upload_quota", MAIN_PATH).test_client()
        response = client.post("/", json={"data": {"sizeBytes": 1}})

        # Assert
        self.assertEqual(response.status_code, 401)
        response_data = response.get_json()
        self.assertEqual(response_data["error"]["status"], "UNAUTHENTICATED")


class TestMainCleanupOldPhotos(unittest.TestCase):

    @patch("main.get_quota_service")
    def test_cleanup_old_photos(self, mock_get_service):
        mock_get_service.return_value.cleanup.return_value = CleanupResult(
            deleted=2, bytes_freed=4096
        )

        result = main.handle_cleanup_old_photos("uid123", {"keepCount": 1})

        mock_get_service.return_value.cleanup.assert_called_once_with("uid123", 1)
        self.assertEqual(result, {"deleted": 2, "bytesFreed": 4096})

    @patch("main.get_quota_service")
    def test_cleanup_old_photos_default_keep_count(self, mock_get_service):
        mock_get_service.return_value.cleanup.return_value = CleanupResult()

        main.handle_cleanup_old_photos("uid123", {})

        mock_get_service.return_value.cleanup.assert_called_once_with("uid123", None)

    def test_cleanup_old_photos_negative_keep_count(self):
        with self.assertRaises(https_fn.HttpsError) as ctx:
            main.handle_cleanup_old_photos("uid123", {"keepCount": -1})
        self.assertEqual(ctx.exception.code, https_fn.FunctionsErrorCode.INVALID_ARGUMENT)


class TestMainDeleteImageByUrl(unittest.TestCase):

    @patch("main.get_quota_service")
    def test_delete_image_by_url(self, mock_get_service):
        service = make_service()
        service.objects.add_object("recipe-images/uid123/456.jpg", 2048)
        service.counter.adjust(2048, 1)
        mock_get_service.return_value = service
        url = service.objects.download_url("recipe-images/uid123/456.jpg")

        result = main.handle_delete_image_by_url("uid123", {"url": url})

        self.assertEqual(result, {"bytesFreed": 2048})
        self.assertEqual(service.get_project_usage(), 0)

    def test_delete_image_by_url_missing_url(self):
        with self.assertRaises(https_fn.HttpsError) as ctx:
            main.handle_delete_image_by_url("uid123", {})
        self.assertEqual(ctx.exception.code, https_fn.FunctionsErrorCode.INVALID_ARGUMENT)

    def test_delete_image_by_url_too_long(self):
        with self.assertRaises(https_fn.HttpsError) as ctx:
            main.handle_delete_image_by_url("uid123", {"url": "https://x/o/" + "a" * 5000})
        self.assertIn("max length", ctx.exception.message)

    @patch("main.get_quota_service")
    def test_delete_image_by_url_missing_object(self, mock_get_service):
        mock_get_service.return_value.delete_by_url.side_effect = ObjectNotFound(
            "recipe-images/uid123/456.jpg"
        )

        with self.assertRaises(https_fn.HttpsError) as ctx:
            main.handle_delete_image_by_url(
                "uid123", {"url": "https://x/o/recipe-images%2Fuid123%2F456.jpg"}
            )

        self.assertEqual(ctx.exception.code, https_fn.FunctionsErrorCode.UNAVAILABLE)

    @patch("main.get_quota_service")
    def test_delete_image_by_url_other_users_image(self, mock_get_service):
        service = make_service()
        service.objects.add_object("recipe-images/victim/456.jpg", 2048)
        service.counter.adjust(2048, 1)
        mock_get_service.return_value = service
        url = service.objects.download_url("recipe-images/victim/456.jpg")

        with self.assertRaises(https_fn.HttpsError) as ctx:
            main.handle_delete_image_by_url("uid123", {"url": url})

        self.assertEqual(
            ctx.exception.code, https_fn.FunctionsErrorCode.PERMISSION_DENIED
        )
        self.assertIn("recipe-images/victim/456.jpg", service.objects.objects)
        self.assertEqual(service.get_project_usage(), 2048)

    @patch("main.get_quota_service")
    def test_delete_image_by_url_prefix_is_not_enough(self, mock_get_service):
        # "uid1234" must not match the folder of "uid123".
        url = "https://x/o/profile-photos%2Fuid1234%2Fp.jpg"

        with self.assertRaises(https_fn.HttpsError) as ctx:
            main.handle_delete_image_by_url("uid123", {"url": url})

        self.assertEqual(
            ctx.exception.code, https_fn.FunctionsErrorCode.PERMISSION_DENIED
        )
        mock_get_service.return_value.delete_by_url.assert_not_called()

    @patch("main.get_quota_service")
    def test_delete_image_by_url_unresolvable_url(self, mock_get_service):
        service = make_service()
        mock_get_service.return_value = service

        result = main.handle_delete_image_by_url("uid123", {"url": "https://example.com/a.jpg"})

        self.assertEqual(result, {"bytesFreed": 0})


class TestMainProjectStorage(unittest.TestCase):

    @patch("main.get_quota_service")
    def test_get_project_storage_usage(self, mock_get_service):
        service = make_service()
        service.counter.adjust(1536)
        mock_get_service.return_value = service

        result = main.handle_get_project_storage_usage()

        self.assertEqual(result["usedBytes"], 1536)
        self.assertEqual(result["usedFormatted"], "1.5 KB")
        self.assertEqual(result["limitFormatted"], "5 GB")
        self.assertEqual(result["level"], "ok")

    @patch("main.get_quota_service")
    def test_recalculate_project_storage(self, mock_get_service):
        mock_get_service.return_value.recalculate.return_value = RecalculationResult(
            total_bytes=100, total_files=2, user_count=1
        )

        result = main.handle_recalculate_project_storage()

        self.assertEqual(result, {"totalBytes": 100, "totalFiles": 2, "userCount": 1})

    @patch("main.get_quota_service")
    def test_recalculate_project_storage_failure(self, mock_get_service):
        mock_get_service.return_value.recalculate.side_effect = StoreUnavailable(
            "bucket down"
        )

        with self.assertRaises(https_fn.HttpsError) as ctx:
            main.handle_recalculate_project_storage()

        self.assertEqual(ctx.exception.code, https_fn.FunctionsErrorCode.UNAVAILABLE)

    def test_recalculate_requires_admin_claim(self):
        req = MagicMock()
        req.auth.uid = "uid123"
        req.auth.token = {"email": "a@b.c"}

        with self.assertRaises(https_fn.HttpsError) as ctx:
            main._require_admin(req)

        self.assertEqual(
            ctx.exception.code, https_fn.FunctionsErrorCode.PERMISSION_DENIED
        )

    def test_recalculate_allows_admin_claim(self):
        req = MagicMock()
        req.auth.uid = "ops1"
        req.auth.token = {"admin": True}
        self.assertEqual(main._require_admin(req), "ops1")

    def test_recalculate_rejects_anonymous_caller(self):
        req = MagicMock(auth=None)

        with self.assertRaises(https_fn.HttpsError) as ctx:
            main._require_admin(req)

        self.assertEqual(ctx.exception.code, https_fn.FunctionsErrorCode.UNAUTHENTICATED)


if __name__ == "__main__":
    unittest.main()
