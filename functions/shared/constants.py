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

# Document store layout. Paths are relative to the Firestore root.
ARTIFACTS_COLLECTION = "artifacts"
METADATA_COLLECTION = "metadata"
USERS_COLLECTION = "users"
RECIPES_COLLECTION = "recipes"
STORAGE_RECORD_ID = "storage"

# Object store prefixes, one folder per user under each.
PROFILE_PHOTOS_PREFIX = "profile-photos"
RECIPE_IMAGES_PREFIX = "recipe-images"

# Retention policy for profile photos.
DEFAULT_PROFILE_PHOTO_KEEP_COUNT = 3

# Storage indicator thresholds, in percent of the project limit.
STORAGE_WARNING_PERCENT = 75.0
STORAGE_DANGER_PERCENT = 90.0

# Custom metadata keys written on upload.
UPLOADED_BY_METADATA_KEY = "uploadedBy"
ORIGINAL_SIZE_METADATA_KEY = "originalSize"


def storage_record_path(app_id: str) -> str:
    return (
        f"{ARTIFACTS_COLLECTION}/{app_id}/{METADATA_COLLECTION}/{STORAGE_RECORD_ID}"
    )


def users_collection_path(app_id: str) -> str:
    return f"{ARTIFACTS_COLLECTION}/{app_id}/{USERS_COLLECTION}"


def recipe_document_path(app_id: str, user_id: str, recipe_id: str) -> str:
    return (
        f"{users_collection_path(app_id)}/{user_id}/{RECIPES_COLLECTION}/{recipe_id}"
    )
