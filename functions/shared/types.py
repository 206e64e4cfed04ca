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

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from shared.constants import PROFILE_PHOTOS_PREFIX, RECIPE_IMAGES_PREFIX


class ImageKind(str, Enum):
    """The kinds of user images kept in the object store."""

    PROFILE_PHOTO = "PROFILE_PHOTO"
    RECIPE_IMAGE = "RECIPE_IMAGE"

    @property
    def prefix(self) -> str:
        if self == ImageKind.PROFILE_PHOTO:
            return PROFILE_PHOTOS_PREFIX
        return RECIPE_IMAGES_PREFIX

    def user_prefix(self, user_id: str) -> str:
        return f"{self.prefix}/{user_id}"


@dataclass
class StoredObjectMetadata:
    """Metadata for one object in the object store."""

    path: str
    size_bytes: int
    created_at: datetime
    content_type: str = "application/octet-stream"
    custom_metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class ProjectStorageRecord:
    """
    The cached project-wide usage document.

    This is a cache of the sum of object sizes in the object store, not the
    ground truth.
    """

    total_bytes: int = 0
    total_files: int = 0
    last_updated: Optional[datetime] = None
    last_recalculated: Optional[datetime] = None


@dataclass(frozen=True)
class UserUsage:
    """Bytes and objects held by a single user."""

    total_bytes: int = 0
    file_count: int = 0
    # False when the usage could not be computed. Callers decide how to treat it.
    known: bool = True

    @classmethod
    def unknown(cls) -> "UserUsage":
        return cls(total_bytes=0, file_count=0, known=False)


@dataclass
class QuotaUsage:
    user: int
    project: int


@dataclass
class UploadQuotaDecision:
    """Outcome of an upload admission check. Never persisted."""

    can_upload: bool
    reason: Optional[str] = None
    usage: Optional[QuotaUsage] = None


@dataclass
class CleanupResult:
    deleted: int = 0
    bytes_freed: int = 0


@dataclass
class RecalculationResult:
    total_bytes: int
    total_files: int
    user_count: int


@dataclass
class UploadResult:
    path: str
    download_url: str
    size_bytes: int
    original_size_bytes: int


@dataclass
class UsageSummary:
    """Project usage as displayed by the storage indicator."""

    used_bytes: int
    limit_bytes: int
    percentage: float
    level: str
    used_formatted: str
    limit_formatted: str
