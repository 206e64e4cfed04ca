"""
Full recalculation of the project storage counter from the object store.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from shared.constants import users_collection_path
from shared.types import RecalculationResult
from storage_quota.counter import ProjectCounter
from storage_quota.documents import DocumentStore
from storage_quota.usage import UsageCalculator

logger = logging.getLogger(__name__)


class ProjectReconciler:
    """
    Restores the project counter from ground truth.

    Incremental adjustments drift whenever one is missed (a crash between
    upload and adjust, manual bucket edits). This is the repair path. It is
    O(total objects) and meant to be run by an operator or on a schedule.
    """

    def __init__(
        self,
        documents: DocumentStore,
        calculator: UsageCalculator,
        counter: ProjectCounter,
        app_id: str,
    ):
        self.documents = documents
        self.calculator = calculator
        self.counter = counter
        self.users_path = users_collection_path(app_id)

    def recalculate(self) -> RecalculationResult:
        """
        Sums usage over every known user and overwrites the counter.

        Any store failure aborts before the write, so a partial total is
        never stored.
        """
        started_at = datetime.now(timezone.utc)
        user_ids = self.documents.list_ids(self.users_path)

        total_bytes = 0
        total_files = 0
        user_count = 0
        for user_id in user_ids:
            usage = self.calculator.compute(user_id)
            if usage.file_count == 0:
                continue
            total_bytes += usage.total_bytes
            total_files += usage.file_count
            user_count += 1

        self.counter.overwrite(total_bytes, total_files, recalculated_at=started_at)
        logger.info(
            "Recalculated project storage: %d bytes in %d files across %d of %d users",
            total_bytes,
            total_files,
            user_count,
            len(user_ids),
        )
        return RecalculationResult(
            total_bytes=total_bytes, total_files=total_files, user_count=user_count
        )
