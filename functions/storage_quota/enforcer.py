"""
Upload admission control against the per-file, project, and per-user limits.
"""

from __future__ import annotations

import logging

from shared.types import QuotaUsage, UploadQuotaDecision
from storage_quota.config import StorageLimits
from storage_quota.counter import ProjectCounter
from storage_quota.formatting import format_bytes
from storage_quota.usage import UsageCalculator

logger = logging.getLogger(__name__)


class QuotaEnforcer:
    """
    Decides whether an upload of a given size is admitted.

    Checks run cheapest first and stop at the first rejection, so the
    per-user object enumeration only happens when the size and project checks
    pass. The decision is advisory: nothing reserves the space, and a
    concurrent upload between the check and the upload can overshoot a limit
    by up to one file.
    """

    def __init__(
        self,
        limits: StorageLimits,
        counter: ProjectCounter,
        calculator: UsageCalculator,
        reject_on_unknown_usage: bool = False,
    ):
        self.limits = limits
        self.counter = counter
        self.calculator = calculator
        self.reject_on_unknown_usage = reject_on_unknown_usage

    def check_upload(self, user_id: str, file_size: int) -> UploadQuotaDecision:
        if file_size > self.limits.per_file_raw_limit:
            return UploadQuotaDecision(
                can_upload=False,
                reason=(
                    f"File size exceeds {format_bytes(self.limits.per_file_raw_limit)} limit"
                ),
            )

        project_bytes = self.counter.read()
        if project_bytes + file_size > self.limits.project_total_limit:
            return UploadQuotaDecision(
                can_upload=False,
                reason=(
                    "Project storage limit reached. "
                    f"{format_bytes(project_bytes)} / "
                    f"{format_bytes(self.limits.project_total_limit)} used."
                ),
                usage=QuotaUsage(user=0, project=project_bytes),
            )

        user_usage = self.calculator.usage(user_id)
        if not user_usage.known:
            logger.warning(
                "Storage usage for user %s is unknown; %s",
                user_id,
                "rejecting upload" if self.reject_on_unknown_usage else "assuming zero",
            )
            if self.reject_on_unknown_usage:
                return UploadQuotaDecision(
                    can_upload=False,
                    reason="Your storage usage could not be verified. Please try again.",
                    usage=QuotaUsage(user=0, project=project_bytes),
                )

        user_bytes = user_usage.total_bytes
        if user_bytes + file_size > self.limits.per_user_limit:
            return UploadQuotaDecision(
                can_upload=False,
                reason=(
                    f"Upload would exceed your {format_bytes(self.limits.per_user_limit)} "
                    f"limit. You've used {format_bytes(user_bytes)}."
                ),
                usage=QuotaUsage(user=user_bytes, project=project_bytes),
            )

        return UploadQuotaDecision(
            can_upload=True,
            usage=QuotaUsage(user=user_bytes, project=project_bytes),
        )
