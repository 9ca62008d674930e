"""Kernel services: listing repository, policy resolver, lifecycle, email log."""

from statement_kernel.services.email_log_service import EmailLogInfo, EmailLogService
from statement_kernel.services.lifecycle import StatementLifecycleManager
from statement_kernel.services.listing_repository import ListingRepository
from statement_kernel.services.policy_resolver import PolicyResolver

__all__ = [
    "EmailLogInfo",
    "EmailLogService",
    "ListingRepository",
    "PolicyResolver",
    "StatementLifecycleManager",
]
