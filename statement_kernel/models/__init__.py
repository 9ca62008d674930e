"""ORM models. Importing this package registers every table on Base.metadata."""

from statement_kernel.models.email_log import EmailLog
from statement_kernel.models.listing import Listing, ListingGroup
from statement_kernel.models.property_mapping import PropertyMapping, normalize_external_name
from statement_kernel.models.statement import Statement, statement_idempotency_key
from statement_kernel.models.uploaded_expense import UploadedExpense

__all__ = [
    "EmailLog",
    "Listing",
    "ListingGroup",
    "PropertyMapping",
    "Statement",
    "UploadedExpense",
    "normalize_external_name",
    "statement_idempotency_key",
]
