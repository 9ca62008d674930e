"""
statement_services -- statement generation and draft editing.

Sits above the kernel, config, engines and ingestion packages.
"""

from statement_services.calculation import (
    StatementCalculator,
    StatementComputation,
    write_computation,
)
from statement_services.expense_collector import ExpenseCollector
from statement_services.property_mapping import PropertyMappingRepository
from statement_services.statement_builder import (
    BuildOutcome,
    BuildStatus,
    StatementBuilder,
    StatementRequest,
)
from statement_services.statement_editor import StatementEditor

__all__ = [
    "BuildOutcome",
    "BuildStatus",
    "ExpenseCollector",
    "PropertyMappingRepository",
    "StatementBuilder",
    "StatementCalculator",
    "StatementComputation",
    "StatementEditor",
    "StatementRequest",
    "write_computation",
]
