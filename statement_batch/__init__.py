"""
statement_batch -- batch statement generation.

Generates statements for many owners or properties in one job, one
SAVEPOINT per statement, with progress reporting and cooperative
cancellation.
"""
