"""
Custom exceptions for the fireodm.io module.

Purpose
- Provide storage-layer error types, distinct from the data-shape errors in
  fireodm.core.errors.
- StorageError wraps any failure raised by a storage driver; the store treats it as
  fatal to the current operation and never retries.
- StorageTimeoutError is raised when a storage call exceeds OdmSettings.operation_timeout.
- OdmConfigError signals invalid or unsupported settings.
"""

from __future__ import annotations

from fireodm.core.errors import OdmError


class StorageError(OdmError):
    """
    Base class for storage-driver failures.

    Notes:
        Retrying transient failures (connection loss, throttling) is the driver's job;
        by the time a StorageError reaches the store the operation is abandoned.
    """


class StorageTimeoutError(StorageError, TimeoutError):
    """A storage call did not complete within the configured timeout."""


class OdmConfigError(OdmError, ValueError):
    """
    Raised when configuration is invalid or unsupported.

    Examples:
        - Unknown storage backend
        - populate_max_depth < 1
    """
