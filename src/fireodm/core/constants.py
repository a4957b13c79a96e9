"""
fireodm core defaults.

Defines population and decoding defaults consumed by fireodm.io settings. This module is
zero-IO and uses only the Python standard library.

Notes:
    - Changing a default here changes OdmSettings() and every DocumentStore built
      without explicit settings.
"""

from __future__ import annotations

__all__ = [
    "POPULATE_MAX_DEPTH",
    "POPULATE_ON_MISSING",
    "CODEC_ERROR_POLICY",
    "STORAGE_BACKEND",
    "STORAGE_ROOT_DIR",
]

# Deepest relation level populate() follows before leaving UnresolvedReference markers.
POPULATE_MAX_DEPTH: int = 3

# populate() behavior for dangling references when the caller does not choose.
POPULATE_ON_MISSING: str = "skip"

# decode behavior for stored values that do not match their field.
CODEC_ERROR_POLICY: str = "abort"

STORAGE_BACKEND: str = "memory"

# Root directory of the JSON file backend.
STORAGE_ROOT_DIR: str = "fireodm_data"
