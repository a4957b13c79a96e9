"""
Configuration for the fireodm.io module.

Defines OdmSettings, a frozen dataclass carrying runtime configuration for the store,
its storage driver and relation population. Defaults are sourced from
fireodm.core.constants (the single source of truth).

Sources and precedence: environment (FIREODM_*) > TOML > defaults. TOML is read from
./fireodm.toml (an [odm] table or top-level keys) or ./pyproject.toml under
[tool.fireodm].

Import DAG discipline
- Depends only on stdlib and fireodm.core.constants.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Literal

from fireodm.core.constants import CODEC_ERROR_POLICY as CORE_CODEC_ERROR_POLICY
from fireodm.core.constants import POPULATE_MAX_DEPTH as CORE_POPULATE_MAX_DEPTH
from fireodm.core.constants import POPULATE_ON_MISSING as CORE_POPULATE_ON_MISSING
from fireodm.core.constants import STORAGE_BACKEND as CORE_STORAGE_BACKEND
from fireodm.core.constants import STORAGE_ROOT_DIR as CORE_STORAGE_ROOT_DIR

from .errors import OdmConfigError

logger = logging.getLogger(__name__)

StorageBackend = Literal["memory", "file"]
OnMissingName = Literal["skip", "fail"]
CodecPolicyName = Literal["abort", "skip", "default"]

_STORAGE_BACKENDS = {"memory", "file"}
_ON_MISSING = {"skip", "fail"}
_CODEC_POLICIES = {"abort", "skip", "default"}


def _bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return bool(v)
    if isinstance(v, str):
        return v.strip().lower() in {"1", "true", "t", "yes", "y", "on"}
    return False


@dataclass(frozen=True)
class OdmSettings:
    """
    Runtime settings for a DocumentStore.

    Attributes:
        storage (Literal["memory","file"]): Storage driver built by open_storage().
        root_dir (str): Root directory of the "file" driver.
        strict (bool): Report unknown document keys as violations (else drop them).
        populate_max_depth (int): Default depth bound for populate() (>= 1).
        populate_on_missing (Literal["skip","fail"]): Default dangling-reference behavior.
        codec_error_policy (Literal["abort","skip","default"]): How loads treat stored
            values that fail to decode.
        operation_timeout (float | None): Seconds allowed per storage call; None waits
            indefinitely.

    Examples:
        >>> from fireodm.io import OdmSettings
        >>> OdmSettings(storage="file", root_dir="data")  # doctest: +ELLIPSIS
        OdmSettings(...)
    """

    storage: StorageBackend = CORE_STORAGE_BACKEND  # type: ignore[assignment]
    root_dir: str = CORE_STORAGE_ROOT_DIR
    strict: bool = True
    populate_max_depth: int = CORE_POPULATE_MAX_DEPTH
    populate_on_missing: OnMissingName = CORE_POPULATE_ON_MISSING  # type: ignore[assignment]
    codec_error_policy: CodecPolicyName = CORE_CODEC_ERROR_POLICY  # type: ignore[assignment]
    operation_timeout: float | None = None

    def __post_init__(self) -> None:
        if self.storage not in _STORAGE_BACKENDS:
            raise OdmConfigError(f"unsupported storage backend {self.storage!r}")
        if self.populate_max_depth < 1:
            raise OdmConfigError(
                f"populate_max_depth must be >= 1 (got {self.populate_max_depth})"
            )
        if self.populate_on_missing not in _ON_MISSING:
            raise OdmConfigError(f"unknown populate_on_missing {self.populate_on_missing!r}")
        if self.codec_error_policy not in _CODEC_POLICIES:
            raise OdmConfigError(f"unknown codec_error_policy {self.codec_error_policy!r}")
        if self.operation_timeout is not None and self.operation_timeout <= 0:
            raise OdmConfigError(
                f"operation_timeout must be positive (got {self.operation_timeout})"
            )

    # Configuration loaders (env/TOML) with precedence: env > TOML > defaults.

    @classmethod
    def _apply_mapping(cls, base: OdmSettings, cfg: dict[str, Any] | None) -> OdmSettings:
        """Apply a loose config mapping onto OdmSettings, returning a new instance."""
        if not isinstance(cfg, dict):
            return base

        s = base

        if "storage" in cfg and isinstance(cfg["storage"], str):
            backend = cfg["storage"].strip().lower()
            if backend in _STORAGE_BACKENDS:
                s = replace(s, storage=backend)  # type: ignore[arg-type]
            else:
                logger.warning("ignoring unsupported storage backend %r", cfg["storage"])

        if "root_dir" in cfg and isinstance(cfg["root_dir"], str):
            s = replace(s, root_dir=cfg["root_dir"])

        if "strict" in cfg:
            s = replace(s, strict=_bool(cfg["strict"]))

        if "populate_max_depth" in cfg:
            try:
                depth = int(cfg["populate_max_depth"])
            except (TypeError, ValueError):
                depth = s.populate_max_depth
            if depth >= 1:
                s = replace(s, populate_max_depth=depth)

        if "populate_on_missing" in cfg and isinstance(cfg["populate_on_missing"], str):
            mode = cfg["populate_on_missing"].strip().lower()
            if mode in _ON_MISSING:
                s = replace(s, populate_on_missing=mode)  # type: ignore[arg-type]

        if "codec_error_policy" in cfg and isinstance(cfg["codec_error_policy"], str):
            policy = cfg["codec_error_policy"].strip().lower()
            if policy in _CODEC_POLICIES:
                s = replace(s, codec_error_policy=policy)  # type: ignore[arg-type]

        if "operation_timeout" in cfg:
            raw = cfg["operation_timeout"]
            if raw is None or (isinstance(raw, str) and raw.strip().lower() in {"", "none"}):
                s = replace(s, operation_timeout=None)
            else:
                try:
                    timeout = float(raw)
                except (TypeError, ValueError):
                    timeout = 0.0
                if timeout > 0:
                    s = replace(s, operation_timeout=timeout)

        return s

    @classmethod
    def from_env(cls, base: OdmSettings | None = None, prefix: str = "FIREODM_") -> OdmSettings:
        """
        Build OdmSettings from environment variables. Precedence is env > base (if provided) > defaults.

        Recognized variables:
            - FIREODM_STORAGE ("memory" | "file")
            - FIREODM_ROOT_DIR
            - FIREODM_STRICT (1/0/true/false/yes/no/on/off)
            - FIREODM_POPULATE_MAX_DEPTH
            - FIREODM_POPULATE_ON_MISSING ("skip" | "fail")
            - FIREODM_CODEC_ERROR_POLICY ("abort" | "skip" | "default")
            - FIREODM_OPERATION_TIMEOUT (seconds; "none" disables)
        """
        s = base or cls()
        mapping: dict[str, Any] = {}
        for key in (
            "storage",
            "root_dir",
            "strict",
            "populate_max_depth",
            "populate_on_missing",
            "codec_error_policy",
            "operation_timeout",
        ):
            v = os.getenv(prefix + key.upper())
            if v:
                mapping[key] = v
        return cls._apply_mapping(s, mapping)

    @classmethod
    def from_toml(cls, path: str | os.PathLike[str] | None = None) -> OdmSettings:
        """
        Build OdmSettings from a TOML file.

        Search order when `path` is None:
            1) ./fireodm.toml (with either an [odm] table or direct keys)
            2) ./pyproject.toml under [tool.fireodm]

        Returns defaults if no file is present.
        """
        s = cls()

        def _load_toml(p: Path) -> dict[str, Any] | None:
            try:
                with p.open("rb") as fh:
                    return tomllib.load(fh)
            except (OSError, tomllib.TOMLDecodeError) as exc:
                logger.warning("could not read %s: %s", p, exc)
                return None

        cfg: dict[str, Any] | None = None

        cand: list[Path] = []
        if path is not None:
            cand.append(Path(path))
        else:
            cand.append(Path.cwd() / "fireodm.toml")
            cand.append(Path.cwd() / "pyproject.toml")

        for p in cand:
            if not p.exists():
                continue
            data = _load_toml(p)
            if not isinstance(data, dict):
                continue
            if p.name == "pyproject.toml":
                tool = data.get("tool", {})
                cfg = tool.get("fireodm") if isinstance(tool, dict) else None
            else:
                top = data
                cfg = top["odm"] if isinstance(top.get("odm"), dict) else top
            if cfg:
                break

        return cls._apply_mapping(s, cfg)

    @classmethod
    def load(cls, path: str | os.PathLike[str] | None = None) -> OdmSettings:
        """
        Load OdmSettings applying precedence: environment > TOML > defaults.

        Args:
            path: Optional explicit TOML path. If None, search defaults (fireodm.toml, pyproject.toml).
        """
        s = cls.from_toml(path)
        s = cls.from_env(base=s)
        return s
