"""Configuration management for the account store."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import yaml

from .credentials import DEFAULT_ROUNDS, DEFAULT_SCHEME

DEFAULT_STREAM_PAGE_SIZE = 100


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the account database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "userdb.sqlite3").resolve(strict=False)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "config" / "userdb.yaml").resolve(strict=False)


def _positive_int(data: Dict[str, object], name: str, default: int) -> int:
    value = data.get(name, default)
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a positive integer")
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a positive integer") from exc
    if number < 1:
        raise ValueError(f"{name} must be a positive integer")
    return number


@dataclass(frozen=True)
class StoreConfig:
    """Settings used to open an :class:`~userdb.store.AccountStore`."""

    database_path: Path
    hash_scheme: str = DEFAULT_SCHEME
    hash_rounds: int = DEFAULT_ROUNDS
    stream_page_size: int = DEFAULT_STREAM_PAGE_SIZE

    @staticmethod
    def from_dict(data: Dict[str, object], base_path: Path | None = None) -> "StoreConfig":
        """Create a :class:`StoreConfig` from raw dictionary data."""

        raw_path = data.get("database_path")
        if raw_path:
            candidate = Path(str(raw_path)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        scheme = str(data.get("hash_scheme") or DEFAULT_SCHEME).strip()
        if not scheme:
            raise ValueError("hash_scheme must not be empty")

        return StoreConfig(
            database_path=database_path,
            hash_scheme=scheme,
            hash_rounds=_positive_int(data, "hash_rounds", DEFAULT_ROUNDS),
            stream_page_size=_positive_int(data, "stream_page_size", DEFAULT_STREAM_PAGE_SIZE),
        )


def load_config(config_path: Optional[Path], *, database_path: Optional[str] = None) -> StoreConfig:
    """Load store settings from a YAML file.

    The file is optional; settings live under a top-level ``store`` key.
    ``database_path`` overrides whatever the file specifies.
    """

    raw: Dict[str, object] = {}
    base_path: Path | None = None
    if config_path is not None and config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            document = yaml.safe_load(handle) or {}
        if not isinstance(document, dict):
            raise ValueError("Configuration file must contain a mapping")
        section = document.get("store") or {}
        if not isinstance(section, dict):
            raise ValueError("The 'store' section of the configuration file must be a mapping")
        raw = dict(section)
        base_path = config_path.parent

    if database_path:
        raw["database_path"] = str(resolve_database_path(database_path))

    return StoreConfig.from_dict(raw, base_path=base_path)


__all__ = [
    "DEFAULT_STREAM_PAGE_SIZE",
    "StoreConfig",
    "load_config",
    "resolve_config_path",
    "resolve_database_path",
]
