"""Load ``StrideConfig`` from TOML layers and the process environment.

Layers, lowest priority first: model defaults, the per-user file, the
``stride.toml`` in the working directory, the file named by
``$STRIDE_CONFIG``, an explicit ``path`` and finally ``overrides``.

Secrets stay out of the files where possible. Stripe keys are read from
the env vars named by ``payments.*_env`` and the signing key from
``STRIDE_JWT_SECRET``, each only when the file leaves it empty.
``STRIDE_DATABASE_URL`` replaces ``database.url`` outright so a deploy
can point the same file at another database.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from stride.core.errors import ConfigError

from .schema import StrideConfig

CONFIG_ENV = "STRIDE_CONFIG"
JWT_SECRET_ENV = "STRIDE_JWT_SECRET"
DATABASE_URL_ENV = "STRIDE_DATABASE_URL"


def _layer_paths(explicit: str | Path | None) -> list[Path]:
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    user_dir = Path(xdg) if xdg else Path.home() / ".config"
    user_file = user_dir / "stride" / "config.toml"
    paths = [p for p in (user_file, Path.cwd() / "stride.toml") if p.is_file()]

    named = os.environ.get(CONFIG_ENV)
    if named:
        if not Path(named).is_file():
            raise ConfigError(f"{CONFIG_ENV} points to non-existent file: {named}")
        paths.append(Path(named))

    if explicit is not None:
        if not Path(explicit).is_file():
            raise ConfigError(f"Config file not found: {explicit}")
        paths.append(Path(explicit))
    return paths


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` with ``override`` merged in; nested tables merge too."""
    merged = base.copy()
    for key, value in override.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_environment(config: StrideConfig) -> None:
    payments = config.payments
    if payments.secret_key is None and payments.secret_key_env:
        payments.secret_key = os.environ.get(payments.secret_key_env)
    if payments.webhook_secret is None and payments.webhook_secret_env:
        payments.webhook_secret = os.environ.get(payments.webhook_secret_env)
    if not config.auth.jwt_secret:
        config.auth.jwt_secret = os.environ.get(JWT_SECRET_ENV, "")
    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        config.database.url = database_url


def load_config(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> StrideConfig:
    """Build the effective configuration.

    Raises:
        ConfigError: A named file is missing, a file is not valid TOML, or
            the merged result does not validate.
    """
    merged: dict[str, Any] = {}
    for layer in _layer_paths(path):
        merged = _deep_merge(merged, _read_toml(layer))
    if overrides:
        merged = _deep_merge(merged, overrides)

    try:
        config = StrideConfig.model_validate(merged)
    except Exception as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e

    _apply_environment(config)
    return config
