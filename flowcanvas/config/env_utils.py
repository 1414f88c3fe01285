"""
Environment helpers for config dataclasses.

``read_env_defaults`` turns an ``_ENV_MAP`` (field name → env var) into
constructor kwargs, coercing each raw string to the field's declared type.
"""

from __future__ import annotations

import os
from dataclasses import Field
from logging import getLogger
from typing import Any, Dict, Mapping, Optional

logger = getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _coerce(raw: str, type_hint: Any) -> Any:
    # Annotations are strings under ``from __future__ import annotations``
    name = type_hint if isinstance(type_hint, str) else getattr(type_hint, "__name__", "")
    if name == "bool":
        return raw.strip().lower() in _TRUE_VALUES
    if name == "int":
        return int(raw)
    if name == "float":
        return float(raw)
    return raw


def read_env_defaults(
    env_map: Mapping[str, str],
    fields: Mapping[str, Field],
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Collect constructor kwargs for every mapped env var that is set.

    Unset variables are omitted so the dataclass default applies.
    Values that fail coercion are skipped with a warning.
    """
    env = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    for field_name, env_name in env_map.items():
        raw = env.get(env_name)
        if raw is None or field_name not in fields:
            continue
        try:
            values[field_name] = _coerce(raw, fields[field_name].type)
        except ValueError:
            logger.warning(
                f"Ignoring invalid value for {env_name}: {raw!r}"
            )
    return values
