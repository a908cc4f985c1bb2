"""
Action inputs — the two recognized options of a prepare run.

CI runners hand inputs over as strings ("true", "false", ""), so the
model accepts those alongside real booleans. An empty string means
"not set" and falls back to the declared default.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator

from nodeprep.core.models.cache import InstallMode

_TRUTHY = frozenset({"true", "yes", "on", "1"})
_FALSY = frozenset({"false", "no", "off", "0"})


class ActionInputs(BaseModel):
    """Immutable run configuration.

    Unknown keys are ignored, not rejected.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    checkout: bool = True
    production: bool = False

    @field_validator("checkout", "production", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return cls.model_fields[info.field_name].default
        if isinstance(value, str):
            text = value.strip().lower()
            if not text:
                return cls.model_fields[info.field_name].default
            if text in _TRUTHY:
                return True
            if text in _FALSY:
                return False
            raise ValueError(f"expected a boolean, got {value!r}")
        return value

    @property
    def mode(self) -> InstallMode:
        return InstallMode.from_production(self.production)
