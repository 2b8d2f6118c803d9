from collections.abc import Mapping
from typing import Any, Literal

from pydantic import Field, ValidationError
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from mdmapper.exceptions import InvalidSettingsError

CalloutsStyle = Literal["admonition", "emoji"]
TogglesSyntax = Literal["details", "list"]


class Settings(BaseSettings):
    """Serializer dialect choices.

    Parsing always recognizes both callout forms; these values only decide
    which form is written. Defaults can be overridden with ``MDMAPPER_*``
    environment variables.
    """

    callouts_style: CalloutsStyle = "admonition"
    toggles_syntax: TogglesSyntax = "details"
    wrap_width: int = Field(default=0, ge=0)  # 0 = never reflow
    preserve_formatting: bool = True

    model_config = SettingsConfigDict(
        env_prefix="MDMAPPER_",
        extra="ignore",
        frozen=True,
    )


def _normalize_keys(values: Mapping[str, Any]) -> dict[str, Any]:
    """Accept both snake_case and camelCase keys."""
    by_alias = {to_camel(name): name for name in Settings.model_fields}
    return {by_alias.get(key, key): value for key, value in values.items()}


def _build(values: dict[str, Any]) -> Settings:
    unknown = set(values) - set(Settings.model_fields)
    if unknown:
        raise InvalidSettingsError(f"Unknown settings: {', '.join(sorted(unknown))}", fields=sorted(unknown))
    try:
        return Settings(**values)
    except ValidationError as e:
        raise InvalidSettingsError(f"Invalid settings: {e}", fields=[".".join(map(str, err["loc"])) for err in e.errors()]) from e


class SettingsManager:
    """Holds one Settings value; partial updates merge over the current one."""

    def __init__(self, initial: Settings | None = None, **overrides: Any):
        self._settings = initial if initial is not None else _build({})
        if overrides:
            self.update(overrides)

    def get(self) -> Settings:
        return self._settings

    def replace(self, settings: Settings) -> None:
        self._settings = settings

    def update(self, partial: Mapping[str, Any] | None = None, **fields: Any) -> Settings:
        changes = _normalize_keys({**(partial or {}), **fields})
        self._settings = _build({**self._settings.model_dump(), **changes})
        return self._settings

    def reset(self) -> None:
        self._settings = _build({})


# Process-wide instance used when callers don't pass explicit settings
default_manager = SettingsManager()


def configure_settings(partial: Mapping[str, Any] | None = None, **fields: Any) -> None:
    default_manager.update(partial, **fields)


def get_settings() -> Settings:
    return default_manager.get()


def reset_settings() -> None:
    default_manager.reset()


def resolve_settings(settings: Settings | None) -> Settings:
    return settings if settings is not None else default_manager.get()
