"""Settings: defaults, partial updates, environment and validation."""

import pytest
from pydantic import ValidationError

from mdmapper import (
    InvalidSettingsError,
    Settings,
    SettingsManager,
    configure_settings,
    get_settings,
    reset_settings,
)


class TestDefaults:
    def test_values(self):
        settings = get_settings()
        assert settings.callouts_style == "admonition"
        assert settings.toggles_syntax == "details"
        assert settings.wrap_width == 0
        assert settings.preserve_formatting is True

    def test_frozen(self):
        with pytest.raises(ValidationError):
            get_settings().wrap_width = 10  # type: ignore[misc]


class TestUpdates:
    def test_partial_merge(self):
        """Later updates keep fields set by earlier ones."""
        configure_settings(callouts_style="emoji")
        configure_settings(wrap_width=40)
        settings = get_settings()
        assert settings.callouts_style == "emoji"
        assert settings.wrap_width == 40

    def test_camel_case_keys(self):
        configure_settings({"togglesSyntax": "list", "preserveFormatting": False})
        assert get_settings().toggles_syntax == "list"
        assert get_settings().preserve_formatting is False

    def test_reset(self):
        configure_settings(callouts_style="emoji")
        reset_settings()
        assert get_settings().callouts_style == "admonition"

    def test_manager_is_independent(self):
        manager = SettingsManager(wrap_width=10)
        assert manager.get().wrap_width == 10
        assert get_settings().wrap_width == 0

    def test_replace(self):
        manager = SettingsManager()
        manager.replace(Settings(callouts_style="emoji"))
        assert manager.get().callouts_style == "emoji"


class TestValidation:
    @pytest.mark.parametrize(
        "values",
        [{"callouts_style": "fancy"}, {"togglesSyntax": "tree"}, {"wrap_width": -1}],
    )
    def test_invalid_values(self, values):
        with pytest.raises(InvalidSettingsError) as excinfo:
            configure_settings(values)
        assert excinfo.value.fields

    def test_unknown_key(self):
        with pytest.raises(InvalidSettingsError) as excinfo:
            configure_settings({"colour": "red"})
        assert excinfo.value.to_dict()["fields"] == ["colour"]

    def test_failed_update_keeps_previous(self):
        configure_settings(wrap_width=12)
        with pytest.raises(InvalidSettingsError):
            configure_settings(wrap_width=-5)
        assert get_settings().wrap_width == 12


class TestEnvironment:
    def test_env_overrides_defaults(self, monkeypatch):
        monkeypatch.setenv("MDMAPPER_CALLOUTS_STYLE", "emoji")
        monkeypatch.setenv("MDMAPPER_WRAP_WIDTH", "72")
        reset_settings()
        assert get_settings().callouts_style == "emoji"
        assert get_settings().wrap_width == 72

    def test_explicit_values_beat_env(self, monkeypatch):
        monkeypatch.setenv("MDMAPPER_CALLOUTS_STYLE", "emoji")
        assert SettingsManager(callouts_style="admonition").get().callouts_style == "admonition"

    def test_invalid_env(self, monkeypatch):
        monkeypatch.setenv("MDMAPPER_TOGGLES_SYNTAX", "tree")
        with pytest.raises(InvalidSettingsError):
            reset_settings()
        monkeypatch.delenv("MDMAPPER_TOGGLES_SYNTAX")
