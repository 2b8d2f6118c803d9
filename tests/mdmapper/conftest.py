import pytest

from mdmapper import reset_settings

_SETTINGS_ENV = (
    "MDMAPPER_CALLOUTS_STYLE",
    "MDMAPPER_TOGGLES_SYNTAX",
    "MDMAPPER_WRAP_WIDTH",
    "MDMAPPER_PRESERVE_FORMATTING",
)


@pytest.fixture(autouse=True)
def default_settings(monkeypatch):
    """Every test starts from default settings, whatever the environment says."""
    for name in _SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()
