import pytest
from pydantic import ValidationError as PydanticValidationError

from recipebook.client import RecipeBookClient
from recipebook.core.config import Settings, to_async_url
from recipebook.core.options import ClientOptions, ErrorFormat, LogEmit, LogLevelName, TransactionOptions
from recipebook.services.async_error_handler import ValidationError


def test_log_shorthand_expands_to_stdout():
    options = ClientOptions(log=["query", {"level": "error", "emit": "event"}])
    assert options.levels_for(LogEmit.STDOUT) == [LogLevelName.QUERY]
    assert options.levels_for(LogEmit.EVENT) == [LogLevelName.ERROR]


def test_transaction_defaults():
    defaults = TransactionOptions()
    assert defaults.max_wait == 2000
    assert defaults.timeout == 5000
    assert defaults.isolation_level is None


def test_transaction_bounds_must_be_positive():
    with pytest.raises(PydanticValidationError):
        TransactionOptions(timeout=0)


def test_from_settings_lets_overrides_win():
    settings = Settings(ERROR_FORMAT="pretty", TRANSACTION_TIMEOUT_MS=1000)
    options = ClientOptions.from_settings(settings, error_format="minimal", omit=None)
    assert options.error_format == ErrorFormat.MINIMAL
    assert options.transaction_options.timeout == 1000
    assert options.omit == {}


def test_unknown_option_is_rejected():
    with pytest.raises(PydanticValidationError):
        ClientOptions(retries=3)


def test_client_rejects_invalid_options_before_connecting():
    with pytest.raises(ValidationError) as exc_info:
        RecipeBookClient(datasource_url="sqlite+aiosqlite:///:memory:", error_format="loud")
    assert exc_info.value.path[0] == "options"


@pytest.mark.parametrize("omit, path", [
    ({"usr": {"password": True}}, ["options", "omit", "usr"]),
    ({"user": {"pasword": True}}, ["options", "omit", "user", "pasword"]),
])
def test_client_rejects_unknown_omit_defaults(omit, path):
    with pytest.raises(ValidationError) as exc_info:
        RecipeBookClient(datasource_url="sqlite+aiosqlite:///:memory:", omit=omit)
    assert exc_info.value.path == path


def test_client_accepts_known_omit_defaults():
    client = RecipeBookClient(datasource_url="sqlite+aiosqlite:///:memory:", omit={"unit_of_measure": {"type": True}})
    assert client.options.omit == {"unit_of_measure": {"type": True}}


@pytest.mark.parametrize("url, expected", [
    ("postgresql://u:p@localhost/db", "postgresql+asyncpg://u:p@localhost/db"),
    ("postgres://u:p@localhost/db", "postgresql+asyncpg://u:p@localhost/db"),
    ("sqlite:///./recipes.db", "sqlite+aiosqlite:///./recipes.db"),
    ("sqlite+aiosqlite:///:memory:", "sqlite+aiosqlite:///:memory:"),
])
def test_to_async_url(url, expected):
    assert to_async_url(url) == expected
