"""
Brief: Tests for ndnsd.errors.

Inputs:
  - None

Outputs:
  - None
"""

from ndnsd import errors
from ndnsd.errors import ProviderError, error_message


def test_known_codes_map_to_messages():
    assert error_message(errors.ERR_NO_ERROR) == "no error"
    assert error_message(errors.ERR_NAME_CONFLICT) == (
        "attempt to register a service with an already used name"
    )
    assert error_message(errors.ERR_TIMEOUT) == "timeout"
    assert error_message(-65566).startswith("no router currently configured")


def test_unknown_code_has_default_message():
    assert error_message(12345) == "unknown error code"
    assert error_message(-65546) == "unknown error code"


def test_provider_error_carries_code_and_message():
    exc = ProviderError(errors.ERR_SERVICE_NOT_RUNNING)
    assert exc.error_code == -65563
    assert exc.message == "background daemon not running"
    assert str(exc) == "background daemon not running (-65563)"


def test_provider_error_custom_message():
    exc = ProviderError(errors.ERR_BAD_PARAM, "empty registration type")
    assert exc.message == "empty registration type"


def test_get_version_is_a_string():
    import ndnsd

    assert isinstance(ndnsd.get_version(), str)
    assert ndnsd.get_version() == ndnsd.__version__
