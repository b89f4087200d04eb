import logging
import sys

from shared.config import RuntimeConfig
from shared.logging_setup import LOG_FORMAT, configure_logging


def test_from_env_reads_toolwire_variables():
    config = RuntimeConfig.from_env(
        {
            "TOOLWIRE_TOKEN_SECRET": "abc",
            "TOOLWIRE_LOG_LEVEL": "debug",
            "TOOLWIRE_TOOL_MODULES": "pkg.one, pkg.two,,",
            "TOOLWIRE_API_KEY_PREFIX": "acme_",
        }
    )

    assert config.token_secret == "abc"
    assert config.log_level == "DEBUG"
    assert config.tool_modules == ("pkg.one", "pkg.two")
    assert config.api_key_prefix == "acme_"
    assert config.server_name == "toolwire-worker"


def test_missing_secret_generates_one_and_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="shared.config"):
        first = RuntimeConfig.from_env({})
        second = RuntimeConfig.from_env({})

    assert first.token_secret and second.token_secret
    assert first.token_secret != second.token_secret
    assert first.api_key_prefix == "twk_"
    assert first.tool_modules == ()
    assert "TOOLWIRE_TOKEN_SECRET" in caplog.text


def test_configure_logging_targets_stderr():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging("warning")

        (handler,) = root.handlers
        assert handler.stream is sys.stderr
        assert handler.formatter._fmt == LOG_FORMAT
        assert root.level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
