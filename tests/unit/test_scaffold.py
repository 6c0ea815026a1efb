"""Test module imports and basic scaffolding."""

def test_imports():
    """All modules import without error."""
    from bytesize_digest import (
        config, fetch, classify, models, digest, status, errors, retry,
        summarize, deliver, pipeline, cli, utils,
    )
    from bytesize_digest.llm import base as llm_base
    from bytesize_digest.delivery import base as delivery_base
    from bytesize_digest.sources import base as sources_base
    from bytesize_digest.store import base as store_base
    assert True


def test_version_import():
    """Package version is accessible."""
    import bytesize_digest
    assert hasattr(bytesize_digest, '__version__')
    assert bytesize_digest.__version__ == "0.1.0"


def test_error_code_enum():
    """ErrorCode enum is properly defined."""
    from bytesize_digest.errors import ErrorCode

    assert hasattr(ErrorCode, 'SOURCE_AUTH_FAILED')
    assert hasattr(ErrorCode, 'LLM_TIMEOUT')
    assert hasattr(ErrorCode, 'DELIVERY_SEND_FAILED')
    assert ErrorCode.RUN_TIMEOUT.value == "RUN_TIMEOUT"
