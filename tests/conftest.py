"""Configuration for pytest."""

import pytest


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests that open local sockets"
    )


@pytest.fixture
def clock():
    """A manually advanced clock."""
    from fakes import FakeClock

    return FakeClock()


@pytest.fixture
def snapshot():
    """Default status snapshot."""
    from rescue_console.schemas.snapshot import StatusSnapshot

    return StatusSnapshot()


@pytest.fixture
def event_log():
    """Isolated structured logger recording every level."""
    from rescue_console.utils.logging import LogLevel, StructuredLogger

    return StructuredLogger(name="test", level=LogLevel.DEBUG)


@pytest.fixture
def stub_service():
    """Advisory service answering with a fixed directive."""
    from rescue_console.modules.stubs import StubAdvisoryService

    return StubAdvisoryService([{"content": "Hold position."}])


@pytest.fixture
def recording_runtime():
    """Rendering runtime that records commands."""
    from rescue_console.modules.stubs import RecordingRuntime

    return RecordingRuntime()
