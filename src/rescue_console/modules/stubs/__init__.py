"""Stub implementations of the external collaborators."""

from rescue_console.modules.stubs.runtime import RecordingRuntime, StubAdvisoryService

__all__ = [
    "RecordingRuntime",
    "StubAdvisoryService",
]
