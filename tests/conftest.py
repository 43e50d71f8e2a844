"""
Shared fixtures
"""
import pytest

from securegate.audit_logger import AuditLogger, MemoryAuditSink


class FakeClock:
    """Manually advanced clock returning seconds"""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def audit_sink():
    return MemoryAuditSink()


@pytest.fixture
def audit(audit_sink):
    return AuditLogger([audit_sink])


@pytest.fixture
def clock():
    return FakeClock()
