"""
Reliability utilities.

Circuit breaker wrapped around outbound geocoding calls so a failing
provider is skipped quickly instead of timing out once per candidate.
"""

import logging
import time
from typing import Callable, Any

logger = logging.getLogger(__name__)


class CircuitOpenError(Exception):
    pass


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.
    
    After 'failure_threshold' consecutive failures the circuit opens and
    rejects calls for 'reset_timeout' seconds, then lets one trial call
    through (HALF_OPEN). A successful trial closes the circuit again.
    """
    def __init__(self, name: str, failure_threshold: int = 5, reset_timeout: float = 60):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time = 0.0
        self.state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        if self.state == "OPEN":
            if time.monotonic() - self.last_failure_time > self.reset_timeout:
                self.state = "HALF_OPEN"
            else:
                raise CircuitOpenError(f"Circuit '{self.name}' is OPEN")

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.monotonic()
        if self.state == "HALF_OPEN" or self.failures >= self.failure_threshold:
            if self.state != "OPEN":
                logger.warning("Circuit '%s' opened after %d failures", self.name, self.failures)
            self.state = "OPEN"

    def record_success(self):
        if self.state == "HALF_OPEN":
            logger.info("Circuit '%s' closed", self.name)
        self.failures = 0
        self.state = "CLOSED"


# Shared breaker for the ZIP geocoding provider
geocoding_circuit_breaker = CircuitBreaker("geocoding", failure_threshold=5, reset_timeout=30)
