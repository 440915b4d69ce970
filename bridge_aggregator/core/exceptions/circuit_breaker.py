"""
Circuit Breaker Exceptions

All exceptions related to circuit breaker operations

Author: System Architect
Date: 2025-12-08
"""

from bridge_aggregator.core.exceptions.base import BridgeAggregatorError


class CircuitBreakerError(BridgeAggregatorError):
    """Base exception for circuit breaker errors."""

    def __init__(self, message: str, name: str, retry_after_seconds: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.name = name
        self.retry_after_seconds = retry_after_seconds
        self.details.update({"breaker": name, "retry_after_seconds": retry_after_seconds})


class CircuitBreakerOpenError(CircuitBreakerError):
    """
    Raised when circuit breaker is open (fail fast).

    The wrapped call was not attempted. The circuit will transition to
    half-open once the recovery timeout elapses, at which point a limited
    number of trial requests are allowed through.
    """
    pass


class CircuitBreakerHalfOpenError(CircuitBreakerError):
    """
    Raised when the breaker is half-open and all trial slots are taken.

    The caller should retry shortly; the outcome of the in-flight trial
    decides whether the circuit closes or reopens.
    """
    pass
