"""
Validation Exceptions

All exceptions related to quote request validation

Author: System Architect
Date: 2025-12-08
"""

from bridge_aggregator.core.exceptions.base import BridgeAggregatorError


class ValidationError(BridgeAggregatorError):
    """
    Raised when request validation fails.

    ``details["fields"]`` maps each offending field to a human readable
    message so the HTTP layer can return them verbatim with a 400.
    """

    def __init__(self, message: str, fields: dict[str, str] | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.fields = dict(fields or {})
        if self.fields:
            self.details.setdefault("fields", self.fields)


class InvalidInputError(ValidationError):
    """
    Raised when an input contains a suspicious pattern.

    Common causes:
    - SQL fragments in a chain or token name
    - Script tags or template injection markers
    """
    pass
