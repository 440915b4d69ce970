"""
Quote Request Validator

Validates and normalizes raw quote parameters before any cache or
upstream work happens.

VALIDATION RULES:
-----------------
1. Source and destination chains are present and supported
2. Source and destination differ
3. Amount is numeric and within [MIN_AMOUNT, MAX_AMOUNT]
4. Token is supported
5. No injection patterns in any string parameter

All failures are collected so the caller sees every offending field at
once, keyed by parameter name.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from re import Pattern

from bridge_aggregator.core.config.constants import (
    MAX_AMOUNT,
    MIN_AMOUNT,
    SUPPORTED_CHAINS,
    SUPPORTED_TOKENS,
    Stage,
)
from bridge_aggregator.core.exceptions import InvalidInputError, ValidationError
from bridge_aggregator.core.logging.logger import get_logger, log_stage
from bridge_aggregator.quotes.models import QuoteRequest

logger = get_logger(__name__)

TWO_PLACES = Decimal("0.01")


class QuoteRequestValidator:
    """
    Validates raw quote parameters and returns a normalized QuoteRequest.

    Usage:
        request = QuoteRequestValidator().validate("Ethereum", "polygon", "100", "USDC")
        request.amount_str  # "100.00"
    """

    SECURITY_PATTERNS: list[tuple[Pattern, str]] = [
        (re.compile(r"('|\"|--)"), "SQL Injection: quote or comment marker"),
        (
            re.compile(r"\b(union|select|insert|update|delete|drop|create|alter|exec|execute|script)\b", re.IGNORECASE),
            "SQL Injection: keyword detected",
        ),
        (re.compile(r"[\x00\n\r\x1a]"), "Control character detected"),
        (re.compile(r"<[^>]*>"), "XSS: markup detected"),
    ]

    def __init__(
        self,
        supported_chains: tuple[str, ...] = SUPPORTED_CHAINS,
        supported_tokens: tuple[str, ...] = SUPPORTED_TOKENS,
    ):
        self.supported_chains = supported_chains
        self.supported_tokens = supported_tokens

    def check_security_patterns(self, value: str) -> str | None:
        for pattern, description in self.SECURITY_PATTERNS:
            if pattern.search(value):
                return description
        return None

    def validate(
        self,
        source_chain: str | None,
        destination_chain: str | None,
        amount: str | float | Decimal | None,
        token: str | None = "usdc",
    ) -> QuoteRequest:
        raw = {
            "fromChain": source_chain,
            "toChain": destination_chain,
            "amount": amount,
            "token": token,
        }

        # Injection checks run on the raw strings first; a hit short-circuits.
        suspicious = {}
        for name, value in raw.items():
            if isinstance(value, str):
                reason = self.check_security_patterns(value)
                if reason:
                    suspicious[name] = f"Invalid characters in {name}"
                    log_stage(logger, Stage.REQUEST_VALIDATION, "Rejected suspicious input",
                              level="warning", field=name, reason=reason)
        if suspicious:
            raise InvalidInputError("Invalid quote request", fields=suspicious)

        errors: dict[str, str] = {}

        source = self._normalize_name(source_chain)
        destination = self._normalize_name(destination_chain)
        token_name = self._normalize_name(token) or "usdc"

        if not source:
            errors["fromChain"] = "Source chain is required"
        elif source not in self.supported_chains:
            errors["fromChain"] = f"Unsupported source chain '{source}'"

        if not destination:
            errors["toChain"] = "Destination chain is required"
        elif destination not in self.supported_chains:
            errors["toChain"] = f"Unsupported destination chain '{destination}'"

        if source and destination and source == destination:
            errors["chains"] = "Source and destination chains must be different"

        if token_name not in self.supported_tokens:
            errors["token"] = f"Unsupported token '{token_name}'"

        normalized_amount = self._normalize_amount(amount, errors)

        if errors:
            log_stage(logger, Stage.REQUEST_VALIDATION, "Quote request rejected",
                      level="info", fields=sorted(errors))
            raise ValidationError("Invalid quote request", fields=errors)

        return QuoteRequest(
            source_chain=source,
            destination_chain=destination,
            amount=normalized_amount,
            token=token_name,
        )

    @staticmethod
    def _normalize_name(value: str | None) -> str:
        return value.strip().lower() if isinstance(value, str) else ""

    @staticmethod
    def _normalize_amount(amount, errors: dict[str, str]) -> Decimal | None:
        if amount is None or (isinstance(amount, str) and not amount.strip()):
            errors["amount"] = "Amount is required"
            return None
        try:
            value = Decimal(str(amount).strip())
        except InvalidOperation:
            errors["amount"] = "Amount must be a number"
            return None
        if not value.is_finite():
            errors["amount"] = "Amount must be a number"
            return None

        if value < MIN_AMOUNT:
            errors["amount"] = f"Minimum amount is {MIN_AMOUNT}"
            return None
        if value > MAX_AMOUNT:
            errors["amount"] = f"Maximum amount is {MAX_AMOUNT}"
            return None
        return min(value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP), Decimal(MAX_AMOUNT))
