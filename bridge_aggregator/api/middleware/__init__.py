from bridge_aggregator.api.middleware.error_handler import (
    ErrorHandlingMiddleware,
    register_exception_handlers,
)

__all__ = ["ErrorHandlingMiddleware", "register_exception_handlers"]
