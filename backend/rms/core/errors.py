"""Service-level error taxonomy.

Engines raise these; the HTTP boundary turns each one into a JSON body and
status code via the handlers registered in ``rms.main``.
"""

from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base class for every business-rule failure raised by an engine."""

    code = "ServiceError"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.message, **self.details}


class NotFound(ServiceError):
    code = "NotFound"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} not found",
            {"entity": entity, "id": entity_id},
        )


class InvalidTransition(ServiceError):
    code = "InvalidTransition"

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot transition from {current} to {requested}",
            {"current_status": current, "requested_status": requested},
        )


class TerminalState(ServiceError):
    code = "TerminalState"

    def __init__(self, current: str):
        self.current = current
        super().__init__(
            f"Order cannot be bumped further (status: {current})",
            {"current_status": current},
        )


class InvalidState(ServiceError):
    code = "InvalidState"


class InvalidType(ServiceError):
    code = "InvalidType"


class InvalidRange(ServiceError):
    code = "InvalidRange"


class InvalidStatus(ServiceError):
    code = "InvalidStatus"


class CrossAreaCombination(ServiceError):
    code = "CrossAreaCombination"


class AlreadyCombined(ServiceError):
    code = "AlreadyCombined"


class NotInCombination(ServiceError):
    code = "NotInCombination"


class TableUnavailable(ServiceError):
    code = "TableUnavailable"


class CapacityExceeded(ServiceError):
    code = "CapacityExceeded"


class ExceedsRefundable(ServiceError):
    code = "ExceedsRefundable"


class OrderNotModifiable(ServiceError):
    code = "OrderNotModifiable"


class GatewayFailure(ServiceError):
    code = "GatewayFailure"

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(message or "Payment gateway failure", {"provider": provider})


class ConcurrentUpdate(ServiceError):
    code = "ConcurrentUpdate"
    status_code = 409
