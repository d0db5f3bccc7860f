from __future__ import annotations

from typing import Any


class ApiError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        error_class: str,
        retryable: bool,
        http_status: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_class = error_class
        self.retryable = retryable
        self.http_status = http_status
        self.details = details


class NotFoundError(ApiError):
    def __init__(self, *, entity: str, entity_id: str) -> None:
        super().__init__(
            code=f"{entity.upper()}_NOT_FOUND",
            message=f"{entity} not found",
            error_class="validation",
            retryable=False,
            http_status=404,
            details={"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class AuthorizationError(ApiError):
    """Actor is known but not allowed to act; ``reason`` is a policy reason code."""

    def __init__(self, *, reason: str, message: str) -> None:
        super().__init__(
            code="AUTH_FORBIDDEN",
            message=message,
            error_class="security_sensitive",
            retryable=False,
            http_status=403,
            details={"reason": reason},
        )
        self.reason = reason


class InvalidTransitionError(ApiError):
    def __init__(
        self,
        *,
        current_status: str | None,
        target_status: str,
        reason: str = "invalid_transition",
    ) -> None:
        if reason == "conflict":
            message = f"conflict: report status changed before {target_status} could be applied"
        else:
            message = f"invalid transition: {current_status} -> {target_status}"
        super().__init__(
            code="WF_STATE_TRANSITION_INVALID",
            message=message,
            error_class="business_rule",
            retryable=False,
            http_status=409,
            details={"reason": reason, "current_status": current_status, "target_status": target_status},
        )
        self.reason = reason
        self.current_status = current_status
        self.target_status = target_status


class ValidationError(ApiError):
    def __init__(self, *, field: str, message: str) -> None:
        super().__init__(
            code="REQ_VALIDATION_FAILED",
            message=message,
            error_class="validation",
            retryable=False,
            http_status=400,
            details={"field": field},
        )
        self.field = field


class DependencyFailure(ApiError):
    """A record or blob store call failed; safe to retry unless the operation creates records."""

    def __init__(self, *, dependency: str, message: str) -> None:
        super().__init__(
            code="DEPENDENCY_UNAVAILABLE",
            message=message,
            error_class="transient",
            retryable=True,
            http_status=503,
            details={"dependency": dependency},
        )
        self.dependency = dependency
