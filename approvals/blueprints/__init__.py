"""
Request Approval Workflow
Blueprint registry and shared view helpers.
"""

import logging

from flask import request
from sqlalchemy.exc import SQLAlchemyError

from approvals.core.exceptions import (
    ConflictError,
    DependencyError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from approvals.utils.errors import E, api_error

logger = logging.getLogger(__name__)


class MalformedBody(Exception):
    """The request body is not the JSON object the endpoint expects."""


def json_body() -> dict:
    """Return the JSON object body, raising ``MalformedBody`` otherwise."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise MalformedBody("Request body must be a JSON object")
    return data


def register_error_handlers(bp):
    """Translate the core exception taxonomy into standard JSON errors."""

    @bp.errorhandler(MalformedBody)
    def _handle_malformed(error: MalformedBody):
        return api_error(E.VALIDATION_INVALID, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_CONSTRAINT, str(error), details=error.details)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ForbiddenError)
    def _handle_forbidden(error: ForbiddenError):
        logger.info("Forbidden: user=%s action=%s request=%s",
                    error.user_id, error.action, error.request_id)
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        details = {"current_status": error.current_status} if error.current_status else None
        return api_error(E.CONFLICT_STATE, str(error), details=details)

    @bp.errorhandler(DependencyError)
    def _handle_dependency(error: DependencyError):
        logger.error("Dependency failure in %s during %s", request.endpoint, error.operation)
        return api_error(E.DATABASE, "Database error")

    @bp.errorhandler(SQLAlchemyError)
    def _handle_db(error: SQLAlchemyError):
        logger.exception("Database error in endpoint=%s", request.endpoint)
        return api_error(E.DATABASE, "Database error")
