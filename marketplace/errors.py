from __future__ import annotations

from typing import Any, Dict, List, Optional

import pydantic
from flask import Flask, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db


class APIError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, **extra: Any) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        payload = {"message": self.message}
        payload.update({key: value for key, value in self.extra.items() if value is not None})
        return payload


class ValidationError(APIError):
    status_code = 400
    message = "Invalid input data"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, str]]] = None) -> None:
        super().__init__(message, errors=errors)


class Unauthenticated(APIError):
    status_code = 401
    message = "Authentication required"


class Forbidden(APIError):
    status_code = 403
    message = "Access denied"

    def __init__(self, message: Optional[str] = None, user_role: Optional[str] = None) -> None:
        super().__init__(message, userRole=user_role)


class NotFound(APIError):
    status_code = 404
    message = "Not found"


class Conflict(APIError):
    status_code = 409
    message = "Conflict"


class InsufficientStock(Conflict):
    def __init__(self, product_id: str, available: int, requested: int, name: Optional[str] = None) -> None:
        label = name or product_id
        super().__init__(
            f"Insufficient stock for product {label}. Available: {available}",
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested
        self.extra = {"productId": product_id, "available": available, "requested": requested}


class StockChanged(Conflict):
    def __init__(self, product_id: str, available: int, expected: int) -> None:
        super().__init__(f"Stock changed since it was read. Available: {available}")
        self.extra = {"productId": product_id, "available": available, "expected": expected}


class InvalidTransition(Conflict):
    message = "Order status cannot change"


class InternalError(APIError):
    status_code = 500


def validation_errors(exc: pydantic.ValidationError, prefix: str = "") -> List[Dict[str, str]]:
    errors = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error.get("loc", ()))
        if prefix:
            path = f"{prefix}.{path}" if path else prefix
        errors.append({"path": path, "message": error.get("msg", "Invalid value")})
    return errors


def register_errors(app: Flask) -> None:
    @app.errorhandler(APIError)
    def api_error(e: APIError):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(pydantic.ValidationError)
    def schema_error(e: pydantic.ValidationError):
        return jsonify({"message": "Invalid input data", "errors": validation_errors(e)}), 400

    @app.errorhandler(SQLAlchemyError)
    def storage_error(e: SQLAlchemyError):
        db.session.rollback()
        current_app.logger.exception("Storage failure: %s", e)
        return jsonify({"message": "Internal server error"}), 500

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"message": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"message": "Method not allowed"}), 405

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({"message": "Uploaded file is too large"}), 413

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"message": "Internal server error"}), 500
