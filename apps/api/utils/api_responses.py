"""Standard JSON responses for API endpoints."""

# flake8: noqa: E501


from typing import Any, Dict, List, Optional, Tuple

from flask import Response, jsonify


class ApiResponse:
    """Helpers returning (response, status) tuples."""

    @staticmethod
    def success(data: Any, status_code: int = 200) -> Tuple[Response, int]:
        return jsonify(data), status_code

    @staticmethod
    def created(data: Any) -> Tuple[Response, int]:
        return jsonify(data), 201

    @staticmethod
    def no_content() -> Tuple[str, int]:
        return "", 204

    @staticmethod
    def error(message: str, status_code: int = 400, **extra: Any) -> Tuple[Response, int]:
        body: Dict[str, Any] = {"error": message}
        body.update(extra)
        return jsonify(body), status_code

    @staticmethod
    def validation_error(errors: List[str]) -> Tuple[Response, int]:
        return jsonify({"error": "Validation failed", "errors": list(errors)}), 400

    @staticmethod
    def not_found(resource: str, resource_id: Optional[Any] = None) -> Tuple[Response, int]:
        if resource_id is not None:
            return jsonify({"error": f"{resource} {resource_id} not found"}), 404
        return jsonify({"error": f"{resource} not found"}), 404

    @staticmethod
    def conflict(message: str) -> Tuple[Response, int]:
        return jsonify({"error": message}), 409

    @staticmethod
    def internal_error(message: str = "An internal error occurred") -> Tuple[Response, int]:
        return jsonify({"error": message}), 500
