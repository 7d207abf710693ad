"""Custom Tables API endpoints.

Table designer backend: create user-defined tables, add fields, delete
tables, and check that metadata and physical tables agree.
"""

# flake8: noqa: E501


import structlog
from flask import Blueprint, current_app, request
from pydantic import ValidationError

from apps.api.models.pydantic.common import format_validation_errors
from apps.api.services.custom_table import (
    CreationFailedError,
    CustomTableError,
    CustomTableService,
    InvalidDefinitionError,
    TableNotFoundError,
)
from apps.api.services.custom_table.data_types import DATA_TYPE_DEFINITIONS
from apps.api.utils.api_responses import ApiResponse
from apps.api.utils.async_utils import run_in_threadpool

logger = structlog.get_logger(__name__)

bp = Blueprint("custom_tables", __name__)

USER_HEADER = "X-User-Id"


def get_service() -> CustomTableService:
    """Get the CustomTableService bound to the app database."""
    return current_app.custom_tables


def _dump(model) -> dict:
    return model.model_dump(mode="json", by_alias=True)


# ===========================
# Error Handlers
# ===========================


@bp.errorhandler(InvalidDefinitionError)
def handle_invalid_definition(error: InvalidDefinitionError):
    logger.info("custom_table_definition_rejected", errors=len(error.errors))
    return ApiResponse.validation_error(error.errors)


@bp.errorhandler(ValidationError)
def handle_pydantic_validation(error: ValidationError):
    return ApiResponse.validation_error(format_validation_errors(error))


@bp.errorhandler(CreationFailedError)
def handle_creation_failed(error: CreationFailedError):
    logger.error(
        "custom_table_creation_failed",
        table=error.name,
        outcome=error.outcome.value,
        error=str(error.original),
    )
    return ApiResponse.error(
        f'Failed to create table "{error.name}"',
        500,
        outcome=error.outcome.value,
    )


@bp.errorhandler(CustomTableError)
def handle_custom_table_error(error: CustomTableError):
    if error.status_code >= 500:
        logger.error("custom_table_error", error=str(error))
        return ApiResponse.internal_error()
    return ApiResponse.error(str(error), error.status_code)


# ===========================
# Custom Table Endpoints
# ===========================


@bp.route("", methods=["GET"])
async def list_tables():
    """
    List active custom tables, newest first.

    Returns:
        200: {"items": [...], "total": n}
    """
    tables = await run_in_threadpool(get_service().get_tables)
    return ApiResponse.success({"items": [_dump(t) for t in tables], "total": len(tables)})


@bp.route("/data-types", methods=["GET"])
def list_data_types():
    """Data types offered by the table designer."""
    return ApiResponse.success({"items": DATA_TYPE_DEFINITIONS})


@bp.route("/consistency", methods=["GET"])
async def check_consistency():
    """
    Compare metadata against the physical custom_* tables.

    Returns:
        200: {"orphaned_tables": [...], "missing_tables": [...], "consistent": bool}
    """
    report = await run_in_threadpool(get_service().check_consistency)
    report["consistent"] = not report["orphaned_tables"] and not report["missing_tables"]
    return ApiResponse.success(report)


@bp.route("/<id_or_name>", methods=["GET"])
async def get_table(id_or_name: str):
    """
    Get a custom table by numeric ID or by name.

    Returns:
        200: Table with fields in display order
        404: Table not found
    """
    table = await run_in_threadpool(get_service().get_table, id_or_name)
    if not table:
        return ApiResponse.not_found("Table", id_or_name)
    return ApiResponse.success(_dump(table))


@bp.route("", methods=["POST"])
async def create_table():
    """
    Create a custom table with history tracking.

    Request Body:
        {"name": "...", "displayName": "...", "fields": [{...}, ...]}

    Returns:
        201: Created table
        400: Invalid definition ({"errors": [...]})
        409: Table name already exists
        500: Creation failed and was rolled back
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return ApiResponse.error("Request body required", 400)

    created_by = request.headers.get(USER_HEADER) or CustomTableService.SYSTEM_USER
    table = await run_in_threadpool(get_service().create_table, data, created_by)

    logger.info(
        "custom_table_created",
        table=table.name,
        table_id=table.id,
        fields=len(table.fields),
        created_by=created_by,
    )
    return ApiResponse.created(_dump(table))


@bp.route("/<int:table_id>/fields", methods=["POST"])
async def add_field(table_id: int):
    """
    Add a field to an existing custom table.

    Returns:
        200: Updated table
        400: Invalid field
        404: Table not found
        409: Field already exists
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return ApiResponse.error("Request body required", 400)

    service = get_service()
    await run_in_threadpool(service.add_field_to_table, table_id, data)
    table = await run_in_threadpool(service.get_table_by_id, table_id)
    if not table:
        raise TableNotFoundError(table_id)

    logger.info("custom_table_field_added", table=table.name, field=data.get("name"))
    return ApiResponse.success(_dump(table))


@bp.route("/<int:table_id>", methods=["DELETE"])
async def delete_table(table_id: int):
    """
    Delete a custom table, its history table and its metadata.

    Returns:
        204: Deleted
        404: Table not found
    """
    await run_in_threadpool(get_service().delete_table, table_id)
    logger.info("custom_table_deleted", table_id=table_id)
    return ApiResponse.no_content()
