from datetime import datetime, timezone
from typing import Optional, Tuple

from flask import abort, jsonify, request
from marshmallow import Schema, ValidationError as SchemaValidationError

from nubia.core.cache import IdempotencyStore, get_redis
from nubia.core.config import get_config
from nubia.core.exceptions import ValidationError, marshmallow_errors
from nubia.services.notifications.notifier import OrderNotifier


def success_response(data, message: Optional[str] = None, status: int = 200):
    """Consistent success response envelope."""
    response = {
        "success": True,
        "data": data,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if message:
        response["message"] = message
    return jsonify(response), status


def parse_int(
    v,
    default=None,
    min_val: Optional[int] = None,
    max_val: Optional[int] = None,
    field_name: str = "value",
) -> Optional[int]:
    """Parse an integer with optional range validation."""
    try:
        result = int(v)
    except (TypeError, ValueError):
        if default is not None or v is None:
            return default
        abort(400, f"Invalid {field_name}: must be a valid integer")
    if min_val is not None and result < min_val:
        abort(400, f"{field_name} must be at least {min_val}")
    if max_val is not None and result > max_val:
        abort(400, f"{field_name} cannot exceed {max_val}")
    return result


def parse_bool(v, default: bool = False) -> bool:
    """Parse a boolean value from a query string."""
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    return str(v).lower() in ("1", "true", "t", "yes", "y", "on")


def load_body(schema: Schema, partial: bool = False) -> dict:
    """Validate the JSON body; marshmallow errors become a 400 with per-field messages."""
    try:
        return schema.load(request.get_json(force=True, silent=True) or {}, partial=partial)
    except SchemaValidationError as err:
        raise ValidationError("Validation failed", field_errors=marshmallow_errors(err.messages))


def page_args(default_limit: Optional[int] = None) -> Tuple[int, int]:
    """limit/offset query args bounded by the API page size settings."""
    api = get_config().api
    limit = parse_int(
        request.args.get("limit"), default_limit or api.default_page_size, 1, api.max_page_size, "limit"
    )
    offset = parse_int(request.args.get("offset"), 0, 0, None, "offset")
    return limit, offset


def idempotency(namespace: str) -> Tuple[IdempotencyStore, Optional[str]]:
    store = IdempotencyStore(get_redis(), namespace, get_config().api.idempotency_ttl_seconds)
    return store, request.headers.get("Idempotency-Key")


def notifier() -> OrderNotifier:
    return OrderNotifier(get_config())
