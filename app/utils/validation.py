from functools import wraps
from flask import request, jsonify


def validate_body(schema):
    """Parse the JSON body into ``schema`` and hand it to the view as ``body``.

    pydantic's ValidationError is left to the app-level handler, which
    renders it as a 400.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            data = request.get_json(silent=True)
            if data is None:
                data = {}
            if not isinstance(data, dict):
                return jsonify({"error": "Invalid or missing JSON body"}), 400
            kwargs["body"] = schema.model_validate(data)
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def pagination_args(default_limit=20, max_limit=100):
    page = request.args.get("page", 1, type=int) or 1
    limit = request.args.get("limit", default_limit, type=int) or default_limit
    return max(page, 1), min(max(limit, 1), max_limit)


def bool_arg(name):
    value = request.args.get(name)
    if value is None:
        return None
    return value.lower() in ("true", "1", "yes")
