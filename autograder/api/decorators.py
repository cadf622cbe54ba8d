"""
Flask decorators for API request resolution.

Every API endpoint receives its payload as JSON, either in the `content`
form field or as the JSON request body. The decorator decodes it into the
endpoint's request type, runs the ContextResolver (validation,
authentication, role check, assignment lookup), and hands the resolved
context to the view. Views return a dict that becomes the response
`content`.
"""

import json
import logging
from functools import wraps
from typing import Any, Dict

from flask import current_app, g, jsonify, request

from autograder.core.context import request_from_payload
from autograder.core.errors import BadRequestError

logger = logging.getLogger(__name__)

API_REQUEST_CONTENT_KEY = "content"
API_PREFIX = "/api/v01/"


def parse_request_payload() -> Dict[str, Any]:
    """
    Decode the request payload.

    Returns:
        dict: Decoded JSON object

    Raises:
        BadRequestError: Missing or malformed payload
    """
    raw = request.form.get(API_REQUEST_CONTENT_KEY)
    if raw is not None:
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise BadRequestError("Request content is not valid JSON.").add("error", str(e))
    else:
        payload = request.get_json(silent=True)
        if payload is None:
            raise BadRequestError("No request content provided.")

    if not isinstance(payload, dict):
        raise BadRequestError("Request content must be a JSON object.")

    return payload


def endpoint_name() -> str:
    """API endpoint name (path without the API prefix), e.g. admin/user/add."""
    path = request.path
    if path.startswith(API_PREFIX):
        return path[len(API_PREFIX):]
    return path.lstrip("/")


def api_endpoint(request_cls):
    """
    Decorator binding a view to a registered request type.

    The view is called as `view(api_request, context)` and must return a
    JSON-serializable dict.

    Example:
        @bp.route("/user/get", methods=["POST"])
        @api_endpoint(UserGetRequest)
        def user_get(api_request, context):
            return {"user": context.user.to_public_dict()}
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            endpoint = endpoint_name()
            try:
                payload = parse_request_payload()
                api_request = request_from_payload(request_cls, payload)
            except BadRequestError as e:
                e.endpoint = e.endpoint or endpoint
                raise

            resolver = current_app.config["RESOLVER"]
            context = resolver.resolve(api_request, endpoint)
            g.api_context = context

            content = fn(api_request, context, *args, **kwargs)

            return jsonify({
                "request-id": context.request_id,
                "success": True,
                "content": content,
            })

        return wrapper
    return decorator
