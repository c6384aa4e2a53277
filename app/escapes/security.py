from urllib.parse import urlparse

from flask import Request, Response, current_app, jsonify, request

STATE_CHANGING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
CORS_ALLOW_METHODS = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization, X-Requested-With"
CORS_MAX_AGE = "86400"


def allowed_origins() -> tuple[str, ...]:
    return tuple(current_app.config.get("ALLOWED_ORIGINS") or ())


def is_origin_allowed(origin: str | None) -> bool:
    """Exact match against the allow-list (scheme + host + port)."""
    if not origin:
        return False
    return origin.rstrip("/") in allowed_origins()


def _same_host(origin: str, req: Request) -> bool:
    return urlparse(origin).netloc.lower() == (req.host or "").lower()


def validate_origin(req: Request) -> bool:
    """
    Cross-site guard for cookie-authenticated API writes.
    Requests without an Origin header (curl, server-to-server) are let through;
    browsers always send one on cross-site writes.
    """
    origin = req.headers.get("Origin")
    if not origin:
        return True
    return is_origin_allowed(origin) or _same_host(origin, req)


def apply_cors_headers(response: Response) -> Response:
    origin = request.headers.get("Origin")
    if request.path.startswith("/api/") and is_origin_allowed(origin):
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = CORS_ALLOW_METHODS
        response.headers["Access-Control-Allow-Headers"] = CORS_ALLOW_HEADERS
        response.headers["Access-Control-Max-Age"] = CORS_MAX_AGE
        response.vary.add("Origin")
    return response


def api_request_guard():
    """before_request hook: answers CORS preflight and refuses cross-site writes."""
    if not request.path.startswith("/api/"):
        return None
    if request.method == "OPTIONS":
        return current_app.response_class(status=200)
    if request.method in STATE_CHANGING_METHODS and not validate_origin(request):
        current_app.logger.warning("Cross-site %s %s refused (origin=%s)", request.method, request.path, request.headers.get("Origin"))
        return jsonify({"error": "Cross-site request refused"}), 403
    return None
