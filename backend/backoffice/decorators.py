# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service, permission_service, auth_service
from .services.permission_service import PermissionDeniedError
from .validation import parse_int

BRANCH_HEADER = "X-Branch-Id"


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and g.current_user is not None


def _resolve_branch(user) -> int | None:
    """
    Requested branch from X-Branch-Id when the user may act in it,
    otherwise the user's default branch.
    """
    requested = parse_int(request.headers.get(BRANCH_HEADER))
    if requested and auth_service.user_can_act_in_branch(user, requested):
        return requested
    return user.branch_id


def require_auth(f):
    """
    Require authentication and establish branch context.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.branch_id: The acting branch (header-selected or the user's default)
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or idle token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]

        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.branch_id = _resolve_branch(context.user)
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_permission(scope_type: str, scope_key: str, action: str):
    """
    Require a screen/module right.

    Write routes that go through the screen-approval helper do not use this
    gate: a missing right reroutes the write into the approval queue instead.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if scope_type.upper() == "MODULE":
                key = f"{scope_key}.*"
            else:
                key = scope_key

            try:
                permission_service.require_permission(g.current_user, key, action)
            except PermissionDeniedError as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": f"{scope_type.upper()}:{scope_key}:{action}",
                    "message": str(e)
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator

