from core.imports import get_jwt, get_jwt_identity

ADMIN = "ADMIN"


def current_identity():
    """Return ``(user_id, role)`` for the caller, or ``(None, None)`` when anonymous."""
    identity = get_jwt_identity()
    if identity is None:
        return None, None
    return int(identity), get_jwt().get("role")


def is_admin(role):
    return role == ADMIN
