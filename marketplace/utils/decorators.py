from functools import wraps

from flask import g

from ..errors import Unauthenticated
from ..security import require_role, resolve_identity


def _authenticate():
    identity = resolve_identity()
    if identity is None:
        raise Unauthenticated()
    g.identity = identity
    return identity


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        _authenticate()
        return fn(*args, **kwargs)

    return wrapper


def roles_required(*roles):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            identity = _authenticate()
            require_role(identity, roles)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def seller_required(fn):
    return roles_required("seller")(fn)


def admin_required(fn):
    return roles_required("admin")(fn)
