"""Bearer-token principal.

Tokens are issued elsewhere; this service only reads the ``Authorization``
header. Member tokens are ``base64("<member_id>:<issued_at>")``, which is how
member-scoped endpoints learn whose data to return.
"""

import base64
import binascii
import hmac
from functools import wraps

from flask import abort, current_app
from flask_login import UserMixin, current_user, login_required


class TokenPrincipal(UserMixin):
    def __init__(self, token):
        self.token = token
        self.member_id = decode_member_id(token)

    def get_id(self):
        return self.token

    @property
    def is_admin(self):
        allowed = current_app.config.get("ADMIN_API_TOKENS") or []
        if not allowed:
            return True
        return any(hmac.compare_digest(self.token.encode(), candidate.encode()) for candidate in allowed)

    @property
    def actor_label(self):
        if self.member_id is not None:
            return f"member:{self.member_id}"
        return f"token:{self.token[:8]}"

    def __repr__(self):
        return f"<TokenPrincipal member={self.member_id}>"


def bearer_token(header_value):
    if not header_value:
        return None
    scheme, _, token = header_value.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


def decode_member_id(token):
    """Return the member id carried by a member token, or None."""
    try:
        decoded = base64.b64decode(token, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    member_part = decoded.split(":", 1)[0].strip()
    if not member_part.isdigit():
        return None
    return int(member_part)


def load_principal(request):
    token = bearer_token(request.headers.get("Authorization"))
    if token is None:
        return None
    return TokenPrincipal(token)


def make_member_token(member_id, issued_at=0):
    return base64.b64encode(f"{member_id}:{issued_at}".encode()).decode("ascii")


def admin_required(f):
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if not current_user.is_admin:
            abort(403)
        return f(*args, **kwargs)

    return decorated_function


def member_required(f):
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if current_user.member_id is None:
            abort(401, description="Invalid token or user not found")
        return f(*args, **kwargs)

    return decorated_function
