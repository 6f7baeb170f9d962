"""
Typed failures raised by the stores, gates and services.

Route handlers never build error responses for these by hand: the
exception handlers registered in main.py turn each one into its status
code and a user-safe message.
"""

from typing import Optional


class AuthError(Exception):
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(AuthError):
    """No token, absent/expired session, or failed credential check."""
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(AuthError):
    """Authenticated, but not allowed to do this."""
    status_code = 403
    default_message = "Forbidden - Admin access required"


class InvalidOperation(Forbidden):
    """An admin action that would break a self-protection rule."""
    status_code = 400
    default_message = "Operation not allowed"


class NotFound(AuthError):
    status_code = 404
    default_message = "Not found"


class Conflict(AuthError):
    status_code = 409
    default_message = "Email already registered"


class InvalidInput(AuthError):
    status_code = 400
    default_message = "Invalid input"
