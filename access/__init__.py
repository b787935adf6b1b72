"""Zugriffsregeln: Einladungsmatrix, Routen-Weiterleitungen, Versuchsbegrenzung."""

from .permissions import (
    INVITE_MATRIX,
    can_generate_invite_for,
    can_manage_school_tokens,
    invitable_roles,
)
from .rate_limiter import RateLimiter
from .routes import resolve_redirect, home_for

__all__ = [
    "INVITE_MATRIX",
    "can_generate_invite_for",
    "can_manage_school_tokens",
    "invitable_roles",
    "RateLimiter",
    "resolve_redirect",
    "home_for",
]
