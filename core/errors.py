"""
core/errors.py -- Typed application errors shared by every workflow.

Workflows (auth/service.py, org/service.py) and the visibility engine raise
these; api/main.py maps each one to its HTTP status and the standard
{"error": {"code", "message"}} envelope. Messages are user-facing and must
never embed internal detail (SQL, stack traces, hashes).

Layer rule: core/ is the kernel. No imports from api/, auth/ or org/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for all errors a workflow may return to a caller."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Une erreur inattendue est survenue."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed or missing input."""

    status_code = 400
    code = "validation_error"
    default_message = "requête invalide"


class InvalidRole(ValidationError):
    code = "invalid_role"
    default_message = "rôle invalide"


class Unauthorized(AppError):
    """Missing, invalid or expired credentials."""

    status_code = 401
    code = "unauthorized"
    default_message = "authentification requise"


class InvalidToken(Unauthorized):
    code = "invalid_token"
    default_message = "token invalide"


class Forbidden(AppError):
    """Authenticated, but the actor's role does not allow the operation."""

    status_code = 403
    code = "forbidden"
    default_message = "accès refusé"


class NotFound(AppError):
    """Entity absent or soft-deleted."""

    status_code = 404
    code = "not_found"
    default_message = "ressource non trouvée"


class Conflict(AppError):
    """Unique constraint violation."""

    status_code = 409
    code = "conflict"
    default_message = "conflit"


class InternalError(AppError):
    """Hashing or persistence failure."""
