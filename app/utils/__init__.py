from .decorators import require_role, get_current_user

from .audit import log_audit, audit_history

__all__ = [
    # Decorators
    "require_role",
    "get_current_user",
    # Audit
    "log_audit",
    "audit_history",
]
