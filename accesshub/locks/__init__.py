"""Door lock state and history."""

from accesshub.locks.service import LockService, apply_lock_change, get_lock_history

__all__ = ["LockService", "apply_lock_change", "get_lock_history"]
