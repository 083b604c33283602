"""
API routers package
"""
from staff_verify.api import (
    system,
    verification,
    review,
    roster,
    notifications
)

__all__ = [
    "system",
    "verification",
    "review",
    "roster",
    "notifications"
]
