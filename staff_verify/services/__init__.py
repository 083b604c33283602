"""
Services package - Business logic layer
"""
from staff_verify.services.email_service import email_service
from staff_verify.services.scoring_service import scoring_service
from staff_verify.services.verification_service import verification_service
from staff_verify.services.roster_service import roster_service

__all__ = [
    "email_service",
    "scoring_service",
    "verification_service",
    "roster_service"
]
