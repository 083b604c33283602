"""
Staff verification service: auto-scoring and admin review workflow
"""
__version__ = "1.0.0"
