"""Routes package for FastAPI endpoints.

This package contains all API route modules for the intake questionnaire API.
"""

from intake_api.routes import admin, auth, health, questionnaires, responses

__all__ = ["admin", "auth", "health", "questionnaires", "responses"]
