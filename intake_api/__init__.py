"""Intake questionnaire platform API.

Regular users complete medical-intake questionnaires; admins import,
review, approve, reset and export questionnaire data.
"""

__version__ = "1.0.0"
