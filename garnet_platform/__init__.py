"""Garnet compliance platform - identity, access control and vendor reconciliation.

This package is the backend core behind the Garnet web app:
- Accounts log in with email/password and receive a JWT bearer token.
- Every request is run through one access guard (auth, role, subscription).
- Checklist answers are reconciled into the vendor questionnaire-answer table,
  which is keyed by the vendor's internal integer id.

Everything else (pages, evidence storage, AI answers) lives in other services.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
