"""
Authentication application.

Provides the email-based User model, registration, and JWT token
endpoints. Creating a user opens its credit account (see signals.py).

Usage:
    from authentication.models import User
"""
