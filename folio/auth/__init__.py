"""
Authentication for the portfolio console.

Design goals:
- Single owner account (local username/password, bcrypt).
- Server-enforced gate on every non-public route.
- Cookie-based session (HttpOnly) for same-origin UI.
"""
