"""Sahasrara Baby Spa - treatment records backend.

Staff sign in with a 4-digit PIN; the dashboard then records treatment transactions
(baby + guardian data, treatment type, cost) and reports revenue.

Core concepts:
- A session is a signed cookie held by the browser; nothing is stored server-side.
- Every non-auth route sits behind the auth gate middleware.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
