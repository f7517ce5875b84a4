"""
Web package.

Cookie-session registration wizard and web sign in.
"""

from schoolgate.api.web.routes import router

__all__ = ["router"]
