"""
Importing the package registers every model with db.metadata, so the
string targets of relationship() ("User", "RefreshToken", ...) always
resolve, whichever model module is imported first.
"""

from mrgcar.app.models import admin_user, password_reset_token, refresh_token, user  # noqa: F401
