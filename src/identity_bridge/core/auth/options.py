"""Sign-in options for password-based providers."""

from enum import Flag, auto


class SignInOptions(Flag):
    """Independent, combinable sign-in behaviours.

    SIGN_UP_ON_USER_NOT_FOUND:
        Create the account when the backend reports the user does not exist.
    SIGN_UP_ON_ANY_ERROR:
        Create the account on any sign-in failure. Needed when the backend has
        email enumeration protection enabled: it then returns varying error
        codes (internal error, invalid credential, ...) at random so callers
        cannot tell whether the user exists. Supersedes SIGN_UP_ON_USER_NOT_FOUND.
        https://cloud.google.com/identity-platform/docs/admin/email-enumeration-protection
    TRY_LINK_ON_SIGN_IN:
        Link the credential to the currently signed-in account instead of
        signing in directly.
    """
    NONE = 0
    SIGN_UP_ON_USER_NOT_FOUND = auto()
    SIGN_UP_ON_ANY_ERROR = auto()
    TRY_LINK_ON_SIGN_IN = auto()
