from fastapi import Header

from .errors import UnauthorizedError


def get_current_user(authorization: str = Header(default="")) -> str:
    """Resolve the caller from the ``Authorization`` header.

    Token verification lives outside this service; the bearer token is taken
    as the user identifier and passed explicitly into every operation.
    """
    prefix = "Bearer "
    if not authorization.startswith(prefix):
        raise UnauthorizedError("invalid_token")
    user_id = authorization[len(prefix) :].strip()
    if not user_id:
        raise UnauthorizedError("invalid_token")
    return user_id
