from fastapi import Cookie, Header
from jose import JWTError, jwt

from estore import config
from estore.errors import AuthenticationFailure


def verify_token(
    authorization: str | None = Header(None),
    token: str | None = Cookie(None),
) -> str:
    """Resolve the requesting user's id from a bearer token or the ``token`` cookie."""
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() != "bearer" or not credentials:
            raise AuthenticationFailure("Invalid or missing token")
        token = credentials
    if not token or not config.JWT_SECRET:
        raise AuthenticationFailure("Invalid or missing token")

    try:
        claims = jwt.decode(token, config.JWT_SECRET, algorithms=["HS256"])
    except JWTError:
        raise AuthenticationFailure("Invalid or missing token")

    user_id = claims.get("sub") or claims.get("_id")
    if not user_id:
        raise AuthenticationFailure("Invalid or missing token")
    return str(user_id)
