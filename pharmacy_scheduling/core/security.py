import uuid
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel
from pharmacy_scheduling.core.config import settings

bearer = HTTPBearer(auto_error=False)


class Principal(BaseModel):
    """Authenticated caller acting inside one workplace (``org_id``)."""
    user_id: uuid.UUID
    org_id: uuid.UUID
    roles: list[str] = []
    scopes: list[str] = []

    def has_scope(self, scope: str) -> bool:
        if "*" in self.scopes or scope in self.scopes:
            return True
        # "appointments:*" grants every appointments scope
        area = scope.split(":", 1)[0]
        return f"{area}:*" in self.scopes


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def principal_from_claims(claims: dict) -> Principal:
    subject = claims.get("sub") or claims.get("user_id")
    if not subject:
        raise _unauthorized("Token has no subject")
    workplace = claims.get("workplace_id") or claims.get("org_id") or settings.DEFAULT_ORG_ID
    try:
        return Principal(
            user_id=uuid.UUID(str(subject)),
            org_id=uuid.UUID(str(workplace)),
            roles=claims.get("roles", []),
            scopes=claims.get("scopes", []),
        )
    except ValueError as e:
        raise _unauthorized(f"Malformed token claims: {e}")


async def get_principal(creds: HTTPAuthorizationCredentials | None = Depends(bearer)) -> Principal:
    if creds is None:
        if settings.ENV != "local":
            raise _unauthorized("Missing token")
        # local runs act as a pharmacy manager of the default workplace
        return Principal(user_id=uuid.UUID(int=0), org_id=uuid.UUID(settings.DEFAULT_ORG_ID), roles=["manager"], scopes=["*"])
    try:
        claims = jwt.decode(
            creds.credentials, settings.JWT_SECRET,
            algorithms=[settings.JWT_ALG], audience=settings.REQUIRED_AUDIENCE,
        )
    except JWTError as e:
        raise _unauthorized(f"Invalid token: {e}")
    return principal_from_claims(claims)


def require_scopes(*needed: str):
    def dep(principal: Principal = Depends(get_principal)) -> Principal:
        missing = [s for s in needed if not principal.has_scope(s)]
        if missing:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Missing scopes: {', '.join(missing)}")
        return principal
    return dep
