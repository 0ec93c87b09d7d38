from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status

from checkout.core.config import Settings
from checkout.core.deps import get_settings_dep
from checkout.core.security import verify_token


@dataclass(frozen=True)
class Session:
    account_id: str
    token: str


async def get_current_session(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings_dep),
) -> Session:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    token = authorization.split(" ", 1)[1]
    claims = verify_token(token, settings)
    # O token segue para o backend de cobrança junto com cada chamada
    return Session(account_id=claims.sub, token=token)
