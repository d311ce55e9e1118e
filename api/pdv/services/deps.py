from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from pdv.core.roles import Capability, has_capability, parse_role
from pdv.core.security import decode_access_token
from pdv.db import store
from pdv.db.session import get_db
from pdv.domain.models import StoreSettings

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)):
    try:
        payload = decode_access_token(token)
        user_id = payload.get("sub")
        if not user_id:
            raise ValueError("Missing subject")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication token")

    user = store.get_user(db, user_id)
    if not user or not user["is_active"]:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive or missing user")

    user["role"] = parse_role(user["role"])
    return user


def require(capability: Capability):
    """Dependency that lets the request through only if the user's role grants ``capability``."""

    def checker(user: dict = Depends(get_current_user)):
        if not has_capability(user["role"], capability):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{user['role'].value if user['role'] else 'none'}' lacks permission: {capability.value}",
            )
        return user

    return checker


def get_store_settings(db: Session = Depends(get_db)) -> StoreSettings:
    return store.load_store_settings(db)


def get_sale_store(db: Session = Depends(get_db)) -> store.SqlSaleStore:
    return store.SqlSaleStore(db)
