from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import get_impostazioni

JWT_ALG = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(subject: str, extra: dict[str, Any] | None = None, minutes: int | None = None) -> str:
    """
    subject: user_id.
    extra: claim aggiuntivi (email, tenant_id).
    Usa datetime timezone-aware per evitare offset/bug su timestamp.
    """
    imp = get_impostazioni()
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=minutes if minutes is not None else imp.jwt_expire_minutes)

    payload: dict[str, Any] = {
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    if extra:
        payload.update(extra)

    return jwt.encode(payload, imp.jwt_secret, algorithm=JWT_ALG)


def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, get_impostazioni().jwt_secret, algorithms=[JWT_ALG])


def get_subject(token: str) -> str | None:
    try:
        payload = decode_token(token)
        return payload.get("sub")
    except JWTError:
        return None


def clean_token(token: str) -> str:
    # protezione extra: elimina spazi / virgolette accidentali
    return token.strip().strip('"').strip("'")


def token_da_rinnovare(payload: dict[str, Any], soglia_minuti: int | None = None) -> bool:
    """True se al token restano meno di soglia_minuti di validità."""
    if soglia_minuti is None:
        soglia_minuti = get_impostazioni().jwt_refresh_soglia_minuti
    exp = payload.get("exp")
    if exp is None:
        return False
    now = int(datetime.now(timezone.utc).timestamp())
    return int(exp) - now < soglia_minuti * 60


def refresh_token(payload: dict[str, Any]) -> str:
    """Nuovo token con gli stessi claim applicativi e scadenza rinnovata."""
    extra = {k: v for k, v in payload.items() if k not in {"sub", "iat", "exp"}}
    return create_access_token(subject=payload["sub"], extra=extra)
