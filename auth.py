"""
Caller identity

Passwords are stored as salted PBKDF2 hashes. A successful register/login
issues an opaque bearer token kept in the "session" collection; every
authenticated route resolves that token to the caller's user id.
"""

import hashlib
import hmac
import logging
import os
import secrets
from datetime import timedelta
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database

from database import as_utc, get_db, utcnow
from errors import NotFound, Unauthorized

logger = logging.getLogger(__name__)

TOKEN_TTL_HOURS = int(os.getenv("TOKEN_TTL_HOURS", 24 * 7))
PBKDF2_ITERATIONS = 100_000

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return f"{salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        salt_hex, digest_hex = stored.split("$", 1)
        salt = bytes.fromhex(salt_hex)
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return hmac.compare_digest(digest.hex(), digest_hex)


def issue_token(db: Database, user_id: str) -> str:
    token = secrets.token_urlsafe(32)
    now = utcnow()
    db["session"].insert_one({
        "token": token,
        "user_id": user_id,
        "created_at": now,
        "expires_at": now + timedelta(hours=TOKEN_TTL_HOURS),
    })
    return token


def resolve_token(db: Database, token: Optional[str]) -> str:
    """Return the user id behind ``token`` or raise Unauthorized."""
    if not token:
        raise Unauthorized()
    session = db["session"].find_one({"token": token})
    if not session:
        raise Unauthorized("Invalid token")
    if as_utc(session["expires_at"]) <= utcnow():
        db["session"].delete_one({"_id": session["_id"]})
        raise Unauthorized("Token expired")
    return session["user_id"]


def current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Database = Depends(get_db),
) -> str:
    token = credentials.credentials if credentials else None
    return resolve_token(db, token)


def ensure_owner(doc: Optional[dict], user_id: str, error: NotFound) -> dict:
    """Second step of an owner-scoped lookup.

    Absent and foreign documents fail the same way, so callers cannot probe
    for other users' ids.
    """
    if doc is None:
        raise error
    if doc.get("user_id") != user_id:
        logger.warning("User %s asked for %s owned by someone else", user_id, doc.get("_id"))
        raise error
    return doc
