"""Registration, login and the caller's profile."""

import logging
from typing import Optional, Tuple

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import hash_password, issue_token, verify_password
from database import create_document, parse_object_id, to_str_id, utcnow
from errors import NotFound, Unauthorized, ValidationError
from schemas import User

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def public_profile(doc: dict) -> dict:
    profile = to_str_id(doc)
    profile.pop("password", None)
    return profile


def register(
    db: Database,
    name: str,
    email: str,
    password: str,
    address: Optional[str] = None,
    phone: Optional[str] = None,
) -> Tuple[str, dict]:
    email = email.strip().lower()
    if not name.strip():
        raise ValidationError("Name is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if db["user"].find_one({"email": email}):
        raise ValidationError("Email already registered")

    user = User(
        name=name.strip(),
        email=email,
        password=hash_password(password),
        address=address,
        phone=phone,
    )
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError as exc:
        # Lost a race with a concurrent registration of the same email.
        raise ValidationError("Email already registered") from exc
    logger.info("Registered user %s", user_id)

    token = issue_token(db, user_id)
    return token, get_profile(db, user_id)


def login(db: Database, email: str, password: str) -> Tuple[str, dict]:
    user = db["user"].find_one({"email": email.strip().lower()})
    if not user or not verify_password(password, user["password"]):
        logger.warning("Failed login for %s", email)
        raise Unauthorized("Invalid email or password")
    user_id = str(user["_id"])
    return issue_token(db, user_id), public_profile(user)


def get_profile(db: Database, user_id: str) -> dict:
    not_found = NotFound("User not found")
    user = db["user"].find_one({"_id": parse_object_id(user_id, not_found)})
    if not user:
        raise not_found
    return public_profile(user)


def update_profile(
    db: Database,
    user_id: str,
    name: Optional[str] = None,
    address: Optional[str] = None,
    phone: Optional[str] = None,
) -> dict:
    # Empty values leave the stored field alone.
    changes = {k: v for k, v in {"name": name, "address": address, "phone": phone}.items() if v}
    not_found = NotFound("User not found")
    _id = parse_object_id(user_id, not_found)
    if changes:
        changes["updated_at"] = utcnow()
        result = db["user"].update_one({"_id": _id}, {"$set": changes})
        if result.matched_count == 0:
            raise not_found
    return get_profile(db, user_id)
