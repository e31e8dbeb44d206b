"""
User operations: registration, login, profile updates, soft delete and
password changes.
"""

from typing import Any, Dict

from pymongo.errors import DuplicateKeyError

from config import Settings
from database import USERS, Store, active, serialize_doc
from errors import Conflict, InvalidCredentials, NotFound, ValidationError
from logging_setup import get_logger
from schemas import UserCreate, UserRecord, changed_fields, to_document, validate
from security import create_token, hash_password, verify_password

logger = get_logger(__name__)

NO_PASSWORD = {"password": 0}
PROTECTED_FIELDS = {"password", "isActive", "is_active"}

EMAIL_TAKEN = "User with this email already exists"
USER_NOT_FOUND = "User not found"
BAD_LOGIN = "Invalid email or password"
BAD_CURRENT_PASSWORD = "Current password is incorrect"
MIN_PASSWORD_LENGTH = 6


def _normalize_email(email: Any) -> Any:
    return email.strip().lower() if isinstance(email, str) else email


def _load(store: Store, user_id: str) -> Dict[str, Any]:
    doc = store.find_by_id(USERS, user_id, NO_PASSWORD)
    if not doc:
        raise NotFound(USER_NOT_FOUND)
    return doc


def register(store: Store, data: Dict[str, Any]) -> Dict[str, Any]:
    email = _normalize_email(data.get("email"))
    if email and store.find_one(USERS, {"email": email}):
        raise Conflict(EMAIL_TAKEN)

    user = validate(UserCreate, data)
    record = UserRecord.model_validate(user.model_dump(exclude={"password"}))
    doc = to_document(record)
    doc["password"] = hash_password(user.password)

    try:
        user_id = store.create_document(USERS, doc)
    except DuplicateKeyError:
        raise Conflict(EMAIL_TAKEN)

    logger.info("Registered user %s", record.email)
    return serialize_doc(_load(store, user_id))


def list_users(store: Store, page: int = 1, limit: int = 10) -> Dict[str, Any]:
    return store.page(
        USERS,
        active(),
        page,
        limit,
        sort=[("createdAt", -1), ("_id", -1)],
        projection=NO_PASSWORD,
    )


def get_user(store: Store, user_id: str) -> Dict[str, Any]:
    doc = store.find_by_id(USERS, user_id, NO_PASSWORD)
    if not doc or not doc.get("isActive"):
        raise NotFound(USER_NOT_FOUND)
    return serialize_doc(doc)


def update_user(store: Store, user_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    # Passwords only change through change_password; deactivation is one-way.
    changes = {k: v for k, v in changes.items() if k not in PROTECTED_FIELDS}
    current = _load(store, user_id)

    merged = validate(UserRecord, {**current, **changes})
    to_set, to_unset = changed_fields(merged, changes)

    try:
        updated = store.update_by_id(USERS, user_id, to_set, NO_PASSWORD, unset=to_unset)
    except DuplicateKeyError:
        raise Conflict(EMAIL_TAKEN)
    if not updated:
        raise NotFound(USER_NOT_FOUND)
    return serialize_doc(updated)


def delete_user(store: Store, user_id: str) -> None:
    if not store.update_by_id(USERS, user_id, {"isActive": False}):
        raise NotFound(USER_NOT_FOUND)
    logger.info("Deactivated user %s", user_id)


def login(store: Store, email: str, password: str, settings: Settings) -> Dict[str, Any]:
    user = store.find_one(USERS, active({"email": _normalize_email(email)}))
    if not user or not verify_password(password, user.get("password", "")):
        logger.info("Failed login for %s", email)
        raise InvalidCredentials(BAD_LOGIN)

    return {
        "user": {
            "id": str(user["_id"]),
            "name": user.get("name"),
            "email": user.get("email"),
            "role": user.get("role", "user"),
        },
        "token": create_token(user, settings),
    }


def change_password(store: Store, user_id: str, current_password: str, new_password: str) -> None:
    user = store.find_by_id(USERS, user_id)
    if not user:
        raise NotFound(USER_NOT_FOUND)
    if not verify_password(current_password, user.get("password", "")):
        raise InvalidCredentials(BAD_CURRENT_PASSWORD)
    if not isinstance(new_password, str) or len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            "Validation error",
            [f"newPassword: must be at least {MIN_PASSWORD_LENGTH} characters"],
        )

    store.update_by_id(USERS, user_id, {"password": hash_password(new_password)})
    logger.info("Password changed for user %s", user_id)
