from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone

from passlib.context import CryptContext

from easytasks.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SESSION_COOKIE_NAME = "et_session"
SESSION_TTL_DAYS = 14


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
  if not password_hash:
    return False
  return pwd_context.verify(password, password_hash)


def new_session_expires_at() -> datetime:
  return datetime.now(timezone.utc) + timedelta(days=SESSION_TTL_DAYS)


def invitation_token_new() -> str:
  return "eti_" + secrets.token_urlsafe(32)


def invitation_token_hash(token: str) -> str:
  # Keyed hash so a leaked table cannot be replayed as invitation links.
  key = (settings.app_secret or "").encode("utf-8")
  msg = (token or "").strip().encode("utf-8")
  return hmac.new(key, msg, hashlib.sha256).hexdigest()
