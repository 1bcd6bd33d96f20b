from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import AsyncIterator

from fastapi import Cookie, Depends, HTTPException, Request, status

from easytasks.config import settings
from easytasks.db import SessionLocal
from easytasks.models import Membership, Profile, as_utc
from easytasks.provisioning.service import BootstrapHints, ensure_bootstrapped
from easytasks.repositories.base import Repository
from easytasks.repositories.local import LOCAL_USER_EMAIL, LOCAL_USER_ID, KeyValueStore, LocalRepository
from easytasks.repositories.sql import SqlRepository
from easytasks.security import SESSION_COOKIE_NAME

_stores: dict[str, KeyValueStore] = {}
_stores_lock = Lock()


def local_store() -> KeyValueStore:
  path = settings.local_store_path
  with _stores_lock:
    store = _stores.get(path)
    if store is None:
      store = KeyValueStore(path)
      _stores[path] = store
    return store


async def get_repository() -> AsyncIterator[Repository]:
  if settings.is_local_mode():
    yield LocalRepository(local_store())
    return
  async with SessionLocal() as session:
    yield SqlRepository(session)


async def _local_user(repo: Repository) -> Profile:
  u = await repo.get_profile(LOCAL_USER_ID)
  if u is not None:
    return u
  result = await ensure_bootstrapped(repo, LOCAL_USER_ID, BootstrapHints(email=LOCAL_USER_EMAIL, name="Local User"))
  return result.profile


async def get_current_user(
  repo: Repository = Depends(get_repository),
  session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> Profile:
  if settings.is_local_mode():
    return await _local_user(repo)

  if not session_id:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
  s = await repo.get_session(session_id)
  if not s:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")
  if as_utc(s.expires_at) < datetime.now(timezone.utc):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired")

  u = await repo.get_profile(s.user_id)
  if not u:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
  return u


async def get_membership(
  repo: Repository = Depends(get_repository),
  user: Profile = Depends(get_current_user),
) -> Membership:
  """The caller's active membership, provisioning the account first if it has none."""
  m = await repo.get_active_membership(user.id)
  if m is not None:
    return m
  result = await ensure_bootstrapped(repo, user.id, BootstrapHints(name=user.name, email=user.email))
  return result.membership


def client_ip(request: Request) -> str:
  return request.client.host if request.client else "unknown"
