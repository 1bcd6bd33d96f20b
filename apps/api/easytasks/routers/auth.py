from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from easytasks.config import settings
from easytasks.deps import client_ip, get_current_user, get_repository
from easytasks.errors import ConflictError, ValidationError
from easytasks.invitations.service import normalize_email
from easytasks.models import Profile
from easytasks.provisioning.service import BootstrapHints, ensure_bootstrapped
from easytasks.rate_limit import limiter
from easytasks.repositories.base import Repository
from easytasks.schemas import LoginIn, ProfileOut, RegisterIn, RegisterOut
from easytasks.security import SESSION_COOKIE_NAME, SESSION_TTL_DAYS, hash_password, new_session_expires_at, verify_password

logger = logging.getLogger("easytasks.auth")

router = APIRouter(prefix="/auth", tags=["auth"])

MIN_PASSWORD_LENGTH = 8


def profile_out(u: Profile) -> ProfileOut:
  return ProfileOut(id=u.id, email=u.email, name=u.name)


def _rate_limit_or_429(*, key: str, limit: int, window_seconds: int) -> None:
  allowed, retry_after = limiter.hit(key, limit=limit, window_seconds=window_seconds)
  if allowed:
    return
  raise HTTPException(
    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    detail={"code": "rate_limited", "message": "Too many requests", "retryAfterSeconds": retry_after},
    headers={"Retry-After": str(retry_after)},
  )


def validate_password(password: str | None) -> str:
  if not password:
    raise ValidationError("Password is required")
  if len(password) < MIN_PASSWORD_LENGTH:
    raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
  return password


@router.post("/register", response_model=RegisterOut, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterIn, request: Request, repo: Repository = Depends(get_repository)) -> RegisterOut:
  ip = client_ip(request)
  _rate_limit_or_429(key=f"auth:register:ip:{ip}", limit=int(settings.rate_limit_register_ip_per_minute), window_seconds=60)

  email = normalize_email(payload.email)
  password = validate_password(payload.password)
  if await repo.get_profile_by_email(email) is not None:
    raise ConflictError("A user with this email already exists")

  name = (payload.name or "").strip() or None
  u = await repo.create_profile(email=email, name=name, password_hash=hash_password(password))
  await repo.commit()
  logger.info("registered user=%s", u.id)

  result = await ensure_bootstrapped(
    repo,
    u.id,
    BootstrapHints(
      name=name,
      email=email,
      organization_name=payload.organizationName,
      organization_type=payload.organizationType,
    ),
  )
  return RegisterOut(message="Account created", user=profile_out(result.profile))


@router.post("/login", response_model=ProfileOut)
async def login(payload: LoginIn, request: Request, response: Response, repo: Repository = Depends(get_repository)) -> ProfileOut:
  ip = client_ip(request)
  email_key = (payload.email or "").strip().lower()
  _rate_limit_or_429(key=f"auth:login:ip:{ip}", limit=int(settings.rate_limit_login_ip_per_minute), window_seconds=60)
  if email_key:
    _rate_limit_or_429(key=f"auth:login:email:{email_key}", limit=int(settings.rate_limit_login_email_per_minute), window_seconds=60)

  u = await repo.get_profile_by_email(email_key)
  if not u or not verify_password(payload.password, u.password_hash):
    logger.info("login failed email=%s ip=%s", email_key, ip)
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

  s = await repo.create_session(user_id=u.id, expires_at=new_session_expires_at())
  await repo.commit()

  response.set_cookie(
    key=SESSION_COOKIE_NAME,
    value=s.id,
    httponly=True,
    secure=settings.cookie_secure,
    samesite="lax",
    domain=settings.cookie_domain or None,
    max_age=int(SESSION_TTL_DAYS * 86400),
    expires=s.expires_at,
    path="/",
  )
  return profile_out(u)


@router.post("/logout")
async def logout(
  response: Response,
  user: Profile = Depends(get_current_user),
  repo: Repository = Depends(get_repository),
) -> dict:
  # best-effort: delete all sessions for user
  await repo.delete_sessions(user.id)
  await repo.commit()
  response.delete_cookie(key=SESSION_COOKIE_NAME, path="/")
  return {"ok": True}


@router.get("/me", response_model=ProfileOut)
async def me(user: Profile = Depends(get_current_user)) -> ProfileOut:
  return profile_out(user)
