from __future__ import annotations

import asyncio
import logging
import os
import secrets
from datetime import datetime, timedelta, timezone

from easytasks.boards import service as boards
from easytasks.db import SessionLocal
from easytasks.provisioning.service import BootstrapHints, ensure_bootstrapped
from easytasks.repositories.sql import SqlRepository
from easytasks.security import hash_password

logger = logging.getLogger("easytasks.seed")

DEMO_EMAIL = "demo@easytasks.local"


def _enabled(env_key: str) -> bool:
  return os.getenv(env_key, "").strip().lower() in ("1", "true", "yes", "y")


def _bootstrap_password(env_key: str) -> tuple[str, bool]:
  configured = (os.getenv(env_key) or "").strip()
  if configured:
    return configured, False
  return secrets.token_urlsafe(14), True


async def seed() -> None:
  if not _enabled("SEED_DEMO"):
    logger.info("SEED_DEMO is not set; nothing to seed")
    return

  async with SessionLocal() as db:
    repo = SqlRepository(db)
    boot_line: str | None = None

    demo = await repo.get_profile_by_email(DEMO_EMAIL)
    if demo is None:
      password, generated = _bootstrap_password("SEED_DEMO_PASSWORD")
      demo = await repo.create_profile(email=DEMO_EMAIL, name="Demo", password_hash=hash_password(password))
      await repo.commit()
      boot_line = f"{DEMO_EMAIL}={password} (generated={str(generated).lower()})"

    result = await ensure_bootstrapped(
      repo,
      demo.id,
      BootstrapHints(name="Demo", email=DEMO_EMAIL, organization_name="Easy Tasks Demo"),
    )
    membership = result.membership

    # Sample tasks only go into an empty organization.
    if not await repo.list_tasks(membership.organization_id):
      by_name = {b.name: b for b in result.buckets}
      now = datetime.now(timezone.utc)
      samples = [
        ("Today", "Welcome to Easy Tasks", "Drag this card to another bucket.", "med", now),
        ("Tomorrow", "Plan the week", None, "high", now + timedelta(days=1)),
        ("Backlog", "Try hiding completed tasks", "Complete a task, then toggle the filter.", "low", None),
      ]
      for bucket_name, title, desc, priority, due in samples:
        bucket = by_name.get(bucket_name)
        await boards.create_task(
          repo,
          membership,
          title=title,
          description=desc,
          priority=priority,
          due_date=due,
          bucket_id=bucket.id if bucket else None,
        )
      logger.info("seeded %d demo tasks org=%s", len(samples), membership.organization_id)

    if boot_line:
      print("Easy Tasks seed credentials created:")
      print(f"  {boot_line}")


def main() -> None:
  logging.basicConfig(level=logging.INFO)
  asyncio.run(seed())


if __name__ == "__main__":
  main()
