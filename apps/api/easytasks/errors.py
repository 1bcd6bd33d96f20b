from __future__ import annotations

from fastapi import status


class EasyTasksError(Exception):
  """Base for errors that map onto a client-facing HTTP response."""

  status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

  def __init__(self, message: str) -> None:
    super().__init__(message)
    self.message = message


class ValidationError(EasyTasksError):
  status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(EasyTasksError):
  status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(EasyTasksError):
  # Also used for "exists but not yours" so other tenants' rows stay invisible.
  status_code = status.HTTP_404_NOT_FOUND


class ConflictError(EasyTasksError):
  status_code = status.HTTP_409_CONFLICT


class ExpiredError(EasyTasksError):
  status_code = status.HTTP_410_GONE


class PersistenceError(EasyTasksError):
  status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ProvisioningError(EasyTasksError):
  status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

  def __init__(self, step: str, message: str) -> None:
    super().__init__(f"Failed to {step}: {message}")
    self.step = step
