"""Database utilities and models."""

from study_scheduler.db.base import Base
from study_scheduler.db import models  # noqa: F401  (imported for side effects)

__all__ = ["Base"]
