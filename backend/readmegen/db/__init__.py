from readmegen.db.base import Base
from readmegen.db.models import User

__all__ = [
    "Base",
    "User",
]
