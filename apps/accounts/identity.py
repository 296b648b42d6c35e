from dataclasses import dataclass

from django.db import models


class Role(models.TextChoices):
    USER = "USER", "User"
    ADMIN = "ADMIN", "Admin"


@dataclass(frozen=True)
class Identity:
    """
    The caller of a checkout operation.

    Passed explicitly into every service call instead of being looked up
    from request-global state.
    """
    user_id: int
    role: str = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @classmethod
    def from_user(cls, user) -> "Identity":
        role = Role.ADMIN if (user.is_staff or user.is_superuser) else Role.USER
        return cls(user_id=user.pk, role=role)
