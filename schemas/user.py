from pydantic import BaseModel
from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"      # Manager: may edit open tickets and run every transition
    WAITER = "waiter"    # Floor staff: opens tickets, delivers, settles
    KITCHEN = "kitchen"  # Kitchen display: starts and finishes cooking


class TokenData(BaseModel):
    sub: str
    role: UserRole


class CurrentUser(BaseModel):
    id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
