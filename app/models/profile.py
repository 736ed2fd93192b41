from typing import Optional
from datetime import datetime
from enum import Enum
from sqlmodel import Field, SQLModel

class ProfileRole(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"  # Manages products, consultants and reservation status

class Profile(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    # Basic Info
    email: str = Field(unique=True, index=True)
    full_name: Optional[str] = None
    phone: Optional[str] = None
    password_hash: str = Field(default="")

    # Access
    role: ProfileRole = Field(default=ProfileRole.CUSTOMER)
    is_active: bool = Field(default=True)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == ProfileRole.ADMIN
