from typing import Optional
from datetime import datetime
from sqlmodel import Field, SQLModel

class Consultant(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    full_name: str = Field(index=True)
    email: Optional[str] = None
    phone: Optional[str] = None

    # Consultants may also sign in with their own profile
    user_profile_id: Optional[int] = Field(default=None, foreign_key="profile.id")

    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
