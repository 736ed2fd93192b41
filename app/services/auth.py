import logging
from typing import Optional
from sqlmodel import Session, select

from app.core.exceptions import InvalidRequest
from app.core.security import get_password_hash, verify_password, create_access_token
from app.models.profile import Profile, ProfileRole

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, session: Session):
        self.session = session

    def get_profile_by_email(self, email: str) -> Optional[Profile]:
        # Use ilike for case-insensitive lookup
        return self.session.exec(select(Profile).where(Profile.email == email)).first() or \
               self.session.exec(select(Profile).where(Profile.email.ilike(email))).first()

    def register(
        self,
        email: str,
        password: str,
        full_name: str = None,
        phone: str = None,
        role: ProfileRole = ProfileRole.CUSTOMER,
    ) -> Profile:
        if self.get_profile_by_email(email):
            raise InvalidRequest("Email already registered")

        profile = Profile(
            email=email,
            full_name=full_name,
            phone=phone,
            password_hash=get_password_hash(password),
            role=role,
        )
        self.session.add(profile)
        self.session.commit()
        self.session.refresh(profile)
        logger.info(f"Registered {role.value} profile {profile.id}")
        return profile

    def authenticate(self, email: str, password: str) -> tuple[Optional[Profile], Optional[str]]:
        profile = self.get_profile_by_email(email)
        if not profile:
            return None, "Profile not found. Please check your email or register a new account."
        if not profile.is_active:
            return None, "This account is disabled."
        if not verify_password(password, profile.password_hash):
            return None, "Incorrect password. Please try again."
        return profile, None

    def issue_token(self, profile: Profile) -> str:
        return create_access_token(data={"sub": profile.email})
