from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from sqlmodel import Session, select
from pydantic import BaseModel

from app.db.session import get_session
from app.core.exceptions import PermissionDenied, Unauthenticated
from app.core.security import decode_access_token
from app.models.profile import Profile, ProfileRole
from app.services.auth import AuthService

router = APIRouter()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/auth/token")


class Token(BaseModel):
    access_token: str
    token_type: str

class ProfileCreate(BaseModel):
    email: str
    password: str
    full_name: Optional[str] = None
    phone: Optional[str] = None

class ProfileOut(BaseModel):
    id: int
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: ProfileRole
    is_active: bool
    created_at: datetime

def get_auth_service(session: Session = Depends(get_session)) -> AuthService:
    return AuthService(session)

@router.post("/register", response_model=ProfileOut, status_code=201)
def register(profile_in: ProfileCreate, service: AuthService = Depends(get_auth_service)):
    return service.register(
        profile_in.email,
        profile_in.password,
        full_name=profile_in.full_name,
        phone=profile_in.phone,
    )

@router.post("/token", response_model=Token)
def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    service: AuthService = Depends(get_auth_service),
):
    profile, error_message = service.authenticate(form_data.username, form_data.password)
    if not profile:
        raise Unauthenticated(error_message)
    return {"access_token": service.issue_token(profile), "token_type": "bearer"}


def resolve_profile(token: Optional[str], session: Session) -> Optional[Profile]:
    """Profile behind a bearer token, or None."""
    if not token:
        return None
    email = decode_access_token(token)
    if email is None:
        return None
    profile = session.exec(select(Profile).where(Profile.email == email)).first()
    if profile is None or not profile.is_active:
        return None
    return profile

def get_current_profile(token: str = Depends(oauth2_scheme), session: Session = Depends(get_session)) -> Profile:
    profile = resolve_profile(token, session)
    if profile is None:
        raise Unauthenticated("Could not validate credentials")
    return profile

def get_current_admin(current_profile: Profile = Depends(get_current_profile)) -> Profile:
    if not current_profile.is_admin:
        raise PermissionDenied("Admin access required")
    return current_profile

@router.get("/me", response_model=ProfileOut)
def read_profile_me(current_profile: Profile = Depends(get_current_profile)):
    return current_profile
