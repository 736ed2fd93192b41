from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlmodel import Session, select
from pydantic import BaseModel

from app.db.session import get_session
from app.models.consultant import Consultant

router = APIRouter()

class ConsultantPublic(BaseModel):
    id: int
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None

@router.get("/", response_model=List[ConsultantPublic])
def read_consultants(session: Session = Depends(get_session)):
    """Active consultants a customer can pick when reserving"""
    return session.exec(
        select(Consultant).where(Consultant.is_active == True).order_by(Consultant.full_name)  # noqa: E712
    ).all()
