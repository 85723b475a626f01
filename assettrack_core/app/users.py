from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from . import schemas
from .models import User
from .security import get_db, get_current_user

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.get("/me", response_model=schemas.UserOut)
def me_user(current_user: User = Depends(get_current_user)):
    return current_user


@router.patch("/profile")
def update_profile(
    payload: schemas.UpdateProfileIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    current_user.name = payload.name.strip()
    db.commit()
    db.refresh(current_user)
    return {"message": "Profile updated successfully", "user": schemas.UserOut.model_validate(current_user)}
