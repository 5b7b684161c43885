from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from righub.core.database import get_db
from righub.core.security import get_current_user
from righub.models.user import User
from righub.services.accounts import delete_user

router = APIRouter(prefix="/users", tags=["users"])


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
def delete_me(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    delete_user(db, current_user.id)
    return None
