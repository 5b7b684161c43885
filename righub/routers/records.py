from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from righub.core.database import get_db
from righub.core.security import get_current_user
from righub.models.user import User
from righub.schemas.contact_info import ContactInfoCreate, ContactInfoRead
from righub.schemas.listing import ListingDetailsCreate, ListingDetailsRead
from righub.services.lifecycle import ListingLifecycle

router = APIRouter(tags=["records"])


@router.post("/contact-info", response_model=ContactInfoRead, status_code=status.HTTP_201_CREATED)
def create_contact_info(
    contact_in: ContactInfoCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ListingLifecycle(db).create_contact_info(contact_in.model_dump())


@router.post("/listing-details", response_model=ListingDetailsRead, status_code=status.HTTP_201_CREATED)
def create_listing_details(
    details_in: ListingDetailsCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ListingLifecycle(db).create_details(details_in.model_dump())
