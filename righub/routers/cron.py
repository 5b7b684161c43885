from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from righub.core.clock import utcnow
from righub.core.database import get_db
from righub.core.security import verify_cron_secret
from righub.schemas.listing import ReservationSweepResult
from righub.services.reservation_expiry import expire_reservations

router = APIRouter(prefix="/cron", tags=["cron"])


# GET 은 Vercel 류 cron, POST 는 그 외 스케줄러용
@router.api_route(
    "/reservation-expiry",
    methods=["GET", "POST"],
    response_model=ReservationSweepResult,
    dependencies=[Depends(verify_cron_secret)],
)
def reservation_expiry(db: Session = Depends(get_db)):
    now = utcnow()
    result = expire_reservations(db, now)
    return ReservationSweepResult(**result, timestamp=now)
