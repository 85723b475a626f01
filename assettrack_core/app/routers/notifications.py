from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..security import get_db, get_current_user
from ..services.notification_service import NotificationService

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


@router.get("/pending-accessories")
def pending_accessories(db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    """Accessories still outstanding on returned assignments, newest return first."""
    notifications = [
        schemas.PendingAccessoryOut.model_validate(n)
        for n in NotificationService.pending_accessory_notifications(db)
    ]
    return {"notifications": notifications, "count": len(notifications)}
