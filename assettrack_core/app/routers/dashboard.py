from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..security import get_db, get_current_user
from ..services.dashboard_service import DashboardService

router = APIRouter(prefix="/api/v1/dashboard", tags=["Dashboard"])


@router.get("/stats")
def dashboard_stats(db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    stats = DashboardService.stats(db)
    stats["recentAssignments"] = [
        schemas.AssignmentOut.model_validate(a) for a in stats["recentAssignments"]
    ]
    return {"stats": schemas.DashboardStatsOut.model_validate(stats)}
