"""Cross-order defect feed."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import User
from ..use_cases.order_defects import list_defect_feed_use_case

router = APIRouter(prefix="/defects", tags=["defects"])


@router.get("")
def list_defects(
    include_archived: bool = True,
    limit: int = Query(200, ge=1, le=1000),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """All defects on visible orders, newest first."""
    return list_defect_feed_use_case(
        db=db,
        current_user=current_user,
        include_archived=include_archived,
        limit=limit,
    )
