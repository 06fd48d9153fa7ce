import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth.dependencies import require_user_email
from auth.jwt import UserContext
from database import get_db
from schemas.sync import DiscrepanciesResponse, SyncApplyRequest, SyncApplyResponse, SyncStatsResponse
from services.sync_models import SyncActions
from services.sync_service import SyncService

logger = logging.getLogger("brify_sync.routers.sync")

router = APIRouter(prefix="/sync", tags=["sync"])


def get_sync_service(
    current_user: UserContext = Depends(require_user_email),
    db: Session = Depends(get_db),
) -> SyncService:
    """Configuration errors raised here are turned into 400 responses by main.py."""
    service = SyncService(db, user_email=current_user.email, user_id=current_user.id)
    service.initialize()
    return service


@router.get("/stats", response_model=SyncStatsResponse)
def sync_stats(service: SyncService = Depends(get_sync_service)):
    return service.get_sync_stats()


@router.get("/discrepancies", response_model=DiscrepanciesResponse)
def sync_discrepancies(service: SyncService = Depends(get_sync_service)):
    discrepancies = service.detect_discrepancies()
    payload = discrepancies.to_dict()
    payload["stats"] = {
        "totalDiscrepancies": discrepancies.total,
        "toAdd": len(discrepancies.to_add),
        "toRemove": len(discrepancies.to_remove),
        "toUpdate": len(discrepancies.to_update),
        "lastSync": datetime.now(timezone.utc).isoformat(),
    }
    return payload


@router.post("/apply", response_model=SyncApplyResponse)
def sync_apply(request: SyncApplyRequest, service: SyncService = Depends(get_sync_service)):
    """
    Recomputes the discrepancies and applies the selected ones.
    Ids that are no longer discrepancies are reported in skipped_ids.
    """
    discrepancies = service.detect_discrepancies()

    if request.apply_all:
        actions = SyncActions.from_discrepancies(discrepancies)
        skipped = []
    else:
        add_ids = set(request.add_file_ids)
        update_ids = set(request.update_file_ids)
        remove_ids = set(request.remove_file_ids)
        actions = SyncActions(
            add_files=[n for n in discrepancies.to_add if n.id in add_ids],
            update_files=[u for u in discrepancies.to_update if u.drive_node.id in update_ids],
            remove_files=[r for r in discrepancies.to_remove if r.file_id in remove_ids],
        )
        matched = (
            {n.id for n in actions.add_files}
            | {u.drive_node.id for u in actions.update_files}
            | {r.file_id for r in actions.remove_files}
        )
        skipped = sorted((add_ids | update_ids | remove_ids) - matched)
        if skipped:
            logger.info(f"Ignoring {len(skipped)} ids that are no longer discrepancies")

    result = service.apply_sync_actions(actions)
    payload = result.to_dict()
    payload["skipped_ids"] = skipped
    return payload
