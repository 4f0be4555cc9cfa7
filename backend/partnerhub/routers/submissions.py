from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from partnerhub.core.deps import get_current_identity
from partnerhub.core.errors import NotFound
from partnerhub.core.identity import ResolvedIdentity
from partnerhub.db.session import get_db
from partnerhub.models.enums import SubmissionStatus
from partnerhub.schemas.submission import SubmissionCreate, SubmissionRead, SubmissionTransition
from partnerhub.services import submissions as submission_service
from partnerhub.services.storage import resolve_ref
from partnerhub.services.submissions import SubmissionFilters, SubmissionPayload

router = APIRouter(prefix="/api", tags=["submissions"])


@router.get("/submissions", response_model=List[SubmissionRead])
def list_submissions(
    partner_id: Optional[str] = Query(None),
    deliverable_id: Optional[str] = Query(None),
    status_filter: Optional[SubmissionStatus] = Query(None, alias="status"),
    latest_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> List[SubmissionRead]:
    filters = SubmissionFilters(
        partner_id=partner_id,
        deliverable_id=deliverable_id,
        status=status_filter,
        latest_only=latest_only,
        limit=limit,
    )
    rows = submission_service.list_visible_submissions(db, identity, filters)
    return [SubmissionRead.model_validate(row) for row in rows]


@router.get("/submissions/{submission_id}", response_model=SubmissionRead)
def get_submission(
    submission_id: str,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> SubmissionRead:
    submission = submission_service.get_visible_submission(db, identity, submission_id)
    return SubmissionRead.model_validate(submission)


@router.post(
    "/deliverables/{deliverable_id}/submissions",
    response_model=SubmissionRead,
    status_code=status.HTTP_201_CREATED,
)
def create_submission(
    deliverable_id: str,
    payload: SubmissionCreate,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> SubmissionRead:
    submission = submission_service.create_submission(
        db,
        identity,
        deliverable_id,
        SubmissionPayload(**payload.model_dump()),
    )
    return SubmissionRead.model_validate(submission)


@router.post("/submissions/{submission_id}/transition", response_model=SubmissionRead)
def transition_submission(
    submission_id: str,
    payload: SubmissionTransition,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> SubmissionRead:
    side_data = SubmissionPayload(**payload.model_dump(exclude={"target_status"}))
    submission = submission_service.transition_submission(
        db,
        identity,
        submission_id,
        payload.target_status,
        side_data,
    )
    return SubmissionRead.model_validate(submission)


@router.get("/submissions/{submission_id}/file")
def download_submission_file(
    submission_id: str,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> FileResponse:
    submission = submission_service.get_visible_submission(db, identity, submission_id)
    if not submission.file_ref:
        raise NotFound("Submission has no stored file", submission_id=submission_id)
    path = resolve_ref(submission.file_ref)
    if not path.exists():
        raise NotFound("File not found", submission_id=submission_id)

    # Header-safe name (ASCII only)
    safe_filename = (submission.file_name or path.name).encode("ascii", "ignore").decode("ascii") or "submission"
    return FileResponse(path=path, filename=safe_filename)
