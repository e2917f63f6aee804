"""Site and site team endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, get_current_user
from ..database import atomic, get_db
from ..domain_errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..models import Project, Site, SiteTeam, User
from ..schemas import AssignWorkerRequest, SiteCreate, SiteResponse, SiteTeamMember, SiteUpdate
from ..security import assigned_site_ids_query, get_or_404, sees_only_own_rows
from ..services.query_filters import apply_filters

router = APIRouter(prefix="/sites", tags=["sites"])
logger = logging.getLogger(__name__)


def _get_visible_site(db: Session, user: User, site_id: int) -> Site:
    site = get_or_404(db, Site, site_id, not_found="Site not found", code="SITE_NOT_FOUND")
    if sees_only_own_rows(user):
        assigned = assigned_site_ids_query(db, user).filter(SiteTeam.site_id == site.id).first()
        if not assigned:
            raise AuthorizationError("Access denied")
    return site


def _check_supervisor(db: Session, supervisor_id: Optional[int]) -> None:
    if supervisor_id is None:
        return
    if not db.query(User.id).filter(User.id == supervisor_id).first():
        raise ValidationError.for_field("supervisor_id", "Supervisor not found")


@router.get("", response_model=list[SiteResponse])
def get_sites(
    project_id: Optional[int] = None,
    status: Optional[str] = None,
    supervisor_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List sites; workers see only the sites they are assigned to."""
    query = db.query(Site)
    if sees_only_own_rows(current_user):
        query = query.filter(Site.id.in_(assigned_site_ids_query(db, current_user)))
    query = apply_filters(
        query,
        {Site.project_id: project_id, Site.status: status, Site.supervisor_id: supervisor_id},
    )
    return query.order_by(Site.created_at.desc()).all()


@router.get("/{site_id}", response_model=SiteResponse)
def get_site(
    site_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _get_visible_site(db, current_user, site_id)


@router.post("", response_model=SiteResponse, status_code=201)
def create_site(
    payload: SiteCreate,
    current_user: User = Depends(PermissionChecker("canManageSites")),
    db: Session = Depends(get_db),
):
    """Create a site; a supervisor defaults to supervising it."""
    if not db.query(Project.id).filter(Project.id == payload.project_id).first():
        raise ValidationError.for_field("project_id", "Project not found", code="SITE_PROJECT_INVALID")
    supervisor_id = payload.supervisor_id
    if supervisor_id is None and current_user.role == "supervisor":
        supervisor_id = current_user.id
    _check_supervisor(db, supervisor_id)

    with atomic(db, operation="Site creation"):
        site = Site(**payload.model_dump(exclude={"supervisor_id"}), supervisor_id=supervisor_id)
        db.add(site)
    db.refresh(site)
    return site


@router.put("/{site_id}", response_model=SiteResponse)
def update_site(
    site_id: int,
    payload: SiteUpdate,
    current_user: User = Depends(PermissionChecker("canManageSites")),
    db: Session = Depends(get_db),
):
    site = get_or_404(db, Site, site_id, not_found="Site not found", code="SITE_NOT_FOUND")
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No fields to update")
    _check_supervisor(db, changes.get("supervisor_id"))

    with atomic(db, operation="Site update"):
        for field, value in changes.items():
            setattr(site, field, value)
    db.refresh(site)
    return site


@router.delete("/{site_id}")
def delete_site(
    site_id: int,
    current_user: User = Depends(PermissionChecker("canManageProjects")),
    db: Session = Depends(get_db),
):
    site = get_or_404(db, Site, site_id, not_found="Site not found", code="SITE_NOT_FOUND")
    with atomic(db, operation="Site deletion"):
        db.delete(site)
    return {"message": "Site deleted successfully"}


@router.post("/{site_id}/assign-worker", status_code=201)
def assign_worker(
    site_id: int,
    payload: AssignWorkerRequest,
    current_user: User = Depends(PermissionChecker("canManageSites")),
    db: Session = Depends(get_db),
):
    """Add a worker to the site team; a second assignment is a conflict."""
    site = get_or_404(db, Site, site_id, not_found="Site not found", code="SITE_NOT_FOUND")
    worker = db.query(User).filter(User.id == payload.worker_id).first()
    if not worker or not worker.is_active:
        raise ValidationError.for_field("worker_id", "Worker not found or inactive", code="SITE_WORKER_INVALID")

    stmt = (
        pg_insert(SiteTeam)
        .values(site_id=site.id, worker_id=worker.id)
        .on_conflict_do_nothing(index_elements=["site_id", "worker_id"])
        .returning(SiteTeam.id)
    )
    with atomic(db, operation="Worker assignment"):
        inserted_id = db.execute(stmt).scalar_one_or_none()
        if inserted_id is None:
            raise ConflictError("Worker already assigned to this site", code="SITE_WORKER_ALREADY_ASSIGNED")
    logger.info("Worker %s assigned to site %s", worker.id, site.id)
    return {"message": "Worker assigned successfully", "id": inserted_id}


@router.get("/{site_id}/team", response_model=list[SiteTeamMember])
def get_site_team(
    site_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    site = _get_visible_site(db, current_user, site_id)
    rows = (
        db.query(SiteTeam, User)
        .join(User, User.id == SiteTeam.worker_id)
        .filter(SiteTeam.site_id == site.id)
        .order_by(SiteTeam.assigned_date.desc())
        .all()
    )
    return [
        SiteTeamMember(
            id=member.id,
            site_id=member.site_id,
            worker_id=member.worker_id,
            assigned_date=member.assigned_date,
            username=worker.username,
            full_name=worker.full_name,
        )
        for member, worker in rows
    ]


@router.delete("/{site_id}/team/{worker_id}")
def remove_worker(
    site_id: int,
    worker_id: int,
    current_user: User = Depends(PermissionChecker("canManageSites")),
    db: Session = Depends(get_db),
):
    member = db.query(SiteTeam).filter(SiteTeam.site_id == site_id, SiteTeam.worker_id == worker_id).first()
    if not member:
        raise NotFoundError("Worker is not assigned to this site", code="SITE_WORKER_NOT_ASSIGNED")
    with atomic(db, operation="Worker removal"):
        db.delete(member)
    return {"message": "Worker removed from site"}
