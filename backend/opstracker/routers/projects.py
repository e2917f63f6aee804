"""Project endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, get_current_user
from ..database import atomic, get_db
from ..domain_errors import AuthorizationError, ValidationError
from ..models import Project, Site, User
from ..schemas import ProjectCreate, ProjectResponse, ProjectStatus, ProjectUpdate, SiteResponse
from ..security import assigned_project_ids_query, get_or_404, sees_only_own_rows
from ..services.query_filters import apply_filters

router = APIRouter(prefix="/projects", tags=["projects"])


def _visible_projects(db: Session, user: User):
    query = db.query(Project)
    if sees_only_own_rows(user):
        query = query.filter(Project.id.in_(assigned_project_ids_query(db, user)))
    return query


def _get_visible_project(db: Session, user: User, project_id: int) -> Project:
    project = get_or_404(db, Project, project_id, not_found="Project not found", code="PROJECT_NOT_FOUND")
    if sees_only_own_rows(user):
        reachable = assigned_project_ids_query(db, user).filter(Site.project_id == project.id).first()
        if not reachable:
            raise AuthorizationError("Access denied")
    return project


def _check_manager(db: Session, manager_id: Optional[int]) -> None:
    if manager_id is None:
        return
    if not db.query(User.id).filter(User.id == manager_id).first():
        raise ValidationError.for_field("manager_id", "Manager not found")


@router.get("", response_model=list[ProjectResponse])
def get_projects(
    status: Optional[ProjectStatus] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List projects; workers see only projects they reach through site assignments."""
    query = apply_filters(_visible_projects(db, current_user), {Project.status: status})
    return query.order_by(Project.created_at.desc()).all()


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _get_visible_project(db, current_user, project_id)


@router.get("/{project_id}/sites", response_model=list[SiteResponse])
def get_project_sites(
    project_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    project = _get_visible_project(db, current_user, project_id)
    return db.query(Site).filter(Site.project_id == project.id).order_by(Site.created_at.desc()).all()


@router.post("", response_model=ProjectResponse, status_code=201)
def create_project(
    payload: ProjectCreate,
    current_user: User = Depends(PermissionChecker("canManageProjects")),
    db: Session = Depends(get_db),
):
    """Create a project; a manager defaults to managing it."""
    manager_id = payload.manager_id
    if manager_id is None and current_user.role == "manager":
        manager_id = current_user.id
    _check_manager(db, manager_id)

    with atomic(db, operation="Project creation"):
        project = Project(**payload.model_dump(exclude={"manager_id"}), manager_id=manager_id)
        db.add(project)
    db.refresh(project)
    return project


@router.put("/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: int,
    payload: ProjectUpdate,
    current_user: User = Depends(PermissionChecker("canManageProjects")),
    db: Session = Depends(get_db),
):
    project = get_or_404(db, Project, project_id, not_found="Project not found", code="PROJECT_NOT_FOUND")
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No fields to update")
    _check_manager(db, changes.get("manager_id"))

    with atomic(db, operation="Project update"):
        for field, value in changes.items():
            setattr(project, field, value)
    db.refresh(project)
    return project


@router.delete("/{project_id}")
def delete_project(
    project_id: int,
    current_user: User = Depends(PermissionChecker("canDeleteProjects")),
    db: Session = Depends(get_db),
):
    """Delete a project and, through the FK cascade, its sites."""
    project = get_or_404(db, Project, project_id, not_found="Project not found", code="PROJECT_NOT_FOUND")
    with atomic(db, operation="Project deletion"):
        db.delete(project)
    return {"message": "Project deleted successfully"}
