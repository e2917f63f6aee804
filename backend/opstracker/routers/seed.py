"""Demo data endpoint, guarded by a shared secret instead of a user token."""
import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..use_cases.seed import seed_demo_data

router = APIRouter(prefix="/seed", tags=["seed"])
logger = logging.getLogger(__name__)


def require_seed_secret(authorization: Optional[str] = Header(default=None)) -> None:
    scheme, _, provided = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(provided.strip(), settings.SEED_SECRET):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized. Provide SEED_SECRET in Authorization header.",
        )


@router.post("", dependencies=[Depends(require_seed_secret)])
def seed_database(db: Session = Depends(get_db)):
    """Create demo users, projects, sites, materials, equipment and tasks (idempotent)."""
    created = seed_demo_data(db)
    logger.warning("Demo data seeded through the API: %s", created)
    return {"message": "Database seeded successfully", "created": created}
