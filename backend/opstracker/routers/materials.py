"""Material catalogue, inventory ledger and requisition endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, get_current_user
from ..database import atomic, get_db
from ..domain_errors import ConflictError
from ..models import Material, MaterialInventory, MaterialRequisition, MaterialTransaction, User
from ..schemas import (
    DecisionRequest,
    InventoryItemResponse,
    MaterialCreate,
    MaterialResponse,
    MaterialTransactionCreate,
    MaterialTransactionResponse,
    MaterialTransactionResult,
    RequisitionCreate,
    RequisitionResponse,
    ThresholdUpdate,
    TransactionType,
)
from ..security import restrict_to_owner
from ..services.query_filters import apply_filters, apply_search
from ..services.workflow_rules import is_low_stock
from ..use_cases.approvals import create_requisition_use_case, decide_requisition_use_case
from ..use_cases.materials import record_transaction_use_case, set_threshold_use_case

router = APIRouter(prefix="/materials", tags=["materials"])


def _inventory_item(inventory: MaterialInventory, material: Material) -> InventoryItemResponse:
    return InventoryItemResponse(
        id=inventory.id,
        site_id=inventory.site_id,
        material_id=inventory.material_id,
        material_name=material.name,
        unit=material.unit,
        category=material.category,
        quantity=float(inventory.quantity),
        min_threshold=float(inventory.min_threshold),
        low_stock=is_low_stock(inventory.quantity, inventory.min_threshold),
        last_updated=inventory.last_updated,
    )


@router.get("", response_model=list[MaterialResponse])
def get_materials(
    category: Optional[str] = None,
    search: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Material catalogue ordered by name."""
    query = apply_filters(db.query(Material), {Material.category: category})
    query = apply_search(query, search, Material.name, Material.description)
    return query.order_by(Material.name).all()


@router.post("", response_model=MaterialResponse, status_code=201)
def create_material(
    payload: MaterialCreate,
    current_user: User = Depends(PermissionChecker("canManageMaterials")),
    db: Session = Depends(get_db),
):
    conflict = ConflictError("Material already exists", code="MATERIAL_ALREADY_EXISTS")
    if db.query(Material.id).filter(Material.name == payload.name).first():
        raise conflict
    with atomic(db, operation="Material creation", on_conflict=conflict):
        material = Material(**payload.model_dump())
        db.add(material)
    db.refresh(material)
    return material


@router.get("/inventory/{site_id}", response_model=list[InventoryItemResponse])
def get_site_inventory(
    site_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Current balances for a site, flagged when at or below threshold."""
    rows = (
        db.query(MaterialInventory, Material)
        .join(Material, Material.id == MaterialInventory.material_id)
        .filter(MaterialInventory.site_id == site_id)
        .order_by(Material.name)
        .all()
    )
    return [_inventory_item(inventory, material) for inventory, material in rows]


@router.put("/inventory/{site_id}/{material_id}/threshold", response_model=InventoryItemResponse)
def update_threshold(
    site_id: int,
    material_id: int,
    payload: ThresholdUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    inventory = set_threshold_use_case(
        db=db,
        site_id=site_id,
        material_id=material_id,
        min_threshold=payload.min_threshold,
        current_user=current_user,
    )
    material = db.query(Material).filter(Material.id == material_id).one()
    return _inventory_item(inventory, material)


@router.get("/transactions", response_model=list[MaterialTransactionResponse])
def get_transactions(
    site_id: Optional[int] = None,
    material_id: Optional[int] = None,
    transaction_type: Optional[TransactionType] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = apply_filters(
        db.query(MaterialTransaction),
        {
            MaterialTransaction.site_id: site_id,
            MaterialTransaction.material_id: material_id,
            MaterialTransaction.transaction_type: transaction_type,
        },
    )
    return query.order_by(MaterialTransaction.created_at.desc()).all()


@router.post("/transactions", response_model=MaterialTransactionResult, status_code=201)
def create_transaction(
    payload: MaterialTransactionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Post a ledger entry; the site balance moves in the same transaction."""
    outcome = record_transaction_use_case(
        db=db,
        site_id=payload.site_id,
        material_id=payload.material_id,
        transaction_type=payload.transaction_type,
        quantity=payload.quantity,
        current_user=current_user,
        unit_price=payload.unit_price,
        supplier=payload.supplier,
        notes=payload.notes,
    )
    return MaterialTransactionResult(
        transaction=MaterialTransactionResponse.model_validate(outcome.transaction),
        quantity=float(outcome.inventory.quantity),
        min_threshold=float(outcome.inventory.min_threshold),
        low_stock=outcome.low_stock,
    )


@router.get("/requisitions", response_model=list[RequisitionResponse])
def get_requisitions(
    site_id: Optional[int] = None,
    status: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Requisitions; workers only see their own."""
    query = restrict_to_owner(db.query(MaterialRequisition), current_user, MaterialRequisition.requested_by)
    query = apply_filters(query, {MaterialRequisition.site_id: site_id, MaterialRequisition.status: status})
    return query.order_by(MaterialRequisition.created_at.desc()).all()


@router.post("/requisitions", response_model=RequisitionResponse, status_code=201)
def create_requisition(
    payload: RequisitionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return create_requisition_use_case(
        db=db,
        site_id=payload.site_id,
        material_id=payload.material_id,
        quantity=payload.quantity,
        current_user=current_user,
        notes=payload.notes,
    )


@router.patch("/requisitions/{requisition_id}/approve", response_model=RequisitionResponse)
def decide_requisition(
    requisition_id: int,
    payload: DecisionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Approve or reject a pending requisition."""
    return decide_requisition_use_case(
        db=db,
        requisition_id=requisition_id,
        status=payload.status,
        current_user=current_user,
        notes=payload.notes,
    )
