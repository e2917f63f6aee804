"""Material ledger: every transaction moves the (site, material) balance in the same unit of work."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session

from ..config import settings
from ..database import atomic
from ..domain_errors import ValidationError
from ..models import Material, MaterialInventory, MaterialTransaction, Site, User
from ..security import require_permission
from ..services.notifications import has_unread_notification, notify_user
from ..services.workflow_rules import format_quantity, is_low_stock, signed_delta

logger = logging.getLogger(__name__)

LOW_STOCK_TITLE = "Low Stock Alert"


@dataclass
class TransactionOutcome:
    transaction: MaterialTransaction
    inventory: MaterialInventory
    low_stock: bool
    alerted_user_id: int | None = None


def apply_inventory_delta(db: Session, *, site_id: int, material_id: int, delta: Decimal) -> MaterialInventory:
    """Atomic insert-or-add on the (site, material) balance; returns the row after the change."""
    stmt = pg_insert(MaterialInventory).values(
        site_id=site_id,
        material_id=material_id,
        quantity=delta,
        min_threshold=0,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[MaterialInventory.site_id, MaterialInventory.material_id],
        set_={
            "quantity": MaterialInventory.quantity + stmt.excluded.quantity,
            "last_updated": func.now(),
        },
    )
    return db.scalars(
        stmt.returning(MaterialInventory),
        execution_options={"populate_existing": True},
    ).one()


def _should_alert(db: Session, *, supervisor_id: int, material_id: int) -> bool:
    if not settings.LOW_STOCK_ALERT_DEDUPLICATE:
        return True
    return not has_unread_notification(
        db,
        user_id=supervisor_id,
        title=LOW_STOCK_TITLE,
        related_type="material",
        related_id=material_id,
    )


def record_transaction_use_case(
    *,
    db: Session,
    site_id: int,
    material_id: int,
    transaction_type: str,
    quantity: Decimal,
    current_user: User,
    unit_price: Decimal | None = None,
    supplier: str | None = None,
    notes: str | None = None,
) -> TransactionOutcome:
    """Append a ledger entry, move the balance and alert the site supervisor on low stock."""
    if quantity is None or Decimal(str(quantity)) <= 0:
        raise ValidationError.for_field("quantity", "Quantity must be positive", code="MATERIAL_QUANTITY_INVALID")
    try:
        delta = signed_delta(transaction_type, quantity)
    except ValueError:
        raise ValidationError.for_field(
            "transaction_type",
            "Invalid transaction type",
            code="MATERIAL_TRANSACTION_TYPE_INVALID",
        )
    site = db.query(Site).filter(Site.id == site_id).first()
    if not site:
        raise ValidationError.for_field("site_id", "Site not found", code="MATERIAL_SITE_INVALID")
    material = db.query(Material).filter(Material.id == material_id).first()
    if not material:
        raise ValidationError.for_field("material_id", "Material not found", code="MATERIAL_NOT_FOUND")

    alerted_user_id = None
    with atomic(db, operation="Material transaction"):
        transaction = MaterialTransaction(
            site_id=site_id,
            material_id=material_id,
            transaction_type=transaction_type,
            quantity=quantity,
            unit_price=unit_price,
            supplier=supplier,
            notes=notes,
            created_by=current_user.id,
        )
        db.add(transaction)
        db.flush()

        inventory = apply_inventory_delta(db, site_id=site_id, material_id=material_id, delta=delta)
        low_stock = is_low_stock(inventory.quantity, inventory.min_threshold)
        if low_stock and site.supervisor_id and _should_alert(
            db, supervisor_id=site.supervisor_id, material_id=material_id
        ):
            notify_user(
                db,
                user_id=site.supervisor_id,
                title=LOW_STOCK_TITLE,
                message=(
                    f"Material {material.name} is running low "
                    f"({format_quantity(inventory.quantity)} remaining)"
                ),
                type="material",
                related_id=material_id,
                related_type="material",
            )
            alerted_user_id = site.supervisor_id

    if low_stock:
        logger.info(
            "Low stock at site %s for material %s: %s <= %s",
            site_id, material_id, inventory.quantity, inventory.min_threshold,
        )
    return TransactionOutcome(
        transaction=transaction,
        inventory=inventory,
        low_stock=low_stock,
        alerted_user_id=alerted_user_id,
    )


def set_threshold_use_case(
    *,
    db: Session,
    site_id: int,
    material_id: int,
    min_threshold: Decimal,
    current_user: User,
) -> MaterialInventory:
    """Configure the low-stock threshold; quantity is left to the ledger."""
    require_permission(current_user, "canManageSites")
    if min_threshold is None or Decimal(str(min_threshold)) < 0:
        raise ValidationError.for_field("min_threshold", "Threshold must not be negative")
    if not db.query(Site).filter(Site.id == site_id).first():
        raise ValidationError.for_field("site_id", "Site not found")
    if not db.query(Material).filter(Material.id == material_id).first():
        raise ValidationError.for_field("material_id", "Material not found")

    stmt = pg_insert(MaterialInventory).values(
        site_id=site_id,
        material_id=material_id,
        quantity=0,
        min_threshold=min_threshold,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[MaterialInventory.site_id, MaterialInventory.material_id],
        set_={"min_threshold": stmt.excluded.min_threshold, "last_updated": func.now()},
    )
    with atomic(db, operation="Threshold update"):
        inventory = db.scalars(
            stmt.returning(MaterialInventory),
            execution_options={"populate_existing": True},
        ).one()
    return inventory
