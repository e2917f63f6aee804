"""Idempotent demo data: re-running leaves one row per named entity."""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session

from ..auth import get_password_hash
from ..database import atomic
from ..models import (
    Equipment,
    EquipmentUsage,
    Material,
    MaterialInventory,
    MaterialTransaction,
    Project,
    Site,
    SiteTeam,
    Task,
    User,
)
from .materials import apply_inventory_delta

logger = logging.getLogger(__name__)

DEMO_PASSWORDS = {
    "admin": "admin123",
    "manager": "manager123",
    "supervisor": "supervisor123",
    "worker": "worker123",
}

USERS = [
    {"username": "admin", "email": "admin@opstracker.com", "role": "admin", "full_name": "Administrator", "phone": "+1234567890"},
    {"username": "manager", "email": "manager@opstracker.com", "role": "manager", "full_name": "John Manager", "phone": "+1234567891"},
    {"username": "supervisor1", "email": "supervisor1@opstracker.com", "role": "supervisor", "full_name": "Sarah Supervisor", "phone": "+1234567892"},
    {"username": "supervisor2", "email": "supervisor2@opstracker.com", "role": "supervisor", "full_name": "Mike Supervisor", "phone": "+1234567893"},
    {"username": "worker1", "email": "worker1@opstracker.com", "role": "worker", "full_name": "Alex Worker", "phone": "+1234567894"},
    {"username": "worker2", "email": "worker2@opstracker.com", "role": "worker", "full_name": "Emma Worker", "phone": "+1234567895"},
    {"username": "worker3", "email": "worker3@opstracker.com", "role": "worker", "full_name": "David Worker", "phone": "+1234567896"},
    {"username": "worker4", "email": "worker4@opstracker.com", "role": "worker", "full_name": "Lisa Worker", "phone": "+1234567897"},
    {"username": "worker5", "email": "worker5@opstracker.com", "role": "worker", "full_name": "Tom Worker", "phone": "+1234567898"},
]

PROJECTS = [
    {"name": "Downtown Office Complex", "description": "Construction of a 10-story office building in downtown area",
     "location": "123 Main Street, Downtown", "start_date": date(2024, 1, 15), "end_date": date(2025, 6, 30)},
    {"name": "Residential Apartment Complex", "description": "5-story residential building with 50 units",
     "location": "456 Oak Avenue, Suburb", "start_date": date(2024, 3, 1), "end_date": date(2025, 12, 31)},
    {"name": "Shopping Mall Renovation", "description": "Complete renovation of existing shopping mall",
     "location": "789 Commerce Blvd, City Center", "start_date": date(2024, 2, 10), "end_date": date(2024, 11, 30)},
]

# (project index, name, location, supervisor username, worker usernames)
SITES = [
    (0, "Main Building Site", "123 Main Street, Downtown - North Wing", "supervisor1", ["worker1", "worker2"]),
    (0, "Parking Structure Site", "123 Main Street, Downtown - Parking Area", "supervisor1", ["worker3"]),
    (1, "Building A Site", "456 Oak Avenue, Suburb - Building A", "supervisor2", ["worker2", "worker4"]),
    (1, "Building B Site", "456 Oak Avenue, Suburb - Building B", "supervisor2", ["worker1", "worker5"]),
    (2, "Interior Renovation Site", "789 Commerce Blvd, City Center - Interior", "supervisor1", ["worker3", "worker4", "worker5"]),
]

MATERIALS = [
    {"name": "Cement", "description": "Portland cement 50kg bags", "unit": "bags", "category": "Construction Materials"},
    {"name": "Steel Rebar", "description": "Steel reinforcement bars", "unit": "tons", "category": "Construction Materials"},
    {"name": "Concrete Blocks", "description": "Standard concrete blocks", "unit": "pieces", "category": "Construction Materials"},
    {"name": "Sand", "description": "Fine construction sand", "unit": "cubic meters", "category": "Construction Materials"},
    {"name": "Gravel", "description": "Coarse aggregate", "unit": "cubic meters", "category": "Construction Materials"},
    {"name": "Paint", "description": "Interior/exterior paint", "unit": "liters", "category": "Finishing Materials"},
    {"name": "Tiles", "description": "Ceramic floor tiles", "unit": "square meters", "category": "Finishing Materials"},
    {"name": "Electrical Wire", "description": "Copper electrical wire", "unit": "meters", "category": "Electrical"},
    {"name": "PVC Pipes", "description": "Plastic pipes for plumbing", "unit": "meters", "category": "Plumbing"},
    {"name": "Lumber", "description": "Construction lumber", "unit": "cubic meters", "category": "Construction Materials"},
]

EQUIPMENT = [
    {"name": "Excavator CAT 320", "type": "Heavy Machinery", "model": "CAT 320", "serial_number": "EXC-001", "status": "available"},
    {"name": "Bulldozer D6T", "type": "Heavy Machinery", "model": "D6T", "serial_number": "BDZ-001", "status": "in_use"},
    {"name": "Crane 50 Ton", "type": "Lifting Equipment", "model": "TC-50", "serial_number": "CRN-001", "status": "available"},
    {"name": "Concrete Mixer", "type": "Construction Equipment", "model": "CM-500", "serial_number": "CMX-001", "status": "available"},
    {"name": "Forklift 5 Ton", "type": "Material Handling", "model": "FL-5T", "serial_number": "FLT-001", "status": "in_use"},
    {"name": "Generator 100KW", "type": "Power Equipment", "model": "GEN-100", "serial_number": "GEN-001", "status": "available"},
    {"name": "Welding Machine", "type": "Tools", "model": "WM-300", "serial_number": "WLD-001", "status": "maintenance"},
    {"name": "Compactor", "type": "Construction Equipment", "model": "CP-200", "serial_number": "CMP-001", "status": "available"},
]

# (site index, title, description, assignee, assigner, status, priority, due date)
TASKS = [
    (0, "Foundation Excavation", "Excavate foundation area for main building", "worker1", "supervisor1", "in_progress", "high", date(2024, 12, 31)),
    (0, "Concrete Pouring", "Pour concrete for foundation", "worker2", "supervisor1", "pending", "urgent", date(2024, 12, 20)),
    (1, "Steel Frame Installation", "Install steel frame structure", "worker3", "supervisor1", "pending", "high", date(2024, 12, 25)),
    (2, "Wall Construction", "Build walls for Building A", "worker2", "supervisor2", "in_progress", "medium", date(2024, 12, 30)),
    (2, "Electrical Wiring", "Install electrical wiring system", "worker4", "supervisor2", "pending", "medium", date(2025, 1, 5)),
    (3, "Plumbing Installation", "Install plumbing system", "worker1", "supervisor2", "pending", "high", date(2025, 1, 10)),
    (4, "Interior Painting", "Paint interior walls", "worker3", "supervisor1", "completed", "low", date(2024, 12, 15)),
    (4, "Floor Tiling", "Install floor tiles", "worker5", "supervisor1", "in_progress", "medium", date(2024, 12, 28)),
]


def _get_or_create(db: Session, model, *, lookup: dict[str, Any], defaults: dict[str, Any]):
    instance = db.query(model).filter_by(**lookup).first()
    if instance is not None:
        return instance, False
    instance = model(**lookup, **defaults)
    db.add(instance)
    db.flush()
    return instance, True


def _opening_stock(site_index: int, material_index: int) -> tuple[Decimal, Decimal]:
    # Deterministic so that re-seeding describes the same demo state.
    quantity = 100 + (site_index * 137 + material_index * 71) % 900
    return Decimal(quantity), Decimal(quantity // 5)


def seed_demo_data(db: Session) -> dict[str, int]:
    """Populate demo data; returns how many rows of each kind were created."""
    created = {"users": 0, "projects": 0, "sites": 0, "materials": 0, "inventory": 0, "equipment": 0, "tasks": 0}

    with atomic(db, operation="Demo data seeding"):
        users: dict[str, User] = {}
        for row in USERS:
            existing = db.query(User).filter(User.username == row["username"]).first()
            if existing is None:
                existing = User(
                    **row,
                    password_hash=get_password_hash(DEMO_PASSWORDS[row["role"]]),
                    is_active=True,
                )
                db.add(existing)
                db.flush()
                created["users"] += 1
            users[row["username"]] = existing

        projects = []
        for row in PROJECTS:
            project, was_created = _get_or_create(
                db,
                Project,
                lookup={"name": row["name"]},
                defaults={**{k: v for k, v in row.items() if k != "name"}, "status": "active", "manager_id": users["manager"].id},
            )
            created["projects"] += was_created
            projects.append(project)

        sites = []
        for project_index, name, location, supervisor, workers in SITES:
            site, was_created = _get_or_create(
                db,
                Site,
                lookup={"project_id": projects[project_index].id, "name": name},
                defaults={"location": location, "supervisor_id": users[supervisor].id, "status": "active"},
            )
            created["sites"] += was_created
            sites.append(site)
            for worker in workers:
                db.execute(
                    pg_insert(SiteTeam)
                    .values(site_id=site.id, worker_id=users[worker].id)
                    .on_conflict_do_nothing(index_elements=["site_id", "worker_id"])
                )

        materials = []
        for row in MATERIALS:
            material, was_created = _get_or_create(
                db,
                Material,
                lookup={"name": row["name"]},
                defaults={k: v for k, v in row.items() if k != "name"},
            )
            created["materials"] += was_created
            materials.append(material)

        for site_index, site in enumerate(sites):
            for material_index, material in enumerate(materials):
                exists = db.query(MaterialInventory.id).filter(
                    MaterialInventory.site_id == site.id,
                    MaterialInventory.material_id == material.id,
                ).first()
                if exists:
                    continue
                quantity, threshold = _opening_stock(site_index, material_index)
                # Opening stock goes through the ledger like any other delivery.
                db.add(
                    MaterialTransaction(
                        site_id=site.id,
                        material_id=material.id,
                        transaction_type="delivery",
                        quantity=quantity,
                        supplier="Opening stock",
                        notes="Demo data",
                        created_by=users["admin"].id,
                    )
                )
                inventory = apply_inventory_delta(db, site_id=site.id, material_id=material.id, delta=quantity)
                inventory.min_threshold = threshold
                created["inventory"] += 1

        for row in EQUIPMENT:
            equipment, was_created = _get_or_create(
                db,
                Equipment,
                lookup={"serial_number": row["serial_number"]},
                defaults={k: v for k, v in row.items() if k != "serial_number"},
            )
            created["equipment"] += was_created
            if was_created and equipment.status == "in_use":
                db.add(
                    EquipmentUsage(
                        equipment_id=equipment.id,
                        site_id=sites[0].id,
                        user_id=users["supervisor1"].id,
                        start_date=func.now(),
                        status="active",
                        notes="Demo data",
                    )
                )

        for site_index, title, description, assignee, assigner, status, priority, due_date in TASKS:
            _, was_created = _get_or_create(
                db,
                Task,
                lookup={"site_id": sites[site_index].id, "title": title},
                defaults={
                    "description": description,
                    "assigned_to": users[assignee].id,
                    "assigned_by": users[assigner].id,
                    "status": status,
                    "priority": priority,
                    "due_date": due_date,
                    "completed_at": func.now() if status == "completed" else None,
                },
            )
            created["tasks"] += was_created

    logger.info("Demo data seeded: %s", created)
    return created
