from __future__ import annotations

from types import SimpleNamespace

import pytest

from opstracker.auth import PERMISSION_KEYS, ROLE_PERMISSIONS, check_permission
from opstracker.domain_errors import AuthorizationError
from opstracker.security import can, require_permission, sees_only_own_rows


def _actor(role: str, user_id: int = 42):
    return SimpleNamespace(id=user_id, role=role)


@pytest.mark.parametrize(
    ("role", "expected"),
    [
        (
            "admin",
            {
                "canManageUsers": True,
                "canViewUsers": True,
                "canManageProjects": True,
                "canDeleteProjects": True,
                "canManageSites": True,
                "canAssignTasks": True,
                "canViewTeamRecords": True,
                "canManageMaterials": True,
                "canManageEquipment": True,
                "canMarkAttendance": True,
                "canDecideRequests": True,
                "canDeleteDocuments": True,
                "canViewTeamReports": True,
            },
        ),
        (
            "manager",
            {
                "canManageUsers": False,
                "canViewUsers": True,
                "canManageProjects": True,
                "canDeleteProjects": False,
                "canManageSites": True,
                "canAssignTasks": True,
                "canViewTeamRecords": True,
                "canManageMaterials": True,
                "canManageEquipment": True,
                "canMarkAttendance": True,
                "canDecideRequests": True,
                "canDeleteDocuments": True,
                "canViewTeamReports": True,
            },
        ),
        (
            "supervisor",
            {
                "canManageUsers": False,
                "canViewUsers": False,
                "canManageProjects": False,
                "canDeleteProjects": False,
                "canManageSites": True,
                "canAssignTasks": True,
                "canViewTeamRecords": True,
                "canManageMaterials": False,
                "canManageEquipment": False,
                "canMarkAttendance": True,
                "canDecideRequests": False,
                "canDeleteDocuments": True,
                "canViewTeamReports": True,
            },
        ),
        (
            "worker",
            {key: False for key in PERMISSION_KEYS},
        ),
    ],
)
def test_role_permissions_matrix_is_stable(role: str, expected: dict[str, bool]) -> None:
    assert ROLE_PERMISSIONS[role] == expected


def test_every_role_declares_the_same_keyset() -> None:
    expected_keys = set(PERMISSION_KEYS)
    for role in ROLE_PERMISSIONS:
        assert set(ROLE_PERMISSIONS[role].keys()) == expected_keys


def test_unknown_role_denies_everything() -> None:
    actor = _actor("contractor")
    assert not any(check_permission(actor, key) for key in PERMISSION_KEYS)
    assert sees_only_own_rows(actor)


@pytest.mark.parametrize("action", ["task.edit", "task.progress", "task.view", "user.read"])
def test_owner_is_granted_owner_actions(action: str) -> None:
    worker = _actor("worker")
    assert can(worker, action, owner_id=worker.id)
    assert not can(worker, action, owner_id=worker.id + 1)
    assert not can(worker, action)


@pytest.mark.parametrize("action", ["task.reassign", "request.decide"])
def test_ownership_does_not_grant_elevated_actions(action: str) -> None:
    worker = _actor("worker")
    assert not can(worker, action, owner_id=worker.id)


def test_supervisor_may_progress_any_task_but_not_decide_requests() -> None:
    supervisor = _actor("supervisor", user_id=3)
    assert can(supervisor, "task.progress", owner_id=42)
    assert can(supervisor, "task.reassign")
    assert not can(supervisor, "request.decide")


def test_raw_capability_keys_fall_through_to_role_matrix() -> None:
    assert can(_actor("manager"), "canManageEquipment")
    assert not can(_actor("supervisor"), "canManageEquipment")
    assert not can(_actor("manager"), "canManageUsers", owner_id=42)


def test_require_permission_raises_403() -> None:
    with pytest.raises(AuthorizationError) as exc:
        require_permission(_actor("worker"), "canMarkAttendance")

    assert exc.value.http_status == 403
    assert exc.value.code == "INSUFFICIENT_PERMISSIONS"


def test_workers_see_only_their_own_rows() -> None:
    assert sees_only_own_rows(_actor("worker"))
    assert not sees_only_own_rows(_actor("supervisor"))
