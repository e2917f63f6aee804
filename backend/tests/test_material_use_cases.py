from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql

from opstracker.domain_errors import AuthorizationError, ValidationError
from opstracker.models import Material, MaterialTransaction, Notification, Site
from opstracker.use_cases import materials as use_case


class _QueryStub:
    def __init__(self, *, first_result=None):
        self._first_result = first_result

    def filter(self, *_args, **_kwargs):
        return self

    def first(self):
        return self._first_result


class _ScalarResult:
    def __init__(self, row):
        self._row = row

    def one(self):
        return self._row


class _InventorySession:
    """Applies the upsert's quantity delta to a single in-memory balance."""

    def __init__(self, *, balance: str = "0", min_threshold: str = "0", supervisor_id: int | None = 7):
        self.site = SimpleNamespace(id=5, supervisor_id=supervisor_id)
        self.material = SimpleNamespace(id=3, name="Cement")
        self.inventory = SimpleNamespace(
            site_id=5,
            material_id=3,
            quantity=Decimal(balance),
            min_threshold=Decimal(min_threshold),
        )
        self.added = []
        self.commit_calls = 0
        self.rollback_calls = 0

    def query(self, model):
        if model is Site:
            return _QueryStub(first_result=self.site)
        if model is Material:
            return _QueryStub(first_result=self.material)
        raise AssertionError(f"Unexpected query model: {model}")

    def add(self, obj):
        self.added.append(obj)

    def flush(self):
        for index, obj in enumerate(self.added, start=1):
            if getattr(obj, "id", None) is None:
                obj.id = index

    def scalars(self, stmt, execution_options=None):
        params = stmt.compile(dialect=postgresql.dialect()).params
        self.inventory.quantity += Decimal(str(params["quantity"]))
        return _ScalarResult(self.inventory)

    def commit(self):
        self.commit_calls += 1

    def rollback(self):
        self.rollback_calls += 1

    def notifications(self):
        return [item for item in self.added if isinstance(item, Notification)]


def _record(db, transaction_type: str, quantity: str):
    return use_case.record_transaction_use_case(
        db=db,
        site_id=5,
        material_id=3,
        transaction_type=transaction_type,
        quantity=Decimal(quantity),
        current_user=SimpleNamespace(id=42, role="worker"),
    )


def test_delivery_leaving_stock_below_threshold_alerts_supervisor_once() -> None:
    db = _InventorySession(balance="50", min_threshold="100")

    outcome = _record(db, "delivery", "20")

    assert isinstance(outcome.transaction, MaterialTransaction)
    assert outcome.transaction.created_by == 42
    assert outcome.inventory.quantity == Decimal("70")
    assert outcome.low_stock is True
    assert outcome.alerted_user_id == 7
    alerts = db.notifications()
    assert len(alerts) == 1
    assert alerts[0].user_id == 7
    assert alerts[0].type == "material"
    assert alerts[0].message == "Material Cement is running low (70 remaining)"
    assert db.commit_calls == 1


def test_balance_equals_signed_sum_of_ledger_entries() -> None:
    db = _InventorySession()

    for transaction_type, quantity in (("delivery", "50"), ("usage", "20"), ("return", "5"), ("adjustment", "3")):
        _record(db, transaction_type, quantity)

    assert db.inventory.quantity == Decimal("32")
    assert len([item for item in db.added if isinstance(item, MaterialTransaction)]) == 4
    assert db.commit_calls == 4


def test_usage_may_drive_balance_negative() -> None:
    db = _InventorySession(balance="5")

    outcome = _record(db, "usage", "8")

    assert outcome.inventory.quantity == Decimal("-3")


def test_stock_above_threshold_sends_no_alert() -> None:
    db = _InventorySession(balance="200", min_threshold="100")

    outcome = _record(db, "usage", "50")

    assert outcome.low_stock is False
    assert db.notifications() == []


def test_low_stock_without_supervisor_sends_no_alert() -> None:
    db = _InventorySession(balance="10", min_threshold="100", supervisor_id=None)

    outcome = _record(db, "usage", "1")

    assert outcome.low_stock is True
    assert outcome.alerted_user_id is None
    assert db.notifications() == []


def test_repeated_low_stock_alerts_by_default() -> None:
    db = _InventorySession(balance="50", min_threshold="100")

    _record(db, "usage", "5")
    _record(db, "usage", "5")

    assert len(db.notifications()) == 2


def test_deduplicated_alert_skipped_while_previous_is_unread(monkeypatch: pytest.MonkeyPatch) -> None:
    db = _InventorySession(balance="50", min_threshold="100")
    monkeypatch.setattr(use_case.settings, "LOW_STOCK_ALERT_DEDUPLICATE", True)
    monkeypatch.setattr(use_case, "has_unread_notification", lambda *_args, **_kwargs: True)

    outcome = _record(db, "usage", "5")

    assert outcome.low_stock is True
    assert outcome.alerted_user_id is None
    assert db.notifications() == []


@pytest.mark.parametrize("quantity", ["0", "-4"])
def test_non_positive_quantity_is_rejected(quantity: str) -> None:
    db = _InventorySession(balance="10")

    with pytest.raises(ValidationError) as exc:
        _record(db, "delivery", quantity)

    assert exc.value.code == "MATERIAL_QUANTITY_INVALID"
    assert db.inventory.quantity == Decimal("10")
    assert db.added == []


def test_unknown_transaction_type_is_rejected() -> None:
    db = _InventorySession()

    with pytest.raises(ValidationError) as exc:
        _record(db, "theft", "1")

    assert exc.value.details == {"errors": [{"field": "transaction_type", "message": "Invalid transaction type"}]}


def test_worker_cannot_set_threshold() -> None:
    db = _InventorySession()

    with pytest.raises(AuthorizationError):
        use_case.set_threshold_use_case(
            db=db,
            site_id=5,
            material_id=3,
            min_threshold=Decimal("10"),
            current_user=SimpleNamespace(id=42, role="worker"),
        )
