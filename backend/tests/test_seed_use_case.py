from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql

from opstracker.models import MaterialInventory, MaterialTransaction, SiteTeam
from opstracker.use_cases import seed as use_case


class _QueryStub:
    """Matches stored rows on ``column == value`` criteria and ``filter_by`` keywords."""

    def __init__(self, rows):
        self._rows = rows
        self._conditions = []

    def filter(self, *criteria):
        self._conditions.extend((c.left.key, c.right.value) for c in criteria)
        return self

    def filter_by(self, **kwargs):
        self._conditions.extend(kwargs.items())
        return self

    def first(self):
        for row in self._rows:
            if all(getattr(row, key) == value for key, value in self._conditions):
                return row
        return None


class _ScalarResult:
    def __init__(self, row):
        self._row = row

    def one(self):
        return self._row


class _SeedSession:
    def __init__(self):
        self.rows = defaultdict(list)
        self.site_team = set()
        self._next_id = 1
        self.commit_calls = 0
        self.rollback_calls = 0

    def query(self, entity):
        model = getattr(entity, "class_", entity)
        return _QueryStub(self.rows[model])

    def add(self, obj):
        self.rows[type(obj)].append(obj)

    def flush(self):
        for rows in self.rows.values():
            for row in rows:
                if getattr(row, "id", None) is None:
                    row.id = self._next_id
                    self._next_id += 1

    def execute(self, stmt):
        assert stmt.table is SiteTeam.__table__
        params = stmt.compile(dialect=postgresql.dialect()).params
        self.site_team.add((params["site_id"], params["worker_id"]))

    def scalars(self, stmt, execution_options=None):
        params = stmt.compile(dialect=postgresql.dialect()).params
        key = {"site_id": params["site_id"], "material_id": params["material_id"]}
        inventory = _QueryStub(self.rows[MaterialInventory]).filter_by(**key).first()
        if inventory is None:
            inventory = SimpleNamespace(id=None, quantity=Decimal(0), min_threshold=Decimal(0), **key)
            self.rows[MaterialInventory].append(inventory)
            self.flush()
        inventory.quantity += Decimal(str(params["quantity"]))
        return _ScalarResult(inventory)

    def commit(self):
        self.commit_calls += 1

    def rollback(self):
        self.rollback_calls += 1

    def counts(self):
        return {model.__name__: len(rows) for model, rows in self.rows.items()}


@pytest.fixture(autouse=True)
def _fast_hashing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(use_case, "get_password_hash", lambda password: f"hashed:{password}")


def test_seed_creates_the_demo_data_set() -> None:
    db = _SeedSession()

    created = use_case.seed_demo_data(db)

    assert created == {
        "users": len(use_case.USERS),
        "projects": len(use_case.PROJECTS),
        "sites": len(use_case.SITES),
        "materials": len(use_case.MATERIALS),
        "inventory": len(use_case.SITES) * len(use_case.MATERIALS),
        "equipment": len(use_case.EQUIPMENT),
        "tasks": len(use_case.TASKS),
    }
    assert len(db.site_team) == sum(len(workers) for *_, workers in use_case.SITES)
    assert db.commit_calls == 1


def test_opening_stock_matches_its_ledger_entry() -> None:
    db = _SeedSession()

    use_case.seed_demo_data(db)

    for inventory in db.rows[MaterialInventory]:
        entries = [
            t for t in db.rows[MaterialTransaction]
            if (t.site_id, t.material_id) == (inventory.site_id, inventory.material_id)
        ]
        assert len(entries) == 1
        assert entries[0].transaction_type == "delivery"
        assert inventory.quantity == entries[0].quantity


def test_second_seed_run_creates_nothing() -> None:
    db = _SeedSession()
    use_case.seed_demo_data(db)
    counts_after_first_run = db.counts()
    team_after_first_run = set(db.site_team)

    created = use_case.seed_demo_data(db)

    assert set(created.values()) == {0}
    assert db.counts() == counts_after_first_run
    assert db.site_team == team_after_first_run
    assert db.commit_calls == 2
