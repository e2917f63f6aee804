from __future__ import annotations

import pytest
from fastapi import HTTPException

from opstracker.routers import seed


def test_seed_secret_accepts_bearer_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(seed.settings, "SEED_SECRET", "s3cret")

    assert seed.require_seed_secret("Bearer s3cret") is None


@pytest.mark.parametrize("header", [None, "", "s3cret", "Basic s3cret", "Bearer wrong"])
def test_seed_secret_rejects_missing_or_wrong_secret(monkeypatch: pytest.MonkeyPatch, header) -> None:
    monkeypatch.setattr(seed.settings, "SEED_SECRET", "s3cret")

    with pytest.raises(HTTPException) as exc:
        seed.require_seed_secret(header)

    assert exc.value.status_code == 401
    assert exc.value.detail == "Unauthorized. Provide SEED_SECRET in Authorization header."
