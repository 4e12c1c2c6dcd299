from __future__ import annotations

import pytest

from accessgate.api.errors import ConflictError
from accessgate.auth.repository import AccountRepository


def test_account_repository_create_and_get_case_insensitive(db) -> None:
    repo = AccountRepository(db)

    created = repo.create(name="Ada", email="Ada@Test.Local", password_hash="hash")
    found = repo.get_by_email("ADA@test.local")

    assert found is not None
    assert found.account_id == created.account_id
    assert found.email == "ada@test.local"
    assert found.is_verified is False
    assert found.role == "user"
    assert repo.get_by_id(created.account_id) == found


def test_account_repository_rejects_duplicate_email(db) -> None:
    repo = AccountRepository(db)
    repo.create(name="Ada", email="ada@test.local", password_hash="hash")

    with pytest.raises(ConflictError) as exc:
        repo.create(name="Other", email="ADA@test.local", password_hash="hash")

    assert exc.value.status_code == 409


def test_account_repository_returns_none_for_unknown_account(db) -> None:
    repo = AccountRepository(db)

    assert repo.get_by_email("nobody@test.local") is None
    assert repo.get_by_id("missing") is None
