from __future__ import annotations

import threading

from accessgate.auth.repository import AccountRepository
from accessgate.auth.sessions import RotationOutcome, SessionLedger
from accessgate.auth.tokens import CredentialCodec
from accessgate.core.security import hash_token
from tests.support import build_auth_config


def _ledger(db, *, revoke_on_reuse: bool = True) -> tuple[SessionLedger, str]:
    account = AccountRepository(db).create(
        name="Ada", email="ada@test.local", password_hash="hash"
    )
    codec = CredentialCodec(build_auth_config())
    return SessionLedger(db, codec, revoke_on_reuse=revoke_on_reuse), account.account_id


def test_open_session_stores_only_token_hash(db) -> None:
    ledger, account_id = _ledger(db)

    token = ledger.open_session(account_id)

    assert ledger.current_hash(account_id) == hash_token(token)
    assert ledger.current_hash(account_id) != token


def test_new_login_replaces_previous_refresh_token(db) -> None:
    ledger, account_id = _ledger(db)
    first = ledger.open_session(account_id)
    second = ledger.open_session(account_id)

    assert ledger.rotate(account_id, first).outcome is RotationOutcome.MISMATCH
    # The stale presentation revoked the slot, so the newer token is dead too.
    assert ledger.rotate(account_id, second).outcome is RotationOutcome.MISMATCH


def test_rotate_swaps_live_token_and_rejects_old_one(db) -> None:
    ledger, account_id = _ledger(db, revoke_on_reuse=False)
    original = ledger.open_session(account_id)

    rotation = ledger.rotate(account_id, original)

    assert rotation.ok
    assert rotation.token != original
    assert ledger.current_hash(account_id) == hash_token(rotation.token)
    assert ledger.rotate(account_id, original).outcome is RotationOutcome.MISMATCH
    assert ledger.current_hash(account_id) == hash_token(rotation.token)


def test_reuse_of_rotated_token_revokes_session(db) -> None:
    ledger, account_id = _ledger(db)
    original = ledger.open_session(account_id)
    rotated = ledger.rotate(account_id, original)

    reuse = ledger.rotate(account_id, original)

    assert not reuse.ok
    assert ledger.current_hash(account_id) is None
    assert not ledger.rotate(account_id, rotated.token).ok


def test_concurrent_rotations_of_same_token_have_one_winner(db) -> None:
    ledger, account_id = _ledger(db, revoke_on_reuse=False)
    token = ledger.open_session(account_id)
    results = []
    barrier = threading.Barrier(8)

    def worker() -> None:
        barrier.wait()
        results.append(ledger.rotate(account_id, token))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    winners = [result for result in results if result.ok]
    assert len(winners) == 1
    assert ledger.current_hash(account_id) == hash_token(winners[0].token)


def test_revoke_is_idempotent_and_kills_the_session(db) -> None:
    ledger, account_id = _ledger(db)
    token = ledger.open_session(account_id)

    ledger.revoke(account_id)
    ledger.revoke(account_id)
    ledger.revoke("no-such-account")

    assert ledger.current_hash(account_id) is None
    assert ledger.rotate(account_id, token).outcome is RotationOutcome.MISMATCH


def test_rotate_without_session_is_mismatch(db) -> None:
    ledger, account_id = _ledger(db)
    codec = CredentialCodec(build_auth_config())

    assert not ledger.rotate(account_id, codec.issue_refresh(account_id)).ok
