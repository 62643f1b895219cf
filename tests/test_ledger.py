"""Stepwise request -> sign -> execute state machine."""

import pytest

from multisig.errors import (
    Expired,
    InsufficientConfirmations,
    MalformedBundle,
    NotPending,
    UnauthorizedSigner,
    UnknownTransaction,
)
from multisig.hashing import hash_confirmation_intent
from multisig.ledger import TransactionLedger, TxState
from multisig.registry import SignerRegistry
from multisig.verifier import SignatureVerifier

from conftest import CUSTODIAN, FUTURE, NOW, TOKEN_CONTRACT, sign_digest


@pytest.fixture
def registry(signers):
    return SignerRegistry(2, 10, [s.address for s in signers[:3]])


@pytest.fixture
def ledger(registry):
    return TransactionLedger(CUSTODIAN, registry, SignatureVerifier(registry))


def vote(signer, tx_id, confirm=True):
    return sign_digest(signer.key, hash_confirmation_intent("SIGN", CUSTODIAN, tx_id, confirm))


def test_ids_start_at_one_and_increase(ledger, signers):
    ids = [ledger.request_transaction(signers[2].address, i, TOKEN_CONTRACT, FUTURE) for i in range(3)]
    assert ids == [1, 2, 3]
    record = ledger.get_transaction(1)
    assert record.state is TxState.PENDING
    assert record.confirmations == {}


def test_sign_unknown_transaction(ledger, signers):
    with pytest.raises(UnknownTransaction):
        ledger.sign_transaction(9, True, vote(signers[0], 9))


def test_sign_records_vote_and_last_wins(ledger, signers):
    tx_id = ledger.request_transaction(signers[2].address, 1, TOKEN_CONTRACT, FUTURE)
    assert ledger.sign_transaction(tx_id, True, vote(signers[0], tx_id)) == signers[0].address
    assert ledger.confirmation_count(tx_id) == 1
    ledger.sign_transaction(tx_id, False, vote(signers[0], tx_id, False))
    assert ledger.get_transaction(tx_id).confirmations == {signers[0].address: False}
    assert ledger.confirmation_count(tx_id) == 0


def test_vote_signature_must_match_confirm_flag(ledger, signers):
    tx_id = ledger.request_transaction(signers[2].address, 1, TOKEN_CONTRACT, FUTURE)
    # a "reject" signature replayed as "confirm" recovers some unrelated address
    with pytest.raises(UnauthorizedSigner):
        ledger.sign_transaction(tx_id, True, vote(signers[0], tx_id, False))


def test_sign_rejects_outsider_and_bundles(ledger, signers):
    tx_id = ledger.request_transaction(signers[2].address, 1, TOKEN_CONTRACT, FUTURE)
    with pytest.raises(UnauthorizedSigner):
        ledger.sign_transaction(tx_id, True, vote(signers[4], tx_id))
    with pytest.raises(MalformedBundle):
        ledger.sign_transaction(tx_id, True, vote(signers[0], tx_id) + vote(signers[1], tx_id))


def test_execute_requires_threshold_then_runs_once(ledger, signers):
    tx_id = ledger.request_transaction(signers[2].address, 2, TOKEN_CONTRACT, FUTURE)
    released = []
    ledger.sign_transaction(tx_id, True, vote(signers[1], tx_id))
    with pytest.raises(InsufficientConfirmations):
        ledger.execute_transaction(tx_id, NOW, released.append)
    ledger.sign_transaction(tx_id, True, vote(signers[2], tx_id))
    record = ledger.execute_transaction(tx_id, NOW, released.append)
    assert record.state is TxState.EXECUTED
    assert [r.token_id for r in released] == [2]
    with pytest.raises(NotPending):
        ledger.execute_transaction(tx_id, NOW, released.append)
    with pytest.raises(NotPending):
        ledger.sign_transaction(tx_id, True, vote(signers[0], tx_id))
    assert len(released) == 1


def test_execute_expired(ledger, signers):
    tx_id = ledger.request_transaction(signers[2].address, 1, TOKEN_CONTRACT, NOW)
    for s in signers[:2]:
        ledger.sign_transaction(tx_id, True, vote(s, tx_id))
    ledger.execute_transaction(tx_id, NOW, lambda r: None)
    tx2 = ledger.request_transaction(signers[2].address, 2, TOKEN_CONTRACT, NOW)
    for s in signers[:2]:
        ledger.sign_transaction(tx2, True, vote(s, tx2))
    with pytest.raises(Expired):
        ledger.execute_transaction(tx2, NOW + 1, lambda r: None)
    assert ledger.get_transaction(tx2).state is TxState.PENDING


def test_threshold_is_read_at_execution(ledger, registry, signers):
    tx_id = ledger.request_transaction(signers[2].address, 1, TOKEN_CONTRACT, FUTURE)
    for s in signers[:2]:
        ledger.sign_transaction(tx_id, True, vote(s, tx_id))
    registry.change_threshold(3)
    with pytest.raises(InsufficientConfirmations):
        ledger.execute_transaction(tx_id, NOW, lambda r: None)
    registry.change_threshold(2)
    ledger.execute_transaction(tx_id, NOW, lambda r: None)


def test_removed_signer_vote_no_longer_counts(ledger, registry, signers):
    tx_id = ledger.request_transaction(signers[2].address, 1, TOKEN_CONTRACT, FUTURE)
    for s in signers[:2]:
        ledger.sign_transaction(tx_id, True, vote(s, tx_id))
    registry.remove_signer(signers[0].address)
    with pytest.raises(InsufficientConfirmations):
        ledger.execute_transaction(tx_id, NOW, lambda r: None)


def test_failed_transfer_reverts_to_pending(ledger, signers):
    tx_id = ledger.request_transaction(signers[2].address, 1, TOKEN_CONTRACT, FUTURE)
    for s in signers[:2]:
        ledger.sign_transaction(tx_id, True, vote(s, tx_id))
    seen_states = []

    def failing(record):
        seen_states.append(record.state)
        raise RuntimeError("ledger down")

    with pytest.raises(RuntimeError):
        ledger.execute_transaction(tx_id, NOW, failing)
    # marked executed while the external call ran, reverted afterwards
    assert seen_states == [TxState.EXECUTED]
    assert ledger.get_transaction(tx_id).state is TxState.PENDING


def test_snapshot_restore(ledger, registry, signers):
    tx_id = ledger.request_transaction(signers[2].address, 1, TOKEN_CONTRACT, FUTURE)
    ledger.sign_transaction(tx_id, True, vote(signers[0], tx_id))
    copy = TransactionLedger(CUSTODIAN, registry, SignatureVerifier(registry))
    copy.restore(ledger.snapshot())
    assert copy.get_transaction(tx_id).to_dict() == ledger.get_transaction(tx_id).to_dict()
    assert copy.request_transaction(signers[2].address, 2, TOKEN_CONTRACT, FUTURE) == 2
