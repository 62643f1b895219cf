"""In-memory ERC-721 semantics and registry lookup."""

import pytest
from web3 import Web3

from adapters.asset_registry import (
    AssetRegistry,
    AssetRegistryBook,
    InMemoryAssetRegistry,
)
from multisig.errors import (
    InvalidReceiver,
    NonexistentToken,
    NotTokenOwner,
    UnknownAssetRegistry,
)

from conftest import TOKEN_CONTRACT


class Receiver:
    def __init__(self, answer):
        self.answer = answer
        self.calls = []

    def on_erc721_received(self, operator, from_addr, token_id, data):
        self.calls.append((operator, from_addr, token_id, data))
        return self.answer


def test_mint_and_owner(nft, signers):
    nft.mint(signers[0].address.lower(), 1)
    assert nft.owner_of(1) == signers[0].address
    with pytest.raises(NonexistentToken):
        nft.owner_of(2)
    with pytest.raises(NotTokenOwner):
        nft.mint(signers[1].address, 1)


def test_approve_and_transfer(nft, signers):
    owner, spender, stranger = signers[0].address, signers[1].address, signers[2].address
    nft.mint(owner, 1)
    with pytest.raises(NotTokenOwner):
        nft.transfer_from(owner, stranger, 1, caller=stranger)
    with pytest.raises(NotTokenOwner):
        nft.approve(stranger, 1, caller=spender)
    nft.approve(spender, 1, caller=owner)
    assert nft.get_approved(1) == spender
    with pytest.raises(NotTokenOwner):
        nft.transfer_from(spender, stranger, 1, caller=spender)
    nft.transfer_from(owner, stranger, 1, caller=spender)
    assert nft.owner_of(1) == stranger
    assert nft.get_approved(1) is None


def test_operator_approval(nft, signers):
    owner, operator = signers[0].address, signers[1].address
    nft.mint(owner, 1)
    nft.set_approval_for_all(operator, True, caller=owner)
    assert nft.is_approved_for_all(owner, operator)
    nft.transfer_from(owner, operator, 1, caller=operator)
    assert nft.owner_of(1) == operator


def test_safe_mint_checks_receiver(nft, signers):
    contract = "0x" + "cc" * 20
    nft.register_receiver(contract, Receiver(b"\x00\x00\x00\x00"))
    with pytest.raises(InvalidReceiver):
        nft.safe_mint(contract, 1)
    with pytest.raises(NonexistentToken):
        nft.owner_of(1)

    ok = "0x" + "cd" * 20
    hook = Receiver(bytes.fromhex("150b7a02"))
    nft.register_receiver(ok, hook)
    nft.safe_mint(ok, 2)
    assert nft.owner_of(2) == Web3.to_checksum_address(ok)
    assert hook.calls[0][2] == 2


def test_safe_transfer_reverts_on_rejection(nft, signers):
    owner = signers[0].address
    rejecting = "0x" + "cc" * 20
    nft.register_receiver(rejecting, Receiver(b""))
    nft.mint(owner, 1)
    nft.approve(signers[1].address, 1, caller=owner)
    with pytest.raises(InvalidReceiver):
        nft.safe_transfer_from(owner, rejecting, 1, caller=owner)
    assert nft.owner_of(1) == owner
    assert nft.get_approved(1) == signers[1].address


def test_zero_address_rejected(nft, signers):
    with pytest.raises(InvalidReceiver):
        nft.mint("0x" + "00" * 20, 1)


def test_registry_book(nft):
    book = AssetRegistryBook(nft)
    assert isinstance(nft, AssetRegistry)
    assert book.resolve(TOKEN_CONTRACT.upper().replace("0X", "0x")) is nft
    assert book(TOKEN_CONTRACT) is nft
    with pytest.raises(UnknownAssetRegistry):
        book.resolve("0x" + "ff" * 20)
    other = InMemoryAssetRegistry("0x" + "ff" * 20)
    book.register(other)
    assert book.resolve("0x" + "ff" * 20) is other
