"""Web3AssetRegistry against a dummy web3 object."""

import pytest
from web3 import Web3
from web3.exceptions import ContractLogicError

from adapters.web3_registry import ERC721_ABI, Web3AssetRegistry
from multisig.errors import AssetRegistryError, NonexistentToken, NotTokenOwner

from conftest import CUSTODIAN, TOKEN_CONTRACT


class DummyCall:
    def __init__(self, contract, name, args):
        self.contract = contract
        self.name = name
        self.args = args

    def call(self):
        if self.contract.revert:
            raise ContractLogicError(self.contract.revert)
        return self.contract.owners[self.args[0]]

    def transact(self, params):
        if self.contract.revert:
            raise ContractLogicError(self.contract.revert)
        self.contract.sent.append((self.name, self.args, params))
        return b"\x11" * 32


class DummyFunctions:
    def __init__(self, contract):
        self._contract = contract

    def __getattr__(self, name):
        return lambda *args: DummyCall(self._contract, name, args)


class DummyContract:
    def __init__(self):
        self.owners = {}
        self.sent = []
        self.revert = None
        self.functions = DummyFunctions(self)


class DummyEth:
    def __init__(self):
        self.contract_obj = DummyContract()
        self.status = 1
        self.contract_kwargs = None

    def contract(self, **kwargs):
        self.contract_kwargs = kwargs
        return self.contract_obj

    def wait_for_transaction_receipt(self, tx_hash, timeout=120):
        return {"status": self.status, "transactionHash": tx_hash}


class DummyWeb3:
    def __init__(self):
        self.eth = DummyEth()


@pytest.fixture
def w3():
    return DummyWeb3()


def test_contract_bound_with_abi(w3):
    reg = Web3AssetRegistry(w3, TOKEN_CONTRACT)
    assert w3.eth.contract_kwargs["abi"] is ERC721_ABI
    assert w3.eth.contract_kwargs["address"] == reg.address
    assert {f["name"] for f in ERC721_ABI} >= {"ownerOf", "approve", "transferFrom"}


def test_owner_of(w3, signers):
    w3.eth.contract_obj.owners[1] = signers[0].address.lower()
    reg = Web3AssetRegistry(w3, TOKEN_CONTRACT)
    assert reg.owner_of(1) == signers[0].address


def test_transfer_from_sends_from_caller(w3, signers):
    reg = Web3AssetRegistry(w3, TOKEN_CONTRACT)
    reg.transfer_from(CUSTODIAN, signers[2].address, 7, caller=CUSTODIAN)
    name, args, params = w3.eth.contract_obj.sent[-1]
    assert name == "transferFrom"
    assert args[1:] == (signers[2].address, 7)
    assert params["from"] == Web3.to_checksum_address(CUSTODIAN)
    reg.approve(signers[1].address, 7, caller=CUSTODIAN)
    assert w3.eth.contract_obj.sent[-1][0] == "approve"


def test_failed_receipt(w3, signers):
    w3.eth.status = 0
    reg = Web3AssetRegistry(w3, TOKEN_CONTRACT)
    with pytest.raises(AssetRegistryError):
        reg.transfer_from(CUSTODIAN, signers[2].address, 7, caller=CUSTODIAN)


def test_reverts_are_mapped(w3, signers):
    reg = Web3AssetRegistry(w3, TOKEN_CONTRACT)
    w3.eth.contract_obj.revert = "execution reverted: ERC721: caller is not token owner or approved"
    with pytest.raises(NotTokenOwner):
        reg.transfer_from(CUSTODIAN, signers[2].address, 7, caller=CUSTODIAN)
    w3.eth.contract_obj.revert = "execution reverted: ERC721: invalid token ID"
    with pytest.raises(NonexistentToken):
        reg.owner_of(9)
