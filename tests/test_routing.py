"""
Tests for deposit routing: payload encoding and the registry's receiver hook.
"""

import pytest

from heirloom.hardening import (
    EstateNotFound,
    MissingRoutingInfo,
    NotAuthorized,
)
from heirloom.routing import (
    ESTATE_ID_SIZE,
    MAX_ESTATE_ID,
    RECEIVER_ACK,
    decode_estate_id,
    encode_estate_id,
)


class TestPayloadEncoding:
    """Tests for the 32-byte estate id payload."""

    def test_encoding_is_big_endian_padded(self):
        payload = encode_estate_id(5)
        assert len(payload) == ESTATE_ID_SIZE
        assert payload == b"\x00" * 31 + b"\x05"

    @pytest.mark.parametrize("estate_id", [0, 1, 255, 2**64, MAX_ESTATE_ID])
    def test_decode_inverts_encode(self, estate_id):
        assert decode_estate_id(encode_estate_id(estate_id)) == estate_id

    @pytest.mark.parametrize("estate_id", [-1, MAX_ESTATE_ID + 1, "1", True, None])
    def test_encode_rejects_bad_ids(self, estate_id):
        with pytest.raises(MissingRoutingInfo):
            encode_estate_id(estate_id)

    @pytest.mark.parametrize("payload", [
        None,
        b"",
        b"\x01",
        b"\x00" * 31,
        b"\x00" * 33,
        "0" * 64,
    ])
    def test_decode_rejects_malformed_payloads(self, payload):
        with pytest.raises(MissingRoutingInfo):
            decode_estate_id(payload)

    def test_decode_accepts_bytearray(self):
        assert decode_estate_id(bytearray(encode_estate_id(9))) == 9

    def test_receiver_ack_is_four_bytes(self):
        assert isinstance(RECEIVER_ACK, bytes)
        assert len(RECEIVER_ACK) == 4


class TestDeposits:
    """Tests for routed deposits into the registry."""

    @pytest.fixture(autouse=True)
    def funded(self, accounts, mint):
        mint(accounts.executor, 1_000)

    def test_deposit_credits_estate(self, system, accounts, create_estate, deposit, decrypt):
        estate_id = create_estate()
        deposit(estate_id, 150)
        assert decrypt(system.registry.get_contract_balance(accounts.executor, estate_id)) == 150
        assert decrypt(system.token.balance_of(system.registry.address)) == 150
        assert decrypt(system.token.balance_of(accounts.executor)) == 850

    def test_anyone_can_deposit(self, system, accounts, mint, create_estate, deposit, decrypt):
        mint(accounts.carol, 20)
        estate_id = create_estate()
        deposit(estate_id, 20, sender=accounts.carol)
        assert decrypt(system.registry.get_contract_balance(accounts.executor, estate_id)) == 20

    def test_deposit_routes_to_named_estate(self, system, accounts, create_estate, deposit, decrypt):
        first, second = create_estate(), create_estate()
        deposit(second, 70)
        registry = system.registry
        assert decrypt(registry.get_contract_balance(accounts.executor, first)) == 0
        assert decrypt(registry.get_contract_balance(accounts.executor, second)) == 70

    @pytest.mark.parametrize("payload", [b"", b"\x01", b"\x00" * 33])
    def test_malformed_payload_reverts_transfer(self, system, accounts, create_estate,
                                                deposit, decrypt, payload):
        create_estate()
        before = system.runtime.event_store.total_events
        with pytest.raises(MissingRoutingInfo):
            deposit(0, 100, payload=payload)

        assert decrypt(system.token.balance_of(accounts.executor)) == 1_000
        assert not system.token.balance_of(system.registry.address).is_initialized
        assert system.runtime.event_store.total_events == before

    def test_unknown_estate_reverts_transfer(self, system, accounts, create_estate, deposit, decrypt):
        create_estate()
        with pytest.raises(EstateNotFound):
            deposit(42, 100)
        assert decrypt(system.token.balance_of(accounts.executor)) == 1_000

    def test_plain_transfer_to_registry_is_unrouted(self, system, accounts, create_estate, decrypt):
        """A transfer without a call reaches the registry's account but no estate."""
        estate_id = create_estate()
        token = system.token
        ct = system.encrypt_for(10, token.address, accounts.executor)
        token.confidential_transfer(accounts.executor, system.registry.address, ct.ciphertext, ct.proof)

        assert decrypt(token.balance_of(system.registry.address)) == 10
        assert decrypt(system.registry.get_contract_balance(accounts.executor, estate_id)) == 0

    def test_deposit_into_finalized_estate(self, system, accounts, create_estate, deposit, decrypt):
        estate_id = create_estate()
        system.registry.finalize_estate(accounts.executor, estate_id)
        deposit(estate_id, 5)
        assert decrypt(system.registry.get_contract_balance(accounts.executor, estate_id)) == 5

    def test_overdraft_deposit_credits_zero(self, system, accounts, create_estate, deposit, decrypt):
        estate_id = create_estate()
        deposit(estate_id, 5_000)
        assert decrypt(system.registry.get_contract_balance(accounts.executor, estate_id)) == 0
        assert decrypt(system.token.balance_of(accounts.executor)) == 1_000

    def test_operator_deposit_with_payload(self, system, accounts, create_estate, decrypt):
        """An approved operator can route a holder's funds with transfer_with_payload."""
        estate_id = create_estate()
        token = system.token
        token.set_operator(accounts.executor, accounts.carol, system.clock.now() + 60)
        amount = token.balance_of(accounts.executor)
        system.acl.grant(amount, accounts.carol)

        token.transfer_with_payload(
            accounts.carol, accounts.executor, system.registry.address, amount, encode_estate_id(estate_id),
        )
        assert decrypt(system.registry.get_contract_balance(accounts.executor, estate_id)) == 1_000

    def test_hook_rejects_direct_calls(self, system, accounts, create_estate):
        estate_id = create_estate()
        forged = system.backend.trivial_encrypt(1_000)
        with pytest.raises(NotAuthorized):
            system.registry.on_confidential_transfer_received(
                accounts.mallory, accounts.mallory, accounts.mallory, forged, encode_estate_id(estate_id),
            )

    def test_hook_rejects_unusable_amount(self, system, accounts, create_estate):
        """Even naming the token as sender, the amount must be usable by the registry."""
        estate_id = create_estate()
        forged = system.backend.trivial_encrypt(1_000)
        with pytest.raises(NotAuthorized):
            system.registry.on_confidential_transfer_received(
                system.token.address, accounts.mallory, accounts.mallory, forged, encode_estate_id(estate_id),
            )
