"""
Tests for the user decryption gateway and signed decryption requests.
"""

import pytest

from heirloom.gateway import (
    SECONDS_PER_DAY,
    DecryptionRequest,
    address_from_public_key,
    create_decryption_request,
)
from heirloom.hardening import NotAuthorized


@pytest.fixture
def holder(system, user_key, mint):
    key, address = user_key()
    mint(address, 250)
    return key, address


class TestDecryptionRequest:
    """Tests for request signing."""

    def test_signed_request_verifies(self, user_key):
        key, address = user_key()
        request = create_decryption_request(key, ["0x" + "c1" * 20], 1_000)
        assert request.verify()
        assert request.user_address == address
        assert request.expires_at == 1_000 + 7 * SECONDS_PER_DAY

    def test_default_duration_from_config(self, user_key):
        from heirloom.config import get_config_manager
        get_config_manager().set("gateway.default_duration_days", 30)
        key, _ = user_key()
        request = create_decryption_request(key, ["0x" + "c1" * 20], 1_000)
        assert request.duration_days == 30
        assert request.verify()

    def test_tampered_request_fails(self, user_key):
        key, _ = user_key()
        request = create_decryption_request(key, ["0x" + "c1" * 20], 1_000)
        request.duration_days = 30
        assert not request.verify()

    def test_contract_order_does_not_matter(self, user_key):
        key, _ = user_key()
        request = create_decryption_request(key, ["0x" + "c1" * 20, "0x" + "c2" * 20], 1_000)
        request.contract_addresses.reverse()
        assert request.verify()

    def test_garbage_key_does_not_verify(self):
        request = DecryptionRequest("zz", ["0x" + "c1" * 20], 0, 1, "00")
        assert not request.verify()

    def test_address_derivation_is_stable(self, user_key):
        key, address = user_key()
        assert address_from_public_key(key.public_key()) == address
        assert len(address) == 42

    def test_to_dict(self, user_key):
        key, _ = user_key()
        data = create_decryption_request(key, ["0x" + "c1" * 20], 5).to_dict()
        assert set(data) == {"public_key", "contract_addresses", "start_timestamp", "duration_days", "signature"}


class TestUserDecrypt:
    """Tests for gateway authorization."""

    def test_owner_decrypts_balance(self, system, holder):
        key, address = holder
        balance = system.token.balance_of(address)
        request = create_decryption_request(key, [system.token.address], system.clock.now())
        assert system.gateway.user_decrypt(request, [balance]) == {balance.handle: 250}

    def test_uninitialized_reads_zero(self, system, user_key):
        key, address = user_key()
        balance = system.token.balance_of(address)
        request = create_decryption_request(key, [system.token.address], system.clock.now())
        assert system.gateway.user_decrypt(request, [balance]) == {balance.handle: 0}

    def test_other_user_refused(self, system, holder, user_key):
        _, address = holder
        other_key, _ = user_key()
        request = create_decryption_request(other_key, [system.token.address], system.clock.now())
        with pytest.raises(NotAuthorized):
            system.gateway.user_decrypt(request, [system.token.balance_of(address)])

    def test_contract_must_hold_grant(self, system, holder):
        """Listing an unrelated contract is not enough."""
        key, address = holder
        request = create_decryption_request(key, [system.registry.address], system.clock.now())
        with pytest.raises(NotAuthorized):
            system.gateway.user_decrypt(request, [system.token.balance_of(address)])

    def test_expired_request(self, system, holder):
        key, address = holder
        request = create_decryption_request(key, [system.token.address], system.clock.now(), duration_days=1)
        system.clock.advance(SECONDS_PER_DAY)
        with pytest.raises(NotAuthorized):
            system.gateway.user_decrypt(request, [system.token.balance_of(address)])

    def test_request_not_yet_valid(self, system, holder):
        key, address = holder
        request = create_decryption_request(key, [system.token.address], system.clock.now() + 10)
        with pytest.raises(NotAuthorized):
            system.gateway.user_decrypt(request, [system.token.balance_of(address)])

    @pytest.mark.parametrize("days", [0, 366])
    def test_duration_bounds(self, system, holder, days):
        key, address = holder
        request = create_decryption_request(key, [system.token.address], system.clock.now(), duration_days=days)
        with pytest.raises(NotAuthorized):
            system.gateway.user_decrypt(request, [system.token.balance_of(address)])

    def test_no_contracts(self, system, holder):
        key, address = holder
        request = create_decryption_request(key, [], system.clock.now())
        with pytest.raises(NotAuthorized):
            system.gateway.user_decrypt(request, [system.token.balance_of(address)])

    def test_forged_signature(self, system, holder, user_key):
        key, address = holder
        other_key, _ = user_key()
        request = create_decryption_request(key, [system.token.address], system.clock.now())
        request.signature = other_key.sign(request.signing_payload()).hex()
        with pytest.raises(NotAuthorized):
            system.gateway.user_decrypt(request, [system.token.balance_of(address)])

    def test_heir_decrypts_own_allocation(self, system, accounts, create_estate, user_key):
        key, heir = user_key()
        estate_id = create_estate()
        ct = system.encrypt_for(77, system.registry.address, accounts.executor)
        system.registry.add_heir(accounts.executor, estate_id, heir, ct.ciphertext, ct.proof)

        allocation = system.registry.get_my_allocation(heir, estate_id)
        request = create_decryption_request(key, [system.registry.address], system.clock.now())
        assert system.gateway.user_decrypt(request, [allocation]) == {allocation.handle: 77}
