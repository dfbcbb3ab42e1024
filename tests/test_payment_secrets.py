from datetime import date
from uuid import uuid4

import pytest

from app.core.fernet_crypto import encrypt_text
from app.schemas.enrollment import BankFields, CreditCardFields, split_holder_name
from app.services.enrollment_errors import (
    CorruptInstrumentError,
    DecryptionFailedError,
    MissingEncryptedFieldError,
    VaultLookupFailedError,
    VaultRetrievalFailedError,
)
from app.services.payment_secrets import (
    TEST_SENTINEL_CARD_NUMBER,
    TEST_SENTINEL_CVV,
    PaymentSecretResolver,
    is_sandbox_fixture_instrument,
)
from app.services.vault import VaultBankSecret, VaultCardSecret
from conftest import FakeStore, FakeVault, make_payment_info, make_saved_method


def _resolver(*saved_methods, vault=None, fixtures=False):
    store = FakeStore(None, saved_methods=saved_methods)
    return PaymentSecretResolver(store, vault or FakeVault(), test_fixtures_enabled=fixtures)


# ---------------------------------------------------------------------------
# Inline (Fernet) records
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_inline_card_is_decrypted():
    record = make_payment_info(inline=True)

    fields = await _resolver().resolve(record)

    assert isinstance(fields, CreditCardFields)
    assert fields.number == "4111111111111111"
    assert fields.cvv == "987"
    assert fields.holder_first == "Ana"
    assert fields.holder_last == "Cruz"
    assert fields.masked_number == "****1111"


@pytest.mark.asyncio
async def test_inline_bank_account_is_decrypted():
    record = make_payment_info(payment_method="ach", inline=True)

    fields = await _resolver().resolve(record)

    assert isinstance(fields, BankFields)
    assert fields.account_number == "000123456789"
    assert fields.routing_number == "021000021"
    assert fields.account_type == "Checking"
    assert fields.desired_draft_date == date(2030, 1, 5)
    assert (fields.holder_first, fields.holder_last) == ("Luis", "Perez")


@pytest.mark.asyncio
async def test_unknown_method_is_treated_as_bank_draft():
    record = make_payment_info(payment_method="check", inline=True)

    fields = await _resolver().resolve(record)

    assert isinstance(fields, BankFields)


@pytest.mark.asyncio
async def test_inline_debit_card_is_a_card():
    record = make_payment_info(payment_method="debit_card", inline=True)

    fields = await _resolver().resolve(record)

    assert isinstance(fields, CreditCardFields)


@pytest.mark.asyncio
async def test_missing_ciphertext_is_reported():
    record = make_payment_info(inline=True, cvv_encrypted=None)

    with pytest.raises(MissingEncryptedFieldError) as exc_info:
        await _resolver().resolve(record)

    assert exc_info.value.details["kind"] == "missing_encrypted_field"
    assert "cvv" in exc_info.value.message


@pytest.mark.asyncio
async def test_undecryptable_ciphertext_is_reported():
    record = make_payment_info(
        inline=True,
        card_number_encrypted=encrypt_text("4111111111111111", secret="some-other-secret"),
    )

    with pytest.raises(DecryptionFailedError) as exc_info:
        await _resolver().resolve(record)

    assert exc_info.value.status_code == 422


# ---------------------------------------------------------------------------
# Vault-backed records
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_vault_card_uses_saved_method_metadata():
    saved = make_saved_method()
    vault = FakeVault(card=VaultCardSecret(number="5555444433331111", cvv="321"))

    fields = await _resolver(saved, vault=vault).resolve(make_payment_info(saved=saved))

    assert isinstance(fields, CreditCardFields)
    assert fields.number == "5555444433331111"
    assert fields.cvv == "321"
    assert fields.exp_month == "09"
    assert (fields.holder_first, fields.holder_last) == ("Ana", "de la Cruz")
    assert vault.calls == [("card", str(saved.vault_secret_id))]


@pytest.mark.asyncio
async def test_vault_debit_card_reads_card_secret():
    saved = make_saved_method(payment_method="debit_card")
    vault = FakeVault(card=VaultCardSecret(number="4000056655665556", cvv="111"))

    fields = await _resolver(saved, vault=vault).resolve(make_payment_info(saved=saved))

    assert isinstance(fields, CreditCardFields)
    assert vault.calls[0][0] == "card"


@pytest.mark.asyncio
async def test_vault_bank_account_keeps_draft_date_from_application():
    saved = make_saved_method(payment_method="ach")
    vault = FakeVault(bank=VaultBankSecret(account_number="99887766", routing_number="011000015"))
    record = make_payment_info(payment_method="ach", saved=saved, desired_draft_date=date(2031, 2, 1))

    fields = await _resolver(saved, vault=vault).resolve(record)

    assert isinstance(fields, BankFields)
    assert fields.account_number == "99887766"
    assert fields.desired_draft_date == date(2031, 2, 1)
    assert fields.bank_name == "First Bank"


@pytest.mark.asyncio
async def test_unreadable_saved_method_is_a_lookup_failure():
    record = make_payment_info(user_payment_method_id=uuid4())

    with pytest.raises(VaultLookupFailedError) as exc_info:
        await _resolver().resolve(record)

    assert "row-level security" in exc_info.value.message


@pytest.mark.asyncio
async def test_empty_vault_secret_is_a_retrieval_failure():
    saved = make_saved_method()

    with pytest.raises(VaultRetrievalFailedError):
        await _resolver(saved, vault=FakeVault(card=None)).resolve(make_payment_info(saved=saved))


@pytest.mark.asyncio
async def test_unavailable_vault_is_a_retrieval_failure():
    saved = make_saved_method(payment_method="ach")

    with pytest.raises(VaultRetrievalFailedError) as exc_info:
        await _resolver(saved, vault=FakeVault(unavailable=True)).resolve(
            make_payment_info(payment_method="ach", saved=saved)
        )

    assert "Vault unavailable" in exc_info.value.message


@pytest.mark.asyncio
async def test_saved_method_without_secret_is_corrupt():
    saved = make_saved_method(vault_secret_id=None)

    with pytest.raises(CorruptInstrumentError) as exc_info:
        await _resolver(saved).resolve(make_payment_info(saved=saved))

    assert "remove this payment method" in exc_info.value.message


@pytest.mark.asyncio
async def test_sandbox_card_only_when_fixtures_enabled():
    saved = make_saved_method(vault_secret_id=None, card_last_four="4242")
    record = make_payment_info(saved=saved)

    fields = await _resolver(saved, fixtures=True).resolve(record)

    assert fields.number == TEST_SENTINEL_CARD_NUMBER
    assert fields.cvv == TEST_SENTINEL_CVV

    with pytest.raises(CorruptInstrumentError):
        await _resolver(saved, fixtures=False).resolve(record)


def test_sandbox_fixture_requires_card_method():
    saved = make_saved_method(payment_method="ach", vault_secret_id=None, card_last_four="4242")

    assert is_sandbox_fixture_instrument(saved, fixtures_enabled=True) is False


@pytest.mark.parametrize(
    "full_name,expected",
    [
        ("Ana de la Cruz", ("Ana", "de la Cruz")),
        ("  Cher  ", ("Cher", "")),
        ("", ("", "")),
        (None, ("", "")),
    ],
)
def test_split_holder_name(full_name, expected):
    assert split_holder_name(full_name) == expected
