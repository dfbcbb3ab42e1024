"""Reconstruct the sensitive payment fields of an application at submission time.

Two record shapes exist: vault-backed (a reference to a saved payment method
whose numbers live in the vault) and inline (Fernet ciphertext columns on the
payment row).  Both normalize to ``CreditCardFields`` or ``BankFields``.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol
from uuid import UUID

from app.core.fernet_crypto import DecryptionError, decrypt_text
from app.core.settings import settings
from app.models.application_payment_info import ApplicationPaymentInfo
from app.models.user_payment_method import UserPaymentMethod
from app.schemas.enrollment import (
    BankFields,
    CreditCardFields,
    PaymentMethod,
    SensitivePaymentFields,
    split_holder_name,
)
from app.services.enrollment_errors import (
    CorruptInstrumentError,
    DecryptionFailedError,
    MissingEncryptedFieldError,
    VaultLookupFailedError,
    VaultRetrievalFailedError,
)
from app.services.vault import VaultClient, VaultUnavailableError

logger = logging.getLogger(__name__)

TEST_SENTINEL_LAST_FOUR = "4242"
TEST_SENTINEL_CARD_NUMBER = "4242424242424242"
TEST_SENTINEL_CVV = "123"


class SavedPaymentMethodLookup(Protocol):
    async def get_saved_payment_method(self, method_id: UUID) -> UserPaymentMethod | None: ...


def _payment_method(value: str | None) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError:
        # Legacy rows without a recognised method were bank drafts.
        return PaymentMethod.ACH


def is_sandbox_fixture_instrument(saved: UserPaymentMethod, *, fixtures_enabled: bool) -> bool:
    """True only for the well-known sandbox card, and only when fixtures are enabled."""
    if not fixtures_enabled:
        return False
    if not _payment_method(saved.payment_method).is_card:
        return False
    return saved.card_last_four == TEST_SENTINEL_LAST_FOUR


def sandbox_fixture_card(saved: UserPaymentMethod) -> CreditCardFields:
    first, last = split_holder_name(saved.card_holder_name)
    return CreditCardFields(
        number=TEST_SENTINEL_CARD_NUMBER,
        cvv=TEST_SENTINEL_CVV,
        brand=saved.card_brand or "Visa",
        exp_month=saved.card_expiry_month or "12",
        exp_year=saved.card_expiry_year or "2030",
        holder_first=first or "Test",
        holder_last=last or "User",
    )


class PaymentSecretResolver:
    def __init__(
        self,
        store: SavedPaymentMethodLookup,
        vault: VaultClient,
        *,
        decrypt: Callable[[str], str] = decrypt_text,
        test_fixtures_enabled: bool | None = None,
    ) -> None:
        self.store = store
        self.vault = vault
        self.decrypt = decrypt
        if test_fixtures_enabled is None:
            test_fixtures_enabled = settings.test_payment_fixtures_enabled
        self.test_fixtures_enabled = test_fixtures_enabled

    async def resolve(self, record: ApplicationPaymentInfo) -> SensitivePaymentFields:
        if record.user_payment_method_id:
            fields = await self._resolve_from_vault(record)
            source = "vault"
        else:
            fields = self._resolve_inline(record)
            source = "inline"
        logger.info(
            "Payment fields resolved source=%s kind=%s account=%s",
            source,
            fields.kind,
            fields.masked_number,
        )
        return fields

    async def _resolve_from_vault(self, record: ApplicationPaymentInfo) -> SensitivePaymentFields:
        method_id = record.user_payment_method_id
        saved = await self.store.get_saved_payment_method(method_id)
        if saved is None:
            raise VaultLookupFailedError(
                f"Saved payment method {method_id} could not be read. It was either deleted "
                "or is hidden from this service by an access policy (row-level security); "
                "the row's existence cannot be confirmed. If it was deleted, the application "
                "needs new payment details."
            )

        if not saved.vault_secret_id:
            if is_sandbox_fixture_instrument(saved, fixtures_enabled=self.test_fixtures_enabled):
                logger.warning(
                    "Saved payment method %s has no vault secret; using the sandbox test card",
                    saved.id,
                )
                return sandbox_fixture_card(saved)
            raise CorruptInstrumentError(
                f"Saved payment method {saved.id} is corrupt: its vault secret is missing. "
                "Ask the user to remove this payment method and add it again."
            )

        secret_id = str(saved.vault_secret_id)
        method = _payment_method(saved.payment_method)
        try:
            if method.is_card:
                card = await self.vault.get_card_secret(secret_id)
                if card is None:
                    raise VaultRetrievalFailedError("Card data could not be read from the vault")
                first, last = split_holder_name(saved.card_holder_name)
                return CreditCardFields(
                    number=card.number,
                    cvv=card.cvv,
                    brand=saved.card_brand,
                    exp_month=saved.card_expiry_month,
                    exp_year=saved.card_expiry_year,
                    holder_first=first,
                    holder_last=last,
                )

            bank = await self.vault.get_bank_secret(secret_id)
            if bank is None:
                raise VaultRetrievalFailedError("Bank account data could not be read from the vault")
        except VaultUnavailableError as exc:
            raise VaultRetrievalFailedError(f"Vault unavailable: {exc}") from exc

        first, last = split_holder_name(saved.account_holder_name)
        return BankFields(
            account_number=bank.account_number,
            routing_number=bank.routing_number,
            account_type=saved.account_type,
            bank_name=saved.bank_name,
            desired_draft_date=record.desired_draft_date,
            holder_first=first,
            holder_last=last,
        )

    def _resolve_inline(self, record: ApplicationPaymentInfo) -> SensitivePaymentFields:
        method = _payment_method(record.payment_method)
        if method.is_card:
            first, last = split_holder_name(record.card_holder_name)
            return CreditCardFields(
                number=self._decrypt_required(record.card_number_encrypted, "card_number"),
                cvv=self._decrypt_required(record.cvv_encrypted, "cvv"),
                brand=record.card_brand,
                exp_month=record.card_expiry_month,
                exp_year=record.card_expiry_year,
                holder_first=first,
                holder_last=last,
            )

        first, last = split_holder_name(record.account_holder_name)
        return BankFields(
            account_number=self._decrypt_required(record.account_number_encrypted, "account_number"),
            routing_number=self._decrypt_required(record.routing_number_encrypted, "routing_number"),
            account_type=record.account_type,
            bank_name=record.bank_name,
            desired_draft_date=record.desired_draft_date,
            holder_first=first,
            holder_last=last,
        )

    def _decrypt_required(self, ciphertext: str | None, field_name: str) -> str:
        if not ciphertext:
            raise MissingEncryptedFieldError(f"Encrypted {field_name} is missing")
        try:
            return self.decrypt(ciphertext)
        except DecryptionError as exc:
            raise DecryptionFailedError(f"Encrypted {field_name} could not be decrypted") from exc
