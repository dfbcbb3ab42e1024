from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.settings import settings

logger = logging.getLogger(__name__)


class VaultUnavailableError(RuntimeError):
    """The vault could not be reached or did not answer in time."""


@dataclass(frozen=True, slots=True)
class VaultCardSecret:
    number: str = field(repr=False)
    cvv: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class VaultBankSecret:
    account_number: str = field(repr=False)
    routing_number: str = field(repr=False)


class VaultClient(ABC):
    """Read-only access to payment secrets by opaque secret id."""

    @abstractmethod
    async def get_card_secret(self, secret_id: str) -> VaultCardSecret | None:
        """Return the card number/CVV, or None when the vault holds nothing usable."""

    @abstractmethod
    async def get_bank_secret(self, secret_id: str) -> VaultBankSecret | None:
        """Return the account/routing numbers, or None when nothing usable is stored."""


def _decode_secret(raw: Any) -> dict[str, Any] | None:
    if raw is None:
        return None
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Vault secret payload is not valid JSON")
        return None
    return decoded if isinstance(decoded, dict) else None


def card_secret_from_payload(payload: dict[str, Any] | None) -> VaultCardSecret | None:
    if not payload:
        return None
    number = payload.get("cardNumber") or payload.get("number")
    cvv = payload.get("cvv")
    if not number or not cvv:
        return None
    return VaultCardSecret(number=str(number), cvv=str(cvv))


def bank_secret_from_payload(payload: dict[str, Any] | None) -> VaultBankSecret | None:
    if not payload:
        return None
    account_number = payload.get("accountNumber") or payload.get("account_number")
    routing_number = payload.get("routingNumber") or payload.get("routing_number")
    if not account_number or not routing_number:
        return None
    return VaultBankSecret(account_number=str(account_number), routing_number=str(routing_number))


class DatabaseVaultClient(VaultClient):
    """Reads secrets through the database's vault function (``get_vault_secret``)."""

    def __init__(
        self,
        db: AsyncSession,
        *,
        function_name: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.db = db
        self.function_name = function_name or settings.vault_secret_function
        self.timeout_seconds = timeout_seconds or settings.vault_timeout_seconds

    async def _read_secret(self, secret_id: str) -> dict[str, Any] | None:
        vault_fn = getattr(func, self.function_name)
        stmt = select(vault_fn(str(secret_id)))
        try:
            result = await asyncio.wait_for(self.db.execute(stmt), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise VaultUnavailableError(
                f"Vault did not answer within {self.timeout_seconds:g}s"
            ) from exc
        except SQLAlchemyError as exc:
            raise VaultUnavailableError("Vault query failed") from exc
        return _decode_secret(result.scalar_one_or_none())

    async def get_card_secret(self, secret_id: str) -> VaultCardSecret | None:
        return card_secret_from_payload(await self._read_secret(secret_id))

    async def get_bank_secret(self, secret_id: str) -> VaultBankSecret | None:
        return bank_secret_from_payload(await self._read_secret(secret_id))
