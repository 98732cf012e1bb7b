"""In-app credit purchase validation.

The store SDK (RevenueCat) completes the payment on the device and hands back
a receipt.  :class:`CreditPurchaseFlow` forwards that receipt to the billing
backend, which credits the account.  Validation is never retried: a duplicate
call could credit the same purchase twice.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

from pixie.api.models import PurchaseValidationResponse

from .errors import PixieError, PurchaseRejected

if TYPE_CHECKING:
    from pixie.api.client import PixieClient

logger = logging.getLogger(__name__)

# Store package identifier -> backend credit pack id
PACKAGE_TO_PACK = {
    "starter": "starter",
    "basic": "basic",
    "popular": "popular",
    "business": "business",
    "enterprise": "enterprise",
}


class PurchaseState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CreditPurchaseFlow:
    """Forward store receipts to the billing backend and track the outcome.

    Attributes:
        platform (str):
            Store platform sent with every validation (``ios`` or ``android``).
        state (PurchaseState):
            Latest published state.
        last_result (PurchaseValidationResponse | None):
            Response of the last successful validation.
        last_error (str | None):
            User-facing message of the last failed validation.
    """

    def __init__(self, client: PixieClient, platform: str = "ios") -> None:
        self._client = client
        self.platform = platform
        self.state = PurchaseState.IDLE
        self.last_result: PurchaseValidationResponse | None = None
        self.last_error: str | None = None
        self._subscribers: list[Callable[[PurchaseState], None]] = []

    def subscribe(self, callback: Callable[[PurchaseState], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, state: PurchaseState) -> None:
        self.state = state
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Purchase subscriber failed: {e}", exc_info=True)

    @staticmethod
    def pack_for_package(package_id: str) -> str:
        """Map a store package id to a credit pack id (unknown ids pass through)."""
        return PACKAGE_TO_PACK.get(package_id, package_id)

    async def validate(
        self, package_id: str, purchase_token: str, product_id: str
    ) -> PurchaseValidationResponse:
        """Validate one completed store purchase.

        Args:
            package_id: Store package identifier of the purchased pack
            purchase_token: Receipt token issued by the store
            product_id: Store product identifier

        Returns:
            The backend's validation response

        Raises:
            PurchaseRejected: If the backend answered with ``success = false``
            PixieError: For transport or API failures
        """
        pack_id = self.pack_for_package(package_id)
        self.last_error = None
        self._publish(PurchaseState.VALIDATING)
        logger.info(f"Validating {self.platform} purchase of pack '{pack_id}'")

        try:
            response = await self._client.validate_purchase(
                pack_id=pack_id,
                purchase_token=purchase_token,
                product_id=product_id,
                platform=self.platform,
            )
            if not response.success:
                raise PurchaseRejected()
        except PixieError as e:
            self.last_error = e.message
            self._publish(PurchaseState.FAILED)
            logger.warning(f"Purchase validation for pack '{pack_id}' failed: {e.message}")
            raise

        self.last_result = response
        self._publish(PurchaseState.SUCCEEDED)
        logger.info(
            f"Purchase {response.purchase_id} credited {response.credits_added} credits "
            f"(balance {response.new_balance})"
        )
        return response

    def reset(self) -> None:
        """Return to idle, e.g. after the UI dismissed the result."""
        self.last_error = None
        self._publish(PurchaseState.IDLE)
