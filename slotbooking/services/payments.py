import logging
import uuid
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentResult:
    succeeded: bool
    reference: str | None = None
    reason: str | None = None


class PaymentGateway(Protocol):
    def charge(self, amount: int, reference: str) -> PaymentResult: ...


class SimulatedPaymentGateway:
    """Settles every charge with a fixed outcome. Used until a real gateway is wired in."""

    def __init__(self, approve: bool = True):
        self.approve = approve

    def charge(self, amount: int, reference: str) -> PaymentResult:
        if not self.approve:
            logger.info('Simulated payment declined for %s (%s UYU)', reference, amount)
            return PaymentResult(succeeded=False, reason='declined')

        payment_reference = f'sim-{uuid.uuid4().hex[:12]}'
        logger.info('Simulated payment %s approved for %s (%s UYU)', payment_reference, reference, amount)
        return PaymentResult(succeeded=True, reference=payment_reference)
