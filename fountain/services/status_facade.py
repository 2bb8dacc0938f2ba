"""Status Facade — read-only views over credentials, operations and deposits.

Invariants:
    - Never mutates state
    - A failed operation is always reported as FAILED with its error and code
    - Unknown nonces / deposits raise ResourceNotFoundError (HTTP 404)
"""

import logging

from fountain.config import Settings
from fountain.core.credential_state import available_actions, derive_stage
from fountain.core.domain_types import CredentialStage
from fountain.core.enforce_quota import validate_holder
from fountain.core.errors import ResourceNotFoundError
from fountain.core.payout import compute_payout
from fountain.services.confirmation_consumer import ConfirmationConsumer
from fountain.services.deposit_relay import DepositRelay
from fountain.services.operation_store import OperationStore
from fountain.services.quota_store import QuotaStore

logger = logging.getLogger(__name__)


class StatusFacade:

    def __init__(
        self,
        settings: Settings,
        quota_store: QuotaStore,
        operations: OperationStore,
        relay: DepositRelay,
        consumer: ConfirmationConsumer | None = None,
    ):
        self.settings = settings
        self.quota_store = quota_store
        self.operations = operations
        self.relay = relay
        self.consumer = consumer

    async def get_credential_status(self, holder: str, history_limit: int = 10) -> dict:
        """Stage, quota usage, next actions and recent history for one holder."""
        validate_holder(holder)
        credential = await self.quota_store.get_credential(holder)
        stage = derive_stage(credential)

        quota = None
        if stage in (CredentialStage.ACTIVE_ACCRUING, CredentialStage.CAP_REACHED):
            quota = {
                "max_quota": credential.max_quota,
                "total_accrued": credential.total_accrued,
                "remaining_quota": credential.remaining_quota,
                "percent_used": round(100 * credential.total_accrued / credential.max_quota, 2),
            }

        return {
            "holder": holder,
            "stage": stage.value,
            "lifecycle_count": credential.lifecycle_count if credential else 0,
            "credential": credential.to_dict() if credential else None,
            "quota": quota,
            "available_actions": available_actions(
                stage, credential, self.settings.allow_early_termination,
            ),
            "recent_accruals": await self.quota_store.accrual_history(holder, history_limit),
            "terminations": await self.quota_store.termination_history(holder, history_limit),
        }

    async def get_operation_status(self, nonce: str) -> dict:
        record = await self.operations.get(nonce)
        if record is None:
            raise ResourceNotFoundError("Operation", nonce)
        return record

    async def get_deposit_status(self, source_event_id: str) -> dict:
        row = await self.relay.get_deposit(source_event_id)
        if row is None:
            raise ResourceNotFoundError("Deposit", source_event_id)
        return row

    async def get_protocol_stats(self) -> dict:
        s = self.settings
        payout = compute_payout(s.issuance_price, s.refund_fraction, s.fee_fraction)
        return {
            "credentials": await self.quota_store.get_stats(),
            "operations": await self.operations.count_by_status(),
            "relay": await self.relay.get_stats(),
            "consumer": self.consumer.stats.to_dict() if self.consumer else None,
            "economics": {
                "issuance_price": s.issuance_price,
                "max_quota": s.max_quota,
                "refund_amount": payout.refund,
                "fee_amount": payout.fee,
                "credential_token": s.credential_token,
                "reward_token": s.reward_token,
                "settlement_token": s.settlement_token,
            },
        }
