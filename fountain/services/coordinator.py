"""Coordinator — turns client intents into exactly-once ledger + quota effects.

Invariants:
    - submit_* validates against current state, appends to the consensus log, and
      returns once the append is acknowledged; a rejected submit appends nothing
    - on_confirmed executes a nonce at most once: COMPLETED, EXECUTING and FAILED
      records are never executed again
    - Rules are re-checked at confirmation time against the Quota Store
      (submission checks are advisory; log order is authoritative)
    - Entries for one holder execute strictly one at a time (per-holder lock)
    - Every ledger step's transaction id lands in the result, or in the partial
      result of a FAILED record
    - An ACCRUE that exhausts the quota triggers TERMINATE inline under
      "<nonce>:auto-terminate" with its own record (trigger=auto)

Design Decisions:
    - No rollback of ledger effects: a failed sequence is reported with the steps
      that already ran and left for operator reconciliation
    - Nonce reuse: COMPLETED returns the cached record, in-flight returns the
      existing receipt, FAILED requires a fresh nonce
    - ACCRUE completes even if its auto-termination fails (its own effects happened);
      the credential then stays in CAP_REACHED and accepts a manual TERMINATE
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from fountain.config import Settings
from fountain.core.credential_state import CredentialSnapshot
from fountain.core.domain_types import (
    LedgerStep, OperationStatus, OperationTrigger, OperationType,
)
from fountain.core.enforce_quota import (
    auto_terminate_nonce, validate_accrue, validate_holder, validate_issue,
    validate_nonce, validate_terminate,
)
from fountain.core.errors import (
    ConsensusSubmissionError, DuplicateOperationError, ErrorContext,
    FountainError, LedgerOperationError, NotEligibleError,
    ResourceNotFoundError, ValidationError,
)
from fountain.core.intents import (
    AccrueIntent, Intent, IssueIntent, TerminateIntent, encode_intent,
)
from fountain.core.payout import compute_payout
from fountain.core.repository_protocols import ConsensusLog, LedgerGateway
from fountain.services.completion import CompletionBroker
from fountain.services.keyed_lock import KeyedLock
from fountain.services.operation_store import OperationStore
from fountain.services.quota_store import QuotaStore

logger = logging.getLogger(__name__)


class ExecutionTrace:
    """Transaction ids of the ledger steps that succeeded, in order."""

    def __init__(self, holder: str, nonce: str):
        self.holder = holder
        self.nonce = nonce
        self.transactions: dict[str, str] = {}

    async def step(self, step: LedgerStep, call: Awaitable[str]) -> str:
        try:
            tx_id = await call
        except LedgerOperationError as e:
            raise LedgerOperationError(
                step.value, str(e.__cause__ or e.message), self._context(),
            ) from e
        except Exception as e:
            raise LedgerOperationError(step.value, str(e), self._context()) from e
        self.transactions[step.value] = tx_id
        return tx_id

    def partial(self, failed_step: str | None = None) -> dict:
        return {
            "completed_steps": list(self.transactions),
            "transactions": dict(self.transactions),
            "failed_step": failed_step,
        }

    def _context(self) -> ErrorContext:
        return ErrorContext(holder=self.holder, nonce=self.nonce)


class Coordinator:
    """Submit/execute coordination over the consensus log."""

    def __init__(
        self,
        settings: Settings,
        quota_store: QuotaStore,
        operations: OperationStore,
        ledger: LedgerGateway,
        log: ConsensusLog,
        broker: CompletionBroker,
    ):
        self.settings = settings
        self.quota_store = quota_store
        self.operations = operations
        self.ledger = ledger
        self.log = log
        self.broker = broker
        self.payout = compute_payout(
            settings.issuance_price, settings.refund_fraction, settings.fee_fraction,
        )
        self._holder_locks = KeyedLock()
        self._nonce_locks = KeyedLock()

    # ─── Submission ──────────────────────────────────────────────

    async def submit_issue(self, holder: str, deposit_amount: int, nonce: str) -> dict:
        async def prepare() -> Intent:
            credential = await self.quota_store.get_credential(holder)
            validate_issue(
                credential, holder, deposit_amount, self.settings.issuance_price,
            )
            return IssueIntent(holder=holder, nonce=nonce, deposit_amount=deposit_amount)

        return await self._submit(holder, nonce, OperationType.ISSUE, prepare)

    async def submit_accrue(self, holder: str, amount: int, nonce: str) -> dict:
        async def prepare() -> Intent:
            credential = await self.quota_store.get_credential(holder)
            validate_accrue(
                credential, holder, amount, self.settings.max_accrue_per_request,
            )
            if self.settings.verify_credential_balance:
                await self._require_credential_unit(holder, nonce)
            return AccrueIntent(holder=holder, nonce=nonce, amount=amount)

        return await self._submit(holder, nonce, OperationType.ACCRUE, prepare)

    async def submit_terminate(self, holder: str, nonce: str) -> dict:
        async def prepare() -> Intent:
            credential = await self.quota_store.get_credential(holder)
            validate_terminate(
                credential, holder, self.settings.allow_early_termination,
            )
            if self.settings.verify_escrow_balance:
                await self._require_escrow_cover(holder, nonce)
            return TerminateIntent(holder=holder, nonce=nonce)

        return await self._submit(holder, nonce, OperationType.TERMINATE, prepare)

    async def get_status(self, nonce: str) -> dict:
        record = await self.operations.get(nonce)
        if record is None:
            raise ResourceNotFoundError("Operation", nonce, ErrorContext(nonce=nonce))
        return record

    async def _submit(
        self,
        holder: str,
        nonce: str,
        op_type: OperationType,
        prepare: Callable[[], Awaitable[Intent]],
    ) -> dict:
        validate_holder(holder)
        validate_nonce(nonce)
        try:
            async with self._nonce_locks.hold(nonce):
                existing = await self._existing_receipt(nonce, holder, op_type)
                if existing is not None:
                    return existing
                intent = await prepare()
                return await self._append(intent)
        except DuplicateOperationError as dup:
            logger.info(
                f"Nonce {nonce} already completed, returning cached record",
                extra={"nonce": nonce, "holder": holder, "op_type": op_type.value},
            )
            return self._receipt(dup.record, duplicate=True)

    async def _existing_receipt(
        self, nonce: str, holder: str, op_type: OperationType,
    ) -> dict | None:
        record = await self.operations.get(nonce)
        if record is None:
            return None
        ctx = ErrorContext(holder=holder, nonce=nonce, op_type=op_type.value)
        if record["holder"] != holder or record["type"] != op_type.value:
            raise ValidationError(
                f"Nonce '{nonce}' was already used for {record['type']} on {record['holder']}",
                "nonce", ctx,
            )
        if record["status"] == OperationStatus.COMPLETED.value:
            raise DuplicateOperationError(nonce, record, ctx)
        if record["status"] == OperationStatus.FAILED.value:
            raise ValidationError(
                f"Operation '{nonce}' failed; retry with a fresh nonce", "nonce", ctx,
            )
        return self._receipt(record, duplicate=True)

    async def _append(self, intent: Intent) -> dict:
        await self.operations.create_submitted(intent)
        message = encode_intent(intent, self.settings.intent_signing_key)
        try:
            position = await self.log.append(message)
        except Exception as e:
            await self.operations.discard(intent.nonce)
            logger.error(
                f"Consensus append failed for {intent.nonce}: {e}",
                extra={"nonce": intent.nonce, "holder": intent.holder, "op_type": intent.type},
            )
            raise ConsensusSubmissionError(
                str(e), ErrorContext(holder=intent.holder, nonce=intent.nonce, op_type=intent.type),
            ) from e
        await self.operations.set_position(intent.nonce, position)
        logger.info(
            f"Submitted {intent.type} for {intent.holder} at position {position}",
            extra={
                "nonce": intent.nonce, "holder": intent.holder,
                "op_type": intent.type, "position": position,
            },
        )
        return {
            "nonce": intent.nonce,
            "type": intent.type,
            "holder": intent.holder,
            "log_position": position,
            "status": OperationStatus.SUBMITTED.value,
            "duplicate": False,
        }

    @staticmethod
    def _receipt(record: dict, duplicate: bool) -> dict:
        receipt = {
            "nonce": record["nonce"],
            "type": record["type"],
            "holder": record["holder"],
            "log_position": record["consensus_position"],
            "status": record["status"],
            "duplicate": duplicate,
        }
        if record["status"] == OperationStatus.COMPLETED.value:
            receipt["result"] = record["result"]
        return receipt

    async def _require_credential_unit(self, holder: str, nonce: str) -> None:
        balance = await self.ledger.query_balance(holder, self.settings.credential_token)
        if balance != 1:
            raise NotEligibleError(
                f"Holder {holder} must hold exactly one {self.settings.credential_token} "
                f"unit, found {balance}",
                ErrorContext(holder=holder, nonce=nonce, op_type="ACCRUE"),
            )

    async def _require_escrow_cover(self, holder: str, nonce: str) -> None:
        balance = await self.ledger.query_balance(
            self.settings.escrow_account, self.settings.settlement_token,
        )
        if balance < self.payout.total:
            raise NotEligibleError(
                f"Escrow balance {balance} cannot cover payout {self.payout.total}",
                ErrorContext(holder=holder, nonce=nonce, op_type="TERMINATE"),
            )

    # ─── Confirmation ────────────────────────────────────────────

    async def on_confirmed(
        self, intent: Intent, position: int, confirmed_at: datetime | None = None,
    ) -> dict:
        """Execute one confirmed log entry. Safe to call again for the same nonce."""
        async with self._holder_locks.hold(intent.holder):
            record = await self.operations.get(intent.nonce)
            if record is not None and record["status"] != OperationStatus.SUBMITTED.value:
                log = (
                    logger.info
                    if record["status"] == OperationStatus.COMPLETED.value
                    else logger.warning
                )
                log(
                    f"Skipping {intent.nonce} at position {position}: already {record['status']}",
                    extra={"nonce": intent.nonce, "position": position, "status": record["status"]},
                )
                return record

            await self.operations.mark_executing(intent, position)
            logger.info(
                f"Executing {intent.type} for {intent.holder} (position {position})",
                extra={
                    "nonce": intent.nonce, "holder": intent.holder,
                    "op_type": intent.type, "position": position,
                },
            )
            return await self._execute(intent, confirmed_at=confirmed_at)

    async def _execute(
        self, intent: Intent, automatic: bool = False,
        confirmed_at: datetime | None = None,
    ) -> dict:
        trace = ExecutionTrace(intent.holder, intent.nonce)
        try:
            credential = await self.quota_store.get_credential(intent.holder)
            if isinstance(intent, IssueIntent):
                result = await self._execute_issue(intent, credential, trace, confirmed_at)
            elif isinstance(intent, AccrueIntent):
                result = await self._execute_accrue(intent, credential, trace)
            else:
                result = await self._execute_terminate(intent, credential, trace, automatic)
        except FountainError as e:
            record = await self.operations.mark_failed(
                intent.nonce, e.message, e.code,
                trace.partial(getattr(e, "step", None)),
            )
        except Exception as e:
            logger.error(
                f"Unexpected failure executing {intent.nonce}: {e}",
                exc_info=True, extra={"nonce": intent.nonce, "holder": intent.holder},
            )
            record = await self.operations.mark_failed(
                intent.nonce, str(e), "INTERNAL_ERROR", trace.partial(),
            )
        else:
            record = await self.operations.mark_completed(intent.nonce, result)
        self.broker.publish(record)
        return record

    async def _execute_issue(
        self, intent: IssueIntent, credential: CredentialSnapshot | None,
        trace: ExecutionTrace, confirmed_at: datetime | None,
    ) -> dict:
        s = self.settings
        validate_issue(credential, intent.holder, intent.deposit_amount, s.issuance_price)
        await trace.step(LedgerStep.MINT_CREDENTIAL, self.ledger.mint(s.credential_token, 1))
        await trace.step(
            LedgerStep.TRANSFER_CREDENTIAL,
            self.ledger.transfer(s.credential_token, s.treasury_account, intent.holder, 1),
        )
        await trace.step(
            LedgerStep.FREEZE_CREDENTIAL,
            self.ledger.freeze(s.credential_token, intent.holder),
        )
        snapshot = await self.quota_store.create_credential(
            intent.holder, s.max_quota, op_nonce=intent.nonce, issued_at=confirmed_at,
        )
        return {"transactions": trace.transactions, "credential": snapshot.to_dict()}

    async def _execute_accrue(
        self, intent: AccrueIntent, credential: CredentialSnapshot | None,
        trace: ExecutionTrace,
    ) -> dict:
        s = self.settings
        validate_accrue(credential, intent.holder, intent.amount, s.max_accrue_per_request)
        await trace.step(
            LedgerStep.MINT_REWARD, self.ledger.mint(s.reward_token, intent.amount),
        )
        await trace.step(
            LedgerStep.TRANSFER_REWARD,
            self.ledger.transfer(
                s.reward_token, s.treasury_account, intent.holder, intent.amount,
            ),
        )
        snapshot = await self.quota_store.apply_accrual(
            intent.holder, intent.amount, op_nonce=intent.nonce,
        )
        result = {
            "transactions": trace.transactions,
            "amount": intent.amount,
            "credential": snapshot.to_dict(),
        }
        if snapshot.cap_reached:
            result["auto_termination"] = await self._auto_terminate(intent)
        return result

    async def _auto_terminate(self, parent: AccrueIntent) -> dict:
        nonce = auto_terminate_nonce(parent.nonce)
        child = TerminateIntent(holder=parent.holder, nonce=nonce)
        logger.info(
            f"Quota exhausted for {parent.holder}, auto-terminating",
            extra={"holder": parent.holder, "nonce": nonce, "parent_nonce": parent.nonce},
        )
        try:
            await self.operations.mark_executing(
                child, None, trigger=OperationTrigger.AUTO, parent_nonce=parent.nonce,
            )
        except FountainError as e:
            logger.error(
                f"Could not start auto-termination {nonce}: {e.message}",
                extra={"nonce": nonce, "holder": parent.holder, "error_code": e.code},
            )
            return {
                "nonce": nonce,
                "status": OperationStatus.FAILED.value,
                "result": None,
                "error": e.message,
                "error_code": e.code,
            }
        record = await self._execute(child, automatic=True)
        return {
            "nonce": nonce,
            "status": record["status"],
            "result": record["result"],
            "error": record["error"],
            "error_code": record["error_code"],
        }

    async def _execute_terminate(
        self, intent: TerminateIntent, credential: CredentialSnapshot | None,
        trace: ExecutionTrace, automatic: bool,
    ) -> dict:
        s = self.settings
        validate_terminate(credential, intent.holder, s.allow_early_termination)
        await trace.step(
            LedgerStep.UNFREEZE_CREDENTIAL,
            self.ledger.unfreeze(s.credential_token, intent.holder),
        )
        if s.credential_removal_mode == "wipe":
            await trace.step(
                LedgerStep.WIPE_CREDENTIAL,
                self.ledger.wipe(s.credential_token, intent.holder, 1),
            )
        else:
            await trace.step(
                LedgerStep.RETURN_CREDENTIAL,
                self.ledger.transfer(
                    s.credential_token, intent.holder, s.treasury_account, 1,
                ),
            )
            await trace.step(
                LedgerStep.BURN_CREDENTIAL, self.ledger.burn(s.credential_token, 1),
            )

        payout = self.payout
        if payout.refund:
            await trace.step(
                LedgerStep.PAY_REFUND,
                self.ledger.transfer(
                    s.settlement_token, s.escrow_account, intent.holder, payout.refund,
                ),
            )
        if payout.fee:
            await trace.step(
                LedgerStep.PAY_FEE,
                self.ledger.transfer(
                    s.settlement_token, s.escrow_account, s.treasury_account, payout.fee,
                ),
            )
        snapshot = await self.quota_store.apply_termination(
            intent.holder, intent.nonce, payout.refund, payout.fee, automatic=automatic,
        )
        return {
            "transactions": trace.transactions,
            "refund_amount": payout.refund,
            "fee_amount": payout.fee,
            "total_accrued": credential.total_accrued,
            "automatic": automatic,
            "credential": snapshot.to_dict(),
        }
