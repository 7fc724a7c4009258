"""Claims auto-decision and supervisor decisions."""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import AsyncIterator, Collection
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_my.calculators.money import to_money
from payroll_my.events import AsyncEventEmitter, ClaimDecided, EventMetadata
from payroll_my.exceptions import ClaimAlreadyDecided, ClaimDecisionForbidden, ClaimNotFound
from payroll_my.models import Claim
from payroll_my.models.base import utcnow
from payroll_my.schemas import ClaimPolicy
from payroll_my.snapshots import EmployeeSnapshot
from payroll_my.store import SqlAlchemyPayrollStore

logger = logging.getLogger(__name__)

REASON_DUPLICATE_RECEIPT = "duplicate_receipt"
REASON_MEAL_CAP = "meal_cap"
REASON_AI_VERIFIED = "ai_verified"

AI_AUTO_APPROVE = "auto_approve"

_DATA_URL_PREFIX = re.compile(r"^data:[^;,]*;base64,")


def compute_receipt_hash(receipt: bytes | str) -> str:
    """Stable SHA-256 hex digest of a receipt image.

    A base64 string (optionally a ``data:...;base64,`` URL) is decoded first,
    so raw bytes and their data URL produce the same hash.
    """
    if isinstance(receipt, str):
        encoded = _DATA_URL_PREFIX.sub("", receipt.strip())
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            data = encoded.encode()
    else:
        data = receipt
    return hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class ReceiptVerification:
    """Result of an external receipt check (OCR/AI)."""

    recommendation: str
    extracted_amount: Decimal | None = None
    merchant: str | None = None
    receipt_date: date | None = None
    confidence: Decimal | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "recommendation": self.recommendation,
            "extracted_amount": None if self.extracted_amount is None else str(self.extracted_amount),
            "merchant": self.merchant,
            "receipt_date": None if self.receipt_date is None else self.receipt_date.isoformat(),
            "confidence": None if self.confidence is None else str(self.confidence),
        }


@dataclass(frozen=True)
class ClaimSubmission:
    """A newly submitted expense claim."""

    employee_id: UUID
    claim_date: date
    category: str
    amount: Decimal
    receipt: bytes | str | None = None
    receipt_ref: str | None = None
    description: str | None = None
    verification: ReceiptVerification | None = None


@dataclass(frozen=True)
class ClaimDecision:
    """Outcome of the auto-decision procedure."""

    status: str  # 'pending', 'approved', 'rejected'
    auto_approved: bool = False
    reason: str | None = None
    receipt_hash: str | None = None

    @property
    def decided(self) -> bool:
        return self.status != "pending"


class ClaimDecisionPolicy:
    """Tenant-policy-driven decision for a newly submitted claim.

    Order:
    1) duplicate receipt (AI verification on, receipt attached) → rejected
    2) meal category within the meal cap → approved
    3) AI recommends auto-approve, amount matches within tolerance and is
       within the auto-approve threshold → approved
    4) otherwise pending for supervisor review
    """

    @staticmethod
    def decide(
        submission: ClaimSubmission,
        policy: ClaimPolicy,
        seen_hashes: Collection[str] = (),
    ) -> ClaimDecision:
        amount = to_money("amount", submission.amount)

        receipt_hash = None
        if policy.ai_verification_enabled and submission.receipt is not None:
            receipt_hash = compute_receipt_hash(submission.receipt)
            if receipt_hash in seen_hashes:
                return ClaimDecision("rejected", False, REASON_DUPLICATE_RECEIPT, receipt_hash)

        if (
            policy.auto_approve_meals_under_daily_cap
            and policy.is_meal(submission.category)
            and amount <= policy.meal_cap_amount
        ):
            return ClaimDecision("approved", True, REASON_MEAL_CAP, receipt_hash)

        verification = submission.verification
        if (
            policy.ai_verification_enabled
            and verification is not None
            and verification.recommendation == AI_AUTO_APPROVE
            and verification.extracted_amount is not None
            and abs(verification.extracted_amount - amount) <= policy.ai_amount_tolerance
            and amount <= policy.ai_auto_approve_threshold
        ):
            return ClaimDecision("approved", True, REASON_AI_VERIFIED, receipt_hash)

        return ClaimDecision("pending", False, None, receipt_hash)


def supervisor_may_decide(supervisor: EmployeeSnapshot, claimant: EmployeeSnapshot) -> bool:
    """A supervisor may decide claims of others in their own department/outlet."""
    return (
        supervisor.is_supervisor
        and supervisor.tenant_id == claimant.tenant_id
        and supervisor.employee_id != claimant.employee_id
        and supervisor.group_id is not None
        and supervisor.group_id == claimant.group_id
    )


class ClaimService:
    """Stores claims and applies automatic and supervisor decisions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        emitter: AsyncEventEmitter | None = None,
    ):
        self.session_factory = session_factory
        self.emitter = emitter

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[SqlAlchemyPayrollStore]:
        async with self.session_factory() as session:
            try:
                yield SqlAlchemyPayrollStore(session)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def submit(self, tenant_id: UUID, submission: ClaimSubmission) -> Claim:
        """Store a claim and decide it automatically where policy allows."""
        async with self._transaction() as store:
            config = await store.get_tenant_config(tenant_id)
            await store.get_employee(tenant_id, submission.employee_id)

            seen: set[str] = set()
            if config.claims.ai_verification_enabled and submission.receipt is not None:
                receipt_hash = compute_receipt_hash(submission.receipt)
                if await store.find_claims_by_receipt_hash(tenant_id, receipt_hash):
                    seen.add(receipt_hash)

            decision = ClaimDecisionPolicy.decide(submission, config.claims, seen)
            claim = Claim(
                tenant_id=tenant_id,
                employee_id=submission.employee_id,
                claim_date=submission.claim_date,
                category=submission.category.strip().upper(),
                amount=to_money("amount", submission.amount),
                description=submission.description,
                receipt_ref=submission.receipt_ref,
                status=decision.status,
                auto_approved=decision.auto_approved,
                auto_approval_reason=decision.reason if decision.status == "approved" else None,
                rejection_reason=decision.reason if decision.status == "rejected" else None,
                decided_at=utcnow() if decision.decided else None,
                receipt_hash=decision.receipt_hash,
                extracted_fields=(
                    submission.verification.to_dict() if submission.verification else None
                ),
            )
            store.session.add(claim)
            await store.session.flush()
            await store.record_audit(
                tenant_id,
                "claim",
                claim.claim_id,
                "submit",
                after={"status": claim.status, "reason": decision.reason, "amount": str(claim.amount)},
            )

        if decision.decided:
            logger.info("Claim %s auto-%s (%s)", claim.claim_id, decision.status, decision.reason)
            await self._emit_decided(claim, decision.reason, None, auto=True)
        return claim

    async def decide(
        self,
        tenant_id: UUID,
        claim_id: UUID,
        supervisor_id: UUID,
        approve: bool,
        rejection_reason: str | None = None,
    ) -> Claim:
        """Supervisor approval or rejection of a pending claim.

        Raises:
            ClaimNotFound: unknown claim in this tenant.
            ClaimAlreadyDecided: the claim is no longer pending.
            ClaimDecisionForbidden: the supervisor does not share scope
                with the claimant.
        """
        async with self._transaction() as store:
            claim = await store.get_claim(tenant_id, claim_id, for_update=True)
            if claim is None:
                raise ClaimNotFound(claim_id)
            if claim.status != "pending":
                raise ClaimAlreadyDecided(claim_id, claim.status)

            supervisor = await store.get_employee(tenant_id, supervisor_id)
            claimant = await store.get_employee(tenant_id, claim.employee_id)
            if not supervisor_may_decide(supervisor, claimant):
                logger.warning("Supervisor %s denied decision on claim %s", supervisor_id, claim_id)
                raise ClaimDecisionForbidden(supervisor_id, claim_id)

            claim.status = "approved" if approve else "rejected"
            claim.rejection_reason = None if approve else rejection_reason
            claim.decided_by = supervisor_id
            claim.decided_at = utcnow()
            await store.record_audit(
                tenant_id,
                "claim",
                claim_id,
                f"status_change:pending:{claim.status}",
                actor_id=supervisor_id,
                after={"reason": rejection_reason} if rejection_reason else None,
            )

        logger.info("Claim %s %s by supervisor %s", claim_id, claim.status, supervisor_id)
        await self._emit_decided(claim, claim.rejection_reason, supervisor_id, auto=False)
        return claim

    async def _emit_decided(
        self,
        claim: Claim,
        reason: str | None,
        actor_id: UUID | None,
        auto: bool,
    ) -> None:
        if self.emitter is None:
            return
        errors = await self.emitter.emit(
            ClaimDecided(
                metadata=EventMetadata.create(claim.tenant_id, actor_id=actor_id),
                claim_id=claim.claim_id,
                employee_id=claim.employee_id,
                status=claim.status,
                reason=reason,
                auto=auto,
            )
        )
        if errors:
            logger.warning("%d handler(s) failed for ClaimDecided", len(errors))
