"""Review quorum service - turns independent admin decisions into one outcome.

A task resolves ``approved`` once ``required_approvals`` admins currently
approve it, ``rejected`` once as many currently reject it, and stays
``pending`` otherwise. Resolution is terminal. Concurrent voters serialize on
the task row, so the second writer always counts the first writer's vote.

The service never touches ``CustomGame``; reacting to an outcome is the
lifecycle controller's job.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.errors import NotFound, SelfReview, ValidationError
from app.core.utils import clamp, utcnow
from app.models.review import (
    DECISION_APPROVE,
    DECISION_REJECT,
    REVIEW_MODULES,
    TASK_APPROVED,
    TASK_PENDING,
    TASK_REJECTED,
    ReviewRule,
    ReviewTask,
    ReviewVote,
)

logger = logging.getLogger(__name__)


@dataclass
class VoteOutcome:
    task_id: int
    done: bool
    status: str
    approve_count: int
    reject_count: int
    required: int
    resolved_now: bool = False  # True only for the vote that resolved the task


def resolve_status(approve_count: int, reject_count: int, required: int) -> str:
    """Quorum rule: approvals win first, then rejections; anything short stays pending."""
    if approve_count >= required:
        return TASK_APPROVED
    if reject_count >= required:
        return TASK_REJECTED
    return TASK_PENDING


class ReviewService:
    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    @staticmethod
    def _check_module(module_key: str) -> None:
        if module_key not in REVIEW_MODULES:
            raise ValidationError(f"Invalid module key: {module_key}")

    @staticmethod
    async def ensure_default_rules(db: AsyncSession) -> None:
        """Seed a rule row for every module that does not have one yet."""
        result = await db.execute(select(ReviewRule.module_key))
        existing = set(result.scalars().all())
        for module_key in REVIEW_MODULES:
            if module_key not in existing:
                db.add(ReviewRule(
                    module_key=module_key,
                    required_approvals=settings.DEFAULT_REQUIRED_APPROVALS,
                ))
        await db.flush()

    async def get_rules(self, db: AsyncSession) -> list[ReviewRule]:
        await self.ensure_default_rules(db)
        result = await db.execute(
            select(ReviewRule)
            .where(ReviewRule.module_key.in_(REVIEW_MODULES))
            .order_by(ReviewRule.module_key)
        )
        return list(result.scalars().all())

    async def get_required_approvals(self, db: AsyncSession, module_key: str) -> int:
        self._check_module(module_key)
        result = await db.execute(
            select(ReviewRule.required_approvals).where(ReviewRule.module_key == module_key)
        )
        required = result.scalar_one_or_none()
        if required is None:
            required = settings.DEFAULT_REQUIRED_APPROVALS
        return max(1, required)

    async def set_required_approvals(
        self, db: AsyncSession, module_key: str, required: int
    ) -> ReviewRule:
        """Upsert the threshold for a module (clamped to at least 1)."""
        self._check_module(module_key)
        required = clamp(required, 1)

        result = await db.execute(
            select(ReviewRule).where(ReviewRule.module_key == module_key).with_for_update()
        )
        rule = result.scalar_one_or_none()
        if rule is None:
            rule = ReviewRule(module_key=module_key, required_approvals=required)
            db.add(rule)
        else:
            rule.required_approvals = required
        await db.flush()

        logger.info(f"Review rule {module_key}: required_approvals={required}")
        return rule

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    @staticmethod
    async def get_task(
        db: AsyncSession, module_key: str, target_type: str, target_id: str | int
    ) -> ReviewTask | None:
        result = await db.execute(
            select(ReviewTask).where(
                ReviewTask.module_key == module_key,
                ReviewTask.target_type == target_type,
                ReviewTask.target_id == str(target_id),
            )
        )
        return result.scalar_one_or_none()

    async def ensure_task(
        self,
        db: AsyncSession,
        module_key: str,
        target_type: str,
        target_id: str | int,
        creator_user_id: int | None = None,
        payload: dict | None = None,
    ) -> ReviewTask:
        """Return the task for the key, creating it ``pending`` if absent."""
        self._check_module(module_key)
        task = await self.get_task(db, module_key, target_type, target_id)
        if task is None:
            task = ReviewTask(
                module_key=module_key,
                target_type=target_type,
                target_id=str(target_id),
                creator_user_id=creator_user_id,
                status=TASK_PENDING,
                payload=payload,
            )
            db.add(task)
            await db.flush()
            logger.info(f"Opened review task {task.id} ({module_key} {target_type}:{target_id})")
        return task

    @staticmethod
    async def _lock_task(db: AsyncSession, task_id: int) -> ReviewTask:
        result = await db.execute(
            select(ReviewTask)
            .where(ReviewTask.id == task_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        task = result.scalar_one_or_none()
        if task is None:
            raise NotFound("Review task not found")
        return task

    @staticmethod
    async def tally(db: AsyncSession, task_id: int) -> tuple[int, int]:
        """Count current approve / reject decisions on a task."""
        result = await db.execute(
            select(
                func.coalesce(func.sum(case((ReviewVote.decision == DECISION_APPROVE, 1), else_=0)), 0),
                func.coalesce(func.sum(case((ReviewVote.decision == DECISION_REJECT, 1), else_=0)), 0),
            ).where(ReviewVote.task_id == task_id)
        )
        approve_count, reject_count = result.one()
        return int(approve_count), int(reject_count)

    # ------------------------------------------------------------------
    # Voting
    # ------------------------------------------------------------------

    async def vote(
        self,
        db: AsyncSession,
        module_key: str,
        target_type: str,
        target_id: str | int,
        creator_user_id: int | None,
        admin_id: int,
        admin_name: str,
        decision: str,
        comment: str | None = None,
        payload: dict | None = None,
    ) -> VoteOutcome:
        """Record one admin decision and judge the task against its quorum."""
        if decision not in (DECISION_APPROVE, DECISION_REJECT):
            raise ValidationError(f"Invalid decision: {decision}")
        if creator_user_id is not None and creator_user_id == admin_id:
            raise SelfReview("Creator cannot review their own submission")

        task = await self.ensure_task(
            db, module_key, target_type, target_id, creator_user_id, payload
        )
        task = await self._lock_task(db, task.id)
        if task.creator_user_id is not None and task.creator_user_id == admin_id:
            raise SelfReview("Creator cannot review their own submission")

        required = await self.get_required_approvals(db, module_key)

        if task.status != TASK_PENDING:
            approve_count, reject_count = await self.tally(db, task.id)
            return VoteOutcome(
                task_id=task.id,
                done=True,
                status=task.status,
                approve_count=approve_count,
                reject_count=reject_count,
                required=required,
            )

        result = await db.execute(
            select(ReviewVote).where(
                ReviewVote.task_id == task.id, ReviewVote.admin_id == admin_id
            )
        )
        ballot = result.scalar_one_or_none()
        if ballot is None:
            db.add(ReviewVote(
                task_id=task.id,
                admin_id=admin_id,
                admin_name=admin_name,
                decision=decision,
                comment=comment,
            ))
        else:
            ballot.admin_name = admin_name
            ballot.decision = decision
            ballot.comment = comment
            ballot.created_at = utcnow()
        await db.flush()

        approve_count, reject_count = await self.tally(db, task.id)
        status = resolve_status(approve_count, reject_count, required)
        logger.debug(
            f"Task {task.id} tally: approve={approve_count} reject={reject_count} required={required}"
        )

        resolved = status != TASK_PENDING
        if resolved:
            task.status = status
            await db.flush()
            logger.info(f"Review task {task.id} ({module_key}) resolved {status}")

        return VoteOutcome(
            task_id=task.id,
            done=resolved,
            status=status,
            approve_count=approve_count,
            reject_count=reject_count,
            required=required,
            resolved_now=resolved,
        )


review_service = ReviewService()
