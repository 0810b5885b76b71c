"""Quota counter: per-workspace admission control against the plan's event quota.

The quota is re-read from the workspace row on every check because the
billing system can change plan and quota at any time. The counter is only
ever changed with a single atomic UPDATE, never read-modify-write.

check_and_admit is the fast pre-check. The binding check is the conditional
increment, which ingestion runs inside the same transaction as the insert.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from analytics_server.lib.errors import NotFoundError, QuotaExceededError, StorageError, ValidationError
from analytics_server.lib.metrics import record_quota_rejection
from analytics_server.models.workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaDecision:
  admitted: bool
  current_count: int
  quota: int
  plan: str


class QuotaCounter:
  def __init__(self, db: Session):
    self.db = db

  def check_and_admit(self, workspace_id: str, requested: int = 1) -> QuotaDecision:
    """Decide whether `requested` more events fit in the workspace's quota.

    A single event is rejected once event_count >= event_quota. A batch of n
    is rejected when event_count + n > event_quota.

    Raises:
        NotFoundError: Unknown workspace
    """
    if requested < 1:
      raise ValidationError('requested must be at least 1')

    stmt = select(Workspace.event_count, Workspace.event_quota, Workspace.plan).where(
      Workspace.id == workspace_id
    )
    try:
      row = self.db.execute(stmt).one_or_none()
    except SQLAlchemyError as e:
      raise StorageError('Failed to read workspace quota') from e

    if row is None:
      raise NotFoundError('Workspace', workspace_id)

    current_count, quota, plan = row
    return QuotaDecision(
      admitted=current_count + requested <= quota,
      current_count=current_count,
      quota=quota,
      plan=plan,
    )

  def ensure_admitted(self, workspace_id: str, requested: int = 1) -> QuotaDecision:
    """Like check_and_admit, but raise QuotaExceededError on rejection."""
    decision = self.check_and_admit(workspace_id, requested)
    if not decision.admitted:
      record_quota_rejection(decision.plan)
      logger.info(
        f'Quota exceeded for workspace {workspace_id}: '
        f'{decision.current_count}/{decision.quota} ({decision.plan}), requested {requested}'
      )
      raise QuotaExceededError(decision.current_count, decision.quota, decision.plan)
    return decision

  def increment(
    self, workspace_id: str, amount: int = 1, *, within_quota: bool = False, commit: bool = True
  ) -> None:
    """Atomically add `amount` to the workspace's event counter.

    Args:
        workspace_id: Workspace to charge
        amount: Number of events
        within_quota: Only apply if the new count stays within event_quota.
            Check and update are one statement, so two requests cannot both
            take the last slot.
        commit: Commit immediately; False joins the caller's transaction

    Raises:
        QuotaExceededError: within_quota was set and the events do not fit
        NotFoundError: within_quota was set and the workspace does not exist
    """
    stmt = update(Workspace).where(Workspace.id == workspace_id)
    if within_quota:
      stmt = stmt.where(Workspace.event_count + amount <= Workspace.event_quota)
    stmt = stmt.values(event_count=Workspace.event_count + amount).execution_options(
      synchronize_session=False
    )

    try:
      result = self.db.execute(stmt)
      if commit:
        self.db.commit()
    except SQLAlchemyError as e:
      self.db.rollback()
      raise StorageError('Failed to increment event counter') from e

    if within_quota and result.rowcount == 0:
      decision = self.check_and_admit(workspace_id, requested=amount)
      record_quota_rejection(decision.plan)
      logger.info(
        f'Quota exhausted concurrently for workspace {workspace_id}: '
        f'{decision.current_count}/{decision.quota} ({decision.plan}), requested {amount}'
      )
      raise QuotaExceededError(decision.current_count, decision.quota, decision.plan)
