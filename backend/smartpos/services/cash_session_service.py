# Overview: Cash register sessions: open, close, reconcile, and the write guard for tickets.

"""
Cash Session Management Service

DESIGN PRINCIPLES:
- At most one open session at a time (enforced at open)
- Closing sums COMPLETED tickets posted to the session by type
- Reconciliation is irreversible; a reconciled session accepts no new
  tickets and no cancellations of its tickets
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import CashSession, Ticket
from ..models.tickets import TICKET_STATUS_COMPLETED, TICKET_TYPE_SALE, TICKET_TYPE_RETURN
from smartpos.money import ZERO, round_money
from smartpos.time_utils import utcnow, normalize_datetime
from .concurrency import lock_for_update, run_in_transaction
from .errors import SessionNotFound, SessionReconciled, SessionAlreadyOpen, AlreadyClosed, NotYetClosed


def _open_sessions_query(now: datetime | None = None):
    q = db.session.query(CashSession).filter(CashSession.closed_at.is_(None))
    if now is not None:
        q = q.filter(CashSession.opened_at <= now)
    return q.order_by(CashSession.opened_at, CashSession.id)


def _get_session_locked(session_id: int) -> CashSession:
    session = lock_for_update(db.session.query(CashSession).filter_by(id=session_id)).first()
    if session is None:
        raise SessionNotFound("Cash session not found", details={"session_id": session_id})
    return session


def assert_writable(session: CashSession | None) -> None:
    """Reject writes against a reconciled session."""
    if session is not None and session.reconciled:
        raise SessionReconciled(
            f"Cash session {session.id} is reconciled",
            details={"session_id": session.id},
        )


def current_open_session(now: datetime | None = None) -> CashSession | None:
    """
    The open, not-yet-reconciled session as of `now`, or None.

    If the single-open invariant was ever broken, the earliest opened
    session wins.
    """
    now = normalize_datetime(now) or utcnow()
    return _open_sessions_query(now).filter(CashSession.reconciled.is_(False)).first()


def session_for_new_ticket(now: datetime | None = None) -> CashSession | None:
    """
    Pick (and lock) the session a new ticket should post to.

    Returns None when no session is open. Raises SessionReconciled when
    the only open sessions are reconciled. Must run inside a transaction.
    """
    now = normalize_datetime(now) or utcnow()
    open_sessions = lock_for_update(_open_sessions_query(now)).all()
    if not open_sessions:
        return None
    for session in open_sessions:
        if not session.reconciled:
            return session
    assert_writable(open_sessions[0])
    return None


# =============================================================================
# LIFECYCLE
# =============================================================================

def open_session(cashier_name: str | None = None, now: datetime | None = None) -> CashSession:
    """
    Open a new cash session.

    Raises:
        SessionAlreadyOpen: another session has not been closed yet
    """
    now = normalize_datetime(now) or utcnow()

    def _op():
        existing = lock_for_update(_open_sessions_query()).first()
        if existing:
            raise SessionAlreadyOpen(
                f"Cash session {existing.id} is still open",
                details={"session_id": existing.id},
            )

        session = CashSession(
            cashier_name=cashier_name,
            opened_at=now,
            total_sales=ZERO,
            total_returns=ZERO,
            net_amount=ZERO,
            reconciled=False,
        )
        db.session.add(session)
        db.session.flush()
        return session

    session = run_in_transaction(_op)
    current_app.logger.info("Cash session %s opened", session.id)
    return session


def _sum_completed(session_id: int, ticket_type: str) -> Decimal:
    total = db.session.query(func.coalesce(func.sum(Ticket.total), 0)).filter(
        Ticket.cash_session_id == session_id,
        Ticket.status == TICKET_STATUS_COMPLETED,
        Ticket.ticket_type == ticket_type,
    ).scalar()
    return round_money(total or 0)


def close_session(session_id: int, now: datetime | None = None) -> CashSession:
    """
    Close a session and total its COMPLETED tickets.

    Raises:
        SessionNotFound, AlreadyClosed
    """
    now = normalize_datetime(now) or utcnow()

    def _op():
        session = _get_session_locked(session_id)
        if session.closed_at is not None:
            raise AlreadyClosed(
                f"Cash session {session_id} is already closed",
                details={"session_id": session_id},
            )

        total_sales = _sum_completed(session_id, TICKET_TYPE_SALE)
        total_returns = _sum_completed(session_id, TICKET_TYPE_RETURN)

        session.total_sales = total_sales
        session.total_returns = total_returns
        session.net_amount = round_money(total_sales - total_returns)
        session.closed_at = now
        db.session.flush()
        return session

    session = run_in_transaction(_op)
    current_app.logger.info(
        "Cash session %s closed: sales=%s returns=%s net=%s",
        session.id, session.total_sales, session.total_returns, session.net_amount,
    )
    return session


def reconcile_session(session_id: int, now: datetime | None = None) -> CashSession:
    """
    Accept a closed session's totals as final. Irreversible; reconciling an
    already reconciled session changes nothing.

    Raises:
        SessionNotFound, NotYetClosed
    """
    now = normalize_datetime(now) or utcnow()

    def _op():
        session = _get_session_locked(session_id)
        if session.closed_at is None:
            raise NotYetClosed(
                f"Cash session {session_id} is not closed yet",
                details={"session_id": session_id},
            )
        if not session.reconciled:
            session.reconciled = True
            session.reconciled_at = now
            db.session.flush()
        return session

    session = run_in_transaction(_op)
    current_app.logger.info("Cash session %s reconciled", session.id)
    return session


# =============================================================================
# QUERIES
# =============================================================================

def get_session(session_id: int) -> CashSession:
    session = db.session.get(CashSession, session_id)
    if session is None:
        raise SessionNotFound("Cash session not found", details={"session_id": session_id})
    return session


def list_pending_sessions() -> list[CashSession]:
    """Sessions not yet reconciled, oldest first."""
    return (
        db.session.query(CashSession)
        .filter(CashSession.reconciled.is_(False))
        .order_by(CashSession.opened_at, CashSession.id)
        .all()
    )
