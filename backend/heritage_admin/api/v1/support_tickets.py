# heritage_admin/api/v1/support_tickets.py
from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from heritage_admin.api.deps.tenant import require_super_admin
from heritage_admin.api.v1.auth import get_current_user
from heritage_admin.core.dates import utcnow
from heritage_admin.core.roles import TicketPriority, TicketStatus
from heritage_admin.crud.support_tickets import count_tickets_by_status
from heritage_admin.db.session import get_db
from heritage_admin.models.profile import Profile
from heritage_admin.models.support_ticket import SupportTicket
from heritage_admin.schemas.support_ticket import (
    SupportTicketCreate,
    SupportTicketOut,
    SupportTicketStats,
    SupportTicketUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/support-tickets", tags=["support"])
admin_router = APIRouter(prefix="/admin/support-tickets", tags=["admin"])

CLOSED_STATUSES = {TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value}


@router.post("", response_model=SupportTicketOut, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: SupportTicketCreate,
    db: AsyncSession = Depends(get_db),
    profile: Profile = Depends(get_current_user),
):
    ticket = SupportTicket(
        user_id=profile.id,
        tenant_id=profile.tenant_id,
        user_email=profile.email,
        user_name=profile.display_name,
        subject=payload.subject,
        description=payload.description,
        priority=payload.priority.value,
        status=TicketStatus.OPEN.value,
    )
    db.add(ticket)
    await db.commit()
    await db.refresh(ticket)

    logger.info("Support ticket %s (%s) filed by %s", ticket.id, ticket.priority, profile.id)
    return ticket


@router.get("", response_model=List[SupportTicketOut])
async def list_my_tickets(
    db: AsyncSession = Depends(get_db),
    profile: Profile = Depends(get_current_user),
):
    stmt = (
        select(SupportTicket)
        .where(SupportTicket.user_id == profile.id)
        .order_by(SupportTicket.created_at.desc())
    )
    res = await db.execute(stmt)
    return list(res.scalars().all())


# ---------------------------------------------------------
# Platform support desk
# ---------------------------------------------------------
@admin_router.get("", response_model=List[SupportTicketOut])
async def list_all_tickets(
    status_filter: Optional[TicketStatus] = Query(default=None, alias="status"),
    priority: Optional[TicketPriority] = Query(default=None),
    q: Optional[str] = Query(default=None, max_length=200),
    db: AsyncSession = Depends(get_db),
    _admin: Profile = Depends(require_super_admin),
):
    stmt = select(SupportTicket)
    if status_filter is not None:
        stmt = stmt.where(SupportTicket.status == status_filter.value)
    if priority is not None:
        stmt = stmt.where(SupportTicket.priority == priority.value)
    if q and q.strip():
        like = f"%{q.strip()}%"
        stmt = stmt.where(
            or_(
                SupportTicket.subject.ilike(like),
                SupportTicket.description.ilike(like),
                SupportTicket.user_email.ilike(like),
                SupportTicket.user_name.ilike(like),
            )
        )
    stmt = stmt.order_by(SupportTicket.created_at.desc())

    res = await db.execute(stmt)
    return list(res.scalars().all())


@admin_router.get("/stats", response_model=SupportTicketStats)
async def ticket_stats(
    db: AsyncSession = Depends(get_db),
    _admin: Profile = Depends(require_super_admin),
):
    counts = await count_tickets_by_status(db)
    return SupportTicketStats(total=sum(counts.values()), **counts)


@admin_router.patch("/{ticket_id}", response_model=SupportTicketOut)
async def update_ticket(
    ticket_id: uuid.UUID,
    payload: SupportTicketUpdate,
    db: AsyncSession = Depends(get_db),
    admin: Profile = Depends(require_super_admin),
):
    ticket = await db.get(SupportTicket, ticket_id)
    if not ticket:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")

    new_status = payload.status.value
    if new_status in CLOSED_STATUSES:
        if ticket.status not in CLOSED_STATUSES or ticket.resolved_at is None:
            ticket.resolved_at = utcnow()
    else:
        # reopened
        ticket.resolved_at = None
    ticket.status = new_status

    if "admin_notes" in payload.model_fields_set:
        ticket.admin_notes = payload.admin_notes

    await db.commit()
    await db.refresh(ticket)

    logger.info("Support ticket %s set to %s by %s", ticket.id, new_status, admin.id)
    return ticket
