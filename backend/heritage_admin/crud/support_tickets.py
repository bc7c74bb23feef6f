# heritage_admin/crud/support_tickets.py
from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from heritage_admin.core.roles import TicketStatus
from heritage_admin.models.support_ticket import SupportTicket


async def count_tickets_by_status(db: AsyncSession) -> dict[str, int]:
    """
    Counts tickets per status across all tenants; statuses with no tickets
    are reported as 0.
    """
    stmt = select(SupportTicket.status, func.count(SupportTicket.id)).group_by(SupportTicket.status)
    res = await db.execute(stmt)
    counts = {s.value: 0 for s in TicketStatus}
    for status_value, n in res.all():
        counts[status_value] = int(n or 0)
    return counts
