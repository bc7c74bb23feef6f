# Import models here so Alembic can discover metadata.
from heritage_admin.models.tenant import Tenant  # noqa: F401
from heritage_admin.models.profile import Profile  # noqa: F401
from heritage_admin.models.location import Location  # noqa: F401
from heritage_admin.models.invite import Invite  # noqa: F401

# Billing + support
from heritage_admin.models.subscription_history import SubscriptionHistory  # noqa: F401
from heritage_admin.models.support_ticket import SupportTicket  # noqa: F401
