# Models package: import all models here so Alembic can discover them.

from supreme_crm.models.user import User  # noqa: F401
from supreme_crm.models.territory import Territory  # noqa: F401
from supreme_crm.models.dealership import Dealership  # noqa: F401
from supreme_crm.models.contact import Contact  # noqa: F401
from supreme_crm.models.deal import Deal  # noqa: F401
from supreme_crm.models.task import Task  # noqa: F401
from supreme_crm.models.activity import Activity  # noqa: F401
from supreme_crm.models.prospect import Prospect  # noqa: F401
from supreme_crm.models.interaction import Interaction, Appointment  # noqa: F401
from supreme_crm.models.audit import AuditEvent  # noqa: F401
