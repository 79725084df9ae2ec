"""
Database models - import all models here so Alembic can discover them.
"""
from lawnops.models.business import Business
from lawnops.models.user import User
from lawnops.models.sms_session import SmsSession
from lawnops.models.sms_event import SmsEvent
from lawnops.models.handoff_ticket import HandoffTicket
from lawnops.models.click_to_call_token import ClickToCallToken
from lawnops.models.crew import Crew, ServiceZone, CrewZoneAssignment, CrewTimeOff
from lawnops.models.job_request import JobRequest
from lawnops.models.schedule_item import ScheduleItem
from lawnops.models.simulation import AssignmentSimulation
from lawnops.models.decision import AssignmentDecision
from lawnops.models.writeback_request import WritebackRequest
from lawnops.models.event_log import EventLog

__all__ = [
    "Business",
    "User",
    "SmsSession",
    "SmsEvent",
    "HandoffTicket",
    "ClickToCallToken",
    "Crew",
    "ServiceZone",
    "CrewZoneAssignment",
    "CrewTimeOff",
    "JobRequest",
    "ScheduleItem",
    "AssignmentSimulation",
    "AssignmentDecision",
    "WritebackRequest",
    "EventLog",
]
