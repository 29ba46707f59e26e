from badman.models.draw import DrawType, TournamentDraw
from badman.models.enrollment import (
    ACTIVE_STATUSES,
    INACTIVE_STATUSES,
    EnrollmentSource,
    EnrollmentStatus,
    TournamentEnrollment,
)
from badman.models.enrollment_session import (
    EnrollmentSession,
    EnrollmentSessionItem,
    EnrollmentSessionStatus,
    ItemValidationStatus,
)
from badman.models.entry import Entry
from badman.models.game import Game, GameStatus
from badman.models.player import Player
from badman.models.standing import Standing
from badman.models.sub_event import EnrollmentPhase, GameType, SubEventType, TournamentSubEvent
from badman.models.sync_job_log import SyncJobLog, SyncJobStatus
from badman.models.tournament import TournamentEvent, TournamentPhase
from badman.models.waiting_list_log import WaitingListAction, WaitingListLog

__all__ = [
    "TournamentEvent",
    "TournamentPhase",
    "TournamentSubEvent",
    "EnrollmentPhase",
    "GameType",
    "SubEventType",
    "Player",
    "TournamentEnrollment",
    "EnrollmentStatus",
    "EnrollmentSource",
    "ACTIVE_STATUSES",
    "INACTIVE_STATUSES",
    "WaitingListLog",
    "WaitingListAction",
    "EnrollmentSession",
    "EnrollmentSessionItem",
    "EnrollmentSessionStatus",
    "ItemValidationStatus",
    "TournamentDraw",
    "DrawType",
    "Entry",
    "Game",
    "GameStatus",
    "Standing",
    "SyncJobLog",
    "SyncJobStatus",
]
