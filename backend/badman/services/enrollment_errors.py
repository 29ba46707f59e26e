"""
Domain errors raised by the enrollment services.

Each error carries the HTTP status the routes translate it to, so the service
layer stays free of FastAPI imports.
"""


class EnrollmentError(Exception):
    status_code = 400


class SubEventNotFound(EnrollmentError):
    status_code = 404

    def __init__(self, sub_event_id):
        super().__init__(f"Sub-event {sub_event_id} not found")
        self.sub_event_id = sub_event_id


class TournamentNotFound(EnrollmentError):
    status_code = 404

    def __init__(self, tournament_id):
        super().__init__(f"Tournament {tournament_id} not found")


class PlayerNotFound(EnrollmentError):
    status_code = 404

    def __init__(self, player_id):
        super().__init__(f"Player {player_id} not found")
        self.player_id = player_id


class EnrollmentNotFound(EnrollmentError):
    status_code = 404

    def __init__(self, enrollment_id):
        super().__init__(f"Enrollment {enrollment_id} not found")


class EnrollmentClosed(EnrollmentError):
    status_code = 400


class AlreadyEnrolled(EnrollmentError):
    status_code = 409


class InvalidPartner(EnrollmentError):
    status_code = 400


class SubEventFull(EnrollmentError):
    status_code = 409


class GuestEnrollmentNotAllowed(EnrollmentError):
    status_code = 403


class InvalidEnrollmentState(EnrollmentError):
    status_code = 400


class InvalidPhaseTransition(EnrollmentError):
    status_code = 409

    def __init__(self, current, target):
        current = getattr(current, "value", current)
        target = getattr(target, "value", target)
        super().__init__(f"Cannot move enrollment phase from {current} to {target}")
        self.current = current
        self.target = target


class CartError(EnrollmentError):
    status_code = 400


class CartNotFound(CartError):
    status_code = 404

    def __init__(self, cart_id):
        super().__init__(f"Enrollment cart {cart_id} not found")
