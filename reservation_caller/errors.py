"""Exceptions raised by the call coordinator."""


class ReservationCallerError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500


class CallNotFoundError(ReservationCallerError):
    """No call record exists for the given id."""

    status_code = 404

    def __init__(self, call_id: str) -> None:
        self.call_id = call_id
        super().__init__("Call not found")


class MalformedInputError(ReservationCallerError):
    """A decision or revision was requested without the fields it needs."""

    status_code = 400


class TransportFailureError(ReservationCallerError):
    """The outbound call could not be placed. The call is already FAILED."""

    status_code = 502


class InvalidTransitionError(ReservationCallerError):
    """A human decision arrived for a call that has already finished."""

    status_code = 409


class DuplicateCallError(ReservationCallerError):
    """A call with the requested id already exists."""

    status_code = 409

    def __init__(self, call_id: str) -> None:
        self.call_id = call_id
        super().__init__(f"Call {call_id} already exists")
