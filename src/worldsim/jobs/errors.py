from __future__ import annotations


class OfferError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class OfferNotFoundError(OfferError):
    status_code = 404


class OfferOwnershipError(OfferError):
    status_code = 403


class OfferValidationError(OfferError):
    status_code = 400


class OfferConflictError(OfferError):
    status_code = 409


class ActivityConflictError(OfferError):
    """The proposed time overlaps another scheduled activity."""

    status_code = 409
