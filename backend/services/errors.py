"""Typed failures raised across the service layer."""


class ModelUnavailableError(Exception):
    """The hosted model could not be called or did not answer."""


class ReplyFormatError(ValueError):
    """A model reply could not be normalized into the expected shape."""


class ExpenseParseError(ValueError):
    """Free text did not yield a usable amount and merchant."""
