"""Submission validation: first failing field wins."""

from typing import Any, Iterable, Mapping, Tuple

from pydantic import ValidationError

from errors import SubmissionInvalid
from schemas import FeedbackCreate

# prefixes FastAPI puts in front of request-body error locations
_REQUEST_LOCATIONS = {"body", "query", "path"}


def first_error(errors: Iterable[Mapping[str, Any]]) -> Tuple[str, str]:
    """Return (message, dotted field path) of the first pydantic error."""
    for error in errors:
        loc = [str(part) for part in error.get("loc", ())]
        if loc and loc[0] in _REQUEST_LOCATIONS:
            loc = loc[1:]
        return error.get("msg", "Invalid input"), ".".join(loc)
    return "Invalid input", ""


def validate_submission(raw: Mapping[str, Any]) -> FeedbackCreate:
    """
    Validate a raw submission.

    Returns the normalized FeedbackCreate (optional text fields defaulted to
    ""), or raises SubmissionInvalid naming the first offending field.

    Standalone entry point for callers outside HTTP. POST /feedback
    validates the same FeedbackCreate model through FastAPI, and its
    RequestValidationError handler reports through first_error, so both
    paths return the same field and message.
    """
    try:
        return FeedbackCreate.model_validate(raw)
    except ValidationError as exc:
        message, field = first_error(exc.errors())
        raise SubmissionInvalid(message, field=field) from None
