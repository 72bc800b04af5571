"""Classification of decoded response envelopes."""
import json
import logging
from typing import Any, Optional

from ..exceptions import ServerError
from ..results import CallResult

logger = logging.getLogger(__name__)

SUCCESS_STATUS = 'ok'


def is_error_response(data: Any) -> bool:
    """An envelope is an error when it has a status other than 'ok'."""
    return isinstance(data, dict) and data.get('status') is not None and data.get('status') != SUCCESS_STATUS


def parse_error_response(data: Any) -> ServerError:
    """Build a ServerError from an error envelope. Never raises."""
    if isinstance(data, dict):
        code = data.get('err-code')
        message = data.get('err-msg')
        if code is not None and message is not None:
            return ServerError(str(message), code=str(code), raw=data)

    try:
        text = json.dumps(data)
    except (TypeError, ValueError):
        text = str(data)
    return ServerError(text, raw=data)


def classify(data: Any, payload_field: Optional[str] = 'data') -> CallResult:
    """
    Decide whether a decoded envelope is a success or a failure.

    Only the top-level shape is inspected; business errors inside the payload
    are left to the caller.

    Args:
        data: Decoded JSON body
        payload_field: Field holding the payload, or None to return the whole envelope

    Returns:
        CallResult with the untouched payload, or a ServerError
    """
    if is_error_response(data):
        error = parse_error_response(data)
        logger.warning("Exchange returned an error: %s", error)
        return CallResult.fail(error)

    if payload_field is None:
        return CallResult.ok(data)

    if not isinstance(data, dict):
        return CallResult.fail(parse_error_response(data))

    return CallResult.ok(data.get(payload_field))
