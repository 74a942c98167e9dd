import datetime

from . import config
from .errors import ProtocolError


def get_timestamp_iso():
    """Return current timestamp in ISO 8601 format."""
    return datetime.datetime.now().isoformat()


def format_command(code, arg=None):
    """
    Format framed command string.
    code: command letters ('P', 'GB', ...)
    arg: optional non-negative int appended as decimal digits
    Returns string '<code[arg]>'
    """
    body = code if arg is None else f"{code}{int(arg)}"
    return f"{config.FRAME_START}{body}{config.FRAME_END}"


def parse_status_digit(payload, enum_cls):
    """
    Decode a single-digit status reply into enum_cls.
    Raises ProtocolError for empty, multi-character, non-digit or unmapped replies.
    """
    if len(payload) != 1:
        raise ProtocolError(f"Unexpected {len(payload)}-character status response", payload=payload)
    if not payload.isdigit():
        raise ProtocolError("Non-digit status response", payload=payload)
    try:
        return enum_cls(int(payload))
    except ValueError:
        raise ProtocolError(f"Invalid {enum_cls.__name__} response value", payload=payload) from None


def parse_number(payload, max_len=config.MAX_NUMERIC_REPLY_LEN):
    """Decode a short decimal reply (brightness, preset)."""
    if not payload or len(payload) > max_len:
        raise ProtocolError(f"Unexpected numeric response length {len(payload)}", payload=payload)
    if not payload.isdigit():
        raise ProtocolError("Non-numeric response", payload=payload)
    return int(payload)
