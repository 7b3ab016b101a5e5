# app/errors.py - Relay error taxonomy

from typing import Any, Dict


class RelayError(Exception):
    """Base class for errors scoped to a single relay session"""

    code = "relay_error"
    fatal = True

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_frame(self) -> Dict[str, Any]:
        """Structured error frame sent to the client"""
        return {
            "type": "error",
            "error": {
                "type": self.code,
                "message": self.message,
            },
        }


class UpstreamUnavailable(RelayError):
    """Credential missing, upstream connect failed or never became ready"""

    code = "upstream_unavailable"


class UpstreamProtocolError(RelayError):
    """Upstream emitted an error frame; the session keeps running"""

    code = "upstream_protocol_error"
    fatal = False


class DecodeFailure(RelayError):
    """Malformed audio payload; the chunk is skipped"""

    code = "decode_failure"
    fatal = False


class FrameParseError(RelayError):
    """Frame is not a JSON object with a string type"""

    code = "invalid_frame"
    fatal = False


class ClientDisconnect(RelayError):
    code = "client_disconnect"


class UpstreamDisconnect(RelayError):
    code = "upstream_disconnect"
