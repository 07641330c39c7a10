"""
omni_core.errors
----------------
The OMNI error taxonomy, shared by every component of a node.

Errors carry a numeric code, an optional message template and a mapping of
named fields. Codes are partitioned by range:

    0-999        transport / unexpected errors
    1000-1999    malformed or unauthorized requests
    2000-2999    server errors
    10000+       application-defined errors (always carry a message)

Rendering substitutes ``{name}`` with the matching field (empty when
missing); ``{{`` and ``}}`` are literal braces.
"""

from __future__ import annotations
import enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

from .constants import RESERVED_OMNI_ERROR_CODE
from .utils import packb, unpackb


class DecodeError(ValueError):
    """Bytes on the wire are truncated or have the wrong shape."""


class ErrorCode(enum.IntEnum):
    # 0-999: unexpected or transport errors
    UNKNOWN = 0
    MESSAGE_TOO_LONG = 1
    # 1000-1999: request errors
    INVALID_METHOD_NAME = 1000
    INVALID_FROM_IDENTITY = 1001
    COULD_NOT_VERIFY_SIGNATURE = 1002
    UNKNOWN_DESTINATION = 1003
    EMPTY_ENVELOPE = 1004
    # 2000-2999: server errors
    INTERNAL_SERVER_ERROR = 2000


ERROR_TEMPLATES: Mapping[int, str] = MappingProxyType({
    ErrorCode.UNKNOWN: "Unknown error.",
    ErrorCode.MESSAGE_TOO_LONG: "Message is too long. Max allowed size is {max} bytes.",
    ErrorCode.INVALID_METHOD_NAME: 'Invalid method name: "{method}".',
    ErrorCode.INVALID_FROM_IDENTITY: "The identity of the from field is invalid or unexpected.",
    ErrorCode.COULD_NOT_VERIFY_SIGNATURE: "Signature does not match the public key.",
    ErrorCode.UNKNOWN_DESTINATION: 'Unknown destination for message.\nThis is "{this}", message was for "{to}".',
    ErrorCode.EMPTY_ENVELOPE: "An envelope must contain a payload.",
    ErrorCode.INTERNAL_SERVER_ERROR: "An internal server error happened.",
})


class ErrorCategory(str, enum.Enum):
    TRANSPORT = "transport"
    REQUEST = "request"
    SERVER = "server"
    RESERVED = "reserved"
    APPLICATION = "application"


def error_category(code: int) -> ErrorCategory:
    if code < 0:
        raise ValueError(f"error codes are unsigned: {code}")
    if code >= RESERVED_OMNI_ERROR_CODE:
        return ErrorCategory.APPLICATION
    if code < 1000:
        return ErrorCategory.TRANSPORT
    if code < 2000:
        return ErrorCategory.REQUEST
    if code < 3000:
        return ErrorCategory.SERVER
    return ErrorCategory.RESERVED


def is_application_specific(code: int) -> bool:
    return code >= RESERVED_OMNI_ERROR_CODE


def render_template(template: str, fields: Mapping[str, Any]) -> str:
    """Render ``template`` in a single left-to-right pass. Never fails."""
    out = []
    i, n = 0, len(template)
    while i < n:
        ch = template[i]
        if ch == "{" and template.startswith("{{", i):
            out.append("{")
            i += 2
        elif ch == "}" and template.startswith("}}", i):
            out.append("}")
            i += 2
        elif ch == "{":
            end = template.find("}", i + 1)
            if end < 0:
                # no closing brace: literal
                out.append(ch)
                i += 1
                continue
            out.append(str(fields.get(template[i + 1:end], "")))
            i = end + 1
        else:
            out.append(ch)
            i += 1
    return "".join(out)


class OmniError(Exception):
    """A protocol error with a numeric code and templated message."""

    def __init__(self, code: int = ErrorCode.UNKNOWN, message: Optional[str] = None,
                 fields: Optional[Mapping[str, Any]] = None):
        code = int(code)
        if code < 0:
            raise ValueError(f"error codes are unsigned: {code}")
        if is_application_specific(code):
            if message is None:
                raise ValueError(f"application error {code} requires a message")
        elif code not in ERROR_TEMPLATES:
            raise ValueError(f"unregistered error code {code}")
        self._code = code
        self._message = message
        self._fields = MappingProxyType(
            {str(k): str(v) for k, v in sorted((fields or {}).items())}
        )
        super().__init__(code, message, dict(self._fields))

    @property
    def code(self) -> int:
        return self._code

    @property
    def message(self) -> Optional[str]:
        return self._message

    @property
    def fields(self) -> Mapping[str, str]:
        return self._fields

    @property
    def category(self) -> ErrorCategory:
        return error_category(self._code)

    @property
    def template(self) -> str:
        if self._message is not None:
            return self._message
        return ERROR_TEMPLATES.get(self._code, "Invalid error code.")

    def is_application_specific(self) -> bool:
        return is_application_specific(self._code)

    def __str__(self) -> str:
        return render_template(self.template, self._fields)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self._code}, message={self._message!r}, fields={dict(self._fields)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OmniError):
            return NotImplemented
        return (self._code, self._message, dict(self._fields)) == (
            other._code, other._message, dict(other._fields))

    def __hash__(self) -> int:
        return hash((self._code, self._message, tuple(self._fields.items())))

    # ------------------------------------------------------------------
    # Binary form: [code, message?, fields?]
    # ------------------------------------------------------------------
    def to_wire(self) -> list:
        out: list = [self._code]
        if self._message is not None:
            out.append(self._message)
        if self._fields:
            out.append(dict(self._fields))
        return out

    def to_bytes(self) -> bytes:
        return packb(self.to_wire())

    @classmethod
    def from_wire(cls, obj: Any) -> "OmniError":
        if not isinstance(obj, (list, tuple)) or not 1 <= len(obj) <= 3:
            raise DecodeError("error must be an array of 1 to 3 elements")
        code = obj[0]
        if not isinstance(code, int) or isinstance(code, bool) or code < 0:
            raise DecodeError(f"invalid error code: {code!r}")

        message: Optional[str] = None
        fields: Dict[str, str] = {}
        rest = list(obj[1:])
        if rest and isinstance(rest[0], str):
            message = rest.pop(0)
        if rest:
            raw_fields = rest.pop(0)
            if not isinstance(raw_fields, dict) or not all(
                    isinstance(k, str) and isinstance(v, str) for k, v in raw_fields.items()):
                raise DecodeError("error fields must be a map of strings")
            fields = raw_fields
        if rest:
            raise DecodeError("unexpected trailing elements in error")

        if is_application_specific(code):
            if message is None:
                raise DecodeError(f"application error {code} is missing its message")
        elif code not in ERROR_TEMPLATES:
            code = ErrorCode.UNKNOWN
        return cls(code, message, fields)

    @classmethod
    def from_bytes(cls, data: bytes) -> "OmniError":
        try:
            obj = unpackb(data)
        except Exception as e:
            raise DecodeError(f"could not decode error: {e}") from e
        return cls.from_wire(obj)

    # ------------------------------------------------------------------
    # Named constructors for the registry
    # ------------------------------------------------------------------
    @classmethod
    def unknown(cls) -> "OmniError":
        return cls(ErrorCode.UNKNOWN)

    @classmethod
    def message_too_long(cls, max) -> "OmniError":
        return cls(ErrorCode.MESSAGE_TOO_LONG, fields={"max": max})

    @classmethod
    def invalid_method_name(cls, method) -> "OmniError":
        return cls(ErrorCode.INVALID_METHOD_NAME, fields={"method": method})

    @classmethod
    def invalid_from_identity(cls) -> "OmniError":
        return cls(ErrorCode.INVALID_FROM_IDENTITY)

    @classmethod
    def could_not_verify_signature(cls) -> "OmniError":
        return cls(ErrorCode.COULD_NOT_VERIFY_SIGNATURE)

    @classmethod
    def unknown_destination(cls, to, this) -> "OmniError":
        return cls(ErrorCode.UNKNOWN_DESTINATION, fields={"to": to, "this": this})

    @classmethod
    def empty_envelope(cls) -> "OmniError":
        return cls(ErrorCode.EMPTY_ENVELOPE)

    @classmethod
    def internal_server_error(cls) -> "OmniError":
        return cls(ErrorCode.INTERNAL_SERVER_ERROR)

    @classmethod
    def application_specific(cls, code: int, message: str,
                             fields: Optional[Mapping[str, Any]] = None) -> "OmniError":
        if not is_application_specific(code):
            raise ValueError(
                f"application codes start at {RESERVED_OMNI_ERROR_CODE}, got {code}")
        return cls(code, message, fields)


class MissingKeyId(OmniError):
    """The envelope has no ``kid`` header. Reported on the wire as 1002."""

    def __init__(self):
        super().__init__(ErrorCode.COULD_NOT_VERIFY_SIGNATURE)


class InvalidKeyId(OmniError):
    """The ``kid`` header is not an identity. Reported on the wire as 1002."""

    def __init__(self):
        super().__init__(ErrorCode.COULD_NOT_VERIFY_SIGNATURE)


def define_application_error(code: int, template: str, *field_names: str) -> Callable[..., OmniError]:
    """Build a constructor for an application error code.

    >>> insufficient = define_application_error(10001, "Need {amount}.", "amount")
    >>> str(insufficient(amount=3))
    'Need 3.'
    """
    if not is_application_specific(code):
        raise ValueError(f"application codes start at {RESERVED_OMNI_ERROR_CODE}, got {code}")

    def build(*args: Any, **kwargs: Any) -> OmniError:
        if len(args) > len(field_names):
            raise TypeError(f"expected at most {len(field_names)} positional fields")
        values = dict(zip(field_names, args))
        unknown = set(kwargs) - set(field_names)
        if unknown:
            raise TypeError(f"unknown fields: {sorted(unknown)}")
        values.update(kwargs)
        return OmniError(code, template, values)

    build.code = code
    build.template = template
    return build
