"""Wire-format runtime shared by proto2wire generated codecs.

This module is copied verbatim next to the generated message modules (as
``_pb_runtime.py`` by default), so it imports nothing outside the standard
library and nothing from :mod:`proto2wire` itself.

Message values follow the proto3 JSON conventions:

* 64-bit integers (``int64``, ``uint64``, ``sint64``, ``fixed64``,
  ``sfixed64``) are base-10 strings and are only ever manipulated with the
  long-arithmetic helpers below (``decimal_add``, ``decimal_divmod`` ...);
* 32-bit integers are plain ``int`` values;
* ``bytes`` are base64 text;
* enums are their value names.

Readers return ``(value, next_cursor)``. On truncated or malformed input they
return ``(None, cursor)``, i.e. the cursor does not advance, which generated
decoders treat as the end of the message.
"""

from __future__ import annotations

import base64
import binascii
import math
import re
import struct
from collections.abc import Mapping

UNKNOWN_FIELDS_KEY = "__pb_unknown"

WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LENGTH_DELIMITED = 2
WIRE_START_GROUP = 3
WIRE_END_GROUP = 4
WIRE_FIXED32 = 5

TWO_POW_31 = 2147483648
TWO_POW_32 = 4294967296
INT32_MAX = "2147483647"
UINT32_MAX = "4294967295"
INT64_MAX = "9223372036854775807"
UINT64_MODULUS = "18446744073709551616"

_ZERO = ord("0")
_MAX_VARINT_BYTES = 10
_DECIMAL_PATTERN = re.compile(r"^[+-]?[0-9]+$")
_FLOAT32_PACKER = struct.Struct("<f")
_FLOAT64_PACKER = struct.Struct("<d")
_UINT32_PACKER = struct.Struct("<I")
_INT32_PACKER = struct.Struct("<i")


# Decimal string arithmetic -------------------------------------------------
def trim_leading_zeros(value) -> str:
    """Canonicalize an unsigned decimal string; ``"0"`` is the only zero."""

    if value is None:
        return "0"
    trimmed = str(value).lstrip("0")
    return trimmed or "0"


def decimal_compare(a, b) -> int:
    """Compare two unsigned decimal strings by magnitude, returning -1, 0 or 1."""

    left = trim_leading_zeros(a)
    right = trim_leading_zeros(b)
    if len(left) != len(right):
        return 1 if len(left) > len(right) else -1
    if left == right:
        return 0
    # Equal-length digit strings order lexicographically.
    return 1 if left > right else -1


def decimal_add(a, b) -> str:
    """Add two non-negative decimal strings."""

    left = trim_leading_zeros(a)
    right = trim_leading_zeros(b)
    digits = []
    carry = 0
    i = len(left) - 1
    j = len(right) - 1
    while i >= 0 or j >= 0 or carry:
        total = carry
        if i >= 0:
            total += ord(left[i]) - _ZERO
            i -= 1
        if j >= 0:
            total += ord(right[j]) - _ZERO
            j -= 1
        digits.append(chr(total % 10 + _ZERO))
        carry = total // 10
    return trim_leading_zeros("".join(reversed(digits)))


def decimal_subtract(a, b) -> str:
    """Return ``a - b`` for decimal strings with ``a >= b``; ``"0"`` otherwise."""

    if decimal_compare(a, b) < 0:
        return "0"
    left = trim_leading_zeros(a)
    right = trim_leading_zeros(b)
    digits = []
    borrow = 0
    j = len(right) - 1
    for i in range(len(left) - 1, -1, -1):
        digit = ord(left[i]) - _ZERO - borrow
        if j >= 0:
            digit -= ord(right[j]) - _ZERO
            j -= 1
        if digit < 0:
            digit += 10
            borrow = 1
        else:
            borrow = 0
        digits.append(chr(digit + _ZERO))
    return trim_leading_zeros("".join(reversed(digits)))


def decimal_multiply_by_small(value, factor: int) -> str:
    """Multiply a decimal string by a small non-negative integer factor."""

    base = trim_leading_zeros(value)
    if factor <= 0 or base == "0":
        return "0"
    digits = []
    carry = 0
    for i in range(len(base) - 1, -1, -1):
        total = (ord(base[i]) - _ZERO) * factor + carry
        digits.append(chr(total % 10 + _ZERO))
        carry = total // 10
    while carry:
        digits.append(chr(carry % 10 + _ZERO))
        carry //= 10
    return trim_leading_zeros("".join(reversed(digits)))


def decimal_divmod(value, divisor: int):
    """Divide a decimal string by a small positive integer.

    Returns ``(quotient, remainder)`` with the quotient as a decimal string and
    the remainder as an ``int``.
    """

    if divisor <= 0:
        raise ZeroDivisionError("decimal_divmod requires a positive divisor")
    remainder = 0
    quotient = []
    for char in trim_leading_zeros(value):
        remainder = remainder * 10 + (ord(char) - _ZERO)
        digit = remainder // divisor
        remainder -= digit * divisor
        if quotient or digit:
            quotient.append(chr(digit + _ZERO))
    return ("".join(quotient) or "0"), remainder


def decimal_to_le_bytes(value, count: int) -> bytearray:
    """Return the low ``count`` bytes of an unsigned decimal, little-endian."""

    current = trim_leading_zeros(value)
    result = bytearray()
    for _ in range(count):
        current, remainder = decimal_divmod(current, 256)
        result.append(remainder)
    return result


def decimal_from_le_bytes(data) -> str:
    """Inverse of :func:`decimal_to_le_bytes` for any number of bytes."""

    result = "0"
    for byte in reversed(bytes(data)):
        result = decimal_add(decimal_multiply_by_small(result, 256), str(byte))
    return result


def parse_decimal(value) -> int:
    """Parse a signed decimal string into an ``int``; non-decimal text is 0."""

    if value is None:
        return 0
    text = str(value).strip()
    if not _DECIMAL_PATTERN.match(text):
        return 0
    return int(text)


# Value normalization -------------------------------------------------------
def normalize_signed_decimal(value) -> str:
    """Normalize an int, float, bool or numeric string to a signed decimal string.

    Floats and float-like strings are truncated toward zero. Anything that is
    not a finite number becomes ``"0"``.
    """

    if value is None:
        return "0"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _float_to_decimal(value)
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("ascii", errors="replace")
    if isinstance(value, str):
        text = value.strip()
        if _DECIMAL_PATTERN.match(text):
            negative = text.startswith("-")
            digits = trim_leading_zeros(text.lstrip("+-"))
            if negative and digits != "0":
                return "-" + digits
            return digits
        try:
            return _float_to_decimal(float(text))
        except ValueError:
            return "0"
    try:
        return str(int(value))
    except (TypeError, ValueError, OverflowError):
        return "0"


def _float_to_decimal(value: float) -> str:
    if not math.isfinite(value):
        return "0"
    return str(int(value))


def normalize_unsigned_decimal(value) -> str:
    """Normalize to an unsigned decimal; negative values wrap to 64-bit two's complement."""

    return to_unsigned64_decimal(normalize_signed_decimal(value))


def to_unsigned64_decimal(signed: str) -> str:
    """Map a signed decimal to its unsigned 64-bit representation.

    Values outside ``[-2**63, 2**64)`` normalize to ``"0"``.
    """

    if signed.startswith("-"):
        magnitude = trim_leading_zeros(signed[1:])
        if decimal_compare(magnitude, decimal_add(INT64_MAX, "1")) > 0:
            return "0"
        return decimal_subtract(UINT64_MODULUS, magnitude)
    unsigned = trim_leading_zeros(signed)
    if decimal_compare(unsigned, UINT64_MODULUS) >= 0:
        return "0"
    return unsigned


def to_signed64_decimal(unsigned) -> str:
    """Reinterpret an unsigned 64-bit decimal as a signed two's-complement decimal."""

    trimmed = trim_leading_zeros(unsigned)
    if decimal_compare(trimmed, INT64_MAX) <= 0:
        return trimmed
    magnitude = decimal_subtract(UINT64_MODULUS, trimmed)
    if magnitude == "0":
        return "0"
    return "-" + magnitude


def to_unsigned32(value: int) -> int:
    return value + TWO_POW_32 if value < 0 else value


def to_signed32(value: int) -> int:
    unsigned = to_unsigned32(value)
    return unsigned - TWO_POW_32 if unsigned >= TWO_POW_31 else unsigned


def to_signed32_from_string(value) -> int:
    """Convert a decoded varint decimal into an int32.

    Negative int32 values arrive either sign-extended to 64 bits (10-byte
    varint) or truncated to 32 bits (5-byte varint); both reduce to the low
    32 bits.
    """

    trimmed = trim_leading_zeros(value)
    if decimal_compare(trimmed, INT32_MAX) <= 0:
        return parse_decimal(trimmed)
    return _INT32_PACKER.unpack(bytes(decimal_to_le_bytes(trimmed, 4)))[0]


def to_unsigned32_from_string(value) -> int:
    trimmed = trim_leading_zeros(value)
    if decimal_compare(trimmed, UINT32_MAX) <= 0:
        return parse_decimal(trimmed)
    return _UINT32_PACKER.unpack(bytes(decimal_to_le_bytes(trimmed, 4)))[0]


# ZigZag --------------------------------------------------------------------
def encode_zigzag32(value: int) -> int:
    return value * 2 if value >= 0 else -value * 2 - 1


def decode_zigzag32(value) -> int:
    """Decode a ZigZag varint (decimal string or int) into a signed 32-bit int."""

    if isinstance(value, int):
        unsigned = value & 0xFFFFFFFF
    else:
        unsigned = to_unsigned32_from_string(value)
    if unsigned % 2 == 0:
        return unsigned // 2
    return -((unsigned + 1) // 2)


def encode_zigzag64(value) -> str:
    signed = normalize_signed_decimal(value)
    if signed.startswith("-"):
        magnitude = trim_leading_zeros(signed[1:])
        encoded = decimal_subtract(decimal_multiply_by_small(magnitude, 2), "1")
    else:
        encoded = decimal_multiply_by_small(signed, 2)
    if decimal_compare(encoded, UINT64_MODULUS) >= 0:
        return "0"
    return encoded


def decode_zigzag64(value) -> str:
    trimmed = trim_leading_zeros(value)
    quotient, remainder = decimal_divmod(trimmed, 2)
    if remainder == 0:
        return quotient
    half, _ = decimal_divmod(decimal_add(trimmed, "1"), 2)
    return "-" + half


# Varints -------------------------------------------------------------------
def varint_bytes_from_decimal(value) -> bytearray:
    """Base-128 encode an unsigned decimal, least significant group first."""

    current = trim_leading_zeros(value)
    groups = []
    while True:
        current, remainder = decimal_divmod(current, 128)
        groups.append(remainder)
        if current == "0":
            break
    result = bytearray()
    for index, group in enumerate(groups):
        if index < len(groups) - 1:
            group |= 0x80
        result.append(group)
    return result


def write_varint64(out: bytearray, value) -> None:
    """Write an int, bool or decimal string as a 64-bit varint."""

    out.extend(varint_bytes_from_decimal(normalize_unsigned_decimal(value)))


def write_varint32(out: bytearray, value: int) -> None:
    """Write a non-negative tag or length; negative values take the 64-bit path."""

    if value < 0:
        write_varint64(out, value)
        return
    while value > 0x7F:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)


def read_varint64(data, cursor: int):
    """Read a varint as an unsigned decimal string."""

    result = "0"
    multiplier = "1"
    index = cursor
    limit = len(data)
    for count in range(_MAX_VARINT_BYTES):
        if index >= limit:
            return None, cursor
        byte = data[index]
        index += 1
        chunk = byte & 0x7F
        if count == _MAX_VARINT_BYTES - 1:
            # Only one payload bit of the tenth byte fits in 64 bits.
            chunk &= 0x01
        if chunk:
            result = decimal_add(result, decimal_multiply_by_small(multiplier, chunk))
        if not byte & 0x80:
            return result, index
        multiplier = decimal_multiply_by_small(multiplier, 128)
    return None, cursor


def read_varint32(data, cursor: int):
    """Read a varint used as a tag or length, keeping the low 32 bits."""

    result = 0
    shift = 0
    index = cursor
    limit = len(data)
    for _ in range(_MAX_VARINT_BYTES):
        if index >= limit:
            return None, cursor
        byte = data[index]
        index += 1
        result |= (byte & 0x7F) << shift
        shift += 7
        if not byte & 0x80:
            return result & 0xFFFFFFFF, index
    return None, cursor


# Fixed width ---------------------------------------------------------------
def write_fixed32(out: bytearray, value: int) -> None:
    out.extend(_UINT32_PACKER.pack(to_unsigned32(value) & 0xFFFFFFFF))


def write_sfixed32(out: bytearray, value: int) -> None:
    out.extend(_INT32_PACKER.pack(to_signed32(value)))


def read_fixed32(data, cursor: int):
    end = cursor + 4
    if end > len(data):
        return None, cursor
    return _UINT32_PACKER.unpack(bytes(data[cursor:end]))[0], end


def read_sfixed32(data, cursor: int):
    end = cursor + 4
    if end > len(data):
        return None, cursor
    return _INT32_PACKER.unpack(bytes(data[cursor:end]))[0], end


def write_fixed64(out: bytearray, value) -> None:
    """Write a signed or unsigned 64-bit decimal as 8 little-endian bytes."""

    out.extend(decimal_to_le_bytes(normalize_unsigned_decimal(value), 8))


def read_fixed64(data, cursor: int):
    end = cursor + 8
    if end > len(data):
        return None, cursor
    return decimal_from_le_bytes(data[cursor:end]), end


def read_sfixed64(data, cursor: int):
    value, end = read_fixed64(data, cursor)
    if value is None:
        return None, cursor
    return to_signed64_decimal(value), end


def write_float(out: bytearray, value) -> None:
    number = coerce_float(value)
    try:
        out.extend(_FLOAT32_PACKER.pack(number))
    except OverflowError:
        out.extend(_FLOAT32_PACKER.pack(math.copysign(math.inf, number)))


def read_float(data, cursor: int):
    end = cursor + 4
    if end > len(data):
        return None, cursor
    return _FLOAT32_PACKER.unpack(bytes(data[cursor:end]))[0], end


def write_double(out: bytearray, value) -> None:
    out.extend(_FLOAT64_PACKER.pack(coerce_float(value)))


def read_double(data, cursor: int):
    end = cursor + 8
    if end > len(data):
        return None, cursor
    return _FLOAT64_PACKER.unpack(bytes(data[cursor:end]))[0], end


# Length-delimited ----------------------------------------------------------
def write_length_delimited(out: bytearray, payload) -> None:
    write_varint32(out, len(payload))
    out.extend(payload)


def read_length_delimited(data, cursor: int):
    length, start = read_varint32(data, cursor)
    if length is None:
        return None, cursor
    end = start + length
    if end > len(data):
        return None, cursor
    return bytes(data[start:end]), end


def read_string(data, cursor: int):
    payload, end = read_length_delimited(data, cursor)
    if payload is None:
        return None, cursor
    return payload.decode("utf-8", errors="replace"), end


def read_bytes(data, cursor: int):
    """Read a length-delimited payload and return it as base64 text."""

    payload, end = read_length_delimited(data, cursor)
    if payload is None:
        return None, cursor
    return to_base64(payload), end


def read_packed(payload, reader):
    """Read every element of a packed payload with ``reader``.

    Stops at the first element that cannot be read, keeping the ones before it.
    """

    values = []
    cursor = 0
    limit = len(payload)
    while cursor < limit:
        value, cursor_next = reader(payload, cursor)
        if value is None or cursor_next <= cursor:
            break
        values.append(value)
        cursor = cursor_next
    return values


# Byte containers -----------------------------------------------------------
def create_byte_buffer() -> bytearray:
    return bytearray()


def to_base64(buffer) -> str:
    return base64.b64encode(bytes(buffer)).decode("ascii")


def from_base64(encoded) -> bytearray:
    """Decode base64 text; raw bytes pass through and malformed text is empty."""

    if encoded is None:
        return bytearray()
    if isinstance(encoded, (bytes, bytearray, memoryview)):
        return bytearray(encoded)
    text = "".join(str(encoded).split())
    text += "=" * (-len(text) % 4)
    try:
        return bytearray(base64.b64decode(text, validate=True))
    except (binascii.Error, ValueError):
        return bytearray()


# Coercion ------------------------------------------------------------------
def coerce_bool(value) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1")
    if isinstance(value, (int, float)):
        return value != 0
    return False


def coerce_int(value) -> int:
    """Truncate any numeric-looking value to an ``int``; other values are 0."""

    return int(normalize_signed_decimal(value))


def coerce_int32(value) -> int:
    number = coerce_int(value)
    if -TWO_POW_31 <= number < TWO_POW_32:
        return to_signed32(number)
    return 0


def coerce_uint32(value) -> int:
    number = coerce_int(value)
    if -TWO_POW_31 <= number < TWO_POW_32:
        return to_unsigned32(number)
    return 0


def coerce_float(value) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0


def coerce_string(value) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def coerce_bytes(value) -> bytes:
    """Accept raw bytes, base64 text or a sequence of byte values."""

    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return bytes(from_base64(value))
    if isinstance(value, (list, tuple)):
        return bytes(coerce_int(item) & 0xFF for item in value)
    return b""


def coerce_enum(value, by_name: Mapping) -> int:
    """Map an enum label (case-insensitive) or number to its wire number.

    Unrecognized labels fall back to 0, the proto3 default.
    """

    if value is None:
        return 0
    if isinstance(value, str):
        text = value.strip()
        if _DECIMAL_PATTERN.match(text):
            return coerce_int32(text)
        return by_name.get(text.upper(), 0)
    return coerce_int32(value)


def enum_name(number: int, by_number: Mapping, default_name):
    """Name of ``number``; unknown numbers fall back to the zero name, then the number."""

    name = by_number.get(str(number))
    if name is not None:
        return name
    if default_name is not None:
        return default_name
    return number


def is_positive_zero(value: float) -> bool:
    return value == 0.0 and math.copysign(1.0, value) > 0


# Generic message access ----------------------------------------------------
def resolve_field_value(keys, container):
    """Return the first non-``None`` value stored under one of ``keys``.

    Mappings are searched by key, any other object by attribute.
    """

    if container is None:
        return None
    if isinstance(container, Mapping):
        for key in keys:
            value = container.get(key)
            if value is not None:
                return value
        return None
    for key in keys:
        value = getattr(container, key, None)
        if value is not None:
            return value
    return None


def iter_repeated(value):
    """Iterate a repeated field value; a lone scalar counts as one element."""

    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return value
    if isinstance(value, (str, bytes, bytearray, Mapping)):
        return (value,)
    try:
        return list(value)
    except TypeError:
        return (value,)


def assign_field_value(keys, message: dict, value) -> None:
    for key in keys:
        message[key] = value


def append_field_value(keys, message: dict, values) -> None:
    for key in keys:
        message.setdefault(key, []).extend(values)


def fill_default(keys, message: dict, value) -> None:
    """Assign ``value`` under ``keys`` unless the field was decoded."""

    if keys and keys[0] in message:
        return
    for key in keys:
        message[key] = list(value) if isinstance(value, list) else value


# Unknown fields ------------------------------------------------------------
def skip_field(data, cursor: int, wire_type: int, field_number: int = 0) -> int:
    """Return the cursor past one field payload, or ``cursor`` if it is malformed."""

    limit = len(data)
    if wire_type == WIRE_VARINT:
        index = cursor
        for _ in range(_MAX_VARINT_BYTES):
            if index >= limit:
                return cursor
            byte = data[index]
            index += 1
            if not byte & 0x80:
                return index
        return cursor
    if wire_type == WIRE_FIXED64:
        return cursor + 8 if cursor + 8 <= limit else cursor
    if wire_type == WIRE_FIXED32:
        return cursor + 4 if cursor + 4 <= limit else cursor
    if wire_type == WIRE_LENGTH_DELIMITED:
        payload, end = read_length_delimited(data, cursor)
        return cursor if payload is None else end
    if wire_type == WIRE_START_GROUP:
        index = cursor
        while index < limit:
            tag, after_tag = read_varint32(data, index)
            if tag is None:
                return cursor
            nested_type = tag & 0x07
            nested_number = tag >> 3
            if nested_type == WIRE_END_GROUP:
                return after_tag if nested_number == field_number else cursor
            after_field = skip_field(data, after_tag, nested_type, nested_number)
            if after_field <= after_tag:
                return cursor
            index = after_field
        return cursor
    return cursor


def attach_unknown_fields(message: dict, unknown) -> None:
    if unknown:
        message[UNKNOWN_FIELDS_KEY] = to_base64(unknown)


def append_unknown_fields(out: bytearray, message) -> None:
    """Re-emit unknown fields preserved by a previous decode."""

    preserved = resolve_field_value((UNKNOWN_FIELDS_KEY,), message)
    if preserved is not None:
        out.extend(coerce_bytes(preserved))
