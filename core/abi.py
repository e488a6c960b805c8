"""
ABI Codec - contract call encoding and result decoding

Encodes read-only contract calls (4-byte selector + 32-byte argument words)
and decodes the raw hex results an eth_call returns.

Design:
- Selector from keccak-256 of the canonical signature (eth_utils)
- Argument words from eth_abi, the same encoder web3 uses internally
- Addresses are accepted case-insensitively: syntax is checked here,
  checksum casing is not required (matches what holders paste in)
- Results are parsed with Python ints, so 256-bit balances never lose precision
"""

import re
import logging

from eth_abi import encode as abi_encode
from eth_abi.exceptions import ABITypeError, EncodingError as AbiEncodingError, ParseError
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from .errors import DecodeError, EncodingError, InvalidAddressError

logger = logging.getLogger("tiers.abi")

ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]{40}")
FUNC_SIG_RE = re.compile(r"([A-Za-z_][A-Za-z0-9_]*)\(([^()]*)\)")
_HEX_BODY_RE = re.compile(r"[0-9a-fA-F]+")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")

# ERC-20 read methods used by the balance oracle
BALANCE_OF_SIGNATURE = "balanceOf(address)"
DECIMALS_SIGNATURE = "decimals()"
SYMBOL_SIGNATURE = "symbol()"


# ============================================================
# ADDRESSES
# ============================================================

def is_valid_address(value) -> bool:
    """True for a 0x-prefixed, 40 hex digit string (any casing)."""
    return isinstance(value, str) and bool(ADDRESS_RE.fullmatch(value))


def normalize_address(value: str) -> str:
    """Validate and return the lower-case form used for equality and storage."""
    if not is_valid_address(value):
        raise InvalidAddressError(value)
    return value.lower()


def display_address(value: str) -> str:
    """EIP-55 checksum form for logs and replies."""
    return to_checksum_address(normalize_address(value))


# ============================================================
# CALL ENCODER
# ============================================================

def parse_signature(signature: str) -> tuple[str, list[str]]:
    """Split `name(type1,type2)` into its name and parameter types."""
    m = FUNC_SIG_RE.fullmatch(signature.replace(" ", ""))
    if not m:
        raise EncodingError(f"malformed function signature: {signature!r}")
    raw_types = m.group(2)
    types = raw_types.split(",") if raw_types else []
    if any(not t for t in types):
        raise EncodingError(f"empty parameter type in signature: {signature!r}")
    return m.group(1), types


def encode_call(signature: str, *args) -> str:
    """
    Build the 0x-prefixed call data for `signature` applied to `args`.

    encode_call("balanceOf(address)", "0xabc...") ->
        "0x70a08231" + 32-byte left-padded address word
    """
    _, types = parse_signature(signature)
    if len(types) != len(args):
        raise EncodingError(
            f"{signature} takes {len(types)} argument(s), got {len(args)}"
        )

    values = []
    for abi_type, value in zip(types, args):
        if abi_type == "address":
            value = normalize_address(value)
        values.append(value)

    canonical = signature.replace(" ", "")
    selector = function_signature_to_4byte_selector(canonical)
    try:
        body = abi_encode(types, values) if types else b""
    except (AbiEncodingError, ABITypeError, ParseError, TypeError, ValueError) as e:
        raise EncodingError(f"cannot encode arguments for {signature}: {e}") from e

    return "0x" + (selector + body).hex()


# ============================================================
# VALUE DECODER
# ============================================================

def _strip_prefix(raw: str) -> str:
    if not isinstance(raw, str):
        raise DecodeError(f"result must be a hex string, got {type(raw).__name__}")
    return raw[2:] if raw[:2] in ("0x", "0X") else raw


def to_integer(raw: str) -> int:
    """Parse a hex result as an unsigned integer of arbitrary width."""
    body = _strip_prefix(raw)
    if not body:
        raise DecodeError("empty result (no return data)")
    if not _HEX_BODY_RE.fullmatch(body):
        raise DecodeError(f"not a hex quantity: {raw[:80]!r}")
    return int(body, 16)


def _abi_string_payload(data: bytes) -> bytes:
    """
    Return the length-prefixed bytes of an ABI-encoded dynamic string,
    or `data` unchanged for bytes32-style (fixed, zero padded) results.
    """
    if len(data) < 64:
        return data
    offset = int.from_bytes(data[:32], "big")
    if offset != 32:
        return data
    length = int.from_bytes(data[32:64], "big")
    if 64 + length > len(data):
        return data
    return data[64:64 + length]


def decode_text_strict(raw: str) -> str:
    """Decode a hex result as UTF-8 text, dropping NUL / C0 / DEL characters."""
    body = _strip_prefix(raw)
    try:
        data = bytes.fromhex(body)
    except ValueError as e:
        raise DecodeError(f"not hex-encoded bytes: {raw[:80]!r}") from e
    try:
        text = _abi_string_payload(data).decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"invalid UTF-8 in text result: {e}") from e
    return _CONTROL_CHARS_RE.sub("", text)


def to_text(raw: str) -> str:
    """Lenient text decode: malformed input yields an empty string."""
    try:
        return decode_text_strict(raw)
    except DecodeError as e:
        logger.debug(f"Text decode fell back to empty string: {e}")
        return ""
