"""
BCS encoding for Sui programmable transactions.

sui_devInspectTransactionBlock takes a base64 TransactionKind, so a batch
of Move calls has to be serialized locally. Only what read-only claim
queries need is covered: shared-object and pure-address inputs, MoveCall
commands and full Move type tags.

Usage:
    ptb = ProgrammableTransactionBuilder()
    registry = ptb.shared_object(REGISTRY_ID, initial_shared_version=42)
    owner = ptb.pure_address(address)
    ptb.move_call(PKG, "repay", "get_claim_amount", [asset_type], [registry, owner])
    tx_bytes = ptb.to_base64()
"""

import base64
import re
import struct
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

ADDRESS_LENGTH = 32

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")
_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

# TypeTag enum variants
PRIMITIVE_TAGS = {
    "bool": 0,
    "u8": 1,
    "u64": 2,
    "u128": 3,
    "address": 4,
    "signer": 5,
    "u16": 8,
    "u32": 9,
    "u256": 10,
}
VECTOR_TAG = 6
STRUCT_TAG = 7

# Enum variants used below
TRANSACTION_KIND_PROGRAMMABLE = 0
CALL_ARG_PURE = 0
CALL_ARG_OBJECT = 1
OBJECT_ARG_SHARED = 1
COMMAND_MOVE_CALL = 0
ARGUMENT_INPUT = 1


# =============================================================================
# PRIMITIVES
# =============================================================================

def uleb128(value: int) -> bytes:
    if value < 0:
        raise ValueError("ULEB128 cannot encode negative values")
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def encode_u16(value: int) -> bytes:
    return struct.pack("<H", value)


def encode_u64(value: int) -> bytes:
    return struct.pack("<Q", value)


def encode_bool(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def encode_bytes(data: bytes) -> bytes:
    return uleb128(len(data)) + data


def encode_str(text: str) -> bytes:
    return encode_bytes(text.encode("utf-8"))


def encode_vec(items: Sequence[bytes]) -> bytes:
    return uleb128(len(items)) + b"".join(items)


def normalize_address(address: str) -> str:
    """'0x2' -> '0x000...002' (64 hex chars, lower case)"""
    text = address.strip()
    if text.lower().startswith("0x"):
        text = text[2:]
    if not text or not _HEX_RE.match(text) or len(text) > ADDRESS_LENGTH * 2:
        raise ValueError(f"Invalid Sui address: {address!r}")
    return "0x" + text.lower().rjust(ADDRESS_LENGTH * 2, "0")


def encode_address(address: str) -> bytes:
    return bytes.fromhex(normalize_address(address)[2:])


# =============================================================================
# MOVE TYPE TAGS
# =============================================================================

@dataclass(frozen=True)
class StructTag:
    address: str
    module: str
    name: str
    type_params: Tuple["TypeTag", ...] = ()

    def __str__(self) -> str:
        base = f"{self.address}::{self.module}::{self.name}"
        if self.type_params:
            base += "<" + ", ".join(str(t) for t in self.type_params) + ">"
        return base

    def encode(self) -> bytes:
        return (
            encode_address(self.address)
            + encode_str(self.module)
            + encode_str(self.name)
            + encode_vec([t.encode() for t in self.type_params])
        )


@dataclass(frozen=True)
class TypeTag:
    kind: str                               # primitive name, "vector" or "struct"
    element: Optional["TypeTag"] = None     # vector<element>
    struct: Optional[StructTag] = None

    def __str__(self) -> str:
        if self.kind == "vector":
            return f"vector<{self.element}>"
        if self.kind == "struct":
            return str(self.struct)
        return self.kind

    def encode(self) -> bytes:
        if self.kind == "vector":
            return uleb128(VECTOR_TAG) + self.element.encode()
        if self.kind == "struct":
            return uleb128(STRUCT_TAG) + self.struct.encode()
        return uleb128(PRIMITIVE_TAGS[self.kind])


class _TypeParser:
    """Recursive descent over a Move type string"""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def error(self, message: str) -> ValueError:
        return ValueError(f"{message} at {self.pos} in type {self.text!r}")

    def skip_ws(self):
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def expect(self, token: str):
        self.skip_ws()
        if not self.text.startswith(token, self.pos):
            raise self.error(f"Expected {token!r}")
        self.pos += len(token)

    def peek(self, token: str) -> bool:
        self.skip_ws()
        return self.text.startswith(token, self.pos)

    def ident(self) -> str:
        self.skip_ws()
        match = _IDENT_RE.match(self.text, self.pos)
        if not match:
            raise self.error("Expected identifier")
        self.pos = match.end()
        return match.group(0)

    def parse(self) -> TypeTag:
        tag = self.type_tag()
        self.skip_ws()
        if self.pos != len(self.text):
            raise self.error("Trailing input")
        return tag

    def type_tag(self) -> TypeTag:
        self.skip_ws()
        if self.peek("0x") or self.peek("0X"):
            return TypeTag("struct", struct=self.struct_tag())

        word = self.ident()
        if word == "vector":
            self.expect("<")
            element = self.type_tag()
            self.expect(">")
            return TypeTag("vector", element=element)
        if word in PRIMITIVE_TAGS:
            return TypeTag(word)
        raise self.error(f"Unknown type {word!r}")

    def struct_tag(self) -> StructTag:
        self.skip_ws()
        start = self.pos
        self.pos += 2
        while self.pos < len(self.text) and self.text[self.pos] in "0123456789abcdefABCDEF":
            self.pos += 1
        address = normalize_address(self.text[start:self.pos])
        self.expect("::")
        module = self.ident()
        self.expect("::")
        name = self.ident()

        params: List[TypeTag] = []
        if self.peek("<"):
            self.expect("<")
            params.append(self.type_tag())
            while self.peek(","):
                self.expect(",")
                params.append(self.type_tag())
            self.expect(">")
        return StructTag(address, module, name, tuple(params))


def parse_type_tag(text: str) -> TypeTag:
    """Parse '0x2::coin::Coin<0x2::sui::SUI>' style strings."""
    return _TypeParser(text).parse()


def split_type_params(text: str) -> List[str]:
    """Top-level generic parameters of a struct type, canonicalized."""
    tag = parse_type_tag(text)
    if tag.kind != "struct":
        return []
    return [str(t) for t in tag.struct.type_params]


def normalize_type(text: str) -> str:
    """Canonical long-address rendering; unparseable input is returned stripped."""
    try:
        return str(parse_type_tag(text))
    except ValueError:
        return text.strip()


# =============================================================================
# PROGRAMMABLE TRANSACTION BUILDER
# =============================================================================

TypeArg = Union[str, TypeTag]


class ProgrammableTransactionBuilder:
    """
    Collects inputs and MoveCall commands, then serializes a
    TransactionKind::ProgrammableTransaction. Identical inputs share one slot.
    """

    def __init__(self):
        self.inputs: List[bytes] = []
        self.commands: List[bytes] = []
        self._input_index: Dict[bytes, int] = {}

    def _add_input(self, encoded: bytes) -> int:
        if encoded not in self._input_index:
            self._input_index[encoded] = len(self.inputs)
            self.inputs.append(encoded)
        return self._input_index[encoded]

    def shared_object(self, object_id: str, initial_shared_version: int, mutable: bool = False) -> int:
        encoded = (
            uleb128(CALL_ARG_OBJECT)
            + uleb128(OBJECT_ARG_SHARED)
            + encode_address(object_id)
            + encode_u64(initial_shared_version)
            + encode_bool(mutable)
        )
        return self._add_input(encoded)

    def pure_address(self, address: str) -> int:
        return self._add_input(uleb128(CALL_ARG_PURE) + encode_bytes(encode_address(address)))

    def move_call(
        self,
        package: str,
        module: str,
        function: str,
        type_arguments: Sequence[TypeArg] = (),
        arguments: Sequence[int] = (),
    ) -> int:
        """
        Add a MoveCall whose arguments are input slots.
        Returns the command index.
        """
        tags = [t if isinstance(t, TypeTag) else parse_type_tag(t) for t in type_arguments]
        for arg in arguments:
            if not 0 <= arg < len(self.inputs):
                raise ValueError(f"Unknown input slot {arg}")

        encoded = (
            uleb128(COMMAND_MOVE_CALL)
            + encode_address(package)
            + encode_str(module)
            + encode_str(function)
            + encode_vec([t.encode() for t in tags])
            + encode_vec([uleb128(ARGUMENT_INPUT) + encode_u16(a) for a in arguments])
        )
        self.commands.append(encoded)
        return len(self.commands) - 1

    def build_kind(self) -> bytes:
        return (
            uleb128(TRANSACTION_KIND_PROGRAMMABLE)
            + encode_vec(self.inputs)
            + encode_vec(self.commands)
        )

    def to_base64(self) -> str:
        return base64.b64encode(self.build_kind()).decode("ascii")
