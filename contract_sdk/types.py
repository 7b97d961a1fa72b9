"""
Validated identifier types for contract interactions.

Values are checked when they are constructed, so an instance of any of these
types is always well formed. Validation is syntactic only; it does not check
that a contract exists on-chain.
"""
import re
from dataclasses import dataclass
from typing import Any, List, Union

from eth_abi import is_encodable_type
from web3 import Web3

from .exceptions import (
    EncodingError, InvalidContractAddress, InvalidDataKey, InvalidFunctionName
)

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
# name(type,type,...) with no whitespace, as used for selectors
SIGNATURE_PATTERN = re.compile(r"^([A-Za-z_$][A-Za-z0-9_$]*)\((.*)\)$")
SIGNATURE_TYPES_PATTERN = re.compile(r"^[A-Za-z0-9_\[\](),]*$")


def split_signature_types(types: str) -> List[str]:
    """Split 'a,(b,c)[],d' at top-level commas"""
    if not types:
        return []
    parts, depth, current = [], 0, ""
    for char in types:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += char
    parts.append(current)
    return parts


def _split_identifier(value: Any) -> str:
    """Return the bare name of an identifier or signature, or '' if malformed."""
    if not isinstance(value, str):
        return ""
    match = SIGNATURE_PATTERN.fullmatch(value)
    if match:
        name, types = match.groups()
        if not SIGNATURE_TYPES_PATTERN.fullmatch(types):
            return ""
        if not all(t and is_encodable_type(t) for t in split_signature_types(types)):
            return ""
        return name
    if IDENTIFIER_PATTERN.fullmatch(value):
        return value
    return ""


def checksum_addresses(abi_type: str, value: Any) -> Any:
    """
    Convert decoded addresses to their EIP-55 form.

    Walks arrays and tuples so nested addresses are converted too; every
    other value is returned unchanged.
    """
    if abi_type.endswith("]"):
        element_type = abi_type[:abi_type.rindex("[")]
        return type(value)(checksum_addresses(element_type, item) for item in value)
    if abi_type.startswith("("):
        components = split_signature_types(abi_type[1:-1])
        return tuple(checksum_addresses(t, item) for t, item in zip(components, value))
    if abi_type == "address" and isinstance(value, str):
        return Web3.to_checksum_address(value)
    return value


@dataclass(frozen=True)
class ContractAddress:
    """
    Address of a deployed contract.

    Accepts ``0x`` followed by 40 hex characters. All-lowercase and
    all-uppercase forms are accepted; mixed case must be a valid EIP-55
    checksum. The stored value is always the checksum form.
    """
    value: str

    def __post_init__(self):
        raw = self.value
        if isinstance(raw, ContractAddress):
            raw = raw.value
        if not isinstance(raw, str) or not raw:
            raise InvalidContractAddress("Contract address must be a non-empty string")
        candidate = raw
        if not ADDRESS_PATTERN.fullmatch(candidate):
            raise InvalidContractAddress(
                f"Contract address must be 0x followed by 40 hex characters, got: {raw!r}"
            )
        body = candidate[2:]
        if body != body.lower() and body != body.upper() and not Web3.is_checksum_address(candidate):
            raise InvalidContractAddress(f"Contract address has an invalid EIP-55 checksum: {raw}")
        object.__setattr__(self, "value", Web3.to_checksum_address(candidate))

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class FunctionName:
    """
    Name of a contract function.

    Either a bare Solidity identifier (``transfer``) or a canonical signature
    (``transfer(address,uint256)``).
    """
    value: str

    def __post_init__(self):
        raw = self.value.value if isinstance(self.value, FunctionName) else self.value
        if not raw or not _split_identifier(raw):
            raise InvalidFunctionName(f"Invalid function name: {raw!r}")
        object.__setattr__(self, "value", raw)

    @property
    def name(self) -> str:
        return _split_identifier(self.value)

    @property
    def is_signature(self) -> bool:
        return "(" in self.value

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class DataKey:
    """Key of a contract value: a public getter or a view function name."""
    value: str

    def __post_init__(self):
        raw = self.value.value if isinstance(self.value, DataKey) else self.value
        if not raw or not _split_identifier(raw):
            raise InvalidDataKey(f"Invalid data key: {raw!r}")
        object.__setattr__(self, "value", raw)

    @property
    def name(self) -> str:
        return _split_identifier(self.value)

    def as_function_name(self) -> FunctionName:
        return FunctionName(self.value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Param:
    """A typed call parameter, e.g. ``Param("uint256", 10)``."""
    abi_type: str
    value: Any


def validate_gas_limit(gas_limit: Any, field: str = "Gas limit") -> int:
    """
    Check that a gas limit (or another wei amount) is a non-negative integer.

    Raises:
        EncodingError: If the value is not a non-negative int
    """
    if isinstance(gas_limit, bool) or not isinstance(gas_limit, int):
        raise EncodingError(f"{field} must be an integer, got {type(gas_limit).__name__}")
    if gas_limit < 0:
        raise EncodingError(f"{field} must be non-negative, got {gas_limit}")
    return gas_limit


AddressLike = Union[str, ContractAddress]
FunctionNameLike = Union[str, FunctionName]
DataKeyLike = Union[str, DataKey]
