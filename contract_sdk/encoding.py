"""
ABI encoding of contract calls.

Turns a function name and an ordered list of typed parameters into the call
data an EVM contract expects: a 4-byte selector followed by the ABI-encoded
arguments.
"""
import json
import logging
import pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi import is_encodable, is_encodable_type
from eth_abi.exceptions import DecodingError as AbiDecodingError
from eth_abi.exceptions import EncodingError as AbiEncodingError
from web3 import Web3

from .exceptions import EncodingError
from .types import FunctionName, FunctionNameLike, Param, checksum_addresses, split_signature_types

SELECTOR_LENGTH = 4

ParamLike = Union[Param, Tuple[str, Any], Any]


def _canonical_type(entry: Dict[str, Any]) -> str:
    """Canonical type string of an ABI input/output, expanding tuples"""
    abi_type = entry.get("type", "")
    if abi_type.startswith("tuple"):
        inner = ",".join(_canonical_type(c) for c in entry.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


def function_selector(signature: str) -> bytes:
    """First 4 bytes of the keccak-256 hash of a canonical signature"""
    return bytes(Web3.keccak(text=signature)[:SELECTOR_LENGTH])


@dataclass(frozen=True)
class AbiFunction:
    """A function entry from a contract ABI"""
    name: str
    input_types: Tuple[str, ...]
    output_types: Tuple[str, ...] = ()
    state_mutability: str = "nonpayable"

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.input_types)})"

    @property
    def selector(self) -> bytes:
        return function_selector(self.signature)

    @property
    def is_read_only(self) -> bool:
        return self.state_mutability in ("view", "pure")


class ContractAbi:
    """
    Lookup table over a contract's JSON ABI.

    Accepts the list-of-dicts format produced by solc, Foundry and Hardhat.
    """

    def __init__(self, entries: Iterable[Dict[str, Any]]):
        self.entries = list(entries)
        self.functions: List[AbiFunction] = []
        for entry in self.entries:
            if not isinstance(entry, dict) or entry.get("type", "function") != "function":
                continue
            if "name" not in entry:
                raise EncodingError(f"ABI function entry without a name: {entry}")
            self.functions.append(AbiFunction(
                name=entry["name"],
                input_types=tuple(_canonical_type(i) for i in entry.get("inputs", [])),
                output_types=tuple(_canonical_type(o) for o in entry.get("outputs", [])),
                state_mutability=entry.get("stateMutability", "nonpayable"),
            ))

    @classmethod
    def from_file(cls, path: Union[str, pathlib.Path]) -> "ContractAbi":
        """
        Load an ABI from a JSON file.

        The file may hold a bare ABI list or a build artifact with an
        ``"abi"`` key.

        Raises:
            FileNotFoundError: If the file does not exist
            EncodingError: If the file holds no ABI
        """
        path = pathlib.Path(path)
        with path.open("r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except ValueError as e:
                raise EncodingError(f"Invalid ABI JSON in {path}: {e}") from e
        if isinstance(data, dict):
            data = data.get("abi")
        if not isinstance(data, list):
            raise EncodingError(f"No ABI list found in {path}")
        return cls(data)

    def find_function(self, function_name: FunctionNameLike, arity: Optional[int] = None) -> AbiFunction:
        """
        Resolve a function by bare name or full signature.

        Args:
            function_name: Bare name or canonical signature
            arity: Number of arguments, used to pick between overloads

        Raises:
            EncodingError: If the function is unknown or the name is ambiguous
        """
        fn = FunctionName(function_name)
        if fn.is_signature:
            for candidate in self.functions:
                if candidate.signature == fn.value:
                    return candidate
            raise EncodingError(f"Unknown function signature: {fn.value}")

        candidates = [f for f in self.functions if f.name == fn.name]
        if not candidates:
            raise EncodingError(f"Unknown function: {fn.name}")
        if len(candidates) > 1 and arity is not None:
            candidates = [f for f in candidates if len(f.input_types) == arity]
        if not candidates:
            raise EncodingError(f"No overload of {fn.name} takes {arity} arguments")
        if len(candidates) > 1:
            signatures = ", ".join(c.signature for c in candidates)
            raise EncodingError(f"Ambiguous function {fn.name}; use a full signature: {signatures}")
        return candidates[0]


@dataclass(frozen=True)
class EncodedCall:
    """Call data ready to be sent to a node"""
    signature: str
    selector: bytes
    data: bytes
    input_types: Tuple[str, ...]
    output_types: Tuple[str, ...] = field(default=())

    @property
    def data_hex(self) -> str:
        return "0x" + self.data.hex()


class CallEncoder:
    """
    Encodes function calls into ABI call data.

    Without an ABI every parameter must carry its type, either as a Param or
    as an ``(abi_type, value)`` tuple, and the signature is derived from those
    types. With an ABI, bare values take their types from the ABI entry, and
    an ``(abi_type, value)`` tuple is read as typed only when its type matches
    the declared one; any other tuple is passed on as a bare tuple value.
    """

    def __init__(self, abi: Optional[Union[ContractAbi, List[Dict[str, Any]]]] = None,
                 logger: Optional[logging.Logger] = None):
        if abi is not None and not isinstance(abi, ContractAbi):
            abi = ContractAbi(abi)
        self.abi = abi
        self.logger = logger or logging.getLogger(__name__)

    def encode_call(self, function_name: FunctionNameLike, params: Sequence[ParamLike] = (),
                    abi: Optional[ContractAbi] = None) -> EncodedCall:
        """
        Encode a function call.

        Args:
            function_name: Bare name or canonical signature
            params: Ordered parameters
            abi: ABI overriding the encoder's own

        Returns:
            EncodedCall with selector and full call data

        Raises:
            EncodingError: If types and values disagree, a type is invalid,
                or the function cannot be resolved
        """
        fn = FunctionName(function_name)
        params = list(params)
        abi = abi if abi is not None else self.abi
        if abi is not None and not isinstance(abi, ContractAbi):
            abi = ContractAbi(abi)

        output_types: Tuple[str, ...] = ()
        if abi is not None:
            abi_fn = abi.find_function(fn, arity=len(params))
            if len(abi_fn.input_types) != len(params):
                raise EncodingError(
                    f"{abi_fn.signature} takes {len(abi_fn.input_types)} arguments, got {len(params)}"
                )
            typed = [self._typed_param(p, declared) for p, declared in zip(params, abi_fn.input_types)]
            name = abi_fn.name
            output_types = abi_fn.output_types
        else:
            typed = [self._typed_param(p) for p in params]
            name = fn.name

        input_types = tuple(p.abi_type for p in typed)
        signature = f"{name}({','.join(input_types)})"
        if fn.is_signature and fn.value != signature:
            raise EncodingError(f"Signature {fn.value} does not match parameter types {signature}")

        for index, p in enumerate(typed):
            if not is_encodable_type(p.abi_type):
                raise EncodingError(f"Parameter {index}: unknown ABI type {p.abi_type!r}")
            if not is_encodable(p.abi_type, p.value):
                raise EncodingError(
                    f"Parameter {index}: value {p.value!r} is not a valid {p.abi_type}"
                )

        try:
            args = abi_encode(list(input_types), [p.value for p in typed])
        except (AbiEncodingError, TypeError, ValueError) as e:
            raise EncodingError(f"Failed to encode {signature}: {e}") from e

        selector = function_selector(signature)
        self.logger.debug(f"Encoded {signature} ({len(args)} argument bytes)")
        return EncodedCall(
            signature=signature,
            selector=selector,
            data=selector + args,
            input_types=input_types,
            output_types=output_types,
        )

    def decode_call_data(self, data: Union[bytes, str], input_types: Optional[Sequence[str]] = None,
                         function_name: Optional[FunctionNameLike] = None) -> List[Param]:
        """
        Decode call data back into typed parameters.

        The input types come from ``input_types``, from a signature given as
        ``function_name``, or from the encoder's ABI by matching the selector.

        Raises:
            EncodingError: If the types cannot be determined or the data is malformed
        """
        raw = _to_bytes(data)
        if len(raw) < SELECTOR_LENGTH:
            raise EncodingError("Call data is shorter than a function selector")
        selector, body = raw[:SELECTOR_LENGTH], raw[SELECTOR_LENGTH:]

        if input_types is None and function_name is not None:
            fn = FunctionName(function_name)
            if not fn.is_signature:
                raise EncodingError(f"A full signature is required to decode call data, got {fn.value}")
            input_types = split_signature_types(fn.value[len(fn.name) + 1:-1])
        if input_types is None and self.abi is not None:
            for abi_fn in self.abi.functions:
                if abi_fn.selector == selector:
                    input_types = abi_fn.input_types
                    break
        if input_types is None:
            raise EncodingError(f"Unknown selector 0x{selector.hex()}")

        try:
            values = abi_decode(list(input_types), body)
        except (AbiDecodingError, TypeError, ValueError) as e:
            raise EncodingError(f"Failed to decode call data: {e}") from e
        return [Param(t, checksum_addresses(t, v)) for t, v in zip(input_types, values)]

    @staticmethod
    def _typed_param(param: ParamLike, declared: Optional[str] = None) -> Param:
        if isinstance(param, Param):
            typed = param
        elif isinstance(param, tuple) and len(param) == 2 and isinstance(param[0], str) \
                and declared in (None, param[0]):
            typed = Param(param[0], param[1])
        elif declared is not None:
            return Param(declared, param)
        else:
            raise EncodingError(
                f"Cannot infer the ABI type of {param!r}; pass a Param or provide an ABI"
            )
        if declared is not None and typed.abi_type != declared:
            raise EncodingError(f"Parameter declared as {typed.abi_type} but ABI expects {declared}")
        return typed


def _to_bytes(data: Union[bytes, str]) -> bytes:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str):
        text = data[2:] if data.startswith("0x") else data
        try:
            return bytes.fromhex(text)
        except ValueError as e:
            raise EncodingError(f"Invalid hex data: {e}") from e
    raise EncodingError(f"Expected bytes or hex string, got {type(data).__name__}")
