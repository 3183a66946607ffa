"""
Compiled contract artifacts and constructor argument encoding.

Artifacts are read from a Hardhat-style output directory (``artifacts-zk``
for zksolc builds): one ``<ContractName>.json`` per contract holding its
ABI, bytecode and, for zksolc, the factory dependencies the contract needs
deployed alongside it.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from eth_abi import encode
from eth_abi.exceptions import EncodingError
from eth_utils import is_hex, to_bytes

from .exceptions import ArgumentMismatchError, ArtifactNotFoundError, InvalidAddressError
from .paymaster import normalize_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContractArtifact:
    """Bytecode and ABI of a compiled contract."""
    contract_name: str
    abi: Tuple[Dict[str, Any], ...]
    bytecode: bytes
    factory_deps: Tuple[bytes, ...] = field(default_factory=tuple)
    source_name: Optional[str] = None

    @property
    def constructor_abi(self) -> Dict[str, Any]:
        """The constructor descriptor; contracts without one take no arguments."""
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return entry
        return {"type": "constructor", "inputs": []}

    @property
    def constructor_types(self) -> List[str]:
        return [_abi_type_string(param) for param in self.constructor_abi.get("inputs", [])]

    @classmethod
    def from_json(cls, data: Dict[str, Any], factory_deps: Sequence[bytes] = ()) -> "ContractArtifact":
        bytecode = data.get("bytecode")
        if isinstance(bytecode, dict):  # solc standard-json shape
            bytecode = bytecode.get("object")
        if not bytecode or bytecode in ("0x", "0x0"):
            raise ArtifactNotFoundError(
                f"Artifact {data.get('contractName', '<unknown>')} has no bytecode "
                f"(abstract contract or interface?)"
            )
        if not bytecode.startswith("0x"):
            bytecode = "0x" + bytecode
        return cls(
            contract_name=data.get("contractName", ""),
            abi=tuple(data.get("abi", [])),
            bytecode=to_bytes(hexstr=bytecode),
            factory_deps=tuple(factory_deps),
            source_name=data.get("sourceName"),
        )


# ---------------------------------------------------------------------------
# Constructor arguments
# ---------------------------------------------------------------------------


def _abi_type_string(param: Dict[str, Any]) -> str:
    """Canonical type string for an ABI parameter, expanding tuples."""
    abi_type = param["type"]
    if abi_type.startswith("tuple"):
        inner = ",".join(_abi_type_string(c) for c in param.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


def _coerce_value(param: Dict[str, Any], value: Any) -> Any:
    """Coerce a user-supplied value to what eth_abi expects for ``param``.

    Numeric strings are accepted for integer types and hex strings for
    bytes, the way ethers does for constructor arguments.
    """
    abi_type: str = param["type"]

    if abi_type.endswith("]"):
        element_param = dict(param, type=abi_type[: abi_type.rindex("[")])
        if not isinstance(value, (list, tuple)):
            raise TypeError(f"expected a list for {abi_type}, got {value!r}")
        size = abi_type[abi_type.rindex("[") + 1 : -1]
        if size and len(value) != int(size):
            raise TypeError(f"expected {size} elements for {abi_type}, got {len(value)}")
        return [_coerce_value(element_param, item) for item in value]

    if abi_type == "tuple":
        components = param.get("components", [])
        if isinstance(value, dict):
            value = [value[c["name"]] for c in components]
        if not isinstance(value, (list, tuple)) or len(value) != len(components):
            raise TypeError(f"expected {len(components)} tuple fields, got {value!r}")
        return tuple(_coerce_value(c, v) for c, v in zip(components, value))

    if abi_type.startswith(("uint", "int")):
        if isinstance(value, bool):
            raise TypeError(f"expected an integer for {abi_type}, got {value!r}")
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            text = value.strip()
            return int(text, 16) if text.lower().startswith(("0x", "-0x")) else int(text)
        raise TypeError(f"expected an integer for {abi_type}, got {value!r}")

    if abi_type == "address":
        return normalize_address(value, "address argument")

    if abi_type == "bool":
        if not isinstance(value, bool):
            raise TypeError(f"expected a bool, got {value!r}")
        return value

    if abi_type.startswith("bytes"):
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if isinstance(value, str) and is_hex(value):
            return to_bytes(hexstr=value)
        raise TypeError(f"expected bytes or a hex string for {abi_type}, got {value!r}")

    if abi_type == "string":
        if not isinstance(value, str):
            raise TypeError(f"expected a string, got {value!r}")
        return value

    return value


def encode_constructor_args(artifact: ContractArtifact, args: Sequence[Any]) -> bytes:
    """ABI-encode constructor arguments against the artifact's constructor.

    Raises:
        ArgumentMismatchError: arity or types disagree with the constructor
    """
    args = list(args)
    inputs = artifact.constructor_abi.get("inputs", [])
    types = [_abi_type_string(p) for p in inputs]

    if len(args) != len(inputs):
        raise ArgumentMismatchError(
            artifact.contract_name,
            types,
            args,
            f"expected {len(inputs)} argument(s)",
        )

    if not inputs:
        return b""

    try:
        values = [_coerce_value(p, v) for p, v in zip(inputs, args)]
        return encode(types, values)
    except (TypeError, ValueError, InvalidAddressError, EncodingError) as e:
        raise ArgumentMismatchError(artifact.contract_name, types, args, str(e)) from e


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class ArtifactLoader:
    """Resolves contract names to artifacts in a Hardhat artifacts directory."""

    def __init__(self, artifacts_dir: Union[str, Path] = "artifacts-zk"):
        self._root = Path(artifacts_dir)
        self._cache: Dict[str, ContractArtifact] = {}

    @property
    def root(self) -> Path:
        return self._root

    def _find(self, name: str) -> Path:
        if ":" in name:
            source_name, contract_name = name.rsplit(":", 1)
            path = self._root / source_name / f"{contract_name}.json"
            if not path.is_file():
                raise ArtifactNotFoundError(f"Artifact {name} not found at {path}")
            return path

        if not self._root.is_dir():
            raise ArtifactNotFoundError(f"Artifacts directory {self._root} does not exist")

        matches = [
            p for p in self._root.rglob(f"{name}.json")
            if not p.name.endswith(".dbg.json") and "build-info" not in p.parts
        ]
        if not matches:
            raise ArtifactNotFoundError(f"Artifact for contract {name} not found in {self._root}")
        if len(matches) > 1:
            candidates = ", ".join(str(p.relative_to(self._root)) for p in sorted(matches))
            raise ArtifactNotFoundError(
                f"Multiple artifacts found for contract {name}: {candidates}. "
                f"Use the fully qualified name (source.sol:{name})."
            )
        return matches[0]

    def load(self, name: str) -> ContractArtifact:
        """Load an artifact, resolving its factory dependencies."""
        if name in self._cache:
            return self._cache[name]

        path = self._find(name)
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise ArtifactNotFoundError(f"Artifact {path} is not valid JSON: {e}") from e

        factory_deps = []
        for dep_name in (data.get("factoryDeps") or {}).values():
            dep = self.load(dep_name)
            factory_deps.append(dep.bytecode)
            factory_deps.extend(dep.factory_deps)

        artifact = ContractArtifact.from_json(data, factory_deps=factory_deps)
        self._cache[name] = artifact

        logger.debug(
            f"Loaded artifact {artifact.contract_name} from {path} "
            f"({len(artifact.bytecode)} bytes, {len(factory_deps)} factory deps)"
        )
        return artifact
