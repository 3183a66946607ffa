"""
paymaster-deploy: contract deployment with paymaster-sponsored gas fees.

Builds paymaster parameters, attaches them to a zkSync-style EIP-712
contract-creation transaction, and drives it through estimation, signing,
broadcast and confirmation.
"""
from .artifacts import ArtifactLoader, ContractArtifact, encode_constructor_args
from .config import (
    DEFAULT_GAS_PER_PUBDATA_LIMIT,
    NETWORK_PRESETS,
    AddressDerivation,
    DeployConfig,
    Finality,
    LoggingConfig,
    NetworkConfig,
    get_config,
    get_network_config,
    set_config,
)
from .deployer import ContractDeployer, DeploymentRequest, DeploymentResult
from .exceptions import (
    ArgumentMismatchError,
    ArtifactNotFoundError,
    BroadcastFailedError,
    ChainIDMismatchError,
    ConfirmationTimeoutError,
    DeploymentError,
    DeploymentStatus,
    DuplicateSubmissionError,
    EstimationFailedError,
    IndeterminateError,
    InvalidAddressError,
    InvalidAllowanceError,
    InvalidBytecodeError,
    NonceConflictError,
    RPCError,
    SigningFailedError,
    TransactionRevertedError,
)
from .paymaster import (
    ApprovalBasedPaymasterMode,
    GeneralPaymasterMode,
    PaymasterMode,
    PaymasterParams,
    build_paymaster_params,
    decode_paymaster_input,
)
from .rpc_client import ZkSyncRPCClient
from .signer import LocalAccountSigner, SignerPort

__version__ = "0.1.0"

__all__ = [
    # Paymaster
    "ApprovalBasedPaymasterMode",
    "GeneralPaymasterMode",
    "PaymasterMode",
    "PaymasterParams",
    "build_paymaster_params",
    "decode_paymaster_input",
    # Deployment
    "ContractDeployer",
    "DeploymentRequest",
    "DeploymentResult",
    "ArtifactLoader",
    "ContractArtifact",
    "encode_constructor_args",
    # Collaborators
    "LocalAccountSigner",
    "SignerPort",
    "ZkSyncRPCClient",
    # Config
    "AddressDerivation",
    "DEFAULT_GAS_PER_PUBDATA_LIMIT",
    "DeployConfig",
    "Finality",
    "LoggingConfig",
    "NETWORK_PRESETS",
    "NetworkConfig",
    "get_config",
    "get_network_config",
    "set_config",
    # Errors
    "ArgumentMismatchError",
    "ArtifactNotFoundError",
    "BroadcastFailedError",
    "ChainIDMismatchError",
    "ConfirmationTimeoutError",
    "DeploymentError",
    "DeploymentStatus",
    "DuplicateSubmissionError",
    "EstimationFailedError",
    "IndeterminateError",
    "InvalidAddressError",
    "InvalidAllowanceError",
    "InvalidBytecodeError",
    "NonceConflictError",
    "RPCError",
    "SigningFailedError",
    "TransactionRevertedError",
]
