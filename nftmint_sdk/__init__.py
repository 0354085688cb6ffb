"""
NFT mint SDK.

Uploads an image and its metadata to IPFS and mints an NFT referencing them,
with cached idempotent uploads, bounded retries and confirmation tracking.
"""
from .cache import ArtifactCache, FileArtifactCache, MemoryArtifactCache
from .cancel import CancelToken
from .chain import ChainClient, Web3ChainClient
from .config import NetworkConfig, PipelineSettings
from .exceptions import (
    Cancelled,
    ConfirmationTimeout,
    IdentityError,
    InsufficientFunds,
    InvalidInput,
    InvalidMetadata,
    MintSDKError,
    NetworkError,
    PipelineFailed,
    Rejected,
    ServiceError,
    StorageUnavailable,
    TransactionError,
    UploadFailed,
)
from .metadata import assemble_from_spec, assemble_metadata, check_metadata_fields, spec_fields
from .models import (
    ConfirmationOutcome,
    ConfirmationStatus,
    MintRequest,
    MintResult,
    NftMetadata,
    UploadRecord,
)
from .orchestrator import MintJob, MintOrchestrator, PipelineRun, PipelineStage, RunState
from .signer import Signer
from .signer.local import LocalSigner
from .storage import ContentStoreClient, PinnerClient
from .upload import ContentUploader
from .version import __version__

__all__ = [
    "ArtifactCache",
    "FileArtifactCache",
    "MemoryArtifactCache",
    "CancelToken",
    "ChainClient",
    "Web3ChainClient",
    "NetworkConfig",
    "PipelineSettings",
    "Cancelled",
    "ConfirmationTimeout",
    "IdentityError",
    "InsufficientFunds",
    "InvalidInput",
    "InvalidMetadata",
    "MintSDKError",
    "NetworkError",
    "PipelineFailed",
    "Rejected",
    "ServiceError",
    "StorageUnavailable",
    "TransactionError",
    "UploadFailed",
    "assemble_from_spec",
    "assemble_metadata",
    "check_metadata_fields",
    "spec_fields",
    "ConfirmationOutcome",
    "ConfirmationStatus",
    "MintRequest",
    "MintResult",
    "NftMetadata",
    "UploadRecord",
    "MintJob",
    "MintOrchestrator",
    "PipelineRun",
    "PipelineStage",
    "RunState",
    "Signer",
    "LocalSigner",
    "ContentStoreClient",
    "PinnerClient",
    "ContentUploader",
    "__version__",
]
