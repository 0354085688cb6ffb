"""
Data models for the NFT mint SDK.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from eth_account import Account
from eth_account.signers.local import LocalAccount
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import InvalidInput, InvalidMetadata

MAX_SELLER_FEE_BASIS_POINTS = 10000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadRecord(BaseModel):
    """Result of a completed content upload"""
    model_config = ConfigDict(frozen=True)

    fingerprint: str
    uri: str
    mime_type: str
    size: int
    uploaded_at: datetime = Field(default_factory=_utcnow)


class NftAttribute(BaseModel):
    """A single (trait_type, value) pair"""
    model_config = ConfigDict(frozen=True)

    trait_type: str
    value: Union[str, int, float, bool]


class NftFile(BaseModel):
    """An entry of properties.files"""
    model_config = ConfigDict(frozen=True)

    uri: str
    type: str


class NftProperties(BaseModel):
    model_config = ConfigDict(frozen=True)

    files: List[NftFile] = Field(default_factory=list)
    category: Optional[str] = None


class NftMetadata(BaseModel):
    """
    Off-chain NFT metadata document.

    Serializes to the Metaplex token-metadata JSON layout. Build instances with
    nftmint_sdk.metadata.assemble_metadata so the field invariants are checked.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    symbol: str
    description: str = ""
    image: str
    seller_fee_basis_points: Optional[int] = None
    external_url: Optional[str] = None
    attributes: List[NftAttribute] = Field(default_factory=list)
    properties: NftProperties = Field(default_factory=NftProperties)

    def to_document(self) -> Dict[str, Any]:
        """JSON-ready dictionary, omitting unset optional fields"""
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "NftMetadata":
        """
        Parse a metadata document.

        Raises:
            InvalidMetadata: If the document does not match the schema
        """
        if not isinstance(document, dict):
            raise InvalidMetadata("document", f"Metadata must be a JSON object, got {type(document).__name__}")
        try:
            return cls.model_validate(document)
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"]) or "document"
            raise InvalidMetadata(field, f"Invalid metadata field {field}: {error['msg']}")


class ConfirmationStatus(str, Enum):
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    TIMED_OUT = "timed_out"


class ConfirmationOutcome(BaseModel):
    """What the chain client observed while waiting for a transaction"""
    model_config = ConfigDict(frozen=True)

    status: ConfirmationStatus
    signature: str
    block_number: Optional[int] = None


class MintRequest(BaseModel):
    """
    A single mint attempt.

    Holds a freshly generated mint key whose address becomes the token's
    permanent identity. A request is consumed by at most one submission.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(min_length=1)
    metadata_uri: str = Field(min_length=1)
    seller_fee_basis_points: int = Field(ge=0, le=MAX_SELLER_FEE_BASIS_POINTS)
    is_collection: bool = False
    mint_account: LocalAccount
    authority: Any

    @property
    def mint_address(self) -> str:
        return self.mint_account.address

    @classmethod
    def create(
        cls,
        name: str,
        metadata_uri: str,
        seller_fee_basis_points: int,
        authority: Any,
        is_collection: bool = False,
    ) -> "MintRequest":
        """
        Build a request with a brand-new mint key.

        Raises:
            InvalidInput: If a field is out of range. Raised before any key is generated.
        """
        if isinstance(seller_fee_basis_points, bool) or not isinstance(seller_fee_basis_points, int):
            raise InvalidInput("seller_fee_basis_points must be an integer")
        if not 0 <= seller_fee_basis_points <= MAX_SELLER_FEE_BASIS_POINTS:
            raise InvalidInput(
                f"seller_fee_basis_points must be in [0, {MAX_SELLER_FEE_BASIS_POINTS}], "
                f"got {seller_fee_basis_points}"
            )
        if not name or not name.strip():
            raise InvalidInput("name must not be empty")
        if not metadata_uri:
            raise InvalidInput("metadata_uri must not be empty")
        if authority is None:
            raise InvalidInput("authority signer is required")

        try:
            return cls(
                name=name,
                metadata_uri=metadata_uri,
                seller_fee_basis_points=seller_fee_basis_points,
                is_collection=is_collection,
                mint_account=Account.create(),
                authority=authority,
            )
        except ValidationError as e:
            raise InvalidInput(f"Invalid mint request: {e}")


class MintResult(BaseModel):
    """Terminal result of a confirmed mint"""
    model_config = ConfigDict(frozen=True)

    signature: str
    mint_address: str
    confirmed_at_block: Optional[int] = None
