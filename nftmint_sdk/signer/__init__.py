"""
Signer interface for the NFT mint SDK.
"""
from typing import Any, Dict, Protocol, runtime_checkable


@runtime_checkable
class Signer(Protocol):
    """Protocol for transaction signers bound to a single address"""
    address: str

    def sign_transaction(self, transaction_dict: Dict[str, Any]) -> Any:
        """Sign transaction and return signed tx object"""
        ...

    def sign_message(self, signable_message: Any) -> Any:
        """Sign an EIP-191 message and return the signed message object"""
        ...


__all__ = ["Signer"]
