"""
Local private-key signer.
"""
from typing import Any, Dict

from eth_account import Account
from eth_account.signers.local import LocalAccount


class LocalSigner:
    """Signer backed by an in-memory private key"""

    def __init__(self, private_key: str):
        """
        Args:
            private_key: Hex encoded secp256k1 private key (with or without 0x)

        Raises:
            ValueError: If the key cannot be parsed
        """
        self._account: LocalAccount = Account.from_key(private_key)
        self.address = self._account.address

    def sign_transaction(self, transaction_dict: Dict[str, Any]) -> Any:
        return self._account.sign_transaction(transaction_dict)

    def sign_message(self, signable_message: Any) -> Any:
        return self._account.sign_message(signable_message)

    def __repr__(self) -> str:
        return f"LocalSigner(address={self.address!r})"
