"""
Pytest fixtures for the NFT mint SDK tests.
"""
import time

import pytest
from web3.providers.rpc import HTTPProvider

from nftmint_sdk._rate_limited_log import reset_rate_limited_log
from nftmint_sdk.cache import MemoryArtifactCache
from nftmint_sdk.config import NetworkConfig
from nftmint_sdk.orchestrator import MintJob, MintOrchestrator
from nftmint_sdk.signer.local import LocalSigner

from test_helpers.fakes import FakeChainClient, FakeContentStore, PNG_STUB, TEST_PRIV_KEY


# Make time.sleep instantaneous so retries don't slow the suite down
@pytest.fixture(autouse=True)
def _fast_sleep(monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda *_a, **_kw: None)


@pytest.fixture(autouse=True)
def _patch_http_provider(monkeypatch):
    """
    Stub every Web3 HTTP call so no DNS / network traffic is triggered.
    """
    def _dummy(self, method, params=None, _=None):
        if method == "eth_chainId":
            return {"jsonrpc": "2.0", "id": 1, "result": "0xaa36a7"}  # sepolia
        if method == "eth_gasPrice":
            return {"jsonrpc": "2.0", "id": 1, "result": "0x3b9aca00"}  # 1 gwei
        return {"jsonrpc": "2.0", "id": 1, "result": "0x0"}

    monkeypatch.setattr(HTTPProvider, "make_request", _dummy, raising=True)


@pytest.fixture(autouse=True)
def _reset_shared_state():
    reset_rate_limited_log()
    NetworkConfig._networks_cache = None
    yield
    NetworkConfig._networks_cache = None


@pytest.fixture
def signer():
    return LocalSigner(TEST_PRIV_KEY)


@pytest.fixture
def store():
    return FakeContentStore()


@pytest.fixture
def chain():
    return FakeChainClient()


@pytest.fixture
def cache():
    return MemoryArtifactCache()


@pytest.fixture
def orchestrator(signer, store, chain, cache):
    return MintOrchestrator(
        signer=signer,
        store=store,
        chain=chain,
        cache=cache,
        confirm_timeout=60,
        poll_interval=2,
    )


@pytest.fixture
def job():
    return MintJob(
        image=PNG_STUB,
        image_mime_type="image/png",
        name="X",
        symbol="X",
        description="A ten byte picture",
        attributes=[("background", "blue"), {"trait_type": "level", "value": 3}],
        seller_fee_basis_points=500,
    )
