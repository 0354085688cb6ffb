#!/usr/bin/env python3
"""
Example of minting an NFT from a local image.
"""
import os
import sys
import logging

from nftmint_sdk import (
    FileArtifactCache,
    MintJob,
    MintOrchestrator,
    NetworkConfig,
    PinnerClient,
    Web3ChainClient,
)
from nftmint_sdk.identity import resolve_signer


def main():
    """
    Demonstrate the full pipeline:
    1. Resolve the authority signer
    2. Connect to the pinning service and the chain
    3. Upload image and metadata, then mint
    4. Print the result and a block explorer link
    """
    logging.basicConfig(level=logging.INFO)

    SECRET = os.environ.get("NFTMINT_SECRET", "env:PRIVATE_KEY")
    PINNER_URL = os.environ.get("NFTMINT_PINNER_URL")
    NETWORK = os.environ.get("NFTMINT_NETWORK", "ethereum-sepolia")

    if not PINNER_URL:
        print("ERROR: NFTMINT_PINNER_URL environment variable is required")
        return 1
    if len(sys.argv) < 2:
        print(f"usage: {sys.argv[0]} IMAGE.png")
        return 1

    print("Available networks:")
    for network_name in NetworkConfig.load_networks().keys():
        print(f"  - {network_name}")

    signer = resolve_signer(SECRET)
    print(f"Authority: {signer.address}")

    chain = Web3ChainClient.from_network(NETWORK)
    chain.assert_chain_id()

    orchestrator = MintOrchestrator(
        signer=signer,
        store=PinnerClient(PINNER_URL),
        chain=chain,
        # survives restarts, so a failed mint can be re-run without re-uploading
        cache=FileArtifactCache("~/.nftmint/artifacts.json"),
        verify_image=True,
    )

    with open(sys.argv[1], "rb") as f:
        image = f.read()

    run = orchestrator.run(MintJob(
        image=image,
        image_mime_type="image/png",
        name="Example #1",
        symbol="EXMPL",
        description="Minted with the nftmint SDK",
        attributes=[("background", "blue"), ("edition", 1)],
        seller_fee_basis_points=500,
    ))

    if run.failed:
        print(f"Mint failed at {run.failure}")
        if run.signature:
            print(f"Check before retrying: {chain.tx_url(run.signature)}")
        return 1

    print(f"Image:    {run.image_uri}")
    print(f"Metadata: {run.metadata_uri}")
    print(f"Mint:     {run.result.mint_address}")
    print(f"Explorer: {chain.tx_url(run.result.signature)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
