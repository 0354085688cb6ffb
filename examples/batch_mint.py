#!/usr/bin/env python3
"""
Example of minting a directory of images concurrently.
"""
import os
import sys
from pathlib import Path

from nftmint_sdk import MintJob, PipelineSettings, PinnerClient, Web3ChainClient, MemoryArtifactCache
from nftmint_sdk.identity import resolve_signer
from nftmint_sdk.orchestrator import MintOrchestrator, summarize


def main():
    settings = PipelineSettings.from_env()
    if not settings.pinner_url:
        print("ERROR: NFTMINT_PINNER_URL environment variable is required")
        return 1

    directory = Path(sys.argv[1] if len(sys.argv) > 1 else ".")
    images = sorted(directory.glob("*.png"))
    if not images:
        print(f"No PNG files in {directory}")
        return 1

    orchestrator = MintOrchestrator(
        signer=resolve_signer(settings.secret or os.environ.get("PRIVATE_KEY")),
        store=PinnerClient(settings.pinner_url, gateway=settings.ipfs_gateway, api_token=settings.pinner_token),
        chain=Web3ChainClient.from_network(settings.network, rpc_url=settings.rpc_url),
        cache=MemoryArtifactCache(),
        max_concurrency=settings.max_concurrency,
        confirm_timeout=settings.confirm_timeout,
    )

    jobs = [
        MintJob(
            image=path.read_bytes(),
            image_mime_type="image/png",
            name=f"Collection #{i}",
            symbol="COLL",
            attributes=[("file", path.name)],
        )
        for i, path in enumerate(images, start=1)
    ]

    failures = 0
    for path, run in zip(images, orchestrator.run_many(jobs)):
        print(path.name, summarize(run))
        failures += run.failed
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
