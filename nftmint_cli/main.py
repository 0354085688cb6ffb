"""
nftmint command line interface.

    nftmint upload-image <path>
    nftmint upload-metadata <json-spec>
    nftmint mint <metadata-uri>
    nftmint run <image> <json-spec>
    nftmint keys create|list
"""
import json
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from nftmint_sdk.cache import FileArtifactCache, MemoryArtifactCache
from nftmint_sdk.chain import Web3ChainClient
from nftmint_sdk.config import PipelineSettings
from nftmint_sdk.exceptions import InvalidInput, MintSDKError
from nftmint_sdk.identity import create_signer, list_labels, resolve_signer
from nftmint_sdk.metadata import assemble_from_spec, spec_fields
from nftmint_sdk.orchestrator import MintJob, MintOrchestrator, PipelineRun, summarize
from nftmint_sdk.storage import PinnerClient
from nftmint_sdk.upload import ContentUploader

app = typer.Typer(help="Upload NFT content to IPFS and mint it on-chain.", no_args_is_help=True)
keys_app = typer.Typer(help="Manage locally stored authority keys.", no_args_is_help=True)
app.add_typer(keys_app, name="keys")


def should_use_color() -> bool:
    return sys.stderr.isatty()


def _settings(ctx: typer.Context) -> PipelineSettings:
    return ctx.obj["settings"]


def _build_store(settings: PipelineSettings) -> PinnerClient:
    if not settings.pinner_url:
        raise InvalidInput("A pinning service URL is required (--pinner-url or NFTMINT_PINNER_URL)")
    return PinnerClient(
        settings.pinner_url,
        gateway=settings.ipfs_gateway,
        api_token=settings.pinner_token,
        timeout=settings.request_timeout,
    )


def _build_cache(settings: PipelineSettings):
    if settings.cache_path:
        return FileArtifactCache(settings.cache_path)
    return MemoryArtifactCache()


def _build_chain(settings: PipelineSettings) -> Web3ChainClient:
    return Web3ChainClient.from_network(
        settings.network,
        rpc_url=settings.rpc_url,
        timeout=settings.request_timeout,
    )


def _build_uploader(settings: PipelineSettings) -> ContentUploader:
    return ContentUploader(
        _build_store(settings),
        cache=_build_cache(settings),
        max_attempts=settings.max_attempts,
        backoff_factor=settings.backoff_factor,
    )


def _build_orchestrator(settings: PipelineSettings) -> MintOrchestrator:
    return MintOrchestrator(
        signer=resolve_signer(settings.secret),
        store=_build_store(settings),
        chain=_build_chain(settings),
        cache=_build_cache(settings),
        max_attempts=settings.max_attempts,
        backoff_factor=settings.backoff_factor,
        confirm_timeout=settings.confirm_timeout,
        poll_interval=settings.poll_interval,
        max_concurrency=settings.max_concurrency,
    )


def _fail(stage: str, error: Exception, signature: Optional[str] = None) -> None:
    label = typer.style("error", fg=typer.colors.RED, bold=True) if should_use_color() else "error"
    typer.echo(f"{label}: {stage} failed: {type(error).__name__}: {error}", err=True)
    if signature:
        typer.echo(f"signature: {signature}", err=True)
    raise typer.Exit(code=1)


def _report_run(run: PipelineRun) -> None:
    if run.failure is not None:
        _fail(run.failure.stage.value, run.failure.cause, run.failure.signature)


def _load_spec(path: Path) -> Dict[str, Any]:
    try:
        spec = json.loads(path.read_text())
    except OSError as e:
        raise InvalidInput(f"Cannot read {path}: {e.strerror}")
    except ValueError as e:
        raise InvalidInput(f"{path} is not valid JSON: {e}")
    if not isinstance(spec, dict):
        raise InvalidInput(f"{path} must hold a JSON object")
    return spec


def _read_image(path: Path, mime_type: Optional[str]) -> tuple:
    mime_type = mime_type or mimetypes.guess_type(path.name)[0]
    if not mime_type:
        raise InvalidInput(f"Cannot guess the MIME type of {path.name}; pass --mime-type")
    try:
        return path.read_bytes(), mime_type
    except OSError as e:
        raise InvalidInput(f"Cannot read {path}: {e.strerror}")


@app.callback()
def main(
    ctx: typer.Context,
    network: Optional[str] = typer.Option(None, help="Network name from the bundled network list"),
    rpc_url: Optional[str] = typer.Option(None, help="Override the network's RPC URL"),
    pinner_url: Optional[str] = typer.Option(None, help="IPFS pinning service URL"),
    gateway: Optional[str] = typer.Option(None, help="IPFS HTTP gateway"),
    secret: Optional[str] = typer.Option(None, help="Authority key source (0x..., env:VAR, file:PATH, store:LABEL)"),
    cache_path: Optional[str] = typer.Option(None, help="Persist the upload cache to this JSON file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Upload NFT content to IPFS and mint it on-chain."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        settings = PipelineSettings.from_env(
            network=network,
            rpc_url=rpc_url,
            pinner_url=pinner_url,
            ipfs_gateway=gateway,
            secret=secret,
            cache_path=cache_path,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e))
    ctx.obj = {"settings": settings}


@app.command("upload-image")
def upload_image(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Image file"),
    mime_type: Optional[str] = typer.Option(None, help="MIME type (guessed from the file name if omitted)"),
):
    """Upload an image and print its URI."""
    try:
        data, mime_type = _read_image(path, mime_type)
        uri = _build_uploader(_settings(ctx)).upload_bytes(data, mime_type)
    except (MintSDKError, ValueError) as e:
        _fail("image", e)
    typer.echo(uri)


@app.command("upload-metadata")
def upload_metadata(
    ctx: typer.Context,
    spec_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON metadata spec"),
    image_uri: Optional[str] = typer.Option(None, help="Image URI (overrides the spec's 'image')"),
    image_type: Optional[str] = typer.Option(None, help="Image MIME type (overrides the spec's 'image_type')"),
):
    """Validate and upload a metadata document and print its URI."""
    try:
        metadata = assemble_from_spec(_load_spec(spec_path), image_uri=image_uri, image_mime_type=image_type)
        uri = _build_uploader(_settings(ctx)).upload_document(metadata.to_document())
    except (MintSDKError, ValueError) as e:
        _fail("metadata", e)
    typer.echo(uri)


@app.command("mint")
def mint(
    ctx: typer.Context,
    metadata_uri: str = typer.Argument(..., help="URI of the uploaded metadata"),
    name: Optional[str] = typer.Option(None, help="Token name (read from the metadata if omitted)"),
    seller_fee_basis_points: Optional[int] = typer.Option(
        None, "--seller-fee-bps", help="Royalty in basis points, 0-10000 (read from the metadata if omitted)"
    ),
    collection: bool = typer.Option(False, "--collection", help="Mint a collection token"),
):
    """Submit the mint transaction and print signature and mint address."""
    settings = _settings(ctx)
    try:
        if name is None or seller_fee_basis_points is None:
            document = _build_store(settings).fetch_json(metadata_uri)
            name = name if name is not None else document.get("name", "")
            if seller_fee_basis_points is None:
                seller_fee_basis_points = document.get("seller_fee_basis_points", 0)
        orchestrator = _build_orchestrator(settings)
    except (MintSDKError, ValueError) as e:
        _fail("submit", e)

    run = orchestrator.mint(metadata_uri, name, seller_fee_basis_points, is_collection=collection)
    _report_run(run)
    typer.echo(f"signature: {run.result.signature}")
    typer.echo(f"mint: {run.result.mint_address}")


@app.command("run")
def run_pipeline(
    ctx: typer.Context,
    image_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Image file"),
    spec_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON metadata spec"),
    mime_type: Optional[str] = typer.Option(None, help="Image MIME type (guessed if omitted)"),
    collection: bool = typer.Option(False, "--collection", help="Mint a collection token"),
):
    """Upload image and metadata, mint, and print a JSON summary."""
    settings = _settings(ctx)
    try:
        spec = _load_spec(spec_path)
        fields = spec_fields(spec)
    except (MintSDKError, ValueError) as e:
        _fail("metadata", e)
    try:
        data, mime_type = _read_image(image_path, mime_type or fields["image_type"])
        orchestrator = _build_orchestrator(settings)
    except (MintSDKError, ValueError) as e:
        _fail("image", e)

    job = MintJob.from_spec(spec, data, image_mime_type=mime_type, is_collection=collection)
    run = orchestrator.run(job)
    _report_run(run)
    typer.echo(json.dumps(summarize(run), indent=2))


@keys_app.command("create")
def keys_create(
    label: str = typer.Argument(..., help="Name to store the key under"),
    overwrite: bool = typer.Option(False, help="Replace an existing key with the same label"),
):
    """Generate an authority key in the local encrypted key store."""
    try:
        signer = create_signer(label, overwrite=overwrite)
    except (MintSDKError, ValueError) as e:
        _fail("keys", e)
    typer.echo(signer.address)


@keys_app.command("list")
def keys_list():
    """List locally stored key labels."""
    for label in list_labels():
        typer.echo(label)


if __name__ == "__main__":
    app()
