"""
Mint orchestrator - sequences image upload, metadata upload and the mint
transaction for one NFT.

A run moves through

    INIT -> IMAGE_UPLOADED -> METADATA_UPLOADED -> TRANSACTION_SUBMITTED -> CONFIRMED

or ends in FAILED, recording which stage failed and why. Runs never raise
for pipeline failures; they return a PipelineRun describing where they ended.
Uploads are cached by content fingerprint, so a failed run can simply be
started again: finished uploads are reused and only the mint is redone, with
a fresh mint key.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .cache import ArtifactCache
from .cancel import CancelToken, check_cancelled
from .chain import ChainClient
from .exceptions import (
    ConfirmationTimeout,
    InsufficientFunds,
    InvalidInput,
    InvalidMetadata,
    MintSDKError,
    NetworkError,
    PipelineFailed,
    Rejected,
)
from .metadata import assemble_metadata, check_metadata_fields, spec_fields
from .models import ConfirmationStatus, MintRequest, MintResult, NftMetadata
from .signer import Signer
from .storage import ContentStoreClient
from .upload import ContentUploader


class PipelineStage(str, Enum):
    IMAGE = "image"
    METADATA = "metadata"
    SUBMIT = "submit"
    CONFIRM = "confirm"


class RunState(str, Enum):
    INIT = "init"
    IMAGE_UPLOADED = "image_uploaded"
    METADATA_UPLOADED = "metadata_uploaded"
    TRANSACTION_SUBMITTED = "transaction_submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


_TRANSITIONS = {
    RunState.INIT: RunState.IMAGE_UPLOADED,
    RunState.IMAGE_UPLOADED: RunState.METADATA_UPLOADED,
    RunState.METADATA_UPLOADED: RunState.TRANSACTION_SUBMITTED,
    RunState.TRANSACTION_SUBMITTED: RunState.CONFIRMED,
}

_TERMINAL = (RunState.CONFIRMED, RunState.FAILED)


@dataclass
class PipelineFailure:
    stage: PipelineStage
    cause: Exception
    signature: Optional[str] = None

    def __str__(self) -> str:
        message = f"{self.stage.value}: {type(self.cause).__name__}: {self.cause}"
        if self.signature:
            message += f" (signature {self.signature})"
        return message


@dataclass
class PipelineRun:
    """State and artifacts of one pipeline run"""
    state: RunState = RunState.INIT
    history: List[RunState] = field(default_factory=lambda: [RunState.INIT])
    image_uri: Optional[str] = None
    metadata: Optional[NftMetadata] = None
    metadata_uri: Optional[str] = None
    signature: Optional[str] = None
    mint_address: Optional[str] = None
    mint_addresses: List[str] = field(default_factory=list)
    result: Optional[MintResult] = None
    failure: Optional[PipelineFailure] = None

    @classmethod
    def from_metadata_uri(cls, metadata_uri: str) -> "PipelineRun":
        """A run whose uploads are already done, ready for the mint stage"""
        return cls(
            state=RunState.METADATA_UPLOADED,
            history=[RunState.METADATA_UPLOADED],
            metadata_uri=metadata_uri,
        )

    @property
    def succeeded(self) -> bool:
        return self.state == RunState.CONFIRMED

    @property
    def failed(self) -> bool:
        return self.state == RunState.FAILED

    @property
    def finished(self) -> bool:
        return self.state in _TERMINAL

    def advance(self, state: RunState) -> None:
        expected = _TRANSITIONS.get(self.state)
        if state != expected:
            raise RuntimeError(f"Illegal transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, stage: PipelineStage, cause: Exception) -> None:
        if self.finished:
            raise RuntimeError(f"Run already finished in state {self.state.value}")
        self.failure = PipelineFailure(stage=stage, cause=cause, signature=self.signature)
        self.state = RunState.FAILED
        self.history.append(RunState.FAILED)

    def raise_for_failure(self) -> "PipelineRun":
        """
        Raises:
            PipelineFailed: If the run ended in FAILED
        """
        if self.failure is not None:
            raise PipelineFailed(self.failure.stage.value, self.failure.cause, self.failure.signature)
        return self


@dataclass
class MintJob:
    """Everything needed to mint one NFT from a local image"""
    image: bytes
    image_mime_type: str
    name: str
    symbol: str
    description: str = ""
    attributes: Sequence[Any] = ()
    files: Sequence[Any] = ()
    seller_fee_basis_points: Optional[int] = 0
    is_collection: bool = False
    external_url: Optional[str] = None
    category: Optional[str] = "image"

    @classmethod
    def from_spec(
        cls,
        spec: Dict[str, Any],
        image: bytes,
        image_mime_type: Optional[str] = None,
        is_collection: bool = False,
    ) -> "MintJob":
        """
        Build a job from a JSON metadata spec, read the same way as by
        assemble_from_spec. image_mime_type overrides the spec's "image_type".

        Raises:
            InvalidMetadata: If the spec is not shaped like a metadata document
        """
        fields = spec_fields(spec)
        fields.pop("image")
        image_type = fields.pop("image_type")
        return cls(
            image=image,
            image_mime_type=image_mime_type or image_type or "",
            is_collection=is_collection,
            **fields,
        )


class MintOrchestrator:
    """
    Runs the image -> metadata -> mint pipeline.

    All collaborators are injected: the authority signer (from the identity
    provider), the content store client, the chain client and the artifact
    cache. One orchestrator may serve many concurrent runs; they share only
    the artifact cache.
    """

    def __init__(
        self,
        signer: Signer,
        store: ContentStoreClient,
        chain: ChainClient,
        cache: Optional[ArtifactCache] = None,
        max_attempts: int = 3,
        backoff_factor: float = 0.5,
        confirm_timeout: float = 60.0,
        poll_interval: float = 2.0,
        submit_attempts: int = 1,
        max_concurrency: int = 4,
        check_balance: bool = True,
        verify_image: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            signer: Authority that signs and pays for mint transactions
            store: Content store client used for both uploads
            chain: Chain client used for submission and confirmation
            cache: Artifact cache shared across runs (in-memory if omitted)
            max_attempts: Upload attempts per artifact
            backoff_factor: Base of the exponential backoff between attempts, in seconds
            confirm_timeout: Seconds to wait for a confirmation
            poll_interval: Initial seconds between confirmation polls
            submit_attempts: Submissions tried after network failures, each with a new mint key
            max_concurrency: Worker cap for run_many
            check_balance: Compare the authority balance with the mint cost before submitting
            verify_image: Check that the image URI resolves before uploading metadata
            logger: Optional logger instance
        """
        if signer is None:
            raise ValueError("signer must be provided")
        if submit_attempts < 1:
            raise ValueError("submit_attempts must be at least 1")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.signer = signer
        self.store = store
        self.chain = chain
        self.logger = logger or logging.getLogger(__name__)
        self.uploader = ContentUploader(
            store,
            cache=cache,
            max_attempts=max_attempts,
            backoff_factor=backoff_factor,
            logger=self.logger,
        )
        self.cache = self.uploader.cache
        self.backoff_factor = backoff_factor
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval
        self.submit_attempts = submit_attempts
        self.max_concurrency = max_concurrency
        self.check_balance = check_balance
        self.verify_image = verify_image

    def run(self, job: MintJob, cancel: Optional[CancelToken] = None) -> PipelineRun:
        """
        Execute the full pipeline for one job.

        Returns:
            The finished run, CONFIRMED or FAILED
        """
        run = PipelineRun()
        self.logger.info(f"Starting mint of {job.name!r}")

        # reject what assembly would reject before anything leaves the process
        try:
            check_metadata_fields(
                job.name, job.symbol, job.description, job.attributes, job.files, job.seller_fee_basis_points
            )
        except InvalidMetadata as e:
            self._fail(run, PipelineStage.METADATA, e)
            return run

        if not self._upload_image(run, job, cancel):
            return run
        if not self._upload_metadata(run, job, cancel):
            return run
        return self._mint(run, job.name, job.seller_fee_basis_points or 0, job.is_collection, cancel)

    def mint(
        self,
        metadata_uri: str,
        name: str,
        seller_fee_basis_points: int = 0,
        is_collection: bool = False,
        cancel: Optional[CancelToken] = None,
    ) -> PipelineRun:
        """Run only the mint stages for metadata that is already uploaded"""
        run = PipelineRun.from_metadata_uri(metadata_uri)
        return self._mint(run, name, seller_fee_basis_points, is_collection, cancel)

    def run_many(self, jobs: Sequence[MintJob], cancel: Optional[CancelToken] = None) -> List[PipelineRun]:
        """
        Execute independent jobs with at most max_concurrency in flight.

        Returns:
            Runs in the order of the given jobs
        """
        if not jobs:
            return []
        workers = min(self.max_concurrency, len(jobs))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="nftmint") as pool:
            futures = [pool.submit(self.run, job, cancel) for job in jobs]
            return [future.result() for future in futures]

    def _fail(self, run: PipelineRun, stage: PipelineStage, cause: Exception) -> None:
        if not isinstance(cause, MintSDKError):
            self.logger.exception(f"Unexpected error during {stage.value} stage")
        run.fail(stage, cause)
        self.logger.error(f"Mint run failed at {run.failure}")

    def _upload_image(self, run: PipelineRun, job: MintJob, cancel: Optional[CancelToken]) -> bool:
        try:
            check_cancelled(cancel, "image upload")
            run.image_uri = self.uploader.upload_bytes(job.image, job.image_mime_type, cancel=cancel)
        except Exception as e:
            self._fail(run, PipelineStage.IMAGE, e)
            return False
        run.advance(RunState.IMAGE_UPLOADED)
        self.logger.debug(f"Image available at {run.image_uri}")
        return True

    def _upload_metadata(self, run: PipelineRun, job: MintJob, cancel: Optional[CancelToken]) -> bool:
        try:
            metadata = assemble_metadata(
                name=job.name,
                symbol=job.symbol,
                image_uri=run.image_uri,
                image_mime_type=job.image_mime_type,
                description=job.description,
                attributes=job.attributes,
                files=job.files,
                seller_fee_basis_points=job.seller_fee_basis_points,
                external_url=job.external_url,
                category=job.category,
            )
            if self.verify_image:
                check_cancelled(cancel, "image verification")
                if not self.store.exists(run.image_uri):
                    raise InvalidInput(f"Image URI {run.image_uri} does not resolve")
            check_cancelled(cancel, "metadata upload")
            run.metadata = metadata
            run.metadata_uri = self.uploader.upload_document(metadata.to_document(), cancel=cancel)
        except Exception as e:
            self._fail(run, PipelineStage.METADATA, e)
            return False
        run.advance(RunState.METADATA_UPLOADED)
        self.logger.debug(f"Metadata available at {run.metadata_uri}")
        return True

    def _preflight(self, request: MintRequest) -> None:
        if not self.check_balance:
            return
        cost = self.chain.estimate_mint_cost(request)
        balance = self.chain.account_balance(self.signer.address)
        if balance < cost:
            raise InsufficientFunds(self.signer.address, required=cost, available=balance)

    def _submit(
        self,
        run: PipelineRun,
        name: str,
        seller_fee_basis_points: int,
        is_collection: bool,
        cancel: Optional[CancelToken],
    ) -> Tuple[Optional[str], Optional[Exception]]:
        attempt = 0
        while True:
            attempt += 1
            try:
                check_cancelled(cancel, "mint submission")
                # a new mint key for every attempt, never reused
                request = MintRequest.create(
                    name=name,
                    metadata_uri=run.metadata_uri,
                    seller_fee_basis_points=seller_fee_basis_points,
                    authority=self.signer,
                    is_collection=is_collection,
                )
                run.mint_addresses.append(request.mint_address)
                self._preflight(request)
                signature = self.chain.submit(request)
                run.mint_address = request.mint_address
                return signature, None
            except NetworkError as e:
                if attempt >= self.submit_attempts:
                    return None, e
                wait_time = self.backoff_factor * (2 ** (attempt - 1))
                self.logger.warning(
                    f"Mint submission attempt {attempt} failed ({e}); retrying with a new mint key in {wait_time}s"
                )
                time.sleep(wait_time)
            except Exception as e:
                return None, e

    def _mint(
        self,
        run: PipelineRun,
        name: str,
        seller_fee_basis_points: int,
        is_collection: bool,
        cancel: Optional[CancelToken],
    ) -> PipelineRun:
        signature, error = self._submit(run, name, seller_fee_basis_points, is_collection, cancel)
        if error is not None:
            self._fail(run, PipelineStage.SUBMIT, error)
            return run
        run.signature = signature
        run.advance(RunState.TRANSACTION_SUBMITTED)

        try:
            outcome = self.chain.await_confirmation(
                signature,
                timeout=self.confirm_timeout,
                poll_interval=self.poll_interval,
                cancel=cancel,
            )
        except Exception as e:
            self._fail(run, PipelineStage.CONFIRM, e)
            return run

        if outcome.status == ConfirmationStatus.CONFIRMED:
            run.result = MintResult(
                signature=signature,
                mint_address=run.mint_address,
                confirmed_at_block=outcome.block_number,
            )
            run.advance(RunState.CONFIRMED)
            self.logger.info(f"Minted {run.mint_address} in transaction {signature}")
        elif outcome.status == ConfirmationStatus.REJECTED:
            self._fail(run, PipelineStage.CONFIRM, Rejected(signature))
        else:
            self._fail(run, PipelineStage.CONFIRM, ConfirmationTimeout(signature, self.confirm_timeout))
        return run


def summarize(run: PipelineRun) -> Dict[str, Any]:
    """JSON-ready view of a run, e.g. for command line output"""
    summary: Dict[str, Any] = {
        "state": run.state.value,
        "image_uri": run.image_uri,
        "metadata_uri": run.metadata_uri,
        "signature": run.signature,
        "mint_address": run.mint_address,
    }
    if run.result is not None:
        summary["confirmed_at_block"] = run.result.confirmed_at_block
    if run.failure is not None:
        summary["failed_stage"] = run.failure.stage.value
        summary["error"] = f"{type(run.failure.cause).__name__}: {run.failure.cause}"
    return summary
