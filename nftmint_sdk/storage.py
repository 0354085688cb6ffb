"""
Content store client - uploads content to IPFS through a pinning service.
"""
import logging
from typing import Any, Dict, Optional, Protocol

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import DEFAULT_IPFS_GATEWAY, validate_service_url
from .exceptions import InvalidInput, NetworkError, ServiceError
from .utils import canonical_json, cid_to_uri, gateway_url, truncate
from .version import USER_AGENT


class ContentStoreClient(Protocol):
    """Interface the upload stage consumes"""

    def upload(self, data: bytes, mime_type: str) -> str:
        """Upload raw bytes, return an ipfs:// URI"""
        ...

    def upload_json(self, document: Dict[str, Any]) -> str:
        """Upload a JSON document, return an ipfs:// URI"""
        ...


class PinnerClient:
    """
    Client for an IPFS pinning service.

    The service accepts JSON documents on POST /pin and multipart file
    uploads on POST /pin/file, answering {"cid": "..."} in both cases.
    Each call makes a single logical attempt; retries with backoff belong
    to the upload stage.
    """

    def __init__(
        self,
        pinner_url: str,
        gateway: str = DEFAULT_IPFS_GATEWAY,
        api_token: Optional[str] = None,
        timeout: int = 30,
        connect_retries: int = 0,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the pinner client

        Args:
            pinner_url: Pinning service URL (e.g., "https://pin.myapp.com")
            gateway: IPFS HTTP gateway used to resolve ipfs:// URIs
            api_token: Optional bearer token for the pinning service
            timeout: Timeout for HTTP requests in seconds
            connect_retries: Transport-level retries for failed connections
            logger: Optional logger instance

        Raises:
            ValueError: If a URL doesn't use https (unless it's localhost/127.0.0.1)
        """
        self.pinner_url = validate_service_url("pinner_url", pinner_url)
        self.gateway = validate_service_url("gateway", gateway)
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

        self.session = requests.Session()
        self.session.headers["User-Agent"] = USER_AGENT
        if api_token:
            self.session.headers["Authorization"] = f"Bearer {api_token}"
        retries = Retry(
            total=connect_retries,
            connect=connect_retries,
            read=0,
            status=0,
            backoff_factor=0.5,
            allowed_methods=["GET", "HEAD", "POST"],
            raise_on_status=False,
        )
        self.session.mount("http://", HTTPAdapter(max_retries=retries))
        self.session.mount("https://", HTTPAdapter(max_retries=retries))

    def upload(self, data: bytes, mime_type: str) -> str:
        """
        Pin raw bytes

        Raises:
            InvalidInput: If data is empty or mime_type missing
            NetworkError: If the service could not be reached
            ServiceError: If the service answered with an error
        """
        if not data:
            raise InvalidInput("Cannot upload empty content")
        if not mime_type:
            raise InvalidInput("A MIME type is required")

        self.logger.debug(f"Pinning {len(data)} bytes ({mime_type}) to IPFS")
        response = self._post(
            "/pin/file",
            files={"file": ("content", data, mime_type)},
        )
        return self._uri_from_response(response)

    def upload_json(self, document: Dict[str, Any]) -> str:
        """
        Pin a JSON document

        Raises:
            InvalidInput: If the document is empty or not serializable
            NetworkError: If the service could not be reached
            ServiceError: If the service answered with an error
        """
        if not isinstance(document, dict) or not document:
            raise InvalidInput("Cannot upload an empty JSON document")
        try:
            body = canonical_json(document)
        except (TypeError, ValueError) as e:
            raise InvalidInput(str(e))

        self.logger.debug(f"Pinning JSON document ({len(body)} bytes) to IPFS")
        response = self._post(
            "/pin",
            data=body,
            headers={"Content-Type": "application/json"},
        )
        return self._uri_from_response(response)

    def exists(self, uri: str) -> bool:
        """
        Check that an ipfs:// URI resolves through the gateway

        Raises:
            NetworkError: If the gateway could not be reached
            ServiceError: If the gateway answered with an unexpected error
        """
        url = gateway_url(uri, self.gateway)
        try:
            response = self.session.head(url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            raise NetworkError(f"IPFS gateway request failed: {e}")

        if response.status_code == 404:
            return False
        if response.status_code >= 400:
            raise ServiceError(
                f"IPFS gateway returned {response.status_code} for {uri}",
                status_code=response.status_code,
                transient=response.status_code >= 500 or response.status_code == 429,
            )
        return True

    def fetch_json(self, uri: str) -> Dict[str, Any]:
        """
        Fetch a JSON document through the gateway

        Raises:
            NetworkError: If the gateway could not be reached
            ServiceError: If the gateway answered with an error or non-JSON body
        """
        url = gateway_url(uri, self.gateway)
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkError(f"IPFS gateway request failed: {e}")
        self._raise_for_status(response)
        try:
            document = response.json()
        except ValueError as e:
            raise ServiceError(f"Invalid JSON at {uri}: {e}", status_code=response.status_code, transient=False)
        if not isinstance(document, dict):
            raise ServiceError(f"Document at {uri} is not a JSON object", transient=False)
        return document

    def _post(self, path: str, **kwargs: Any) -> requests.Response:
        try:
            response = self.session.post(
                f"{self.pinner_url}{path}",
                timeout=self.timeout,
                **kwargs
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            self.logger.debug(f"Pinner connection failed: {e}")
            raise NetworkError(f"IPFS pinning request failed: {e}")
        except requests.RequestException as e:
            raise ServiceError(f"IPFS pinning request failed: {e}", transient=False)
        self._raise_for_status(response)
        return response

    def _raise_for_status(self, response: requests.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        # 429 and 5xx are worth retrying, other 4xx are caller errors
        transient = status >= 500 or status == 429
        raise ServiceError(
            f"IPFS pinning service returned {status}: {response.text[:200]}",
            status_code=status,
            transient=transient,
        )

    def _uri_from_response(self, response: requests.Response) -> str:
        content_type = response.headers.get('Content-Type', '')
        if 'application/json' not in content_type:
            self.logger.warning(f"Unexpected Content-Type: {content_type} (expected application/json)")

        try:
            result = response.json()
        except ValueError as e:
            raise ServiceError(f"Invalid JSON from pinner: {e}", status_code=response.status_code, transient=False)

        if not isinstance(result, dict) or not result.get("cid"):
            raise ServiceError(f"Missing CID in pinner response: {result}", transient=False)

        try:
            uri = cid_to_uri(result["cid"])
        except InvalidInput as e:
            raise ServiceError(f"Pinner returned an invalid CID: {e}", transient=False)
        self.logger.debug(f"Pinned content as {truncate(uri, 20)}")
        return uri
