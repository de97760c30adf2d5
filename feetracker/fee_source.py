"""HTTP client for the mempool.space fee and block endpoints."""

import time
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar
import requests
from .constants import (
    DEFAULT_API_BASE_URL,
    DEFAULT_HTTP_TIMEOUT_SECS,
    FEES_ENDPOINT,
    BLOCK_HEIGHT_ENDPOINT,
    MEMPOOL_BLOCKS_ENDPOINT,
)
from .fees import FeeSnapshot, FeeRange, BlockHeight, is_valid_fee_data, parse_fee_range
from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class FeeSourceError(Exception):
    """Base class for fee source failures."""
    def __init__(self, message: str, url: str = None):
        self.message = message
        self.url = url
        super().__init__(message)


class NetworkError(FeeSourceError):
    """Raised on timeout, connectivity loss or a non-2xx HTTP status."""


class MalformedResponse(FeeSourceError):
    """Raised when a response body does not have the expected shape."""


@dataclass
class ApiResult(Generic[T]):
    """Uniform result-or-error envelope returned by every client call."""
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    timestamp: float = 0.0

    @classmethod
    def ok(cls, data: T) -> "ApiResult[T]":
        return cls(success=True, data=data, timestamp=time.time())

    @classmethod
    def fail(cls, exc: FeeSourceError) -> "ApiResult[T]":
        return cls(
            success=False,
            error=exc.message,
            error_type=type(exc).__name__,
            timestamp=time.time(),
        )


class FeeSourceClient:
    """mempool.space client with persistent session."""

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout_secs: float = DEFAULT_HTTP_TIMEOUT_SECS,
        session: requests.Session = None,
    ):
        """
        Initialize fee source client.

        Args:
            base_url: API base URL (e.g., "https://mempool.space/api/v1")
            timeout_secs: Per-request timeout in seconds
            session: Optional pre-built session (tests inject a mock here)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_secs = timeout_secs
        self.session = session or requests.Session()
        self.session.headers["Accept"] = "application/json"

    def _get_json(self, endpoint: str) -> Any:
        """
        GET an endpoint and decode its JSON body.

        Raises:
            NetworkError: On timeout, connection failure or HTTP error status
            MalformedResponse: If the body is not valid JSON
        """
        url = self.base_url + endpoint
        try:
            response = self.session.get(url, timeout=self.timeout_secs)
        except requests.Timeout:
            raise NetworkError(f"Request timed out after {self.timeout_secs}s", url=url)
        except requests.RequestException as e:
            raise NetworkError(f"Request failed: {e}", url=url)

        if not 200 <= response.status_code < 300:
            raise NetworkError(f"HTTP {response.status_code}: {response.reason}", url=url)

        try:
            return response.json()
        except ValueError:
            raise MalformedResponse("Response body is not valid JSON", url=url)

    def fetch_fees(self) -> ApiResult[FeeSnapshot]:
        """
        Fetch recommended fee rates.

        Returns:
            ApiResult carrying a FeeSnapshot, or the error message on failure
        """
        try:
            data = self._get_json(FEES_ENDPOINT)
            if not is_valid_fee_data(data):
                raise MalformedResponse("Invalid fee data structure received from API")
            return ApiResult.ok(FeeSnapshot.from_dict(data))
        except FeeSourceError as e:
            logger.error(f"Failed to fetch fee data: {type(e).__name__}: {e.message}")
            return ApiResult.fail(e)

    def fetch_block_height(self) -> ApiResult[BlockHeight]:
        """
        Fetch the latest block height.

        Returns:
            ApiResult carrying a BlockHeight, or the error message on failure
        """
        try:
            height = self._get_json(BLOCK_HEIGHT_ENDPOINT)
            if isinstance(height, bool) or not isinstance(height, int) or height <= 0:
                raise MalformedResponse("Invalid block height received from API")
            return ApiResult.ok(BlockHeight(height=height))
        except FeeSourceError as e:
            logger.error(f"Failed to fetch block height: {type(e).__name__}: {e.message}")
            return ApiResult.fail(e)

    def fetch_next_block_fee_range(self) -> ApiResult[FeeRange]:
        """
        Fetch the fee range of the next projected block.

        Returns:
            ApiResult carrying a FeeRange, or the error message on failure
        """
        try:
            fee_range = parse_fee_range(self._get_json(MEMPOOL_BLOCKS_ENDPOINT))
            if fee_range is None:
                raise MalformedResponse("Invalid mempool blocks data received from API")
            return ApiResult.ok(fee_range)
        except FeeSourceError as e:
            logger.error(f"Failed to fetch next block fee range: {type(e).__name__}: {e.message}")
            return ApiResult.fail(e)

    def test_connection(self) -> bool:
        """Check API connectivity with a fee request."""
        return self.fetch_fees().success

    def close(self):
        """Close the underlying HTTP session."""
        self.session.close()
