"""
Detection Dispatch Module for the Building Detection Orchestrator.
===================================================================

This module fans sub-region detection requests out to a pool of remote
building detection service replicas and collects every outcome.

Features:
    - Round-robin assignment of sub-regions to endpoints
    - All sub-region requests issued concurrently (one worker each)
    - Independent deadline per request
    - Individual failures recorded, never raised
    - Results ordered by sub-region index, whatever the completion order

Service Contract:
    POST {endpoint}/detect
    Request:  {"coordinates": [[lng, lat], ...], "threshold": 0.5, "use_v51": true}
    Response: {"geojson": {"type": "FeatureCollection", "features": [...]},
               "stats": {"tiles_processed": 4, "duplicates_removed": 1,
                         "processing_time_seconds": 12.3}}

Dependencies:
    - requests: HTTP transport

Author: Building Detection Team
Date: 2026-02-14
Version: 1.0.0
"""

# =============================================================================
# IMPORTS
# =============================================================================

import logging           # Logging functionality
import time              # Timing dispatch operations
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests          # HTTP client for the detection service

from inference.data_models import (
    DetectionRequest,
    DetectionResult,
    DispatchReport,
    ProcessingProgress,
    SubRegion,
    SubRegionFailure,
)
from inference.exceptions import InvalidInputError, TotalFailureError

logger = logging.getLogger(__name__)  # Get logger for this module

DEFAULT_TIMEOUT_SECONDS = 500.0
DETECT_ROUTE = "/detect"

ProgressCallback = Callable[[ProcessingProgress], None]


# =============================================================================
# ENDPOINT ASSIGNMENT
# =============================================================================

def assign_endpoint(index: int, endpoints: Sequence[str]) -> str:
    """
    Round-robin endpoint for the sub-region at `index`.

    Example:
        >>> assign_endpoint(5, ["a", "b", "c", "d"])
        'b'
    """
    return endpoints[index % len(endpoints)]


# =============================================================================
# DETECTION DISPATCHER CLASS
# =============================================================================

class DetectionDispatcher:
    """
    Concurrent sub-region dispatcher for the building detection service.

    Every sub-region gets its own worker thread, so all requests are in
    flight at once. Each request has an independent deadline measured from
    the start of the fan-out; a request that errors or misses its deadline
    becomes a SubRegionFailure and never affects its siblings.

    Cancellation limit: `requests` cannot abort a call already in flight.
    Past the deadline, `dispatch_all` returns at once with the request
    marked as timed out, and any late response is discarded. The worker
    thread itself lingers until the socket timeout (`timeout_seconds`)
    fires. Requests that have not started yet are cancelled.

    Attributes:
        timeout_seconds (float): Deadline of each sub-region request.
            Also passed to `requests` as the connect/read timeout.
            Default: 500 seconds.
        use_v51 (bool): Forwarded to the service in every payload.
        session: Object with a `requests`-compatible `post` method.
            Defaults to the `requests` module itself.

    Example:
        >>> dispatcher = DetectionDispatcher(timeout_seconds=120)
        >>> report = dispatcher.dispatch_all(sub_regions, 0.5, endpoints)
        >>> print(f"{len(report.results)}/{report.regions_total} sub-regions succeeded")
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        use_v51: bool = True,
        session: Optional[Any] = None,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            timeout_seconds (float, optional): Per-request deadline.
                Defaults to 500.
            use_v51 (bool, optional): Value of the `use_v51` payload flag.
                Defaults to True.
            session (optional): HTTP session used for POST requests.
                Must be safe to call from several threads.
                Defaults to the `requests` module.

        Raises:
            ValueError: If timeout_seconds is not positive.
        """
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {timeout_seconds}")

        self.timeout_seconds = timeout_seconds
        self.use_v51 = use_v51
        self.session = session if session is not None else requests

    @classmethod
    def from_config(cls, config, session: Optional[Any] = None) -> "DetectionDispatcher":
        """Create a dispatcher from an OrchestratorConfig."""
        return cls(
            timeout_seconds=config.timeout_seconds,
            use_v51=config.use_v51,
            session=session,
        )

    def _request_region(self, request: DetectionRequest, endpoint: str) -> DetectionResult:
        """
        Run one sub-region request (executed on a worker thread).

        Raises:
            requests.RequestException: On transport errors, timeouts and
                non-success status codes.
            ValueError: If the response body is not valid JSON or has an
                unexpected shape.
        """
        url = f"{endpoint.rstrip('/')}{DETECT_ROUTE}"
        response = self.session.post(
            url,
            json=request.to_payload(self.use_v51),
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()

        return DetectionResult.from_response(
            request.sub_region.index,
            endpoint,
            response.json(),
        )

    def dispatch_all(
        self,
        sub_regions: Sequence[SubRegion],
        threshold: float,
        endpoints: Sequence[str],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> DispatchReport:
        """
        Send every sub-region concurrently and wait for all outcomes.

        Algorithm:
            1. Bind sub-region i to endpoints[i % len(endpoints)]
            2. Submit one worker per sub-region
            3. Collect outcomes as they complete, placing each at its
               sub-region index
            4. At the deadline, mark every unfinished request as timed out

        Args:
            sub_regions: Non-empty sequence of sub-regions.
            threshold: Confidence threshold in (0, 1].
            endpoints: Non-empty pool of service base URLs.
            progress_callback (optional): Called with a ProcessingProgress
                after each sub-region settles.

        Returns:
            DispatchReport: Successes and failures, both ordered by
                sub-region index. Never raises for individual failures.

        Raises:
            InvalidInputError: If sub_regions or endpoints is empty, or the
                threshold is outside (0, 1].
        """
        if not sub_regions:
            raise InvalidInputError("No sub-regions to dispatch")
        if not endpoints:
            raise InvalidInputError("Endpoint pool is empty")

        requests_ = [
            DetectionRequest(
                sub_region=sub_region,
                threshold=threshold,
                endpoint_index=i % len(endpoints),
            )
            for i, sub_region in enumerate(sub_regions)
        ]
        total = len(requests_)

        # One slot per sub-region keeps the outcome order independent of
        # network completion order
        results: List[Optional[DetectionResult]] = [None] * total
        failures: List[Optional[SubRegionFailure]] = [None] * total
        progress = ProcessingProgress(total_regions=total, status="processing")

        logger.info(
            f"Dispatching {total} sub-region(s) across {len(endpoints)} endpoint(s)"
        )
        start_time = time.time()

        executor = ThreadPoolExecutor(max_workers=total, thread_name_prefix="detect")
        future_to_idx: Dict[Future, int] = {}
        for i, request in enumerate(requests_):
            endpoint = endpoints[request.endpoint_index]
            future_to_idx[executor.submit(self._request_region, request, endpoint)] = i

        def settle(future: Future, idx: int) -> None:
            endpoint = endpoints[requests_[idx].endpoint_index]
            try:
                results[idx] = future.result()
            except Exception as e:
                failures[idx] = SubRegionFailure(idx, endpoint, str(e) or type(e).__name__)
                progress.failed_regions += 1
                logger.warning(f"Sub-region {idx + 1}/{total} failed on {endpoint}: {e}")
            else:
                logger.debug(
                    f"Sub-region {idx + 1}/{total} returned "
                    f"{len(results[idx].features)} feature(s) from {endpoint}"
                )

            progress.completed_regions += 1
            progress.current_region = idx
            if progress_callback is not None:
                progress_callback(progress)

        try:
            for future in as_completed(future_to_idx, timeout=self.timeout_seconds):
                settle(future, future_to_idx[future])
        except FuturesTimeoutError:
            for future, idx in future_to_idx.items():
                if results[idx] is not None or failures[idx] is not None:
                    continue
                if future.done():
                    settle(future, idx)
                    continue
                future.cancel()
                endpoint = endpoints[requests_[idx].endpoint_index]
                failures[idx] = SubRegionFailure(
                    idx, endpoint, f"timed out after {self.timeout_seconds:g}s"
                )
                progress.failed_regions += 1
                progress.completed_regions += 1
                progress.current_region = idx
                logger.warning(f"Sub-region {idx + 1}/{total} timed out on {endpoint}")
                if progress_callback is not None:
                    progress_callback(progress)
        finally:
            # Timed-out workers finish in the background on their own socket timeout
            executor.shutdown(wait=False, cancel_futures=True)

        report = DispatchReport(
            results=[r for r in results if r is not None],
            failures=[f for f in failures if f is not None],
            regions_total=total,
        )

        progress.status = "failed" if report.all_failed else "completed"
        progress.current_region = None
        if progress_callback is not None:
            progress_callback(progress)

        logger.info(
            f"Dispatch finished in {time.time() - start_time:.2f}s: "
            f"{len(report.results)}/{total} sub-region(s) succeeded"
        )
        return report

    def dispatch(
        self,
        sub_regions: Sequence[SubRegion],
        threshold: float,
        endpoints: Sequence[str],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> List[DetectionResult]:
        """
        Send every sub-region concurrently and return the successful subset.

        Returns:
            List[DetectionResult]: Successful results ordered by sub-region index.

        Raises:
            InvalidInputError: On empty input, see `dispatch_all`.
            TotalFailureError: If every sub-region request failed.
        """
        report = self.dispatch_all(sub_regions, threshold, endpoints, progress_callback)
        if report.all_failed:
            raise TotalFailureError(report.failures)
        return report.results
