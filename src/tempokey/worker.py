"""
Isolated analysis worker: one process per request, talking over a Pipe.

Request:  {samples, sample_rate, duration_seconds, channel_count, request_id}
Success:  {success: True, request_id, tempo_bpm, key}
Failure:  {success: False, request_id, error}

The caller owns the timeout. When it expires the process is terminated
and a failure response is produced on the caller side; nothing is retried.
"""

import logging
import multiprocessing
import traceback
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from tempokey.analyze.engine import AnalysisError, AnalysisOrchestrator
from tempokey.config import Config
from tempokey.models import AudioSignal

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30
REQUIRED_FIELDS = ("samples", "sample_rate", "request_id")

TIMEOUT_ERROR = "Worker analysis timeout"
WORKER_ERROR = "Worker error occurred"


def build_request(signal: AudioSignal, request_id: str) -> Dict[str, Any]:
    """Package a signal as a worker request message."""
    return {
        "samples": signal.samples,
        "sample_rate": signal.sample_rate,
        "duration_seconds": signal.duration_seconds,
        "channel_count": signal.channel_count,
        "request_id": request_id,
    }


def failure_response(request_id: Optional[str], error: str) -> Dict[str, Any]:
    return {"success": False, "request_id": request_id, "error": error}


def handle_request(message: Dict[str, Any], config_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Run one analysis request and build the response message.

    This is the body of the worker process; it never raises.

    Args:
        message: Request dict
        config_data: Raw config dict (Config.data) for strategy parameters

    Returns:
        Success or failure response dict carrying the same request_id
    """
    request_id = message.get("request_id") if isinstance(message, dict) else None

    try:
        missing = [f for f in REQUIRED_FIELDS if not isinstance(message, dict) or f not in message]
        if missing:
            return failure_response(request_id, f"Missing required fields: {', '.join(missing)}")

        signal = AudioSignal(
            message["samples"],
            message["sample_rate"],
            channel_count=message.get("channel_count", 1),
        )

        declared = message.get("duration_seconds")
        if declared is not None and abs(float(declared) - signal.duration_seconds) > 0.5:
            logger.debug(
                f"[{request_id}] declared duration {float(declared):.2f}s differs from "
                f"sample count ({signal.duration_seconds:.2f}s); using sample count"
            )

        if config_data is not None:
            orchestrator = AnalysisOrchestrator.from_config(Config(config_data))
        else:
            orchestrator = AnalysisOrchestrator()
        result = orchestrator.run(signal)

        return {
            "success": True,
            "request_id": request_id,
            "tempo_bpm": result.tempo_bpm,
            "key": result.key.label,
        }

    except (ValueError, TypeError) as e:
        logger.warning(f"[{request_id}] Invalid analysis request: {e}")
        return failure_response(request_id, f"Invalid request: {e}")
    except AnalysisError as e:
        logger.error(f"[{request_id}] {e}", exc_info=True)
        return failure_response(request_id, str(e))
    except Exception as e:
        logger.error(f"[{request_id}] Unexpected analysis failure: {e}", exc_info=True)
        return failure_response(request_id, f"Unexpected analysis failure: {e}")


def analysis_worker(conn, config_data: Optional[Dict[str, Any]] = None) -> None:
    """
    Process entrypoint: receive one request, send one response, exit.

    Args:
        conn: Child end of the Pipe
        config_data: Raw config dict, or None for defaults
    """
    try:
        message = conn.recv()
        conn.send(handle_request(message, config_data))
    except EOFError:
        # Caller went away before sending a request
        pass
    except Exception:
        traceback.print_exc()
        raise
    finally:
        conn.close()


def run_in_worker(
    request: Dict[str, Any],
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    config: Optional[Config] = None,
) -> Dict[str, Any]:
    """
    Analyze one request in a fresh process.

    Args:
        request: Request message (see build_request)
        timeout_seconds: Give up and terminate the process after this long
        config: Optional Config passed to the worker

    Returns:
        Response dict; timeouts and crashes come back as failure responses
    """
    request_id = request.get("request_id")
    ctx = multiprocessing.get_context("spawn")
    parent_conn, child_conn = ctx.Pipe()
    process = ctx.Process(
        target=analysis_worker,
        args=(child_conn, config.data if config is not None else None),
        daemon=True,
    )

    process.start()
    child_conn.close()

    try:
        parent_conn.send(request)

        if not parent_conn.poll(timeout_seconds):
            logger.error(f"[{request_id}] Analysis timeout after {timeout_seconds} seconds")
            return failure_response(request_id, TIMEOUT_ERROR)

        response = parent_conn.recv()

        if response.get("request_id") != request_id:
            logger.warning(
                f"[{request_id}] Received result for different request "
                f"({response.get('request_id')!r}), discarding"
            )
            return failure_response(request_id, WORKER_ERROR)

        return response

    except (EOFError, OSError) as e:
        logger.error(f"[{request_id}] Worker process failed: {e!r} (exit code {process.exitcode})")
        return failure_response(request_id, WORKER_ERROR)

    finally:
        parent_conn.close()
        process.join(timeout=1)
        if process.is_alive():
            process.terminate()
            process.join()


def _collect(future, on_response: Optional[Callable[[Dict[str, Any]], None]]) -> Dict[str, Any]:
    response = future.result()
    if on_response is not None:
        on_response(response)
    return response


def analyze_many(
    requests: Iterable[Dict[str, Any]],
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    max_workers: int = 2,
    config: Optional[Config] = None,
    on_response: Optional[Callable[[Dict[str, Any]], None]] = None,
) -> List[Dict[str, Any]]:
    """
    Analyze several requests concurrently, one process per request.

    `requests` is consumed lazily: at most `max_workers` requests are in
    flight, so a generator can decode its audio just before submission.
    `on_response` runs in the calling thread, once per response, in
    request order.

    Args:
        requests: Request dicts (list or generator)
        timeout_seconds: Per-request timeout
        max_workers: Concurrent worker processes
        config: Optional Config passed to every worker
        on_response: Callback for progress reporting

    Returns:
        Responses in the same order as `requests`
    """
    responses: List[Dict[str, Any]] = []
    pending: Deque = deque()

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        for request in requests:
            pending.append(
                pool.submit(run_in_worker, request, timeout_seconds=timeout_seconds, config=config)
            )
            if len(pending) >= max_workers:
                responses.append(_collect(pending.popleft(), on_response))

        while pending:
            responses.append(_collect(pending.popleft(), on_response))

    return responses
