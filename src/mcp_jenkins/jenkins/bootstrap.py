"""Fetch jenkins-cli.jar from the controller when it is missing locally."""
import logging
from pathlib import Path
from typing import Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .base import ExecutorUnavailable, ServerConfig

logger = logging.getLogger(__name__)

# Transport-level problems worth another attempt; HTTP errors are not
RETRYABLE_EXCEPTIONS = (
    httpx.TransportError,
    ConnectionResetError,
    TimeoutError,
)


class BootstrapError(ExecutorUnavailable):
    """The CLI jar could not be obtained."""
    pass


async def ensure_cli_jar(
    config: ServerConfig,
    client: Optional[httpx.AsyncClient] = None,
    force: bool = False,
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
) -> Path:
    """
    Make sure the CLI jar exists at ``config.cli_jar_path()``.

    Downloads ``<url>/jnlpJars/jenkins-cli.jar`` when the file is missing
    (or ``force`` is set). The file is written to a ``.part`` sibling first
    and moved into place, so a failed download never leaves a truncated jar.

    Args:
        config: Server settings (URL, jar location, timeout)
        client: Optional HTTP client (a new one is created and closed otherwise)
        force: Download even if the jar already exists
        max_attempts: Attempts for transport-level failures
        min_wait: Minimum backoff between attempts (seconds)
        max_wait: Maximum backoff between attempts (seconds)

    Returns:
        Path to the jar

    Raises:
        BootstrapError: If the jar could not be downloaded or written
    """
    jar_path = config.cli_jar_path()
    if jar_path.exists() and not force:
        logger.debug(f"CLI jar already present at {jar_path}")
        return jar_path

    url = config.cli_jar_url()
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout or 30.0),
            follow_redirects=True,
        )

    logger.info(f"Downloading Jenkins CLI from {url}")
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
            retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                response = await client.get(url)
                response.raise_for_status()
                content = response.content
    except httpx.HTTPStatusError as e:
        raise BootstrapError(
            f"Controller refused CLI download ({e.response.status_code}): {url}"
        ) from e
    except RETRYABLE_EXCEPTIONS as e:
        raise BootstrapError(f"Could not reach {url}: {e}") from e
    finally:
        if owns_client:
            await client.aclose()

    if not content:
        raise BootstrapError(f"Empty response downloading {url}")

    partial = jar_path.with_name(jar_path.name + ".part")
    try:
        jar_path.parent.mkdir(parents=True, exist_ok=True)
        partial.write_bytes(content)
        partial.replace(jar_path)
    except OSError as e:
        partial.unlink(missing_ok=True)
        raise BootstrapError(f"Cannot write {jar_path}: {e}") from e

    logger.info(f"Saved Jenkins CLI ({len(content)} bytes) to {jar_path}")
    return jar_path
