"""
Discovery of the host's public IP address, advertised to peers of the sequencer node.
"""
import ipaddress
from urllib.error import URLError
from urllib.request import Request, urlopen

from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import PublicIPDiscoveryError
from ..UTILS.logger import get_logger

logger = get_logger(__name__)

class _LookupFailed(Exception):
    pass

def _fetch(url: str, timeout: float) -> str:
    request = Request(url, headers={"User-Agent": "valstack"})
    try:
        with urlopen(request, timeout=timeout) as response:
            body = response.read(256).decode("ascii", errors="replace").strip()
    except (URLError, OSError) as e:
        raise _LookupFailed(str(e)) from e
    try:
        return str(ipaddress.ip_address(body))
    except ValueError:
        raise _LookupFailed(f"unexpected response {body[:64]!r}") from None

def discover_public_ip(url: str, timeout: float = 10.0, attempts: int = 3, backoff: float = 1.0) -> str:
    """
    Looks up the public IP with a bounded number of attempts.

    :param url: Lookup service returning the caller's address as plain text.
    :param timeout: Seconds allowed per attempt.
    :param attempts: Total attempts before giving up.
    :param backoff: Multiplier of the exponential wait between attempts.
    :return: The address.
    :raises PublicIPDiscoveryError: If every attempt fails.
    """
    fetch = retry(
        retry=retry_if_exception_type(_LookupFailed),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=backoff, max=8),
        before_sleep=lambda state: logger.warning(
            "Public IP lookup attempt %d failed: %s",
            state.attempt_number, state.outcome.exception(),
        ),
        reraise=False,
    )(_fetch)
    try:
        address = fetch(url, timeout)
    except RetryError as e:
        cause = e.last_attempt.exception()
        raise PublicIPDiscoveryError(
            f"could not determine the public IP from {url} after {attempts} attempts ({cause}); "
            "pass it explicitly with --public-ip or P2P_IP"
        ) from None
    logger.info("Public IP: %s", address)
    return address
