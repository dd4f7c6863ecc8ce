"""
Protocol probes: a single bounded check against one monitored target.

The target URL scheme picks the probe once, when the URL is parsed:

    http:// https://   -> HttpProbe  (GET, classify by status code)
    tcp://host:port    -> TcpProbe   (raw connect)
    ping://host        -> PingProbe  (one ICMP echo via the system ping tool)

Every probe applies its own hard timeout and never raises for network conditions;
failures are classified into a ProbeResult instead. The HTTP timeout is a total budget
shared by every redirect hop, and hostnames for raw sockets are resolved under the same
deadline as the connect.
"""
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import urljoin, urlsplit
import ipaddress
import logging
import re
import socket
import subprocess
import sys
import time

import dns.exception
import dns.resolver
import requests

from db.models.check_result import STATUS_UP, STATUS_DOWN, STATUS_ERROR

logger = logging.getLogger(__name__)

USER_AGENT = "UptimeMonitor/1.0"
HTTP_TIMEOUT_SECONDS = 30.0
TCP_TIMEOUT_SECONDS = 5.0
PING_TIMEOUT_SECONDS = 5.0
DEFAULT_TCP_PORT = 80
MAX_REDIRECTS = 10
REDIRECT_CODES = (301, 302, 303, 307, 308)

_RTT_SINGLE = re.compile(r"time[=<]\s*(\d+(?:\.\d+)?)\s*ms", re.IGNORECASE)
_RTT_SUMMARY = re.compile(r"=\s*([\d.]+)/([\d.]+)/([\d.]+)/([\d.]+)\s*ms")


class InvalidTargetError(ValueError):
    """The monitor URL cannot be probed (bad scheme, missing host, bad port)."""


@dataclass(frozen=True)
class ProbeResult:
    status: str
    response_time: int  # milliseconds
    status_code: Optional[int] = None
    error_message: Optional[str] = None

    @property
    def is_up(self) -> bool:
        return self.status == STATUS_UP


@dataclass(frozen=True)
class HttpTarget:
    url: str


@dataclass(frozen=True)
class TcpTarget:
    host: str
    port: int


@dataclass(frozen=True)
class PingTarget:
    host: str


Target = Union[HttpTarget, TcpTarget, PingTarget]


def parse_target(url: str) -> Target:
    """Parse a monitor URL into the target variant for its scheme."""
    if not url or not url.strip():
        raise InvalidTargetError("Empty target URL")

    raw = url.strip()
    try:
        parts = urlsplit(raw)
    except ValueError as e:
        raise InvalidTargetError(f"Invalid target URL: {e}") from e

    scheme = parts.scheme.lower()
    host = parts.hostname
    if scheme in ("http", "https"):
        if not host:
            raise InvalidTargetError("Invalid HTTP URL: missing host")
        return HttpTarget(url=raw)

    if scheme == "tcp":
        if not host:
            raise InvalidTargetError("Invalid TCP URL")
        try:
            port = parts.port or DEFAULT_TCP_PORT
        except ValueError as e:
            raise InvalidTargetError(f"Invalid TCP port: {e}") from e
        return TcpTarget(host=host, port=port)

    if scheme == "ping":
        # Never let a host be read as a ping command-line option
        if not host or host.startswith("-"):
            raise InvalidTargetError("Invalid ping URL")
        return PingTarget(host=host)

    raise InvalidTargetError(f"Unsupported target scheme: {parts.scheme or '(none)'}")


def _elapsed_ms(start: float, now: Optional[float] = None) -> int:
    if now is None:
        now = time.perf_counter()
    return max(0, int(round((now - start) * 1000)))


def resolve_host(host: str, lifetime: float, resolver: Optional[dns.resolver.Resolver] = None) -> str:
    """
    Resolve *host* to one address within *lifetime* seconds. IP literals are returned as-is.
    Raises dns.exception.DNSException (including dns.exception.Timeout) on failure.
    """
    try:
        return str(ipaddress.ip_address(host.strip("[]")))
    except ValueError:
        pass

    deadline = time.perf_counter() + lifetime
    resolver = resolver or dns.resolver.Resolver()
    for rdtype in ("A", "AAAA"):
        remaining = deadline - time.perf_counter()
        if remaining <= 0:
            raise dns.exception.Timeout(timeout=lifetime)
        resolver.lifetime = remaining
        try:
            return resolver.resolve(host, rdtype)[0].address
        except dns.resolver.NoAnswer:
            # No A record, try AAAA for IPv6-only hosts
            if rdtype == "AAAA":
                raise


def parse_rtt_ms(output: Optional[str]) -> Optional[float]:
    """Extract the round-trip time from ping output, if it reports one."""
    if not output:
        return None
    match = _RTT_SINGLE.search(output)
    if match:
        return float(match.group(1))
    match = _RTT_SUMMARY.search(output)
    if match:
        return float(match.group(2))
    return None


class HttpProbe:
    def __init__(self, timeout: float = HTTP_TIMEOUT_SECONDS, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session

    def _budget_spent(self) -> ProbeResult:
        return ProbeResult(
            status=STATUS_ERROR,
            response_time=int(self.timeout * 1000),
            error_message=f"HTTP timeout after {int(self.timeout * 1000)}ms",
        )

    def check(self, target: HttpTarget) -> ProbeResult:
        """GET the target, following redirects by hand so every hop shares one deadline."""
        getter = self.session.get if self.session is not None else requests.get
        start = time.perf_counter()
        deadline = start + self.timeout
        url = target.url

        for _ in range(MAX_REDIRECTS + 1):
            remaining = deadline - time.perf_counter()
            if remaining <= 0:
                return self._budget_spent()
            try:
                # stream=True returns as soon as headers arrive; the body is never read
                response = getter(
                    url,
                    timeout=remaining,
                    headers={"User-Agent": USER_AGENT},
                    stream=True,
                    allow_redirects=False,
                )
            except requests.RequestException as e:
                return ProbeResult(
                    status=STATUS_ERROR,
                    response_time=_elapsed_ms(start),
                    error_message=str(e),
                )

            now = time.perf_counter()
            status_code = response.status_code
            location = response.headers.get("Location")
            response.close()
            if now > deadline:
                return self._budget_spent()

            if status_code in REDIRECT_CODES and location:
                url = urljoin(url, location)
                continue

            status = STATUS_UP if 200 <= status_code < 400 else STATUS_DOWN
            return ProbeResult(status=status, response_time=_elapsed_ms(start, now), status_code=status_code)

        return ProbeResult(
            status=STATUS_ERROR,
            response_time=_elapsed_ms(start),
            error_message=f"Exceeded {MAX_REDIRECTS} redirects",
        )


class TcpProbe:
    def __init__(self, timeout: float = TCP_TIMEOUT_SECONDS, resolver: Optional[dns.resolver.Resolver] = None):
        self.timeout = timeout
        self.resolver = resolver

    def check(self, target: TcpTarget) -> ProbeResult:
        start = time.perf_counter()
        deadline = start + self.timeout
        try:
            address = resolve_host(target.host, self.timeout, self.resolver)
        except dns.exception.Timeout:
            return ProbeResult(
                status=STATUS_DOWN,
                response_time=_elapsed_ms(start),
                error_message=f"TCP timeout after {int(self.timeout * 1000)}ms",
            )
        except dns.exception.DNSException as e:
            return ProbeResult(
                status=STATUS_DOWN,
                response_time=_elapsed_ms(start),
                error_message=f"TCP error: DNS resolution failed: {e}",
            )

        remaining = deadline - time.perf_counter()
        try:
            if remaining <= 0:
                raise socket.timeout("timed out")
            conn = socket.create_connection((address, target.port), timeout=remaining)
        except socket.timeout:
            return ProbeResult(
                status=STATUS_DOWN,
                response_time=_elapsed_ms(start),
                error_message=f"TCP timeout after {int(self.timeout * 1000)}ms",
            )
        except OSError as e:
            return ProbeResult(
                status=STATUS_DOWN,
                response_time=_elapsed_ms(start),
                error_message=f"TCP error: {e}",
            )

        elapsed = _elapsed_ms(start)
        conn.close()
        return ProbeResult(status=STATUS_UP, response_time=elapsed)


class PingProbe:
    def __init__(self, timeout: float = PING_TIMEOUT_SECONDS, platform: Optional[str] = None):
        self.timeout = timeout
        self.platform = platform or sys.platform

    def build_command(self, host: str) -> list[str]:
        timeout_ms = int(self.timeout * 1000)
        if self.platform.startswith("win"):
            return ["ping", "-n", "1", "-w", str(timeout_ms), host]
        if self.platform == "darwin":
            return ["ping", "-c", "1", "-W", str(timeout_ms), host]
        return ["ping", "-c", "1", "-W", str(max(1, int(self.timeout))), host]

    def check(self, target: PingTarget) -> ProbeResult:
        cmd = self.build_command(target.host)
        start = time.perf_counter()
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout + 0.5,
            )
        except subprocess.TimeoutExpired:
            return ProbeResult(
                status=STATUS_DOWN,
                response_time=_elapsed_ms(start),
                error_message=f"Ping timed out after {int(self.timeout * 1000)}ms",
            )
        except OSError as e:
            return ProbeResult(
                status=STATUS_ERROR,
                response_time=_elapsed_ms(start),
                error_message=f"Failed to spawn ping: {e}",
            )

        wall = _elapsed_ms(start)
        rtt = parse_rtt_ms(proc.stdout)
        response_time = int(round(rtt)) if rtt is not None else wall
        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or "").strip().splitlines()
            reason = detail[-1] if detail else f"exit code {proc.returncode}"
            return ProbeResult(
                status=STATUS_DOWN,
                response_time=response_time,
                error_message=f"Ping failed: {reason}",
            )
        return ProbeResult(status=STATUS_UP, response_time=response_time)


class ProtocolProbe:
    """Runs the probe matching a target's variant."""

    def __init__(
        self,
        http: Optional[HttpProbe] = None,
        tcp: Optional[TcpProbe] = None,
        ping: Optional[PingProbe] = None,
    ):
        self._probes = {
            HttpTarget: http or HttpProbe(),
            TcpTarget: tcp or TcpProbe(),
            PingTarget: ping or PingProbe(),
        }

    def probe(self, target: Target) -> ProbeResult:
        return self._probes[type(target)].check(target)

    def check_url(self, url: str) -> ProbeResult:
        try:
            target = parse_target(url)
        except InvalidTargetError as e:
            logger.warning(f"Refusing to probe {url!r}: {e}")
            return ProbeResult(status=STATUS_ERROR, response_time=0, error_message=str(e))
        return self.probe(target)
