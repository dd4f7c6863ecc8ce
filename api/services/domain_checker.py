"""
Domain checks: TLS certificate, DNS resolution and WHOIS registration for a hostname.

The three sub-checks run concurrently and each one is bounded by its own timeout.
A failing sub-check fills in its error marker; it never fails the whole check.
"""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol
import logging
import re
import socket
import ssl
import subprocess
import time

import dns.exception
import dns.resolver

from api.services.probes import resolve_host
from api.services.timeutils import parse_datetime

logger = logging.getLogger(__name__)

SSL_TIMEOUT_SECONDS = 10.0
DNS_TIMEOUT_SECONDS = 5.0
WHOIS_TIMEOUT_SECONDS = 15.0

_SCHEME = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
_REGISTRAR = re.compile(r"^\s*Registrar:\s*(.+)$", re.IGNORECASE | re.MULTILINE)
_EXPIRY_PATTERNS = [
    re.compile(r"^\s*Registry Expiry Date:\s*(.+)$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^\s*Registrar Registration Expiration Date:\s*(.+)$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^\s*Expiration Date:\s*(.+)$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^\s*Expiry Date:\s*(.+)$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^\s*paid-till:\s*(.+)$", re.IGNORECASE | re.MULTILINE),
]


@dataclass
class SslInfo:
    valid: bool
    expires_at: Optional[datetime] = None
    issuer: Optional[str] = None
    error: Optional[str] = None


@dataclass
class DnsInfo:
    resolved: bool
    records: list[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class WhoisInfo:
    registrar: Optional[str] = None
    expires_at: Optional[datetime] = None
    error: Optional[str] = None


@dataclass
class DomainCheckResult:
    domain: str
    ssl: SslInfo
    dns: DnsInfo
    whois: WhoisInfo


class WhoisLookup(Protocol):
    def lookup(self, domain: str) -> WhoisInfo:
        ...


def normalize_domain(value: str) -> str:
    """Strip scheme, credentials, port and path: 'https://a.example.com:8443/x' -> 'a.example.com'."""
    host = _SCHEME.sub("", value.strip())
    host = host.split("/", 1)[0].split("?", 1)[0].split("#", 1)[0]
    host = host.rsplit("@", 1)[-1]
    if not host.startswith("["):
        host = host.split(":", 1)[0]
    return host.lower().rstrip(".")


def parse_whois(text: str) -> WhoisInfo:
    """Pull registrar and expiry out of free-text WHOIS output. Missing fields stay None."""
    info = WhoisInfo()
    if not text:
        return info

    match = _REGISTRAR.search(text)
    if match and match.group(1).strip():
        info.registrar = match.group(1).strip()

    for pattern in _EXPIRY_PATTERNS:
        match = pattern.search(text)
        if match:
            info.expires_at = parse_datetime(match.group(1).strip())
            if info.expires_at is not None:
                break
    return info


class SystemWhois:
    """WHOIS via the system `whois` command."""

    def __init__(self, timeout: float = WHOIS_TIMEOUT_SECONDS, command: str = "whois"):
        self.timeout = timeout
        self.command = command

    def lookup(self, domain: str) -> WhoisInfo:
        try:
            proc = subprocess.run(
                [self.command, domain],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return WhoisInfo(error=f"Whois lookup timed out after {self.timeout:g}s")
        except OSError as e:
            return WhoisInfo(error=f"Whois lookup failed: {e}")

        # Some whois clients exit non-zero yet still print a usable record
        info = parse_whois(proc.stdout)
        if proc.returncode != 0 and info.registrar is None and info.expires_at is None:
            info.error = (proc.stderr or "").strip() or f"whois exited with code {proc.returncode}"
        return info


class DomainChecker:
    def __init__(
        self,
        whois: Optional[WhoisLookup] = None,
        resolver: Optional[dns.resolver.Resolver] = None,
        ssl_timeout: float = SSL_TIMEOUT_SECONDS,
        dns_timeout: float = DNS_TIMEOUT_SECONDS,
    ):
        self.whois = whois or SystemWhois()
        self.resolver = resolver
        self.ssl_timeout = ssl_timeout
        self.dns_timeout = dns_timeout

    def check_domain(self, domain: str) -> DomainCheckResult:
        clean = normalize_domain(domain)
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="domain-check") as pool:
            ssl_future = pool.submit(self.check_ssl, clean)
            dns_future = pool.submit(self.check_dns, clean)
            whois_future = pool.submit(self.whois.lookup, clean)

            ssl_info = self._settle(ssl_future, SslInfo(valid=False, error="SSL check failed"), "ssl", clean)
            dns_info = self._settle(dns_future, DnsInfo(resolved=False, error="DNS check failed"), "dns", clean)
            whois_info = self._settle(whois_future, WhoisInfo(error="Whois check failed"), "whois", clean)

        return DomainCheckResult(domain=clean, ssl=ssl_info, dns=dns_info, whois=whois_info)

    @staticmethod
    def _settle(future, fallback, name: str, domain: str):
        try:
            return future.result()
        except Exception:
            logger.exception(f"{name} sub-check crashed for {domain}")
            return fallback

    def check_ssl(self, domain: str) -> SslInfo:
        context = ssl.create_default_context()
        deadline = time.perf_counter() + self.ssl_timeout
        try:
            address = resolve_host(domain, self.ssl_timeout, self.resolver)
        except dns.exception.DNSException as e:
            return SslInfo(valid=False, error=f"DNS resolution failed: {str(e) or type(e).__name__}")

        remaining = deadline - time.perf_counter()
        if remaining <= 0:
            return SslInfo(valid=False, error=f"TLS timeout after {int(self.ssl_timeout * 1000)}ms")
        try:
            # SNI and certificate matching still use the hostname
            with socket.create_connection((address, 443), timeout=remaining) as sock:
                with context.wrap_socket(sock, server_hostname=domain) as tls:
                    cert = tls.getpeercert() or {}
        except (ssl.SSLError, OSError) as e:
            return SslInfo(valid=False, error=str(e))

        expires_at = None
        if cert.get("notAfter"):
            expires_at = datetime.fromtimestamp(ssl.cert_time_to_seconds(cert["notAfter"]), tz=timezone.utc)
        issuer = None
        for rdn in cert.get("issuer", ()):
            for key, value in rdn:
                if key == "organizationName":
                    issuer = value
        return SslInfo(valid=True, expires_at=expires_at, issuer=issuer)

    def check_dns(self, domain: str) -> DnsInfo:
        resolver = self.resolver or dns.resolver.Resolver()
        resolver.lifetime = self.dns_timeout
        try:
            answer = resolver.resolve(domain, "A")
        except dns.exception.DNSException as e:
            return DnsInfo(resolved=False, error=str(e) or type(e).__name__)
        return DnsInfo(resolved=True, records=[rdata.address for rdata in answer])
