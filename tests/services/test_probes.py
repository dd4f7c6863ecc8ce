"""
Tests for the HTTP, TCP and ping probes
"""
import socket
import subprocess
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import dns.exception
import dns.resolver
import pytest
import requests
from unittest.mock import Mock, patch
from api.services.probes import (
    MAX_REDIRECTS,
    HttpProbe,
    HttpTarget,
    InvalidTargetError,
    PingProbe,
    PingTarget,
    ProbeResult,
    ProtocolProbe,
    TcpProbe,
    TcpTarget,
    USER_AGENT,
    parse_rtt_ms,
    parse_target,
    resolve_host,
)


def _clock(*values):
    """Patch the probe module's perf_counter with a fixed sequence of readings"""
    fake_time = Mock()
    fake_time.perf_counter.side_effect = list(values)
    return patch("api.services.probes.time", fake_time)


class TestParseTarget:
    """Test URL to target variant parsing"""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://example.com/health", HttpTarget(url="https://example.com/health")),
            ("http://example.com", HttpTarget(url="http://example.com")),
            ("  HTTPS://Example.com  ", HttpTarget(url="HTTPS://Example.com")),
            ("tcp://10.0.0.1:9999", TcpTarget(host="10.0.0.1", port=9999)),
            ("tcp://db.internal", TcpTarget(host="db.internal", port=80)),
            ("ping://8.8.8.8", PingTarget(host="8.8.8.8")),
            ("ping://router.lan/", PingTarget(host="router.lan")),
        ],
    )
    def test_valid_targets(self, url, expected):
        assert parse_target(url) == expected

    @pytest.mark.parametrize(
        "url",
        [
            "",
            "   ",
            "ftp://example.com",
            "example.com",
            "http://",
            "tcp://:80",
            "tcp://host:notaport",
            "tcp://host:70000",
            "ping://",
        ],
    )
    def test_invalid_targets(self, url):
        with pytest.raises(InvalidTargetError):
            parse_target(url)


def _response(status_code, location=None):
    response = Mock(status_code=status_code)
    response.headers = {"Location": location} if location else {}
    return response


class _SlowRedirectHandler(BaseHTTPRequestHandler):
    """Answers every request with a redirect back to itself after a delay"""

    delay = 0.3

    def do_GET(self):
        time.sleep(self.delay)
        self.send_response(302)
        self.send_header("Location", "/again")
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, format, *args):
        pass


@pytest.fixture
def slow_redirect_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _SlowRedirectHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}/"
    server.shutdown()
    server.server_close()


class TestHttpProbe:
    """Test HTTP status classification"""

    @pytest.mark.parametrize("status_code", [200, 204, 301, 302, 399])
    def test_2xx_and_3xx_are_up(self, status_code):
        """A 3xx without a Location header is the final response"""
        response = _response(status_code)
        with patch("api.services.probes.requests.get", return_value=response):
            result = HttpProbe().check(HttpTarget(url="https://example.com"))

        assert result.status == "up"
        assert result.status_code == status_code
        response.close.assert_called_once()

    @pytest.mark.parametrize("status_code", [400, 404, 429, 500, 503, 599])
    def test_4xx_and_5xx_are_down(self, status_code):
        with patch("api.services.probes.requests.get", return_value=_response(status_code)):
            result = HttpProbe().check(HttpTarget(url="https://example.com"))

        assert result.status == "down"
        assert result.status_code == status_code
        assert result.error_message is None

    def test_response_time_measured_in_milliseconds(self):
        with patch("api.services.probes.requests.get", return_value=_response(200)):
            with _clock(10.0, 10.0, 10.12):
                result = HttpProbe().check(HttpTarget(url="https://example.com"))

        assert result == ProbeResult(status="up", response_time=120, status_code=200)

    def test_sends_user_agent_and_timeout(self):
        with patch("api.services.probes.requests.get", return_value=_response(200)) as mock_get:
            with _clock(0.0, 0.0, 0.05):
                HttpProbe().check(HttpTarget(url="https://example.com"))

        kwargs = mock_get.call_args.kwargs
        assert kwargs["timeout"] == 30.0
        assert kwargs["headers"]["User-Agent"] == USER_AGENT
        assert kwargs["allow_redirects"] is False

    def test_follows_redirects_to_final_status(self):
        responses = [
            _response(301, location="https://www.example.com/"),
            _response(302, location="/login"),
            _response(200),
        ]
        with patch("api.services.probes.requests.get", side_effect=responses) as mock_get:
            result = HttpProbe().check(HttpTarget(url="https://example.com"))

        assert result.status == "up"
        assert result.status_code == 200
        urls = [c.args[0] for c in mock_get.call_args_list]
        assert urls == ["https://example.com", "https://www.example.com/", "https://www.example.com/login"]
        for response in responses:
            response.close.assert_called_once()

    def test_redirect_hops_share_one_deadline(self):
        responses = [_response(302, location="/a"), _response(302, location="/b"), _response(200)]
        # start, then (remaining, response) per hop
        with patch("api.services.probes.requests.get", side_effect=responses) as mock_get:
            with _clock(0.0, 0.0, 4.0, 4.0, 9.0, 9.0, 9.5):
                result = HttpProbe(timeout=10.0).check(HttpTarget(url="https://example.com"))

        assert result == ProbeResult(status="up", response_time=9500, status_code=200)
        assert [c.kwargs["timeout"] for c in mock_get.call_args_list] == [10.0, 6.0, 1.0]

    def test_spent_budget_is_error_before_next_hop(self):
        with patch("api.services.probes.requests.get", return_value=_response(302, location="/next")) as mock_get:
            with _clock(0.0, 0.0, 10.0, 10.0):
                result = HttpProbe(timeout=10.0).check(HttpTarget(url="https://example.com"))

        assert result.status == "error"
        assert result.error_message == "HTTP timeout after 10000ms"
        mock_get.assert_called_once()

    def test_response_after_deadline_is_error(self):
        with patch("api.services.probes.requests.get", return_value=_response(200)):
            with _clock(0.0, 0.0, 10.5):
                result = HttpProbe(timeout=10.0).check(HttpTarget(url="https://example.com"))

        assert result.status == "error"
        assert result.response_time == 10000

    def test_redirect_loop_is_error(self):
        with patch("api.services.probes.requests.get", return_value=_response(302, location="/loop")) as mock_get:
            result = HttpProbe().check(HttpTarget(url="https://example.com"))

        assert result.status == "error"
        assert result.error_message == f"Exceeded {MAX_REDIRECTS} redirects"
        assert mock_get.call_count == MAX_REDIRECTS + 1

    def test_slow_redirect_chain_stops_at_total_timeout(self, slow_redirect_server):
        """Each hop is well under the timeout, the chain is not"""
        session = requests.Session()
        session.trust_env = False
        started = time.perf_counter()
        result = HttpProbe(timeout=1.0, session=session).check(HttpTarget(url=slow_redirect_server))
        wall = time.perf_counter() - started
        session.close()

        assert result.status == "error"
        assert wall < 2.0

    @pytest.mark.parametrize(
        "exc",
        [
            requests.ConnectionError("Connection refused"),
            requests.Timeout("Read timed out"),
            requests.exceptions.SSLError("certificate verify failed"),
        ],
    )
    def test_transport_failure_is_error(self, exc):
        with patch("api.services.probes.requests.get", side_effect=exc):
            result = HttpProbe().check(HttpTarget(url="https://example.com"))

        assert result.status == "error"
        assert result.status_code is None
        assert str(exc) in result.error_message

    def test_uses_injected_session(self):
        session = Mock()
        session.get.return_value = _response(200)
        with patch("api.services.probes.requests.get") as mock_get:
            result = HttpProbe(session=session).check(HttpTarget(url="https://example.com"))

        assert result.status == "up"
        session.get.assert_called_once()
        mock_get.assert_not_called()


class TestResolveHost:
    """Test hostname resolution under a deadline"""

    @pytest.mark.parametrize("host,expected", [("10.0.0.1", "10.0.0.1"), ("::1", "::1"), ("[2001:db8::1]", "2001:db8::1")])
    def test_ip_literals_pass_through(self, host, expected):
        resolver = Mock()
        assert resolve_host(host, 5.0, resolver) == expected
        resolver.resolve.assert_not_called()

    def test_resolves_a_record_with_lifetime(self):
        resolver = Mock()
        resolver.resolve.return_value = [Mock(address="192.0.2.10")]
        with _clock(0.0, 0.0):
            assert resolve_host("db.internal", 5.0, resolver) == "192.0.2.10"

        resolver.resolve.assert_called_once_with("db.internal", "A")
        assert resolver.lifetime == 5.0

    def test_falls_back_to_aaaa(self):
        resolver = Mock()
        resolver.resolve.side_effect = [dns.resolver.NoAnswer(), [Mock(address="2001:db8::10")]]
        with _clock(0.0, 0.0, 2.0):
            assert resolve_host("v6only.internal", 5.0, resolver) == "2001:db8::10"

        assert resolver.resolve.call_args_list[1].args == ("v6only.internal", "AAAA")
        assert resolver.lifetime == 3.0

    def test_spent_lifetime_times_out(self):
        resolver = Mock()
        resolver.resolve.side_effect = dns.resolver.NoAnswer()
        with _clock(0.0, 0.0, 5.0):
            with pytest.raises(dns.exception.Timeout):
                resolve_host("slow.internal", 5.0, resolver)
        resolver.resolve.assert_called_once()


class TestTcpProbe:
    """Test raw TCP connect checks"""

    def test_connect_success_is_up(self):
        conn = Mock()
        with patch("api.services.probes.socket.create_connection", return_value=conn) as mock_connect:
            with _clock(1.0, 1.0, 1.015):
                result = TcpProbe().check(TcpTarget(host="10.0.0.5", port=5432))

        assert result == ProbeResult(status="up", response_time=15)
        mock_connect.assert_called_once_with(("10.0.0.5", 5432), timeout=5.0)
        conn.close.assert_called_once()

    def test_connects_to_resolved_address_within_remaining_time(self):
        resolver = Mock()
        resolver.resolve.return_value = [Mock(address="192.0.2.10")]
        # check start, resolver deadline, A lookup, connect budget, elapsed
        with patch("api.services.probes.socket.create_connection") as mock_connect:
            with _clock(1.0, 1.0, 1.0, 2.0, 2.02):
                result = TcpProbe(resolver=resolver).check(TcpTarget(host="db.internal", port=5432))

        assert result.status == "up"
        assert result.response_time == 1020
        mock_connect.assert_called_once_with(("192.0.2.10", 5432), timeout=4.0)

    def test_resolution_failure_is_down_without_connecting(self):
        resolver = Mock()
        resolver.resolve.side_effect = dns.resolver.NXDOMAIN()
        with patch("api.services.probes.socket.create_connection") as mock_connect:
            result = TcpProbe(resolver=resolver).check(TcpTarget(host="missing.internal", port=5432))

        assert result.status == "down"
        assert result.error_message.startswith("TCP error: DNS resolution failed")
        mock_connect.assert_not_called()

    def test_resolution_timeout_is_down(self):
        resolver = Mock()
        resolver.resolve.side_effect = dns.exception.Timeout(timeout=5.0)
        with patch("api.services.probes.socket.create_connection") as mock_connect:
            result = TcpProbe(resolver=resolver).check(TcpTarget(host="slow.internal", port=5432))

        assert result.status == "down"
        assert result.error_message == "TCP timeout after 5000ms"
        mock_connect.assert_not_called()

    def test_timeout_is_down_with_timeout_bound_as_response_time(self):
        with patch("api.services.probes.socket.create_connection", side_effect=socket.timeout("timed out")):
            with _clock(0.0, 0.0, 5.0):
                result = TcpProbe().check(TcpTarget(host="10.0.0.1", port=9999))

        assert result.status == "down"
        assert result.response_time == 5000
        assert "timeout" in result.error_message.lower()

    @pytest.mark.parametrize(
        "exc",
        [ConnectionRefusedError("Connection refused"), OSError("unreachable")],
    )
    def test_socket_error_is_down_not_error(self, exc):
        with patch("api.services.probes.socket.create_connection", side_effect=exc):
            result = TcpProbe().check(TcpTarget(host="10.0.0.1", port=9999))

        assert result.status == "down"
        assert result.error_message.startswith("TCP error:")


class TestPingProbe:
    """Test ICMP ping via the system ping command"""

    LINUX_OK = (
        "PING 8.8.8.8 (8.8.8.8) 56(84) bytes of data.\n"
        "64 bytes from 8.8.8.8: icmp_seq=1 ttl=117 time=12.4 ms\n"
        "\n"
        "--- 8.8.8.8 ping statistics ---\n"
        "1 packets transmitted, 1 received, 0% packet loss, time 0ms\n"
        "rtt min/avg/max/mdev = 12.4/12.4/12.4/0.000 ms\n"
    )

    def test_reply_is_up_with_parsed_rtt(self):
        proc = subprocess.CompletedProcess(args=[], returncode=0, stdout=self.LINUX_OK, stderr="")
        with patch("api.services.probes.subprocess.run", return_value=proc):
            result = PingProbe(platform="linux").check(PingTarget(host="8.8.8.8"))

        assert result == ProbeResult(status="up", response_time=12)

    def test_reply_without_rtt_falls_back_to_wall_clock(self):
        proc = subprocess.CompletedProcess(args=[], returncode=0, stdout="reply received", stderr="")
        with patch("api.services.probes.subprocess.run", return_value=proc):
            with _clock(2.0, 2.045):
                result = PingProbe(platform="linux").check(PingTarget(host="8.8.8.8"))

        assert result.status == "up"
        assert result.response_time == 45

    def test_no_reply_is_down(self):
        proc = subprocess.CompletedProcess(
            args=[], returncode=1, stdout="1 packets transmitted, 0 received, 100% packet loss", stderr=""
        )
        with patch("api.services.probes.subprocess.run", return_value=proc):
            result = PingProbe(platform="linux").check(PingTarget(host="10.255.255.1"))

        assert result.status == "down"
        assert result.error_message.startswith("Ping failed:")

    def test_hung_ping_is_down(self):
        with patch(
            "api.services.probes.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="ping", timeout=5.5),
        ):
            result = PingProbe(platform="linux").check(PingTarget(host="10.255.255.1"))

        assert result.status == "down"
        assert "timed out" in result.error_message

    def test_spawn_failure_is_error(self):
        with patch("api.services.probes.subprocess.run", side_effect=FileNotFoundError("ping")):
            result = PingProbe(platform="linux").check(PingTarget(host="8.8.8.8"))

        assert result.status == "error"
        assert result.error_message.startswith("Failed to spawn ping")

    def test_subprocess_is_bounded(self):
        proc = subprocess.CompletedProcess(args=[], returncode=0, stdout=self.LINUX_OK, stderr="")
        with patch("api.services.probes.subprocess.run", return_value=proc) as mock_run:
            PingProbe(timeout=5.0, platform="linux").check(PingTarget(host="8.8.8.8"))

        assert mock_run.call_args.kwargs["timeout"] is not None
        assert mock_run.call_args.kwargs["timeout"] <= 6

    @pytest.mark.parametrize(
        "platform,expected",
        [
            ("linux", ["ping", "-c", "1", "-W", "5", "example.com"]),
            ("darwin", ["ping", "-c", "1", "-W", "5000", "example.com"]),
            ("win32", ["ping", "-n", "1", "-w", "5000", "example.com"]),
        ],
    )
    def test_build_command_per_platform(self, platform, expected):
        assert PingProbe(timeout=5.0, platform=platform).build_command("example.com") == expected


class TestParseRtt:
    @pytest.mark.parametrize(
        "output,expected",
        [
            ("64 bytes from 1.1.1.1: icmp_seq=1 ttl=58 time=3.21 ms", 3.21),
            ("Reply from 1.1.1.1: bytes=32 time<1ms TTL=58", 1.0),
            ("Reply from 1.1.1.1: bytes=32 time=14ms TTL=58", 14.0),
            ("round-trip min/avg/max/stddev = 9.1/10.5/11.9/0.4 ms", 10.5),
            ("no timing here", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parse_rtt_ms(self, output, expected):
        assert parse_rtt_ms(output) == expected


class TestProtocolProbe:
    """Test dispatch from URL to the matching probe"""

    def test_malformed_url_is_error_without_network(self):
        with patch("api.services.probes.requests.get") as mock_get:
            with patch("api.services.probes.socket.create_connection") as mock_connect:
                with patch("api.services.probes.subprocess.run") as mock_run:
                    result = ProtocolProbe().check_url("gopher://example.com")

        assert result.status == "error"
        assert result.response_time == 0
        assert "Unsupported target scheme" in result.error_message
        mock_get.assert_not_called()
        mock_connect.assert_not_called()
        mock_run.assert_not_called()

    def test_dispatches_by_target_variant(self):
        http, tcp, ping = Mock(), Mock(), Mock()
        http.check.return_value = ProbeResult(status="up", response_time=1)
        tcp.check.return_value = ProbeResult(status="down", response_time=2)
        ping.check.return_value = ProbeResult(status="up", response_time=3)
        probe = ProtocolProbe(http=http, tcp=tcp, ping=ping)

        assert probe.check_url("https://example.com").response_time == 1
        assert probe.check_url("tcp://example.com:22").response_time == 2
        assert probe.check_url("ping://example.com").response_time == 3

        tcp.check.assert_called_once_with(TcpTarget(host="example.com", port=22))
        ping.check.assert_called_once_with(PingTarget(host="example.com"))
