"""Tests for name syntax helpers and the DNS-over-HTTPS resolver."""

import asyncio

import httpx
import pytest

from email_auth_check.dns_utils import (
    DohResolver,
    clean_domain,
    flatten_txt,
    is_valid_domain,
    is_valid_selector,
    parse_mx_data,
    split_txt_data,
)
from email_auth_check.errors import (
    DnsQueryError,
    InvalidInput,
    NameNotFound,
    ResolutionError,
    Timeout,
    TransportError,
)


def answer(name, rtype, data, ttl=300):
    return {"name": name, "type": rtype, "TTL": ttl, "data": data}


def ok(answers, status=0):
    def handler(request):
        return httpx.Response(200, json={"Status": status, "Answer": answers})
    return handler


def run(resolver, call):
    async def go():
        try:
            return await call(resolver)
        finally:
            await resolver.client.aclose()
    return asyncio.run(go())


class TestNameSyntax:
    """Test domain and selector syntax checks."""

    @pytest.mark.parametrize("domain", ["example.com", "mail.example.co.uk", "_spf.example.net", "a-b.example.org"])
    def test_valid_domains(self, domain):
        assert is_valid_domain(domain)

    @pytest.mark.parametrize(
        "domain",
        ["", "localhost", "bad domain!.com", ".example.com", "example.com.", "-bad.example.com",
         "a..b.com", "x" * 64 + ".com", ("a" * 60 + ".") * 5 + "com"],
    )
    def test_invalid_domains(self, domain):
        assert not is_valid_domain(domain)

    def test_clean_domain_strips_wrapping(self):
        assert clean_domain('  "example.com" ') == "example.com"
        assert clean_domain("[example.com]") == "example.com"
        assert clean_domain("not a domain") is None

    def test_clean_domain_lower_cases(self):
        assert clean_domain(" Mail.EXAMPLE.com ") == "mail.example.com"

    def test_selectors(self):
        assert is_valid_selector("google")
        assert is_valid_selector("s1_2024-a")
        assert not is_valid_selector("")
        assert not is_valid_selector("bad.selector")
        assert not is_valid_selector("x" * 64)


class TestTxtReconstruction:
    """Test splitting and flattening of TXT answer data."""

    def test_single_string(self):
        assert split_txt_data('"v=spf1 -all"') == ["v=spf1 -all"]

    def test_multiple_segments_keep_inner_whitespace(self):
        segments = split_txt_data('"v=spf1 ip4:192.0.2.1 " "-all"')
        assert segments == ["v=spf1 ip4:192.0.2.1 ", "-all"]
        assert flatten_txt([segments]) == ["v=spf1 ip4:192.0.2.1 -all"]

    def test_empty_and_oversized_segments_dropped(self):
        long_part = "x" * 256
        assert split_txt_data(f'"" "{long_part}" "ok"') == ["ok"]


class TestMxParsing:
    """Test MX answer parsing."""

    def test_parse(self):
        mx = parse_mx_data("10 Mail.Example.com.")
        assert mx.priority == 10
        assert mx.exchange == "mail.example.com"

    @pytest.mark.parametrize("data", ["ten mail.example.com.", "10", "10 ", ""])
    def test_malformed(self, data):
        assert parse_mx_data(data) is None


class TestDohResolver:
    """Test the DoH resolver against a mock transport."""

    def test_query_parameters_and_headers(self, doh_resolver):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"Status": 0, "Answer": [answer("example.com", 1, "192.0.2.1")]})

        resolver = doh_resolver(handler)
        assert run(resolver, lambda r: r.resolve_a("example.com")) == ["192.0.2.1"]
        request = seen[0]
        assert request.url.params["name"] == "example.com"
        assert request.url.params["type"] == "A"
        assert request.headers["Accept"] == "application/dns-json"
        assert str(request.url).startswith("https://cloudflare-dns.com/dns-query")

    def test_invalid_hostname_fails_before_network(self, doh_resolver):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"Status": 0})

        resolver = doh_resolver(handler)
        with pytest.raises(InvalidInput):
            run(resolver, lambda r: r.resolve_txt(""))
        resolver = doh_resolver(handler)
        with pytest.raises(InvalidInput):
            run(resolver, lambda r: r.resolve_a("a" * 256))
        assert calls == []

    def test_url_length_cap(self, doh_resolver):
        resolver = doh_resolver(ok([]), max_url_length=60)
        with pytest.raises(InvalidInput, match="too long"):
            run(resolver, lambda r: r.resolve_txt("a-rather-long-label.example.com"))

    def test_timeout_cancels_request(self, doh_resolver):
        cancelled = []

        async def handler(request):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise
            return httpx.Response(200, json={"Status": 0})

        resolver = doh_resolver(handler, timeout_ms=50)
        with pytest.raises(Timeout) as exc_info:
            run(resolver, lambda r: r.resolve_txt("example.com"))
        assert "50ms" in str(exc_info.value)
        assert exc_info.value.budget_ms == 50
        assert cancelled == [True]

    def test_default_budget_is_5000ms(self):
        assert DohResolver().config.timeout_ms == 5000

    def test_http_error_status(self, doh_resolver):
        resolver = doh_resolver(lambda request: httpx.Response(503, text="unavailable"))
        with pytest.raises(TransportError) as exc_info:
            run(resolver, lambda r: r.resolve_txt("example.com"))
        assert exc_info.value.status_code == 503
        assert "unavailable" in str(exc_info.value)

    def test_network_failure(self, doh_resolver):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        resolver = doh_resolver(handler)
        with pytest.raises(TransportError):
            run(resolver, lambda r: r.resolve_txt("example.com"))

    def test_nxdomain(self, doh_resolver):
        resolver = doh_resolver(ok([], status=3))
        with pytest.raises(NameNotFound, match="NXDOMAIN"):
            run(resolver, lambda r: r.resolve_a("nxdomain.example.com"))

    def test_servfail(self, doh_resolver):
        resolver = doh_resolver(ok([], status=2))
        with pytest.raises(ResolutionError) as exc_info:
            run(resolver, lambda r: r.resolve_aaaa("example.com"))
        assert exc_info.value.status == 2

    def test_non_json_body(self, doh_resolver):
        resolver = doh_resolver(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ResolutionError):
            run(resolver, lambda r: r.resolve_txt("example.com"))

    def test_answer_section_not_a_list(self, doh_resolver):
        def handler(request):
            return httpx.Response(200, json={"Status": 0, "Answer": {"data": "10 mx.example.com."}})

        resolver = doh_resolver(handler)
        with pytest.raises(ResolutionError, match="Invalid DNS response format"):
            run(resolver, lambda r: r.resolve_txt("example.com"))
        resolver = doh_resolver(handler)
        assert run(resolver, lambda r: r.resolve_mx("example.com")) == []
        resolver = doh_resolver(handler)
        assert run(resolver, lambda r: r.resolve_cname("example.com")) == []

    def test_non_object_answers_skipped(self, doh_resolver):
        resolver = doh_resolver(ok(["v=spf1 -all", None, answer("example.com", 16, '"v=spf1 ~all"')]))
        assert run(resolver, lambda r: r.resolve_txt("example.com")) == [["v=spf1 ~all"]]
        resolver = doh_resolver(ok(["10 mx.example.com.", answer("example.com", 15, "20 mx2.example.com.")]))
        records = run(resolver, lambda r: r.resolve_mx("example.com"))
        assert [m.exchange for m in records] == ["mx2.example.com"]

    def test_errors_are_dns_exceptions(self):
        import dns.exception

        assert issubclass(Timeout, dns.exception.DNSException)
        assert issubclass(NameNotFound, DnsQueryError)

    def test_txt_answers(self, doh_resolver):
        resolver = doh_resolver(ok([
            answer("example.com", 16, '"v=spf1 include:_spf.example.net " "-all"'),
            answer("example.com", 16, '"google-site-verification=abc"'),
            answer("example.com", 16, '""'),
        ]))
        result = run(resolver, lambda r: r.resolve_txt("example.com"))
        assert result == [["v=spf1 include:_spf.example.net ", "-all"], ["google-site-verification=abc"]]

    def test_aaaa_filters_by_type(self, doh_resolver):
        resolver = doh_resolver(ok([
            answer("example.com", 5, "alias.example.net."),
            answer("alias.example.net", 28, "2001:db8::1"),
        ]))
        assert run(resolver, lambda r: r.resolve_aaaa("example.com")) == ["2001:db8::1"]

    def test_mx_sorted_and_malformed_dropped(self, doh_resolver):
        resolver = doh_resolver(ok([
            answer("example.com", 15, "20 backup.example.com."),
            answer("example.com", 15, "bogus"),
            answer("example.com", 15, "10 mx1.example.com."),
        ]))
        records = run(resolver, lambda r: r.resolve_mx("example.com"))
        assert [(m.priority, m.exchange) for m in records] == [(10, "mx1.example.com"), (20, "backup.example.com")]

    def test_mx_swallows_failures(self, doh_resolver):
        resolver = doh_resolver(ok([], status=2))
        assert run(resolver, lambda r: r.resolve_mx("example.com")) == []
        resolver = doh_resolver(lambda request: httpx.Response(500))
        assert run(resolver, lambda r: r.resolve_mx("example.com")) == []

    def test_cname_swallows_failures(self, doh_resolver):
        resolver = doh_resolver(ok([answer("www.example.com", 5, "Target.Example.NET.")]))
        assert run(resolver, lambda r: r.resolve_cname("www.example.com")) == ["target.example.net"]
        resolver = doh_resolver(ok([], status=3))
        assert run(resolver, lambda r: r.resolve_cname("www.example.com")) == []
        resolver = doh_resolver(ok([]))
        assert run(resolver, lambda r: r.resolve_cname("")) == []
