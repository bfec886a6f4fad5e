import asyncio
import logging
import re
import time
from typing import Dict, List, Optional

import dns.rcode
import dns.rdatatype
import httpx

from .config import MAX_DOMAIN_LENGTH, MAX_TXT_SEGMENT_LENGTH, ResolverConfig
from .errors import DnsQueryError, InvalidInput, NameNotFound, ResolutionError, Timeout, TransportError
from .models import MxRecord

logger = logging.getLogger(__name__)

LABEL_RE = re.compile(r"^[a-z0-9_]([a-z0-9_-]{0,61}[a-z0-9])?$", re.I)
SELECTOR_RE = re.compile(r"^[A-Za-z0-9_-]{1,63}$")
SUPPORTED_TYPES = ("A", "AAAA", "MX", "CNAME", "TXT")


def is_valid_domain(domain: str) -> bool:
    """Check hostname syntax: <=253 chars, at least two labels of 1-63 alnum/hyphen chars.

    Underscores are accepted so that service labels such as ``_spf`` pass.
    """
    if not domain or not isinstance(domain, str):
        return False
    if any(c in domain for c in "[] \t\r\n"):
        return False
    if domain.startswith(".") or domain.endswith("."):
        return False
    if len(domain) > MAX_DOMAIN_LENGTH or "." not in domain:
        return False
    return all(LABEL_RE.match(label) for label in domain.split("."))


def clean_domain(domain: str) -> Optional[str]:
    """Strip whitespace, brackets and quotes and lower-case the name.

    Returns None if the result is still not a valid domain.
    """
    if not domain or not isinstance(domain, str):
        return None
    cleaned = domain.strip()
    cleaned = re.sub(r"^\[|\]$", "", cleaned)
    cleaned = re.sub(r'^"|"$', "", cleaned).strip().lower()
    return cleaned if is_valid_domain(cleaned) else None


def is_valid_selector(selector: str) -> bool:
    return bool(selector) and isinstance(selector, str) and bool(SELECTOR_RE.match(selector))


def split_txt_data(data: str) -> List[str]:
    """Split one TXT answer ('"abc" "def"') into its character-strings.

    Outer quotes are removed; segments that are empty or longer than 255
    characters are dropped. Whitespace inside a segment is significant and kept.
    """
    content = str(data).strip()
    if content.startswith('"'):
        content = content[1:]
    if content.endswith('"'):
        content = content[:-1]
    segments = []
    for part in content.split('" "'):
        if part and len(part) <= MAX_TXT_SEGMENT_LENGTH:
            segments.append(part)
    return segments


def flatten_txt(answers: List[List[str]]) -> List[str]:
    """Join each answer's segments back into one string (RFC 7208 3.3)."""
    return ["".join(segments) for segments in answers]


def parse_mx_data(data: str) -> Optional[MxRecord]:
    priority_str, _, exchange = str(data).strip().partition(" ")
    exchange = exchange.strip().lower().rstrip(".")
    try:
        priority = int(priority_str)
    except ValueError:
        return None
    if not exchange:
        return None
    return MxRecord(priority=priority, exchange=exchange)


class DohResolver:
    """DNS-over-HTTPS (JSON) resolver.

    Every query is bounded by ``config.timeout_ms``; on expiry the pending
    request is cancelled and :class:`Timeout` is raised. TXT, A and AAAA
    lookups raise on failure, MX and CNAME lookups return an empty list.
    """

    def __init__(self, config: Optional[ResolverConfig] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.config = config or ResolverConfig()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=None, follow_redirects=True)
        return self._client

    async def aclose(self):
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def _build_request(self, name: str, rdtype: str) -> httpx.Request:
        if not name or not isinstance(name, str) or len(name) > MAX_DOMAIN_LENGTH:
            raise InvalidInput(f"Invalid hostname for {rdtype} query: {name!r}")
        if rdtype not in SUPPORTED_TYPES:
            raise InvalidInput(f"Unsupported record type: {rdtype}")
        request = self.client.build_request(
            "GET",
            self.config.endpoint,
            params={"name": name, "type": rdtype},
            headers={
                "Accept": "application/dns-json",
                "Cache-Control": "no-cache",
                "User-Agent": self.config.user_agent,
            },
        )
        url_length = len(str(request.url))
        if url_length > self.config.max_url_length:
            raise InvalidInput(f"DNS query URL too long ({url_length} characters)")
        return request

    async def query(self, name: str, rdtype: str) -> List[Dict]:
        """Run one query and return the raw ``Answer`` entries."""
        request = self._build_request(name, rdtype)
        budget = self.config.timeout_ms
        logger.debug(f"Resolving {rdtype} records for {name}")
        t0 = time.monotonic()
        try:
            response = await asyncio.wait_for(self.client.send(request), timeout=budget / 1000)
        except asyncio.TimeoutError:
            logger.error(f"{rdtype} resolution timed out for {name} ({budget}ms)")
            raise Timeout(f"DNS query timed out after {budget}ms", name, rdtype, budget_ms=budget) from None
        except httpx.TimeoutException as e:
            logger.error(f"{rdtype} resolution timed out for {name}: {e}")
            raise Timeout(f"DNS query timed out after {budget}ms", name, rdtype, budget_ms=budget) from e
        except httpx.HTTPError as e:
            logger.error(f"{rdtype} resolution failed for {name}: {e}")
            raise TransportError(f"DNS query failed for {name}: {e}", name, rdtype) from e
        duration = int((time.monotonic() - t0) * 1000)

        if not response.is_success:
            body = response.text or "No error details"
            logger.error(f"{rdtype} query failed for {name} with HTTP status {response.status_code}")
            raise TransportError(
                f"DNS query failed with status {response.status_code}: {body}",
                name, rdtype, status_code=response.status_code, body=body,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ResolutionError(f"Failed to parse DNS response: {e}", name, rdtype) from e
        if not isinstance(data, dict):
            raise ResolutionError("Failed to parse DNS response: Invalid DNS response format", name, rdtype)

        status = data.get("Status")
        if status != dns.rcode.NOERROR:
            if status == dns.rcode.NXDOMAIN:
                logger.warning(f"No {rdtype} records found for {name} (NXDOMAIN, status 3, {duration}ms)")
                raise NameNotFound(
                    f"DNS {rdtype} query for {name} resulted in NXDOMAIN (status 3)", name, rdtype
                )
            comment = data.get("Comment") or "N/A"
            logger.error(f"{rdtype} query failed for {name} ({duration}ms): Status {status}, Comment: {comment}")
            raise ResolutionError(
                f"DNS {rdtype} query failed for {name}: Status {status}, Comment: {comment}",
                name, rdtype, status=status,
            )

        answers = data.get("Answer") or []
        if not isinstance(answers, list):
            logger.error(f"{rdtype} query for {name} returned a malformed Answer section")
            raise ResolutionError("Failed to parse DNS response: Invalid DNS response format", name, rdtype)
        answers = [a for a in answers if isinstance(a, dict)]
        logger.debug(f"Resolved {len(answers)} {rdtype} answers for {name} ({duration}ms)")
        return answers

    async def resolve_txt(self, name: str) -> List[List[str]]:
        answers = await self.query(name, "TXT")
        txt_type = dns.rdatatype.TXT
        out = []
        for answer in answers:
            if answer.get("type", txt_type) != txt_type or not answer.get("data"):
                continue
            segments = split_txt_data(answer["data"])
            if segments:
                out.append(segments)
        return out

    async def _resolve_addresses(self, name: str, rdtype: str) -> List[str]:
        answers = await self.query(name, rdtype)
        code = dns.rdatatype.from_text(rdtype)
        return [a["data"] for a in answers if a.get("type") == code and a.get("data")]

    async def resolve_a(self, name: str) -> List[str]:
        return await self._resolve_addresses(name, "A")

    async def resolve_aaaa(self, name: str) -> List[str]:
        return await self._resolve_addresses(name, "AAAA")

    async def resolve_mx(self, name: str) -> List[MxRecord]:
        try:
            answers = await self.query(name, "MX")
        except (InvalidInput, DnsQueryError) as e:
            logger.warning(f"Returning empty MX records for {name} due to error: {e}")
            return []
        records = []
        for answer in answers:
            if answer.get("type", dns.rdatatype.MX) != dns.rdatatype.MX:
                continue
            mx = parse_mx_data(answer.get("data", ""))
            if mx is None:
                logger.warning(f"Malformed MX record data for {name}: {answer.get('data')!r}")
                continue
            records.append(mx)
        records.sort(key=lambda r: r.priority)
        return records

    async def resolve_cname(self, name: str) -> List[str]:
        try:
            answers = await self.query(name, "CNAME")
        except (InvalidInput, DnsQueryError) as e:
            logger.warning(f"Returning empty CNAME records for {name} due to error: {e}")
            return []
        return [
            str(a["data"]).lower().rstrip(".")
            for a in answers
            if a.get("type", dns.rdatatype.CNAME) == dns.rdatatype.CNAME and a.get("data")
        ]
