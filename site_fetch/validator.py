"""site_fetch.validator: SSRF-safe validation and classification of source URLs.

Everything here is pure: no DNS lookups, no network, no filesystem. The checks
run in a fixed order and the first failing rule names the verdict's reason:

1. empty or unparsable input               -> ``Invalid URL format``
2. scheme other than http/https             -> ``Invalid protocol``
3. hostname in the blocklist                -> ``Blocked hostname``
4. literal private / link-local IP address  -> ``Private IP address``
5. ``..`` in the path or the domain         -> ``suspicious path traversal``

Input without a scheme is treated as ``https://`` before the checks run.
"""
from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Sequence, Tuple, Union
from urllib.parse import urlsplit

__all__: Sequence[str] = (
    "SourceKind",
    "ValidationVerdict",
    "ParsedSource",
    "validate",
    "parse",
    "classify",
    "repository_cache_key",
    "GIT_PROVIDERS",
)

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://")
_HOSTNAME_RE = re.compile(r"^[\w.\-]+$")

BLOCKED_HOSTS: FrozenSet[str] = frozenset({"localhost", "127.0.0.1", "0.0.0.0", "::1"})

PRIVATE_NETWORKS: Tuple[Union[ipaddress.IPv4Network, ipaddress.IPv6Network], ...] = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
)

# host -> logical provider id
GIT_PROVIDERS: Dict[str, str] = {
    "github.com": "github",
    "gitlab.com": "gitlab",
}


class SourceKind(str, Enum):
    GIT_REPOSITORY = "git-repository"
    WEBSITE = "website"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class ValidationVerdict:
    valid: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


@dataclass(frozen=True, slots=True)
class ParsedSource:
    """A classified source URL.

    ``normalized_url`` is the input with the implied scheme added; it is
    otherwise kept verbatim (a ``.git`` suffix stays in the URL and is only
    stripped from :attr:`repo`).
    """

    raw_input: str
    normalized_url: str
    domain: str
    kind: SourceKind
    path: str = "/"
    provider: Optional[str] = None
    owner: Optional[str] = None
    repo: Optional[str] = None
    ref: Optional[str] = None
    reason: Optional[str] = None

    def __post_init__(self) -> None:
        if self.kind is SourceKind.GIT_REPOSITORY and not (self.owner and self.repo):
            raise ValueError("git-repository sources need both owner and repo")

    @property
    def host(self) -> str:
        """``domain`` plus an explicit port, if the URL carries one."""
        if self.kind is SourceKind.REJECTED:
            return ""
        return urlsplit(self.normalized_url).netloc.rpartition("@")[2].lower()

    @property
    def is_git_repository(self) -> bool:
        return self.kind is SourceKind.GIT_REPOSITORY


def _with_scheme(raw: str) -> str:
    if not _SCHEME_RE.match(raw):
        return f"https://{raw}"
    return raw


def _invalid(reason: str) -> ValidationVerdict:
    return ValidationVerdict(valid=False, reason=reason)


def _private_address(hostname: str) -> bool:
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    if address.version == 6 and address.ipv4_mapped is not None:
        # ::ffff:127.0.0.1 reaches the IPv4 loopback
        address = address.ipv4_mapped
    if address.is_loopback or address.is_unspecified:
        return True
    return any(address.version == net.version and address in net for net in PRIVATE_NETWORKS)


def validate(url: object) -> ValidationVerdict:
    """Decide whether *url* is safe to fetch. Never raises."""
    if not isinstance(url, str) or not url.strip():
        return _invalid("Invalid URL format: empty input")
    raw = url.strip()
    if any(ch.isspace() for ch in raw):
        return _invalid("Invalid URL format: whitespace in URL")

    try:
        parts = urlsplit(_with_scheme(raw))
        parts.port  # raises ValueError on a malformed port
    except ValueError as exc:
        return _invalid(f"Invalid URL format: {exc}")

    scheme = parts.scheme.lower()
    if scheme not in ("http", "https"):
        return _invalid(f"Invalid protocol: {scheme}:. Only HTTP and HTTPS are allowed.")

    hostname = (parts.hostname or "").lower()
    if not hostname:
        return _invalid("Invalid URL format: missing hostname")
    if ":" in hostname:
        try:
            ipaddress.IPv6Address(hostname)
        except ValueError:
            return _invalid(f"Invalid URL format: bad IPv6 literal {hostname}")
    elif not _HOSTNAME_RE.match(hostname):
        return _invalid(f"Invalid URL format: bad hostname {hostname}")

    if hostname in BLOCKED_HOSTS:
        return _invalid(f"Blocked hostname: {hostname}")

    if _private_address(hostname):
        return _invalid(f"Private IP address not allowed: {hostname}")

    if ".." in hostname or ".." in parts.path:
        return _invalid("URL contains suspicious path traversal patterns")

    return ValidationVerdict(valid=True)


def _split_segments(path: str) -> list[str]:
    return [seg for seg in path.split("/") if seg]


def _github_parts(path: str) -> Optional[Tuple[str, str, Optional[str]]]:
    segments = _split_segments(path)
    if len(segments) < 2:
        return None
    owner, repo = segments[0], segments[1]
    ref = None
    # only the segment right after /tree/ is taken, "feature/x" becomes "feature"
    if len(segments) >= 4 and segments[2] == "tree":
        ref = segments[3]
    return owner, repo, ref


def _gitlab_parts(path: str) -> Optional[Tuple[str, str, Optional[str]]]:
    head, _, tail = path.partition("/-/")
    segments = _split_segments(head)
    if len(segments) < 2:
        return None
    owner, repo = "/".join(segments[:-1]), segments[-1]
    ref = None
    tail_segments = _split_segments(tail)
    if len(tail_segments) >= 2 and tail_segments[0] == "tree":
        ref = tail_segments[1]
    return owner, repo, ref


_PATH_PARSERS = {
    "github": _github_parts,
    "gitlab": _gitlab_parts,
}


def parse(url: object) -> Optional[ParsedSource]:
    """Return a git-repository :class:`ParsedSource`, or ``None``.

    ``None`` covers both rejected input and valid URLs that are not on a
    known git host; use :func:`classify` to tell them apart.
    """
    if not validate(url):
        return None
    raw = url.strip()  # type: ignore[union-attr]
    normalized = _with_scheme(raw)
    parts = urlsplit(normalized)
    domain = (parts.hostname or "").lower()

    provider = GIT_PROVIDERS.get(domain)
    if provider is None:
        return None
    found = _PATH_PARSERS[provider](parts.path)
    if found is None:
        return None
    owner, repo, ref = found
    repo = repo.removesuffix(".git")
    if not owner or not repo:
        return None

    return ParsedSource(
        raw_input=raw,
        normalized_url=normalized,
        domain=domain,
        kind=SourceKind.GIT_REPOSITORY,
        path=parts.path or "/",
        provider=provider,
        owner=owner,
        repo=repo,
        ref=ref,
    )


def classify(url: object) -> ParsedSource:
    """Like :func:`parse`, but always answers: repository, website or rejected."""
    raw = url.strip() if isinstance(url, str) else ""
    verdict = validate(url)
    if not verdict:
        return ParsedSource(
            raw_input=raw,
            normalized_url=raw,
            domain="",
            kind=SourceKind.REJECTED,
            reason=verdict.reason,
        )
    repository = parse(raw)
    if repository is not None:
        return repository
    normalized = _with_scheme(raw)
    parts = urlsplit(normalized)
    return ParsedSource(
        raw_input=raw,
        normalized_url=normalized,
        domain=(parts.hostname or "").lower(),
        kind=SourceKind.WEBSITE,
        path=parts.path or "/",
    )


def repository_cache_key(source: ParsedSource) -> str:
    """Stable identifier of a repository snapshot, e.g. ``github-facebook-react-default``."""
    if not source.is_git_repository:
        raise ValueError(f"not a git repository: {source.normalized_url}")
    owner = (source.owner or "").replace("/", "-")
    return f"{source.provider}-{owner}-{source.repo}-{source.ref or 'default'}"
