"""
Source URL classification and validation.

Usage:
    from repograb.urls import parse_source

    source = parse_source("github.com/psf/requests/tree/main")
    source.kind       # 'git-repository'
    source.owner      # 'psf'
    source.ref        # 'main'

Validation runs before anything touches the network. Rejected:
- non-http(s) schemes, and file/ftp/ssh/telnet URLs hidden anywhere in the input
- localhost, loopback, 0.0.0.0, ::1
- literal IPs in private or link-local ranges
- '..' path traversal sequences
"""

from __future__ import annotations

import ipaddress
import re
import socket
from dataclasses import dataclass
from typing import Literal
from urllib.parse import unquote, urlparse, urlunparse

from .errors import InvalidURL


SCHEME_RE = re.compile(r'^[a-zA-Z][a-zA-Z0-9+.-]*://')
BLOCKED_PATTERNS = [
    re.compile(r'file://', re.I),
    re.compile(r'ftp://', re.I),
    re.compile(r'ssh://', re.I),
    re.compile(r'telnet://', re.I),
]
BLOCKED_HOSTS = {'localhost', '0.0.0.0', '::1', '127.0.0.1'}
PRIVATE_NETWORKS = [
    ipaddress.ip_network('10.0.0.0/8'),
    ipaddress.ip_network('172.16.0.0/12'),
    ipaddress.ip_network('192.168.0.0/16'),
    ipaddress.ip_network('169.254.0.0/16'),
    ipaddress.ip_network('fc00::/7'),
    ipaddress.ip_network('fe80::/10'),
]
# Hosts like 0x7f.1 or 017.0.0.1 that inet_aton still resolves to an address
NUMERIC_HOST_RE = re.compile(r'^[0-9a-fx.]+$', re.I)

GIT_PROVIDERS = {
    'github.com': 'github',
    'gitlab.com': 'gitlab',
    'bitbucket.org': 'bitbucket',
}


@dataclass(frozen=True)
class ParsedSource:
    """A validated, classified source. Never mutated after parsing."""

    kind: Literal['git-repository', 'website']
    url: str
    normalized_url: str
    host: str
    path: str
    provider: Literal['github', 'gitlab', 'bitbucket'] | None = None
    owner: str | None = None
    repo: str | None = None
    ref: str | None = None

    def __post_init__(self):
        if self.kind == 'git-repository' and not (self.owner and self.repo):
            raise ValueError("git-repository sources need an owner and a repo")

    @property
    def is_git(self) -> bool:
        return self.kind == 'git-repository'

    @property
    def label(self) -> str:
        """Short human-readable name, e.g. 'github:psf/requests'."""
        if self.is_git:
            return f"{self.provider}:{self.owner}/{self.repo}"
        return self.host

    @property
    def clone_url(self) -> str:
        return f"{self.normalized_url}.git"


def normalize_url_string(raw: str) -> str:
    """Add https:// when the input has no scheme."""
    raw = raw.strip()
    if not SCHEME_RE.match(raw):
        return f"https://{raw}"
    return raw


def validate_url(raw: str) -> str:
    """
    Validate a source URL.

    Returns:
        The normalized URL string

    Raises:
        InvalidURL with a specific reason
    """
    if raw is None or not str(raw).strip():
        raise InvalidURL(str(raw or ''), "Invalid URL format: empty URL")
    raw = str(raw).strip()
    normalized = normalize_url_string(raw)

    try:
        parsed = urlparse(normalized)
        hostname = (parsed.hostname or '').lower()
        parsed.port  # raises ValueError on a malformed port
    except ValueError as e:
        raise InvalidURL(raw, f"Invalid URL format: {e}") from e

    scheme = parsed.scheme.lower()
    if scheme not in ('http', 'https'):
        raise InvalidURL(raw, f"Invalid protocol: {scheme}. Only HTTP and HTTPS are allowed.")

    for pattern in BLOCKED_PATTERNS:
        if pattern.search(raw):
            raise InvalidURL(raw, "URL contains blocked pattern")

    if not hostname:
        raise InvalidURL(raw, "Invalid URL format: missing hostname")

    if hostname in BLOCKED_HOSTS or hostname.endswith('.localhost'):
        raise InvalidURL(raw, f"Blocked hostname: {hostname}")

    address = _ip_address(hostname)
    if address is not None:
        if address.is_loopback or address.is_unspecified:
            raise InvalidURL(raw, f"Blocked hostname: {hostname}")
        if any(address in network for network in PRIVATE_NETWORKS):
            raise InvalidURL(raw, f"Private IP address not allowed: {hostname}")
    elif '.' not in hostname:
        raise InvalidURL(raw, f"Invalid URL format: {hostname} is not a domain name")

    if '..' in hostname or '..' in raw:
        raise InvalidURL(raw, "URL contains suspicious path traversal patterns")

    return normalized


def _ip_address(hostname: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    """Return the address a literal-IP hostname points at, or None for names."""
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        address = None
        if NUMERIC_HOST_RE.match(hostname) and not hostname.endswith('.'):
            try:
                address = ipaddress.ip_address(socket.inet_aton(hostname))
            except OSError:
                return None
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        return address.ipv4_mapped
    return address


def parse_source(raw: str) -> ParsedSource:
    """
    Validate and classify a source.

    Raises:
        InvalidURL if validation fails
    """
    normalized = validate_url(raw)
    parsed = urlparse(normalized)
    host = (parsed.hostname or '').lower()
    path = parsed.path or ''

    git = _classify_git(host, path)
    if git is not None:
        provider, provider_host, owner, repo, ref = git
        return ParsedSource(
            kind='git-repository',
            url=raw.strip(),
            normalized_url=f"https://{provider_host}/{owner}/{repo}",
            host=provider_host,
            path=path,
            provider=provider,
            owner=owner,
            repo=repo,
            ref=ref,
        )

    website_url = urlunparse((
        parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.params, parsed.query, '',
    ))
    return ParsedSource(
        kind='website',
        url=raw.strip(),
        normalized_url=website_url,
        host=host,
        path=path or '/',
    )


def _classify_git(host: str, path: str):
    bare_host = host[4:] if host.startswith('www.') else host
    provider = GIT_PROVIDERS.get(bare_host)
    if provider is None:
        return None

    segments = [unquote(s) for s in path.split('/') if s]
    if provider == 'gitlab':
        if '-' in segments:
            split = segments.index('-')
            project, rest = segments[:split], segments[split + 1:]
        else:
            project, rest = segments, []
        if len(project) < 2:
            return None
        owner, repo = '/'.join(project[:-1]), project[-1]
    else:
        if len(segments) < 2:
            return None
        owner, repo, rest = segments[0], segments[1], segments[2:]

    if repo.endswith('.git'):
        repo = repo[:-4]
    if not owner or not repo:
        return None

    return provider, bare_host, owner, repo, _extract_ref(rest)


def _extract_ref(rest: list[str]) -> str | None:
    """Pull a branch/tag/commit out of the path after owner/repo."""
    if len(rest) < 2:
        return None
    marker = rest[0]
    if marker == 'tree':
        return '/'.join(rest[1:])
    if marker in ('blob', 'commit', 'src'):
        return rest[1]
    if marker == 'releases' and rest[1] == 'tag' and len(rest) > 2:
        return rest[2]
    return None


def cache_key(source: ParsedSource, options=None) -> str:
    """
    Deterministic cache key for a source plus the options that change its content.
    """
    if source.is_git:
        ref = (getattr(options, 'ref', None) if options else None) or source.ref or 'default'
        parts = [f"{source.provider}:{source.owner}/{source.repo}", f"ref:{ref}"]
    else:
        parts = [source.normalized_url]

    if options is not None:
        parts.append(f"format:{options.format}")
        if source.is_git:
            if options.extensions:
                parts.append(f"ext:{','.join(sorted(options.extensions))}")
            if options.exclude_dirs:
                parts.append(f"exclude:{','.join(sorted(options.exclude_dirs))}")
            parts.append(f"max_files:{options.max_files}")
        else:
            parts.append(f"depth:{options.max_depth}")
            parts.append(f"pages:{options.max_pages}")
            if options.ignore_robots:
                parts.append("robots:ignored")

    return '|'.join(parts)


def url_to_path(url: str) -> str:
    """
    Map a page URL to a relative document path.

    https://example.com          -> index.md
    https://example.com/docs/api -> docs/api.md
    """
    parsed = urlparse(url)
    segments = [
        re.sub(r'[^A-Za-z0-9._-]', '-', s)
        for s in unquote(parsed.path).split('/')
        if s and s not in ('.', '..')
    ]
    if not segments:
        segments = ['index']
    name = segments[-1]
    if parsed.query:
        name += '_' + re.sub(r'[^A-Za-z0-9]+', '-', parsed.query).strip('-')
    if name.lower().endswith(('.html', '.htm')):
        name = name.rsplit('.', 1)[0]
    segments[-1] = f"{name}.md"
    return '/'.join(segments)


__all__ = [
    'ParsedSource',
    'normalize_url_string',
    'validate_url',
    'parse_source',
    'cache_key',
    'url_to_path',
]
