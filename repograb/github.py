"""
Repository ingestion: hosting API archives with a git clone fallback.

Chain (GitHub):
    check_access → zipball (extract to disk) or tarball (stream in memory)
    any API failure except missing credentials → git clone

Usage:
    from repograb.github import fetch_repository

    fetched = fetch_repository(source, options, workdir)
    files = fetched.read_files(FileFilters.from_options(options))
"""

from __future__ import annotations

import base64
import os
import shutil
import subprocess
import zipfile
import zlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator
from urllib.parse import quote

import requests

from .config import GITHUB_API, GITLAB_API, REQUEST_TIMEOUT, USER_AGENT, resolve_token
from .errors import (
    AcquireTimeout,
    ArchiveCorrupt,
    AuthRequired,
    NetworkError,
    NotFound,
    RateLimited,
)
from .files import (
    FetchedFile,
    FileFilters,
    collect_files,
    decode_text,
    root_prefix,
    strip_root_prefix,
)
from .log import get_logger
from .tar import iter_tar_entries
from .urls import ParsedSource

logger = get_logger("github")

CHUNK_SIZE = 64 * 1024
# zlib window bits: 16 + MAX_WBITS = gzip container only
GZIP_WBITS = 16 + zlib.MAX_WBITS


@dataclass
class RepoAccess:
    accessible: bool
    private: bool
    default_branch: str
    size: int = 0  # KB, as reported by the API


@dataclass
class ExtractStats:
    extracted: int = 0
    skipped: int = 0
    files: list[str] = field(default_factory=list)


def _timeout(deadline, cap: float) -> float:
    if deadline is None:
        return cap
    return deadline.timeout(cap)


def _check_deadline(deadline) -> None:
    if deadline is not None:
        deadline.check()


def raise_for_status(resp: requests.Response, what: str, has_token: bool = False) -> None:
    """Map an API error response onto the repograb error types."""
    status = resp.status_code
    if status < 400:
        return

    if status == 404:
        if has_token:
            raise NotFound(f"{what} not found, or the provided token cannot access it")
        raise NotFound(
            f"{what} not found. If it is private, provide a token "
            f"(--token or the GITHUB_TOKEN environment variable)"
        )

    remaining = resp.headers.get('X-RateLimit-Remaining')
    body = (resp.text or '')[:500].lower()
    if status == 429 or (status == 403 and (remaining == '0' or 'rate limit' in body)):
        reset_at = None
        reset = resp.headers.get('X-RateLimit-Reset')
        if reset and reset.isdigit():
            reset_at = datetime.fromtimestamp(int(reset), tz=timezone.utc)
        when = f" Resets at {reset_at.isoformat()}." if reset_at else ""
        raise RateLimited(
            f"API rate limit exceeded for {what}.{when} Provide a token to raise the limit.",
            reset_at=reset_at,
            remaining=int(remaining) if remaining and remaining.isdigit() else None,
        )

    if status == 401:
        raise AuthRequired(f"Authentication failed for {what}: the token was rejected")

    raise NetworkError(f"API error {status} for {what}", url=resp.url)


def gunzip_stream(chunks: Iterable[bytes]) -> Iterator[bytes]:
    """Incrementally decompress a gzip byte stream."""
    decompressor = zlib.decompressobj(wbits=GZIP_WBITS)
    try:
        for chunk in chunks:
            data = decompressor.decompress(chunk)
            if data:
                yield data
        tail = decompressor.flush()
    except zlib.error as e:
        raise ArchiveCorrupt(f"Invalid gzip data: {e}") from e
    if tail:
        yield tail
    if not decompressor.eof:
        raise ArchiveCorrupt("Gzip stream ended before the archive was complete")


def _iter_body(resp: requests.Response, url: str, deadline=None) -> Iterator[bytes]:
    try:
        for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
            _check_deadline(deadline)
            if chunk:
                yield chunk
    except requests.RequestException as e:
        raise NetworkError(f"Download interrupted: {e}", url=url) from e
    finally:
        resp.close()


class GitHubClient:
    """Minimal GitHub REST client for repository metadata and archives."""

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str | None = None,
        session: requests.Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
        api_base: str = GITHUB_API,
        user_agent: str = USER_AGENT,
        deadline=None,
    ):
        self.owner = owner
        self.repo = repo
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout
        self.api_base = api_base.rstrip('/')
        self.user_agent = user_agent
        self.deadline = deadline

    @property
    def name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def _headers(self) -> dict:
        headers = {
            'Accept': 'application/vnd.github+json',
            'User-Agent': self.user_agent,
        }
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def _get(self, path: str, stream: bool = False) -> requests.Response:
        _check_deadline(self.deadline)
        url = f"{self.api_base}{path}"
        try:
            resp = self.session.get(
                url,
                headers=self._headers(),
                timeout=_timeout(self.deadline, self.timeout),
                stream=stream,
                allow_redirects=True,
            )
        except requests.RequestException as e:
            raise NetworkError(f"Request to GitHub failed: {e}", url=url) from e
        raise_for_status(resp, f"Repository {self.name}", has_token=bool(self.token))
        return resp

    def check_access(self) -> RepoAccess:
        resp = self._get(f"/repos/{self.owner}/{self.repo}")
        try:
            data = resp.json()
        except ValueError as e:
            raise NetworkError(f"Unexpected response from GitHub for {self.name}", url=resp.url) from e
        return RepoAccess(
            accessible=True,
            private=bool(data.get('private', False)),
            default_branch=data.get('default_branch') or 'main',
            size=data.get('size') or 0,
        )

    def download_zip(self, ref: str, dest_path: str | Path) -> int:
        """Stream the zipball for ref into dest_path. Returns bytes written."""
        resp = self._get(f"/repos/{self.owner}/{self.repo}/zipball/{quote(ref, safe='')}", stream=True)
        written = 0
        with open(dest_path, 'wb') as f:
            for chunk in _iter_body(resp, resp.url, self.deadline):
                f.write(chunk)
                written += len(chunk)
        logger.info("Downloaded %s@%s zipball (%.1f KB)", self.name, ref, written / 1024)
        return written

    def iter_tarball(self, ref: str) -> Iterator[bytes]:
        """Yield the decompressed tarball for ref, chunk by chunk."""
        resp = self._get(f"/repos/{self.owner}/{self.repo}/tarball/{quote(ref, safe='')}", stream=True)
        return gunzip_stream(_iter_body(resp, resp.url, self.deadline))


def extract_zip(zip_path: str | Path, target_dir: str | Path, filters: FileFilters) -> ExtractStats:
    """
    Extract a repository zipball, stripping the archive's root directory.

    Raises:
        ArchiveCorrupt if the file is not a readable zip
    """
    target = Path(target_dir)
    target.mkdir(parents=True, exist_ok=True)
    stats = ExtractStats()

    try:
        with zipfile.ZipFile(zip_path) as zf:
            infos = zf.infolist()
            prefix = root_prefix(infos[0].filename) if infos else None
            for info in infos:
                if info.is_dir():
                    continue
                rel = strip_root_prefix(info.filename, prefix)
                if not rel or not filters.accepts(rel):
                    stats.skipped += 1
                    continue
                if stats.extracted >= filters.max_files:
                    stats.skipped += 1
                    continue
                dest = target / rel
                dest.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info) as src, open(dest, 'wb') as dst:
                    shutil.copyfileobj(src, dst)
                stats.extracted += 1
                stats.files.append(rel)
    except (zipfile.BadZipFile, zlib.error, EOFError) as e:
        raise ArchiveCorrupt(f"Could not read zip archive: {e}") from e

    logger.info("Extracted %d files, skipped %d", stats.extracted, stats.skipped)
    return stats


def stream_tarball_files(chunks: Iterable[bytes], filters: FileFilters) -> list[FetchedFile]:
    """Decode an uncompressed tar stream into filtered in-memory files."""
    files: list[FetchedFile] = []
    skipped = 0
    prefix = None
    first = True

    for entry in iter_tar_entries(chunks):
        if first:
            prefix = root_prefix(entry.name)
            first = False
        rel = strip_root_prefix(entry.name, prefix)
        if not rel or not filters.accepts(rel):
            skipped += 1
            continue
        text = decode_text(entry.body)
        if text is None:
            skipped += 1
            continue
        files.append(FetchedFile(path=rel, content=text))
        if len(files) >= filters.max_files:
            logger.info("Reached max_files=%d, stopping tarball stream", filters.max_files)
            break

    logger.info("Extracted %d files, skipped %d", len(files), skipped)
    return files


def stream_gitlab_tarball(
    source: ParsedSource,
    filters: FileFilters,
    ref: str | None = None,
    token: str | None = None,
    session: requests.Session | None = None,
    timeout: float = REQUEST_TIMEOUT,
    deadline=None,
) -> list[FetchedFile]:
    """Fetch a GitLab project archive (.tar.gz) and decode it in memory."""
    project = quote(f"{source.owner}/{source.repo}", safe='')
    url = f"{GITLAB_API}/projects/{project}/repository/archive.tar.gz"
    headers = {'User-Agent': USER_AGENT}
    if token:
        headers['PRIVATE-TOKEN'] = token
    session = session or requests.Session()

    _check_deadline(deadline)
    try:
        resp = session.get(
            url,
            params={'sha': ref} if ref else None,
            headers=headers,
            timeout=_timeout(deadline, timeout),
            stream=True,
        )
    except requests.RequestException as e:
        raise NetworkError(f"Request to GitLab failed: {e}", url=url) from e
    raise_for_status(resp, f"Project {source.owner}/{source.repo}", has_token=bool(token))

    return stream_tarball_files(gunzip_stream(_iter_body(resp, url, deadline)), filters)


# =============================================================================
# git clone
# =============================================================================

NOT_FOUND_MARKERS = ('repository not found', 'does not exist', 'not found')
AUTH_MARKERS = (
    'authentication failed',
    'could not read username',
    'terminal prompts disabled',
    'permission denied',
)


def classify_git_error(stderr: str, what: str) -> Exception:
    text = stderr.lower()
    if any(marker in text for marker in AUTH_MARKERS):
        return AuthRequired(f"{what} requires authentication (git clone was refused)")
    if any(marker in text for marker in NOT_FOUND_MARKERS):
        return NotFound(f"{what} not found")
    detail = stderr.strip().splitlines()[-1] if stderr.strip() else 'unknown error'
    return NetworkError(f"git failed for {what}: {detail}")


def _run_git(args: list[str], what: str, cwd: Path | None = None, timeout: float | None = None) -> None:
    env = dict(os.environ, GIT_TERMINAL_PROMPT='0')
    try:
        proc = subprocess.run(
            args,
            cwd=cwd,
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise NetworkError("git is not installed or not on PATH; cannot clone repository") from e
    except subprocess.TimeoutExpired as e:
        raise AcquireTimeout(f"git timed out after {timeout:.0f}s for {what}") from e
    if proc.returncode != 0:
        raise classify_git_error(proc.stderr or '', what)


def clone_repository(
    source: ParsedSource,
    target_dir: str | Path,
    ref: str | None = None,
    explicit_branch: str | None = None,
    token: str | None = None,
    timeout: float | None = None,
) -> Path:
    """
    Shallow-clone a repository.

    With explicit_branch: clone that branch only. Otherwise clone the default
    branch at depth 1 and, if the URL named a ref, fetch and check it out.
    """
    target = Path(target_dir)
    what = f"Repository {source.owner}/{source.repo}"

    git = ['git']
    if token and source.provider == 'github':
        basic = base64.b64encode(f"x-access-token:{token}".encode()).decode()
        git += ['-c', f'http.extraHeader=Authorization: Basic {basic}']

    cmd = git + ['clone']
    if explicit_branch:
        cmd += ['--branch', explicit_branch, '--single-branch']
    else:
        cmd += ['--depth', '1']
    cmd += [source.clone_url, str(target)]

    logger.info("Cloning %s", source.clone_url)
    _run_git(cmd, what, timeout=timeout)

    if ref and not explicit_branch:
        _run_git(git + ['fetch', '--depth', '1', 'origin', ref], f"{what}@{ref}", cwd=target, timeout=timeout)
        _run_git(['git', 'checkout', '--quiet', 'FETCH_HEAD'], f"{what}@{ref}", cwd=target, timeout=timeout)

    return target


# =============================================================================
# Dispatch
# =============================================================================

@dataclass
class RepositoryFetch:
    """Outcome of fetch_repository: either in-memory files or a directory to walk."""
    method: str
    ref: str | None
    files: list[FetchedFile] | None = None
    directory: Path | None = None

    def read_files(self, filters: FileFilters) -> list[FetchedFile]:
        if self.files is not None:
            return self.files
        return collect_files(self.directory, filters)


def fetch_repository(
    source: ParsedSource,
    options,
    workdir: str | Path,
    session: requests.Session | None = None,
    deadline=None,
) -> RepositoryFetch:
    """
    Fetch a git repository into workdir.

    Raises:
        AuthRequired: private repository without credentials (never falls back)
        NotFound / RateLimited / NetworkError / ArchiveCorrupt: API path failed
            and allow_fallback is off, or the clone failed too
    """
    workdir = Path(workdir)
    filters = FileFilters.from_options(options)
    token = resolve_token(options.token) if source.provider == 'github' else options.token
    ref = options.ref or source.ref

    api_attempt = None
    if options.use_api and source.provider == 'github':
        api_attempt = lambda: _fetch_github_api(source, options, filters, workdir, token, ref, session, deadline)
    elif options.use_api and source.provider == 'gitlab' and options.archive_format == 'tarball':
        api_attempt = lambda: RepositoryFetch(
            method='gitlab-tarball',
            ref=ref,
            files=stream_gitlab_tarball(
                source, filters, ref=ref, token=token, session=session,
                timeout=options.request_timeout, deadline=deadline,
            ),
        )

    if api_attempt is not None:
        try:
            return api_attempt()
        except AuthRequired:
            raise
        except (NetworkError, ArchiveCorrupt, RateLimited, NotFound) as e:
            if isinstance(e, AcquireTimeout) or not options.allow_fallback:
                raise
            logger.warning("Archive download failed (%s); falling back to git clone", e.message)

    _check_deadline(deadline)
    target = workdir / 'clone'
    clone_repository(
        source,
        target,
        ref=source.ref,
        explicit_branch=options.ref,
        token=token,
        timeout=deadline.remaining() if deadline is not None else None,
    )
    return RepositoryFetch(method='clone', ref=ref, directory=target)


def _fetch_github_api(source, options, filters, workdir, token, ref, session, deadline) -> RepositoryFetch:
    client = GitHubClient(
        source.owner,
        source.repo,
        token=token,
        session=session,
        timeout=options.request_timeout,
        user_agent=options.user_agent,
        deadline=deadline,
    )
    access = client.check_access()
    if access.private and not token:
        raise AuthRequired(f"Private repository {client.name} requires authentication")

    ref = ref or access.default_branch
    logger.info("Fetching %s@%s via %s (repo size %d KB)", client.name, ref, options.archive_format, access.size)

    if options.archive_format == 'tarball':
        files = stream_tarball_files(client.iter_tarball(ref), filters)
        return RepositoryFetch(method='tarball', ref=ref, files=files)

    zip_path = workdir / 'archive.zip'
    client.download_zip(ref, zip_path)
    target = workdir / 'repo'
    extract_zip(zip_path, target, filters)
    zip_path.unlink(missing_ok=True)
    return RepositoryFetch(method='zip', ref=ref, directory=target)


__all__ = [
    'GitHubClient',
    'RepoAccess',
    'ExtractStats',
    'RepositoryFetch',
    'raise_for_status',
    'gunzip_stream',
    'extract_zip',
    'stream_tarball_files',
    'stream_gitlab_tarball',
    'classify_git_error',
    'clone_repository',
    'fetch_repository',
]
