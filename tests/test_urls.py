"""
Tests for repograb/urls.py.

- Validation rejects unsafe schemes, hosts, private IPs, traversal
- Git classification and ref extraction
- Cache keys separate content-affecting options
- Page URL → document path mapping
"""

import sys
from pathlib import Path

# Ensure project root on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from repograb.config import AcquireOptions
from repograb.errors import InvalidURL
from repograb.urls import cache_key, parse_source, url_to_path, validate_url


class TestValidateUrl:

    def test_bare_domain_gets_https(self):
        assert validate_url("example.com") == "https://example.com"

    def test_http_kept(self):
        assert validate_url("http://example.com/docs") == "http://example.com/docs"

    @pytest.mark.parametrize("url", ["", "   "])
    def test_empty_rejected(self, url):
        with pytest.raises(InvalidURL, match="Invalid URL format"):
            validate_url(url)

    @pytest.mark.parametrize("url", ["ftp://example.com/file", "file:///etc/passwd", "ssh://host/repo"])
    def test_bad_protocol(self, url):
        with pytest.raises(InvalidURL, match="Invalid protocol"):
            validate_url(url)

    def test_blocked_scheme_hidden_in_query(self):
        with pytest.raises(InvalidURL, match="blocked pattern"):
            validate_url("https://example.com/?next=file:///etc/passwd")

    @pytest.mark.parametrize("url", [
        "http://localhost:3000",
        "http://127.0.0.1/",
        "http://0.0.0.0/",
        "http://[::1]/",
        "http://api.localhost/",
        "http://127.8.0.1/",
    ])
    def test_blocked_hosts(self, url):
        with pytest.raises(InvalidURL, match="Blocked hostname"):
            validate_url(url)

    @pytest.mark.parametrize("url", [
        "http://10.0.0.5/x",
        "http://172.16.4.1/",
        "http://192.168.1.1/",
        "http://169.254.169.254/latest/meta-data",
        "http://[fd00::1]/",
        "http://[fe80::1]/",
    ])
    def test_private_ips(self, url):
        with pytest.raises(InvalidURL, match="Private IP address"):
            validate_url(url)

    def test_encoded_loopback(self):
        with pytest.raises(InvalidURL, match="Blocked hostname"):
            validate_url("http://0x7f.1/")

    def test_public_ip_allowed(self):
        assert validate_url("http://93.184.216.34/") == "http://93.184.216.34/"

    def test_traversal(self):
        with pytest.raises(InvalidURL, match="path traversal"):
            validate_url("https://example.com/docs/../../etc")

    def test_error_carries_reason(self):
        with pytest.raises(InvalidURL) as exc:
            validate_url("http://10.1.2.3/")
        assert exc.value.url == "http://10.1.2.3/"
        assert "10.1.2.3" in exc.value.reason
        assert exc.value.message.startswith("Invalid URL: ")


class TestParseSource:

    def test_github_bare(self):
        src = parse_source("github.com/a/b")
        assert src.kind == "git-repository"
        assert src.provider == "github"
        assert (src.owner, src.repo, src.ref) == ("a", "b", None)
        assert src.normalized_url == "https://github.com/a/b"

    def test_git_suffix_stripped(self):
        src = parse_source("https://github.com/psf/requests.git")
        assert src.repo == "requests"
        assert src.clone_url == "https://github.com/psf/requests.git"

    def test_www_variant(self):
        src = parse_source("https://www.github.com/psf/requests")
        assert src.host == "github.com"
        assert src.normalized_url == "https://github.com/psf/requests"

    def test_tree_ref_keeps_slashes(self):
        src = parse_source("https://github.com/o/r/tree/dev/sub")
        assert src.ref == "dev/sub"

    def test_blob_ref_single_segment(self):
        src = parse_source("https://github.com/o/r/blob/v1.2/src/main.py")
        assert src.ref == "v1.2"

    def test_commit_ref(self):
        assert parse_source("https://github.com/o/r/commit/abc123").ref == "abc123"

    def test_release_tag_ref(self):
        assert parse_source("https://github.com/o/r/releases/tag/v2.0.0").ref == "v2.0.0"

    def test_gitlab_nested_group_and_separator(self):
        src = parse_source("https://gitlab.com/group/sub/project/-/tree/main")
        assert src.provider == "gitlab"
        assert src.owner == "group/sub"
        assert src.repo == "project"
        assert src.ref == "main"
        assert src.normalized_url == "https://gitlab.com/group/sub/project"

    def test_bitbucket(self):
        src = parse_source("bitbucket.org/team/tool/src/develop/README.md")
        assert src.provider == "bitbucket"
        assert src.ref == "develop"

    def test_provider_host_without_repo_is_website(self):
        src = parse_source("https://github.com/psf")
        assert src.kind == "website"
        assert src.provider is None

    def test_other_host_is_website(self):
        src = parse_source("Docs.Example.com/guide#intro")
        assert src.kind == "website"
        assert src.host == "docs.example.com"
        assert src.normalized_url == "https://docs.example.com/guide"
        assert src.url == "Docs.Example.com/guide#intro"

    def test_invalid_raises_before_classification(self):
        with pytest.raises(InvalidURL):
            parse_source("http://192.168.0.10/owner/repo")

    def test_frozen(self):
        src = parse_source("github.com/a/b")
        with pytest.raises(Exception):
            src.owner = "c"


class TestCacheKey:

    def test_same_inputs_same_key(self):
        src = parse_source("github.com/a/b")
        assert cache_key(src, AcquireOptions()) == cache_key(src, AcquireOptions())

    def test_extension_order_irrelevant(self):
        src = parse_source("github.com/a/b")
        k1 = cache_key(src, AcquireOptions(extensions=['.py', '.md']))
        k2 = cache_key(src, AcquireOptions(extensions=['.md', '.py']))
        assert k1 == k2

    def test_filters_change_key(self):
        src = parse_source("github.com/a/b")
        assert cache_key(src, AcquireOptions()) != cache_key(src, AcquireOptions(extensions=['.py']))
        assert cache_key(src, AcquireOptions()) != cache_key(src, AcquireOptions(exclude_dirs=['docs']))

    def test_explicit_ref_overrides_url_ref(self):
        src = parse_source("github.com/a/b/tree/main")
        assert "ref:main" in cache_key(src, AcquireOptions())
        assert "ref:dev" in cache_key(src, AcquireOptions(ref="dev"))

    def test_crawl_bounds_change_key(self):
        src = parse_source("docs.example.com")
        assert cache_key(src, AcquireOptions(max_depth=1)) != cache_key(src, AcquireOptions(max_depth=2))
        assert cache_key(src, AcquireOptions()) != cache_key(src, AcquireOptions(ignore_robots=True))


class TestUrlToPath:

    @pytest.mark.parametrize("url,expected", [
        ("https://example.com", "index.md"),
        ("https://example.com/", "index.md"),
        ("https://example.com/docs/api", "docs/api.md"),
        ("https://example.com/docs/api/", "docs/api.md"),
        ("https://example.com/guide.html", "guide.md"),
        ("https://example.com/search?q=tar", "search_q-tar.md"),
    ])
    def test_mapping(self, url, expected):
        assert url_to_path(url) == expected

    def test_no_traversal_segments(self):
        assert ".." not in url_to_path("https://example.com/a/%2e%2e/b")
