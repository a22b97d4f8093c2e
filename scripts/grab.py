#!/usr/bin/env python3
"""
Acquire a git repository or documentation site as one document.

Examples:
    python scripts/grab.py github.com/psf/requests --ext .py,.md -o requests.md
    python scripts/grab.py https://docs.example.com --depth 1 --max-pages 20
    python scripts/grab.py gitlab.com/group/project --archive tarball --format json
"""

import argparse
import sys
from pathlib import Path

# Add parent dir to path for repograb package
sys.path.insert(0, str(Path(__file__).parent.parent))

from repograb import AcquireOptions, FetchResult, RepograbError, acquire, apply_overrides, load_options
from repograb.cache import create_cache
from repograb.log import configure_logging
from repograb.presenter import render_json, write_output


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fetch a repository or website as a single document")
    parser.add_argument("source", help="Repository or website URL (scheme optional)")
    parser.add_argument("--format", choices=["markdown", "json"], help="Output format (default: markdown)")
    parser.add_argument("--output", "-o", help="Write the document to this file instead of stdout")
    parser.add_argument("--config", help="Path to JSON/YAML options file")

    repo = parser.add_argument_group("repository")
    repo.add_argument("--ext", dest="extensions", help="Comma-separated extensions to keep (e.g. .py,.md)")
    repo.add_argument("--exclude-dir", dest="exclude_dirs", action="append",
                      help="Directory name to skip (repeatable)")
    repo.add_argument("--branch", dest="ref", help="Branch, tag or commit (overrides the URL)")
    repo.add_argument("--max-files", type=int, help="Maximum files to ingest (default: 1000)")
    repo.add_argument("--token", help="API token (default: $GITHUB_TOKEN / $GH_TOKEN)")
    repo.add_argument("--no-api", action="store_true", help="Always git clone")
    repo.add_argument("--no-fallback", action="store_true", help="Fail instead of cloning when the API path fails")
    repo.add_argument("--archive", dest="archive_format", choices=["zip", "tarball"],
                      help="Archive format for the API path (default: zip)")

    web = parser.add_argument_group("website")
    web.add_argument("--depth", dest="max_depth", type=int, help="Max link depth (default: 2)")
    web.add_argument("--max-pages", type=int, help="Max pages to crawl (default: 50)")
    web.add_argument("--ignore-robots", action="store_true", help="Do not fetch or honor robots.txt")
    web.add_argument("--delay", dest="crawl_delay", type=float, help="Seconds between page fetches (default: 0.05)")

    out = parser.add_argument_group("output")
    out.add_argument("--no-tree", action="store_true", help="Omit the project structure tree")
    out.add_argument("--no-line-numbers", action="store_true", help="Omit line numbers in file blocks")

    cache = parser.add_argument_group("cache")
    cache.add_argument("--no-cache", action="store_true", help="Neither read nor write the cache")
    cache.add_argument("--refresh", action="store_true", help="Ignore cached content and refetch")
    cache.add_argument("--cache-backend", choices=["disk", "memory"], default="disk",
                       help="Cache backend (default: disk)")
    cache.add_argument("--cache-dir", help="Disk cache root (default: <tmp>/.repograb-cache)")
    cache.add_argument("--cache-ttl", type=int, help="Cache TTL in seconds (default: 3600)")

    parser.add_argument("--timeout", type=float, help="Whole-operation timeout in seconds (default: 600)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only warnings and errors on stderr")
    parser.add_argument("--log-file", help="Also write logs to this file")
    return parser


def options_from_args(args: argparse.Namespace) -> AcquireOptions:
    options = load_options(args.config) if args.config else AcquireOptions()
    return apply_overrides(
        options,
        format=args.format,
        extensions=args.extensions,
        exclude_dirs=args.exclude_dirs,
        ref=args.ref,
        max_files=args.max_files,
        token=args.token,
        use_api=False if args.no_api else None,
        allow_fallback=False if args.no_fallback else None,
        archive_format=args.archive_format,
        max_depth=args.max_depth,
        max_pages=args.max_pages,
        ignore_robots=True if args.ignore_robots else None,
        crawl_delay=args.crawl_delay,
        project_tree=False if args.no_tree else None,
        line_numbers=False if args.no_line_numbers else None,
        no_cache=True if args.no_cache else None,
        force_refresh=True if args.refresh else None,
        cache_ttl=args.cache_ttl,
        timeout=args.timeout,
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(verbose=args.verbose, quiet=args.quiet, log_file=args.log_file)

    try:
        options = options_from_args(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    cache_kwargs = {"ttl": options.cache_ttl}
    if args.cache_backend == "disk" and args.cache_dir:
        cache_kwargs["cache_dir"] = args.cache_dir
    cache = None if options.no_cache else create_cache(args.cache_backend, **cache_kwargs)

    try:
        result = acquire(args.source, options, cache=cache)
    except RepograbError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if isinstance(result, FetchResult):
        text = render_json(result.to_dict())
        summary = f"{result.metadata.get('total_files', 0)} files, {result.metadata.get('total_size', 0)} bytes"
    else:
        text = result
        summary = f"{len(text)} characters"

    if args.output:
        path = write_output(text, args.output)
        print(f"Wrote {path} ({summary})")
    else:
        print(text)
        print(f"\n[{summary}]", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
