"""Command-line interface for the crawler."""

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from webcrawl.config import CrawlDefaults, settings
from webcrawl.logging_config import setup_logging
from webcrawl.models import CrawlJob, CrawlStrategy, SitemapJob, SmartCrawlJob
from webcrawl.relevance import MAX_MATCHES
from webcrawl.service import CrawlService

CLI_JOB_ID = "cli"


def _write_output(data: Dict[str, Any], output_file: Optional[str]) -> None:
    payload = json.dumps(data, indent=2, default=str)
    if output_file:
        path = Path(output_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(payload)
        print(f"Results written to {output_file}", file=sys.stderr)
    else:
        print(payload)


def _run_job(service: CrawlService, job: Callable[[], Awaitable[Any]]) -> Any:
    """Run a job on a fresh event loop; Ctrl-C aborts it instead of killing it."""

    async def runner():
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, service.abort, CLI_JOB_ID)
        except (NotImplementedError, RuntimeError):
            pass  # Platforms without signal support fall back to KeyboardInterrupt
        return await job()

    return asyncio.run(runner())


def crawl_command(args):
    try:
        job = CrawlJob(
            root_url=args.url,
            max_pages=args.max_pages,
            max_depth=args.depth,
            strategy=CrawlStrategy(args.strategy),
            query=args.query,
            wait_time_ms=args.wait_time,
            include_images=args.images,
            follow_external_links=args.external,
            capture_screenshots=args.screenshots,
            capture_network_traffic=args.network,
        )
    except ValidationError as e:
        print(f"Invalid crawl parameters: {e}", file=sys.stderr)
        sys.exit(2)

    service = CrawlService(settings.browser_config())
    result = _run_job(service, lambda: service.execute_crawl(job, job_id=CLI_JOB_ID))
    _write_output(result.to_dict(), args.output)
    if not result.success:
        sys.exit(1)


def sitemap_command(args):
    try:
        job = SitemapJob(
            root_url=args.url,
            max_pages=args.max_pages,
            max_depth=args.depth,
            include_external_links=args.include_external,
            exclude_patterns=args.exclude or [],
            include_metadata=not args.no_metadata,
        )
    except ValidationError as e:
        print(f"Invalid sitemap parameters: {e}", file=sys.stderr)
        sys.exit(2)

    service = CrawlService(settings.browser_config())
    result = _run_job(service, lambda: service.generate_sitemap(job, job_id=CLI_JOB_ID))
    _write_output(result.to_dict(), args.output)
    if not result.success:
        sys.exit(1)


def links_command(args):
    service = CrawlService(settings.browser_config())
    result = _run_job(service, lambda: service.extract_internal_links(
        args.url,
        include_fragments=not args.no_fragments,
        include_query_params=not args.no_query,
        max_links=args.max_links,
        include_external=args.external,
        sort_by=args.sort_by,
        job_id=CLI_JOB_ID,
    ))
    _write_output(result.to_dict(), args.output)
    if not result.success:
        sys.exit(1)


def _is_url(target: str) -> bool:
    return target.startswith(("http://", "https://"))


def search_command(args):
    if _is_url(args.target):
        service = CrawlService(settings.browser_config())
        result = _run_job(service, lambda: service.search_in_page(
            args.target,
            args.query,
            max_results=args.max_results,
            wait_time_ms=args.wait_time,
            job_id=CLI_JOB_ID,
        ))
        _write_output(result.to_dict(), args.output)
        if not result.success:
            sys.exit(1)
        return

    text = Path(args.target).read_text()
    result = CrawlService().search_in_content(text, args.query)
    _write_output(
        {
            "summary": result.summary,
            "matches": [
                {"snippet": m.snippet, "position": m.position, "relevance": m.relevance}
                for m in result.matches[:args.max_results]
            ],
        },
        args.output,
    )


def smart_command(args):
    try:
        job = SmartCrawlJob(
            root_url=args.url,
            query=args.query,
            max_pages=args.max_pages,
            max_depth=args.depth,
            relevance_threshold=args.threshold,
        )
    except ValidationError as e:
        print(f"Invalid smart crawl parameters: {e}", file=sys.stderr)
        sys.exit(2)

    service = CrawlService(settings.browser_config())
    result = _run_job(service, lambda: service.smart_crawl(job, job_id=CLI_JOB_ID))
    _write_output(result.to_dict(), args.output)
    if not result.success:
        sys.exit(1)


def main():
    """Main CLI entry point."""
    import argparse

    defaults = CrawlDefaults.from_env()

    parser = argparse.ArgumentParser(
        description="webcrawl - Crawl websites, build sitemaps and search page content"
    )

    # Global flags (before subcommands)
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.LOG_LEVEL.upper(),
        help="Set logging verbosity (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to file in addition to console",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Crawl command parser
    crawl_parser = subparsers.add_parser(
        "crawl", help="Crawl a site and merge the content of visited pages."
    )
    crawl_parser.add_argument("url", help="Root URL to start from")
    crawl_parser.add_argument(
        "--max-pages", type=int, default=defaults.max_pages,
        help=f"Maximum pages to visit (default: {defaults.max_pages})",
    )
    crawl_parser.add_argument(
        "--depth", type=int, default=defaults.depth,
        help=f"Maximum link depth from the root (default: {defaults.depth})",
    )
    crawl_parser.add_argument(
        "--strategy",
        choices=[s.value for s in CrawlStrategy],
        default=defaults.strategy,
        help=f"Traversal strategy (default: {defaults.strategy})",
    )
    crawl_parser.add_argument("--query", help="Focus extracted text on this query")
    crawl_parser.add_argument(
        "--wait-time", type=int, default=defaults.wait_time,
        help=f"Extra delay after each page settles, in ms (default: {defaults.wait_time})",
    )
    crawl_parser.add_argument("--images", action="store_true", help="Load and collect images")
    crawl_parser.add_argument("--external", action="store_true", help="Follow links to other origins")
    crawl_parser.add_argument("--screenshots", action="store_true", help="Save full-page screenshots")
    crawl_parser.add_argument("--network", action="store_true", help="Record network requests")
    crawl_parser.add_argument("--output", "-o", help="Write JSON result to file instead of stdout")
    crawl_parser.set_defaults(func=crawl_command)

    # Sitemap command parser
    sitemap_parser = subparsers.add_parser(
        "sitemap", help="Discover the page hierarchy of a site."
    )
    sitemap_parser.add_argument("url", help="Root URL to start from")
    sitemap_parser.add_argument(
        "--max-pages", type=int, default=defaults.sitemap_max_pages,
        help=f"Maximum entries (default: {defaults.sitemap_max_pages})",
    )
    sitemap_parser.add_argument(
        "--depth", type=int, default=defaults.sitemap_depth,
        help=f"Maximum depth (default: {defaults.sitemap_depth})",
    )
    sitemap_parser.add_argument(
        "--include-external", action="store_true", help="Visit pages on other origins"
    )
    sitemap_parser.add_argument(
        "--exclude", nargs="+", metavar="PATTERN", help="Skip URLs containing any of these substrings"
    )
    sitemap_parser.add_argument("--no-metadata", action="store_true", help="Do not record headings")
    sitemap_parser.add_argument("--output", "-o", help="Write JSON result to file instead of stdout")
    sitemap_parser.set_defaults(func=sitemap_command)

    # Links command parser
    links_parser = subparsers.add_parser(
        "links", help="List the links of a single page."
    )
    links_parser.add_argument("url", help="Page URL")
    links_parser.add_argument(
        "--max-links", type=int, default=defaults.max_links,
        help=f"Maximum links returned (default: {defaults.max_links})",
    )
    links_parser.add_argument("--no-fragments", action="store_true", help="Strip #fragments")
    links_parser.add_argument("--no-query", action="store_true", help="Strip ?query parameters")
    links_parser.add_argument("--external", action="store_true", help="Include links to other origins")
    links_parser.add_argument(
        "--sort-by",
        choices=["document", "url", "text", "relevance"],
        default="document",
        help="Order of the returned links (default: document)",
    )
    links_parser.add_argument("--output", "-o", help="Write JSON result to file instead of stdout")
    links_parser.set_defaults(func=links_command)

    # Search command parser
    search_parser = subparsers.add_parser(
        "search", help="Search a page or a text file for the passages most relevant to a query."
    )
    search_parser.add_argument("target", help="http(s) URL of a page, or a text file")
    search_parser.add_argument("query", help="Free-text query")
    search_parser.add_argument(
        "--max-results", type=int, default=MAX_MATCHES,
        help=f"Maximum matches returned (default: {MAX_MATCHES})",
    )
    search_parser.add_argument(
        "--wait-time", type=int, default=defaults.wait_time,
        help=f"Delay after a page loads before it is searched, in ms (default: {defaults.wait_time})",
    )
    search_parser.add_argument("--output", "-o", help="Write JSON result to file instead of stdout")
    search_parser.set_defaults(func=search_command)

    # Smart crawl command parser
    smart_parser = subparsers.add_parser(
        "smart", help="Crawl best-first and rank pages by relevance to a query."
    )
    smart_parser.add_argument("url", help="Root URL to start from")
    smart_parser.add_argument("query", help="Free-text query")
    smart_parser.add_argument(
        "--max-pages", type=int, default=5, help="Maximum pages to visit (default: 5)"
    )
    smart_parser.add_argument(
        "--depth", type=int, default=2, help="Maximum link depth from the root (default: 2)"
    )
    smart_parser.add_argument(
        "--threshold", type=float, default=2.0,
        help="Minimum page relevance score to report (default: 2.0)",
    )
    smart_parser.add_argument("--output", "-o", help="Write JSON result to file instead of stdout")
    smart_parser.set_defaults(func=smart_command)

    args = parser.parse_args()

    # Configure logging based on flags
    setup_logging(
        level=args.log_level,
        log_file=getattr(args, 'log_file', None),
    )

    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
