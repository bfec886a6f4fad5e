import argparse
import asyncio
import logging
import sys

from .config import CheckerConfig, ResolverConfig
from .core import generate_report, human_report


def setup_logger(name: str = "email_auth_check", verbose: bool = False, quiet: bool = False) -> logging.Logger:
    """Attach a stderr handler to the package logger."""
    logger = logging.getLogger(name)
    logger.handlers.clear()
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if verbose:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = logging.Formatter("%(levelname)s: %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger


def main(argv=None):
    parser = argparse.ArgumentParser(description="Email auth (SPF/DKIM/DMARC) checker and scorer")
    parser.add_argument("domain", help="domain to check (e.g. example.com)")
    parser.add_argument("--selector", action="append", dest="selectors", metavar="SELECTOR",
                        help="DKIM selector to probe (repeatable, replaces the default list)")
    parser.add_argument("--doh-url", help="DNS-over-HTTPS JSON endpoint")
    parser.add_argument("--timeout-ms", type=int, help="Per-query DNS timeout in milliseconds")
    parser.add_argument("--json-out", help="Write JSON summary to this file")
    parser.add_argument("--quiet", action="store_true", help="Only output JSON or minimal info")
    parser.add_argument("--verbose", action="store_true", help="Log DNS queries to stderr")
    args = parser.parse_args(argv)

    setup_logger(verbose=args.verbose, quiet=args.quiet)

    resolver_opts = {}
    if args.doh_url:
        resolver_opts["endpoint"] = args.doh_url
    if args.timeout_ms:
        resolver_opts["timeout_ms"] = args.timeout_ms
    config = CheckerConfig(resolver=ResolverConfig(**resolver_opts))

    try:
        report = asyncio.run(generate_report(args.domain.strip(), selectors=args.selectors, config=config))
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(2)

    if args.json_out:
        with open(args.json_out, "w", encoding="utf-8") as f:
            f.write(report.model_dump_json(indent=2))
        if not args.quiet:
            print(f"Wrote JSON summary to {args.json_out}")

    if not args.quiet:
        print(human_report(report))
    else:
        print(report.model_dump_json())


if __name__ == "__main__":
    main()
