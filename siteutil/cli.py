#!/usr/bin/env python3
"""
Command-line entry point for the siteutil tools.

Usage:
    siteutil canonical check --path Websites/21-dev --base-url https://21.dev
    siteutil canonical fix --path Websites/21-dev --base-url https://21.dev --dry-run
    siteutil sitemap generate --site 21-dev
    siteutil sitemap validate --input Websites/21-dev/sitemap.xml
    siteutil state update --package-version 0.21.1
    siteutil headers validate --site 21-dev --env prod

Exit codes: 0 success, 1 validation failures, 2 usage errors.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from urllib.parse import urlparse

from siteutil import __version__
from siteutil.canonical import CanonicalCheckError, CanonicalStatus, CheckReport, check_directory
from siteutil.canonical_fix import FixAction, FixReport, fix_directory
from siteutil.config import DEFAULT_RESOLVED_PATH, DEFAULT_STATE_PATH, SITES, site_config
from siteutil.dates import format_iso
from siteutil.headers import (
    ENVIRONMENTS,
    HeadersError,
    default_headers_path,
    validate_headers_file,
)
from siteutil.sitemap import SitemapDiscoveryError, SitemapError, generate, write_sitemap
from siteutil.sitemap_validate import validate_file, validate_remote
from siteutil.state import StateFileError, detect_package_version, load_state, update, validate_state
from siteutil.validation import ValidationResult


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def check_scan_args(path: str, base_url: str) -> str | None:
    if not Path(path).is_dir():
        return f"Path does not exist or is not a directory: {path}"
    parsed = urlparse(base_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return "Invalid base URL. Must include scheme (e.g., https://21.dev)"
    return None


def print_check_details(report: CheckReport) -> None:
    for result in report.results:
        if result.status is CanonicalStatus.VALID:
            print(f"OK       {result.relative_path} -> {result.expected_url}")
        elif result.status is CanonicalStatus.MISSING:
            print(f"MISSING  {result.relative_path}")
        elif result.status is CanonicalStatus.MISMATCH:
            print(f"MISMATCH {result.relative_path}")
            print(f"   Expected: {result.expected_url}")
            print(f"   Found:    {result.existing_url}")
        else:
            print(f"ERROR    {result.relative_path}")
            print(f"   Error: {result.error_message}")
    print()


def run_canonical_check(args: argparse.Namespace) -> int:
    problem = check_scan_args(args.path, args.base_url)
    if problem:
        print(f"Error: {problem}")
        return 2

    print(f"Checking canonicals in {args.path}...")
    try:
        report = check_directory(args.path, args.base_url)
    except CanonicalCheckError as exc:
        print(f"Error: {exc}")
        return 2

    if args.verbose:
        print_check_details(report)
    print(f"Valid: {report.valid_count}")
    if report.mismatch_count:
        print(f"Mismatch: {report.mismatch_count}")
    if report.missing_count:
        print(f"Missing: {report.missing_count}")
    if report.error_count:
        print(f"Errors: {report.error_count}")

    if not report.is_all_valid:
        print(f"Result: {plural(report.issue_count, 'issue')} found")
        return 1
    print("Result: All canonicals valid")
    return 0


def print_fix_details(report: FixReport, dry_run: bool) -> None:
    prefix = "Would " if dry_run else ""
    labels = {
        FixAction.ADDED: f"{prefix}add",
        FixAction.UPDATED: f"{prefix}update",
        FixAction.SKIPPED: "Skipped",
        FixAction.FAILED: "Failed",
    }
    for result in report.results:
        print(f"{labels[result.action]}: {result.file_path}")
        if result.error_message:
            print(f"   Error: {result.error_message}")
    print()


def run_canonical_fix(args: argparse.Namespace) -> int:
    problem = check_scan_args(args.path, args.base_url)
    if problem:
        print(f"Error: {problem}")
        return 2

    mode = " (dry run)" if args.dry_run else ""
    print(f"Fixing canonicals in {args.path}...{mode}")
    try:
        check_report = check_directory(args.path, args.base_url)
    except CanonicalCheckError as exc:
        print(f"Error: {exc}")
        return 2
    report = fix_directory(check_report, force=args.force, dry_run=args.dry_run)

    if args.verbose or args.dry_run:
        print_fix_details(report, args.dry_run)
    prefix = "Would " if args.dry_run else ""
    if report.added_count:
        print(f"{prefix}Added: {plural(report.added_count, 'file')}")
    if report.updated_count:
        print(f"{prefix}Updated: {plural(report.updated_count, 'file')}")
    if report.skipped_count:
        hint = "" if args.force else " (use --force to overwrite)"
        print(f"Skipped: {plural(report.skipped_count, 'file')}{hint}")
    if report.failed_count:
        print(f"Failed: {plural(report.failed_count, 'file')}")

    if not report.is_success:
        print(f"Result: {plural(report.failed_count, 'file')} failed")
        return 1
    if args.dry_run:
        print("No files were modified (dry run)")
    else:
        print(f"Result: {plural(report.modified_count, 'file')} updated")
    return 0


def print_validation(result: ValidationResult, label: str, verbose: bool) -> None:
    if result.is_valid:
        print(f"{label} valid")
    else:
        print(f"{label} validation failed:")
        for error in result.errors:
            print(f"  {error}")
    if result.warnings and (verbose or not result.is_valid):
        print("  Warnings:")
        for warning in result.warnings:
            print(f"    - {warning}")


def run_sitemap_generate(args: argparse.Namespace) -> int:
    try:
        config = site_config(args.site)
    except ValueError as exc:
        print(f"Error: {exc}")
        return 2
    if args.input:
        config = config.with_input(args.input)

    if args.verbose:
        print(f"Generating sitemap for {config.name}...")
        print(f"  Input: {config.output_directory}")
    try:
        xml_text = generate(config, state_path=args.state_file)
    except SitemapDiscoveryError as exc:
        print(f"Error: {exc}")
        return 2
    except StateFileError as exc:
        print(f"Error: {exc}")
        return 1

    if args.dry_run:
        print(xml_text)
        return 0
    output_path = args.output or config.sitemap_path
    try:
        write_sitemap(xml_text, output_path)
    except SitemapError as exc:
        print(f"Error: {exc}")
        return 1
    print(f"Sitemap generated: {output_path}")
    return 0


def run_sitemap_validate(args: argparse.Namespace) -> int:
    if args.url:
        source = args.url
        result = validate_remote(args.url, timeout=args.timeout)
    elif args.input:
        source = args.input
        result = validate_file(args.input)
    elif args.site:
        try:
            source = site_config(args.site).sitemap_path
        except ValueError as exc:
            print(f"Error: {exc}")
            return 2
        result = validate_file(source)
    else:
        print("Error: provide one of --site, --input or --url")
        return 2

    if args.verbose:
        print(f"Validating sitemap: {source}")
    print_validation(result, f"Sitemap {source}", args.verbose)
    return 0 if result.is_valid else 1


def run_state_update(args: argparse.Namespace) -> int:
    version = args.package_version
    if not version:
        try:
            version = detect_package_version(args.resolved)
        except ValueError as exc:
            print(f"Error: cannot read {args.resolved}: {exc}")
            return 2
        if not version:
            print("Error: could not auto-detect package version. Please specify --package-version.")
            return 2
        if args.verbose:
            print(f"Auto-detected package version: {version}")

    if args.verbose:
        print(f"Updating state file: {args.file}")
    try:
        state = update(args.file, version)
    except StateFileError as exc:
        print(f"Error: {exc}")
        return 1
    except OSError as exc:
        print(f"Error: failed to write state file: {exc}")
        return 1

    print("State updated:")
    print(f"  Package version: {state.package_version}")
    print(f"  Generated date: {format_iso(state.generated_date)}")
    print(f"  Subdomains: {len(state.subdomains)}")
    return 0


def run_state_validate(args: argparse.Namespace) -> int:
    result = validate_state(args.file)
    print_validation(result, f"State file {args.file}", args.verbose)
    if result.is_valid and args.verbose:
        state = load_state(args.file)
        if state is not None:
            print(f"  Package version: {state.package_version}")
            print(f"  Generated date: {format_iso(state.generated_date)}")
            for name, subdomain in sorted(state.subdomains.items()):
                print(f"    - {name}: {format_iso(subdomain.lastmod)}")
    return 0 if result.is_valid else 1


def run_headers_validate(args: argparse.Namespace) -> int:
    path = args.input or default_headers_path(args.site, args.env)
    if args.verbose:
        print(f"Validating headers for {args.site} ({args.env}): {path}")
    try:
        result = validate_headers_file(path, args.env)
    except HeadersError as exc:
        print(f"Error: {exc}")
        return 2
    print_validation(result, f"Headers {args.site} ({args.env})", args.verbose)
    return 0 if result.is_valid else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="siteutil", description="Canonical, sitemap and state utilities for 21.dev sites.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    groups = parser.add_subparsers(dest="group", required=True)

    canonical = groups.add_parser("canonical", help="Check and fix canonical URL tags in HTML files")
    canonical_sub = canonical.add_subparsers(dest="command", required=True)

    p_check = canonical_sub.add_parser("check", help="Audit HTML files for canonical URL issues")
    p_check.add_argument("--path", required=True, help="Directory containing HTML files to scan")
    p_check.add_argument("--base-url", required=True, help="Base URL for canonical derivation (e.g., https://21.dev)")
    p_check.add_argument("-v", "--verbose", action="store_true", help="Show detailed output for each file")
    p_check.set_defaults(func=run_canonical_check)

    p_fix = canonical_sub.add_parser("fix", help="Add or update canonical URL tags in HTML files")
    p_fix.add_argument("--path", required=True, help="Directory containing HTML files to fix")
    p_fix.add_argument("--base-url", required=True, help="Base URL for canonical derivation (e.g., https://21.dev)")
    p_fix.add_argument("--force", action="store_true", help="Overwrite existing canonical tags")
    p_fix.add_argument("--dry-run", action="store_true", help="Preview changes without modifying files")
    p_fix.add_argument("-v", "--verbose", action="store_true", help="Show detailed output for each file")
    p_fix.set_defaults(func=run_canonical_fix)

    sitemap = groups.add_parser("sitemap", help="Sitemap generation and validation")
    sitemap_sub = sitemap.add_subparsers(dest="command", required=True)

    p_generate = sitemap_sub.add_parser("generate", help="Generate sitemap.xml for a site")
    p_generate.add_argument("--site", required=True, choices=list(SITES), help="Target site identifier")
    p_generate.add_argument("--input", default="", help="Built site directory (overrides default)")
    p_generate.add_argument("--output", default="", help="Output path for sitemap.xml (overrides default)")
    p_generate.add_argument("--state-file", default=DEFAULT_STATE_PATH, help="State file for version-gated lastmod")
    p_generate.add_argument("--dry-run", action="store_true", help="Print the sitemap instead of writing it")
    p_generate.add_argument("-v", "--verbose", action="store_true")
    p_generate.set_defaults(func=run_sitemap_generate)

    p_validate = sitemap_sub.add_parser("validate", help="Validate a sitemap.xml file")
    p_validate.add_argument("--site", default="", help="Target site identifier")
    p_validate.add_argument("--input", default="", help="Sitemap file path (overrides default)")
    p_validate.add_argument("--url", default="", help="Published sitemap URL to fetch and validate")
    p_validate.add_argument("--timeout", type=int, default=20)
    p_validate.add_argument("-v", "--verbose", action="store_true")
    p_validate.set_defaults(func=run_sitemap_validate)

    state = groups.add_parser("state", help="State file management for sitemap lastmod tracking")
    state_sub = state.add_subparsers(dest="command", required=True)

    p_update = state_sub.add_parser("update", help="Update state file with package version")
    p_update.add_argument("-p", "--package-version", default="", help="Package version (auto-detected when omitted)")
    p_update.add_argument("-f", "--file", default=DEFAULT_STATE_PATH, help="State file path")
    p_update.add_argument("--resolved", default=DEFAULT_RESOLVED_PATH, help="Package.resolved used for auto-detection")
    p_update.add_argument("-v", "--verbose", action="store_true")
    p_update.set_defaults(func=run_state_update)

    p_state_validate = state_sub.add_parser("validate", help="Validate state file format and contents")
    p_state_validate.add_argument("-f", "--file", default=DEFAULT_STATE_PATH, help="State file path")
    p_state_validate.add_argument("-v", "--verbose", action="store_true")
    p_state_validate.set_defaults(func=run_state_validate)

    headers = groups.add_parser("headers", help="Cloudflare _headers validation")
    headers_sub = headers.add_subparsers(dest="command", required=True)

    p_headers = headers_sub.add_parser("validate", help="Validate a Cloudflare _headers file")
    p_headers.add_argument("--site", required=True, choices=list(SITES), help="Target site identifier")
    p_headers.add_argument("--env", required=True, choices=list(ENVIRONMENTS), help="Target environment")
    p_headers.add_argument("--input", default="", help="Headers file path (overrides default)")
    p_headers.add_argument("-v", "--verbose", action="store_true")
    p_headers.set_defaults(func=run_headers_validate)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
