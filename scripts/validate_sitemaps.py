#!/usr/bin/env python3
"""
Sitemap validator for the marketplace's generated sitemap files.

Checks every sitemap in the public directory against Sitemap Protocol 0.9
and the marketplace SEO rules, then exits non-zero when any error is found.

Usage:
    python scripts/validate_sitemaps.py
    python scripts/validate_sitemaps.py --public-dir dist/public --output-dir sitemap-validation
    VALIDATE_URLS=true python scripts/validate_sitemaps.py  # Enable URL status checks
"""

from __future__ import annotations

import argparse
import concurrent.futures
import json
import math
import os
import re
import sys
from dataclasses import asdict, dataclass, field
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any
from urllib.parse import urljoin, urlparse

import requests

PUBLIC_DIR_NAME = "public"
URLSET_FILES = [
    "sitemap.xml",
    "vehicle-sitemap.xml",
    "blog-sitemap.xml",
    "accessories-sitemap.xml",
]
INDEX_FILE = "sitemap-index.xml"

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
VALID_CHANGEFREQ = ["always", "hourly", "daily", "weekly", "monthly", "yearly", "never"]
HEADERS = {"User-Agent": "Diksx-Sitemap-Validator/1.0"}
DEFAULT_TIMEOUT = 5
DEFAULT_MAX_WORKERS = 8
MAX_URLS_PER_SITEMAP = 50000
MAX_SITEMAP_BYTES = 50 * 1024 * 1024

DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
QUERY_STRING_RE = re.compile(r"[?&=]")
URLSET_ROOT_RE = re.compile(rf"<urlset[^>]*xmlns\s*=\s*[\"']{re.escape(SITEMAP_NS)}[\"'][^>]*>", re.S)
INDEX_ROOT_RE = re.compile(rf"<sitemapindex[^>]*xmlns\s*=\s*[\"']{re.escape(SITEMAP_NS)}[\"'][^>]*>", re.S)
URL_BLOCK_RE = re.compile(r"<url>(.*?)</url>", re.S)
SITEMAP_BLOCK_RE = re.compile(r"<sitemap>(.*?)</sitemap>", re.S)
TAG_RES = {
    name: re.compile(rf"<{name}>(.*?)</{name}>", re.S)
    for name in ("loc", "lastmod", "changefreq", "priority")
}
NEWS_MARKERS = ("xmlns:news", "<news:news>", "news:")


@dataclass
class ValidationResult:
    valid: bool
    error: str | None = None


@dataclass
class SitemapEntry:
    loc: str | None = None
    lastmod: str | None = None
    changefreq: str | None = None
    priority: str | None = None


@dataclass
class SitemapIndexEntry:
    loc: str | None = None
    lastmod: str | None = None


@dataclass
class FileStat:
    filename: str
    kind: str
    status: str
    entry_count: int = 0
    error_count: int = 0


@dataclass
class ValidationRun:
    public_dir: Path
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    total_urls: int = 0
    seen_urls: set[str] = field(default_factory=set)
    file_stats: list[FileStat] = field(default_factory=list)
    liveness: LivenessChecker | None = None


# Rules


def validate_url(loc: str | None, context: str = "") -> ValidationResult:
    if not loc:
        suffix = f" in {context}" if context else ""
        return ValidationResult(False, f"Missing <loc> element{suffix}")
    if loc.strip() != loc:
        return ValidationResult(False, f'URL contains trailing/leading whitespace: "{loc}"')
    if not loc.startswith("https://"):
        return ValidationResult(False, f'URL must start with https://: "{loc}"')
    if QUERY_STRING_RE.search(loc):
        return ValidationResult(False, f'URL must not contain query strings: "{loc}"')
    return ValidationResult(True)


def validate_date(value: str | None) -> ValidationResult:
    """Accept YYYY-MM-DD calendar dates that are not later than today."""
    if not value:
        return ValidationResult(True)
    if not DATE_RE.fullmatch(value):
        return ValidationResult(
            False, f'Invalid date format: "{value}". Must be YYYY-MM-DD (no time, no timezone)'
        )
    year, month, day = (int(part) for part in value.split("-"))
    try:
        parsed = date(year, month, day)
    except ValueError:
        return ValidationResult(False, f'Invalid date value: "{value}"')
    if parsed > date.today():
        return ValidationResult(False, f'Date is in the future: "{value}"')
    return ValidationResult(True)


def validate_changefreq(value: str | None) -> ValidationResult:
    if not value:
        return ValidationResult(True)
    if value.lower() not in VALID_CHANGEFREQ:
        return ValidationResult(
            False, f'Invalid changefreq: "{value}". Must be one of: {", ".join(VALID_CHANGEFREQ)}'
        )
    return ValidationResult(True)


def validate_priority(value: str | None) -> ValidationResult:
    if not value:
        return ValidationResult(True)
    try:
        number = float(value)
    except ValueError:
        number = math.nan
    if not math.isfinite(number):
        return ValidationResult(False, f'Invalid priority: "{value}". Must be a number between 0.0 and 1.0')
    if number < 0.0 or number > 1.0:
        return ValidationResult(False, f'Priority out of range: "{value}". Must be between 0.0 and 1.0')
    return ValidationResult(True)


# Liveness


def check_url_status(url: str, timeout: float, origin: str | None = None) -> list[str]:
    """HEAD-probe a URL and return advisory warnings; follows one redirect hop."""
    try:
        response = requests.head(url, headers=HEADERS, timeout=timeout, allow_redirects=False)
    except requests.exceptions.Timeout:
        return [f'Timeout checking URL "{url}"']
    except requests.exceptions.RequestException as exc:
        return [f'Failed to check URL "{url}": {exc}']

    status = response.status_code
    location = (response.headers.get("Location") or "").strip()
    if 300 <= status < 400 and location:
        if origin is not None:
            return [f'URL "{origin}" has redirect chain exceeding 1 hop']
        try:
            target = urljoin(url, location)
        except ValueError as exc:
            return [f'Failed to check URL "{url}": {exc}']
        return check_url_status(target, timeout, origin=url)
    if status != 200:
        return [f'URL "{url}" returned status code {status}']
    return []


class LivenessChecker:
    def __init__(self, timeout: float = DEFAULT_TIMEOUT, max_workers: int = DEFAULT_MAX_WORKERS) -> None:
        self.timeout = timeout
        self.max_workers = max_workers
        self._pool: concurrent.futures.ThreadPoolExecutor | None = None
        self._futures: list[tuple[str, concurrent.futures.Future[list[str]]]] = []

    @property
    def pending(self) -> int:
        return len(self._futures)

    def submit(self, url: str) -> None:
        if self._pool is None:
            self._pool = concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers)
        self._futures.append((url, self._pool.submit(check_url_status, url, self.timeout)))

    def drain(self) -> list[str]:
        """Wait for every submitted probe; warnings come back in submission order."""
        warnings: list[str] = []
        for url, fut in self._futures:
            try:
                warnings.extend(fut.result())
            except Exception as exc:
                warnings.append(f'Failed to check URL "{url}": {exc}')
        self._futures = []
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None
        return warnings


# Loading and extraction


def load_sitemap(run: ValidationRun, filename: str, kind: str) -> str | None:
    path = run.public_dir / filename
    if not path.exists():
        run.warnings.append(f"{filename}: File does not exist (skipped)")
        run.file_stats.append(FileStat(filename=filename, kind=kind, status="missing"))
        return None
    try:
        size = path.stat().st_size
        if size > MAX_SITEMAP_BYTES:
            run.errors.append(f"{filename}: File exceeds 50MB uncompressed size limit ({size} bytes)")
            run.file_stats.append(FileStat(filename=filename, kind=kind, status="invalid", error_count=1))
            return None
        xml_text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        run.errors.append(f"{filename}: Cannot read file: {exc}")
        run.file_stats.append(FileStat(filename=filename, kind=kind, status="unreadable", error_count=1))
        return None
    return xml_text


def first_tag(block: str, name: str) -> str | None:
    match = TAG_RES[name].search(block)
    if not match:
        return None
    return match.group(1).strip()


def parse_urlset(run: ValidationRun, xml_text: str, filename: str) -> list[SitemapEntry]:
    if not URLSET_ROOT_RE.search(xml_text):
        run.errors.append(f'{filename}: Root element must be <urlset xmlns="{SITEMAP_NS}">')
        return []

    # xmlns:image is fine; news sitemaps are not published by the marketplace
    if any(marker in xml_text for marker in NEWS_MARKERS):
        run.errors.append(f"{filename}: Must not contain Google News namespace or tags")

    entries: list[SitemapEntry] = []
    for match in URL_BLOCK_RE.finditer(xml_text):
        block = match.group(1)
        entries.append(
            SitemapEntry(
                loc=first_tag(block, "loc"),
                lastmod=first_tag(block, "lastmod"),
                changefreq=first_tag(block, "changefreq"),
                priority=first_tag(block, "priority"),
            )
        )
    return entries


def parse_sitemap_index(run: ValidationRun, xml_text: str, filename: str) -> list[SitemapIndexEntry]:
    if not INDEX_ROOT_RE.search(xml_text):
        run.errors.append(f'{filename}: Root element must be <sitemapindex xmlns="{SITEMAP_NS}">')
        return []

    entries: list[SitemapIndexEntry] = []
    for match in SITEMAP_BLOCK_RE.finditer(xml_text):
        block = match.group(1)
        entries.append(SitemapIndexEntry(loc=first_tag(block, "loc"), lastmod=first_tag(block, "lastmod")))
    return entries


# File validation


def record_error(run: ValidationRun, context: str, result: ValidationResult) -> None:
    if not result.valid:
        run.errors.append(f"{context}: {result.error}")


def validate_urlset_sitemap(run: ValidationRun, filename: str) -> None:
    errors_before = len(run.errors)
    xml_text = load_sitemap(run, filename, "urlset")
    if xml_text is None:
        return

    if "<?xml" not in xml_text:
        run.errors.append(f"{filename}: Not a valid XML file (missing XML declaration)")
        run.file_stats.append(
            FileStat(filename, "urlset", "invalid", error_count=len(run.errors) - errors_before)
        )
        return

    entries = parse_urlset(run, xml_text, filename)
    if not entries and "<urlset" not in xml_text:
        run.errors.append(f"{filename}: No URLs found and invalid structure")
        run.file_stats.append(
            FileStat(filename, "urlset", "invalid", error_count=len(run.errors) - errors_before)
        )
        return

    if len(entries) > MAX_URLS_PER_SITEMAP:
        run.errors.append(f"{filename}: Sitemap exceeds 50,000 URL limit ({len(entries)} URLs)")

    for index, entry in enumerate(entries, start=1):
        context = f"{filename} (entry {index})"

        loc_result = validate_url(entry.loc, context)
        if not loc_result.valid:
            record_error(run, context, loc_result)
            continue

        if entry.loc in run.seen_urls:
            run.errors.append(f'{context}: Duplicate URL found: "{entry.loc}"')
        else:
            run.seen_urls.add(entry.loc)

        record_error(run, context, validate_date(entry.lastmod))
        record_error(run, context, validate_changefreq(entry.changefreq))
        record_error(run, context, validate_priority(entry.priority))

        if run.liveness is not None:
            run.liveness.submit(entry.loc)

        run.total_urls += 1

    run.file_stats.append(
        FileStat(filename, "urlset", "validated", len(entries), len(run.errors) - errors_before)
    )
    print(f"✓ Validated {filename}: {len(entries)} URLs")


def validate_sitemap_index(run: ValidationRun, filename: str = INDEX_FILE) -> None:
    errors_before = len(run.errors)
    xml_text = load_sitemap(run, filename, "sitemapindex")
    if xml_text is None:
        return

    if "<?xml" not in xml_text:
        run.errors.append(f"{filename}: Not a valid XML file (missing XML declaration)")
        run.file_stats.append(
            FileStat(filename, "sitemapindex", "invalid", error_count=len(run.errors) - errors_before)
        )
        return

    entries = parse_sitemap_index(run, xml_text, filename)

    for index, entry in enumerate(entries, start=1):
        context = f"{filename} (entry {index})"

        loc_result = validate_url(entry.loc, context)
        if not loc_result.valid:
            record_error(run, context, loc_result)
            continue

        referenced = urlparse(entry.loc).path.rsplit("/", 1)[-1]
        if not (run.public_dir / referenced).is_file():
            run.errors.append(f'{context}: References non-existent sitemap file: "{referenced}"')

        record_error(run, context, validate_date(entry.lastmod))

    run.file_stats.append(
        FileStat(filename, "sitemapindex", "validated", len(entries), len(run.errors) - errors_before)
    )
    print(f"✓ Validated {filename}: {len(entries)} sitemap references")


def run_validation(
    public_dir: Path,
    validate_urls: bool = False,
    timeout: float = DEFAULT_TIMEOUT,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> ValidationRun:
    run = ValidationRun(public_dir=public_dir)
    if validate_urls:
        run.liveness = LivenessChecker(timeout=timeout, max_workers=max_workers)

    for filename in URLSET_FILES:
        validate_urlset_sitemap(run, filename)
    validate_sitemap_index(run, INDEX_FILE)

    if run.liveness is not None:
        print(f"\nChecking URL status codes ({run.liveness.pending} URLs)...")
        run.warnings.extend(run.liveness.drain())
    return run


# Reporting


def build_summary(run: ValidationRun, validate_urls: bool) -> dict[str, Any]:
    return {
        "generated_at": datetime.now(UTC).isoformat(),
        "public_dir": str(run.public_dir),
        "url_status_checks": validate_urls,
        "total_urls": run.total_urls,
        "error_count": len(run.errors),
        "warning_count": len(run.warnings),
        "passed": not run.errors,
        "files": [asdict(stat) for stat in run.file_stats],
        "errors": run.errors,
        "warnings": run.warnings,
    }


def render_validation_report(summary: dict[str, Any], output_path: Path) -> None:
    file_rows = [
        f"| `{item['filename']}` | {item['kind']} | {item['status']} | {item['entry_count']} | {item['error_count']} |"
        for item in summary["files"]
    ]
    report = f"""# Sitemap Validation Report

## Executive Summary
- Public directory: `{summary['public_dir']}`
- URL status checks: {"enabled" if summary['url_status_checks'] else "disabled"}
- Total URLs validated: {summary['total_urls']}
- Errors (blocking): {summary['error_count']}
- Warnings (non-blocking): {summary['warning_count']}
- Result: {"PASS" if summary['passed'] else "FAIL"}

## Files
| File | Kind | Status | Entries | Errors |
|---|---|---|---|---|
{chr(10).join(file_rows)}

## Errors
{chr(10).join(f"- {item}" for item in summary['errors']) or "- None"}

## Warnings
{chr(10).join(f"- {item}" for item in summary['warnings']) or "- None"}
"""
    output_path.write_text(report, encoding="utf-8")


def print_summary(run: ValidationRun) -> None:
    print("\n" + "=" * 60)
    print("VALIDATION SUMMARY")
    print("=" * 60)
    print(f"Total URLs validated: {run.total_urls}")
    print(f"Errors (blocking): {len(run.errors)}")
    print(f"Warnings (non-blocking): {len(run.warnings)}")

    if run.errors:
        print("\nERRORS (must be fixed):")
        for idx, message in enumerate(run.errors, start=1):
            print(f"  {idx}. {message}")

    if run.warnings:
        print("\nWARNINGS:")
        for idx, message in enumerate(run.warnings, start=1):
            print(f"  {idx}. {message}")

    if not run.errors and not run.warnings:
        print("\n✅ All sitemaps are valid!")
    elif not run.errors:
        print("\n✅ All sitemaps are valid (warnings are non-blocking)")
    else:
        print("\n❌ Validation failed. Please fix the errors above.")
    print("=" * 60)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Validate generated XML sitemaps before deploy.")
    parser.add_argument(
        "--public-dir",
        default=os.getenv("SITEMAP_PUBLIC_DIR", ""),
        help="Directory holding the sitemap files (default: ./public, or set SITEMAP_PUBLIC_DIR).",
    )
    parser.add_argument(
        "--validate-urls",
        action="store_true",
        default=os.getenv("VALIDATE_URLS") == "true",
        help="HEAD-probe every sitemap URL (or set VALIDATE_URLS=true).",
    )
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="URL status check timeout in seconds")
    parser.add_argument(
        "--max-workers",
        type=int,
        default=DEFAULT_MAX_WORKERS,
        help="Max concurrent URL status checks",
    )
    parser.add_argument("--output-dir", default="", help="Optional directory for SUMMARY.json and VALIDATION-REPORT.md")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.timeout <= 0:
        print("Error: --timeout must be > 0")
        return 2
    if args.max_workers < 1:
        print("Error: --max-workers must be >= 1")
        return 2

    public_dir = Path(args.public_dir or PUBLIC_DIR_NAME).resolve()

    print("Starting sitemap validation...\n")
    print(f"Public directory: {public_dir}")
    mode = "ENABLED" if args.validate_urls else "DISABLED (set VALIDATE_URLS=true to enable)"
    print(f"URL status checking: {mode}\n")

    try:
        run = run_validation(
            public_dir,
            validate_urls=args.validate_urls,
            timeout=args.timeout,
            max_workers=args.max_workers,
        )
        print_summary(run)
        if args.output_dir:
            out_dir = Path(args.output_dir).resolve()
            out_dir.mkdir(parents=True, exist_ok=True)
            summary = build_summary(run, args.validate_urls)
            summary_path = out_dir / "SUMMARY.json"
            report_path = out_dir / "VALIDATION-REPORT.md"
            summary_path.write_text(json.dumps(summary, indent=2), encoding="utf-8")
            render_validation_report(summary, report_path)
            print(f"Validation report: {report_path}")
            print(f"Summary: {summary_path}")
    except Exception as exc:
        print(f"\nFatal error during validation: {exc}", file=sys.stderr)
        return 1

    return 1 if run.errors else 0


if __name__ == "__main__":
    raise SystemExit(main())
