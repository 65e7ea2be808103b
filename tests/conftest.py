from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

SITE_URL = "https://www.diksxcars.co.ke"
XML_DECL = '<?xml version="1.0" encoding="UTF-8"?>'


def _url_block(entry: dict[str, str]) -> str:
    tags = "".join(f"\n    <{name}>{value}</{name}>" for name, value in entry.items())
    return f"  <url>{tags}\n  </url>"


def render_urlset(entries: list[dict[str, str]]) -> str:
    body = "\n".join(_url_block(entry) for entry in entries)
    return (
        f"{XML_DECL}\n"
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9"\n'
        '        xmlns:image="http://www.google.com/schemas/sitemap-image/1.1">\n'
        f"{body}\n"
        "</urlset>\n"
    )


def render_index(filenames: list[str], lastmod: str = "2024-03-15") -> str:
    body = "\n".join(
        f"  <sitemap>\n    <loc>{SITE_URL}/{name}</loc>\n    <lastmod>{lastmod}</lastmod>\n  </sitemap>"
        for name in filenames
    )
    return (
        f"{XML_DECL}\n"
        '<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n'
        f"{body}\n"
        "</sitemapindex>\n"
    )


@pytest.fixture()
def public_dir(tmp_path: Path) -> Path:
    path = tmp_path / "public"
    path.mkdir()
    return path


@pytest.fixture()
def write_urlset(public_dir: Path) -> Callable[[str, list[dict[str, str]]], Path]:
    def _write(filename: str, entries: list[dict[str, str]]) -> Path:
        target = public_dir / filename
        target.write_text(render_urlset(entries), encoding="utf-8")
        return target

    return _write


@pytest.fixture()
def write_index(public_dir: Path) -> Callable[[list[str]], Path]:
    def _write(filenames: list[str]) -> Path:
        target = public_dir / "sitemap-index.xml"
        target.write_text(render_index(filenames), encoding="utf-8")
        return target

    return _write


@pytest.fixture()
def full_site(write_urlset, write_index) -> None:
    write_urlset(
        "sitemap.xml",
        [
            {"loc": f"{SITE_URL}/", "lastmod": "2024-03-15", "changefreq": "daily", "priority": "1.0"},
            {"loc": f"{SITE_URL}/accessories", "lastmod": "2024-03-15", "changefreq": "weekly", "priority": "0.8"},
        ],
    )
    write_urlset(
        "vehicle-sitemap.xml",
        [
            {"loc": f"{SITE_URL}/vehicle/toyota-prado-2019", "lastmod": "2024-02-01", "priority": "0.9"},
            {"loc": f"{SITE_URL}/vehicle/subaru-forester-2018", "lastmod": "2024-01-20", "priority": "0.9"},
        ],
    )
    write_urlset("blog-sitemap.xml", [{"loc": f"{SITE_URL}/blogs/importing-a-car", "changefreq": "monthly"}])
    write_urlset("accessories-sitemap.xml", [{"loc": f"{SITE_URL}/accessory/roof-rack", "priority": "0.6"}])
    write_index(["sitemap.xml", "vehicle-sitemap.xml", "blog-sitemap.xml", "accessories-sitemap.xml"])
