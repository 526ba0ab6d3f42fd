"""Drive URL parsing and ``gdoc:`` link rewriting."""

from __future__ import annotations

import posixpath
import re
from typing import Callable, Sequence

from drivemark.config.models import ALT_MATCH, RewriteRule

from .frontmatter import DRIVE_OPEN_URL

GDOC_PREFIX = "gdoc:"

_ID = re.compile(r"^[A-Za-z0-9_-]+$")
_FOLDER_URL = re.compile(r"drive\.google\.com/drive.*folders/")
_MARKDOWN_LINK = re.compile(r"\[([^\]]+)\]\(([^)]+?)\)")
_REWRITABLE_LINK = re.compile(r"(!?)\[([^\]]*)\]\(([^)\s]+)\)")
_SHORTCODE = re.compile(r"\*\{\{%\s+.*?\s+%\}\}\*")
_GDOC_LINK = re.compile(r"(gdoc:[A-Z0-9_-]+)(#[^'\")\s]*)?", re.IGNORECASE)
_XLINK_HREF = re.compile(r"(xlink:href=\")([^\"]*)(\")")


def _strip_url_suffix(value: str) -> str | None:
    for separator in ("/", "?", "&"):
        index = value.find(separator)
        if index > 0:
            value = value[:index]
    return value if _ID.match(value) else None


def url_to_file_id(url: str | None) -> str | None:
    """Extract a Drive file or folder id from the URL forms Google produces."""
    if not url:
        return None
    url = url.replace("../", "")

    if _FOLDER_URL.search(url):
        return _strip_url_suffix(url[url.index("/folders/") + len("/folders/") :])

    url = re.sub(r"drive\.google\.com/.*/open", "drive.google.com/open", url)
    url = url.replace("http://drive.google.com/", "https://drive.google.com/")
    url = url.replace("https://drive.google.com/open?id%3D", DRIVE_OPEN_URL)

    if DRIVE_OPEN_URL in url:
        file_id = url[url.index(DRIVE_OPEN_URL) + len(DRIVE_OPEN_URL) :]
        file_id = file_id.split("&", 1)[0].split("#", 1)[0]
        return file_id if _ID.match(file_id) else None

    if url.startswith("https://docs.google.com/drawings/") or "docs.google.com/document/" in url:
        parts = url.split("/d/", 1)
        return _strip_url_suffix(parts[1]) if len(parts) == 2 else None

    if _ID.match(url):
        return url
    return None


def url_hash(url: str) -> str:
    """Return the fragment of ``url`` with Drive heading anchors shortened."""
    index = url.find("#")
    if 0 <= index < len(url) - 1:
        return url[index:].replace("#heading=h.", "#_")
    return ""


def rewrite_markdown_links(markdown: str) -> tuple[str, list[str]]:
    """Replace Drive URLs in Markdown links with ``gdoc:`` placeholders.

    Returns:
        tuple: Rewritten Markdown and the external links it contains, in order
        of first appearance.
    """
    links: dict[str, None] = {}

    def _replace(match: re.Match[str]) -> str:
        text, href = match.group(1), match.group(2).replace("\\", "")
        file_id = url_to_file_id(href)
        if file_id:
            href = GDOC_PREFIX + file_id + url_hash(href)
        if href and not href.startswith("#") and ":" in href:
            links[href] = None
        return f"[{text}]({href})"

    rewritten = _MARKDOWN_LINK.sub(_replace, markdown)
    rewritten = _SHORTCODE.sub(lambda match: match.group(0)[1:-1], rewritten)
    return rewritten, list(links)


def _apply_rule(rule: RewriteRule, tag: str, href: str, alt: str, mode: str) -> str | None:
    if rule.tag and rule.tag.replace("/", "").upper() != tag:
        return None
    if rule.mode and rule.mode.upper() != mode.upper():
        return None
    if rule.match == ALT_MATCH:
        if href != alt:
            return None
    elif not re.search(rule.match, href):
        return None

    value = href
    if rule.replace:
        found = re.search(rule.replace, href)
        if found and found.groups():
            value = found.group(1) or ""
    return (
        rule.template.replace("$href", href)
        .replace("$basename", posixpath.basename(href))
        .replace("$label", alt)
        .replace("$value", value)
    )


def apply_rewrite_rules(markdown: str, rules: Sequence[RewriteRule], mode: str = "MD") -> str:
    """Replace Markdown links and images with the first rule that matches them.

    Images are matched as ``IMG`` tags and links as ``A`` tags. Links no rule
    matches are left untouched.
    """
    if not rules:
        return markdown

    def _replace(match: re.Match[str]) -> str:
        tag = "IMG" if match.group(1) else "A"
        for rule in rules:
            replaced = _apply_rule(rule, tag, match.group(3), match.group(2), mode)
            if replaced is not None:
                return replaced
        return match.group(0)

    return _REWRITABLE_LINK.sub(_replace, markdown)


def rewrite_svg_links(svg: str) -> tuple[str, list[str]]:
    """Replace Drive URLs in ``xlink:href`` attributes with ``gdoc:`` placeholders."""
    links: dict[str, None] = {}

    def _replace(match: re.Match[str]) -> str:
        href = match.group(2)
        file_id = url_to_file_id(href)
        if file_id:
            href = GDOC_PREFIX + file_id
        if href and ":" in href:
            links[href] = None
        return match.group(1) + href + match.group(3)

    return _XLINK_HREF.sub(_replace, svg), list(links)


def relative_path(target: str, base: str) -> str:
    """Return ``target`` relative to the directory holding ``base``.

    Both paths are relative to the content root; absolute URLs pass through.
    """
    if target.startswith(("https://", "http://")):
        return target
    target = target.lstrip("/")
    base = base.lstrip("/")
    if target == base:
        return "."
    return posixpath.relpath(target, posixpath.dirname(base) or ".")


def relative_svg_path(target: str, base: str) -> str:
    """Like :func:`relative_path`, dropping ``.md`` so links resolve to pages."""
    path = relative_path(target, base)
    return path[: -len(".md")] if path.endswith(".md") else path


def rewrite_gdoc_links(
    content: str,
    file_path: str,
    resolve: Callable[[str], str | None],
) -> str:
    """Resolve every ``gdoc:<id>[#hash]`` placeholder in ``content``.

    Args:
        content: Markdown or SVG text.
        file_path: Content-root relative path of the file being rewritten.
        resolve: Returns the current content-root path of an id, or ``None``
            when the id was never generated.

    Returns:
        str: Content with relative links, or Drive links for unknown ids.
    """
    is_svg = file_path.endswith(".svg")

    def _replace(match: re.Match[str]) -> str:
        file_id = match.group(1)[len(GDOC_PREFIX) :]
        fragment = url_hash(match.group(0))
        target = resolve(file_id)
        if target is not None:
            if is_svg:
                return relative_svg_path(target, file_path)
            return relative_path(target, file_path) + fragment
        return DRIVE_OPEN_URL + file_id + fragment.replace("#_", "#heading=h.")

    return _GDOC_LINK.sub(_replace, content)


__all__ = [
    "GDOC_PREFIX",
    "apply_rewrite_rules",
    "relative_path",
    "relative_svg_path",
    "rewrite_gdoc_links",
    "rewrite_markdown_links",
    "rewrite_svg_links",
    "url_hash",
    "url_to_file_id",
]
