"""Link relation extraction from HTTP headers and HTML documents.

Finds the URLs of labeled links (e.g. ``authorization_endpoint``) in
``Link`` response headers (RFC 8288) and in HTML ``<link>`` and ``<a>``
elements.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from urllib.parse import urljoin

from bs4 import BeautifulSoup

# Quoted strings and <targets> are single tokens, so separators inside
# them do not split links or parameters.
_LINK_TOKEN_PATTERN = re.compile(r'"(?:[^"\\]|\\.)*"?|<[^>]*>?|[^"<,;]+|[,;]')
_QUOTED_PAIR_PATTERN = re.compile(r"\\(.)")


def _split_link_values(value: str) -> list[list[str]]:
    """Split a Link header value into links, each [target, *params]."""
    links: list[list[str]] = [[""]]
    for token in _LINK_TOKEN_PATTERN.findall(value):
        if token == ",":
            links.append([""])
        elif token == ";":
            links[-1].append("")
        else:
            links[-1][-1] += token
    return links


def _rel_param(params: list[str]) -> str:
    """Value of the first rel parameter, unquoted."""
    for param in params:
        name, _, raw = param.partition("=")
        if name.strip().lower() != "rel":
            continue

        raw = raw.strip()
        if raw.startswith('"'):
            raw = _QUOTED_PAIR_PATTERN.sub(r"\1", raw[1:].removesuffix('"'))
        return raw
    return ""


def parse_link_header(values: Iterable[str], rels: Iterable[str]) -> dict[str, str]:
    """Find the first link target for each relation in Link header values.

    Args:
        values: Raw Link header values; each may hold several comma
            separated links
        rels: Relations to look for

    Returns:
        Mapping of relation to target for the relations that were found.
        Targets are returned as written; see resolve_references.
    """
    wanted = list(rels)
    found: dict[str, str] = {}

    for value in values:
        for target, *params in _split_link_values(value):
            target = target.strip()
            if not (target.startswith("<") and target.endswith(">")):
                continue

            href = target[1:-1].strip()
            rel_value = _rel_param(params)
            for rel in rel_value.lower().split():
                if rel in wanted and rel not in found:
                    found[rel] = href

    return found


def _first_with_rel(soup: BeautifulSoup, tag_name: str, rel: str) -> str | None:
    for tag in soup.find_all(tag_name, href=True, rel=True):
        tag_rels = tag.get("rel")
        if isinstance(tag_rels, str):
            tag_rels = tag_rels.split()
        if rel in tag_rels:
            return tag["href"]
    return None


def find_html_links(document: str | bytes, rels: Iterable[str]) -> dict[str, str]:
    """Find the first link target for each relation in an HTML document.

    ``<link>`` elements are preferred; ``<a>`` elements are only used for
    a relation no ``<link>`` element declares. Within each element kind
    the first match in document order wins.

    Returns:
        Mapping of relation to target for the relations that were found
    """
    soup = BeautifulSoup(document, "html.parser")
    found: dict[str, str] = {}

    for rel in rels:
        href = _first_with_rel(soup, "link", rel)
        if href is None:
            href = _first_with_rel(soup, "a", rel)
        if href is not None:
            found[rel] = href

    return found


def resolve_references(base: str, refs: dict[str, str]) -> dict[str, str]:
    """Resolve every link target into an absolute URL relative to base."""
    return {rel: urljoin(base, href) for rel, href in refs.items()}
