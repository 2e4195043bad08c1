"""Query helpers over HTTP response bodies used by every login step.

The login flow never walks a DOM by hand.  It asks questions of a response
-- "is there a form at this XPath", "what is this attribute", "which
provider did the server pick", "where is the token" -- and gets back a
value or ``None``.  HTML is parsed with :mod:`lxml.html` and queried with
XPath 1.0; JSON bodies are flattened into ``str -> str`` maps.

Nothing in this module raises on malformed input.  A body of the wrong
type, an empty body, or an expression that matches nothing all come back
as "not found"; turning that into an error is the caller's job (see
:class:`~chimelink.exceptions.BadResponseError`).
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urljoin

import httpx
from lxml import etree, html

logger = logging.getLogger(__name__)


@dataclass
class FormInfo:
    """Everything needed to submit an HTML form without a browser.

    Attributes:
        method: Upper-cased HTTP method (``GET`` when the form has none).
        action: Absolute submission URL.
        email_field: Name of the first ``input[@type='email']``, if any.
        password_field: Name of the first ``input[@type='password']``, if any.
        fields: Hidden inputs, name to value.  Callers add the visible
            fields before submitting.
    """

    method: str
    action: str
    email_field: Optional[str] = None
    password_field: Optional[str] = None
    fields: dict[str, str] = field(default_factory=dict)


def media_type(response: httpx.Response) -> str:
    """Return the response's media type without parameters, lower-cased."""
    content_type = response.headers.get("content-type", "")
    return content_type.split(";", 1)[0].strip().lower()


def parse_html(response: httpx.Response) -> Optional[html.HtmlElement]:
    """Parse an HTML response into an lxml document.

    Only ``text/html`` responses with a non-empty body are parsed.  The
    response charset (when declared) drives decoding and the response URL
    becomes the document's base URL.

    Returns:
        The document root, or ``None`` for non-HTML or empty responses.
    """
    ctype = media_type(response)
    if ctype != "text/html" or not response.content:
        logger.error("Empty HTML response or unexpected content %s", ctype or "(none)")
        return None
    parser = html.HTMLParser(encoding=response.charset_encoding, recover=True)
    try:
        return html.document_fromstring(
            response.content, parser=parser, base_url=str(response.url)
        )
    except (etree.LxmlError, ValueError) as exc:
        logger.error("Failed to parse HTML from %s: %s", response.url, exc)
        return None


def _evaluate(document: Any, expr: str) -> Any:
    try:
        return document.xpath(expr)
    except etree.XPathError as exc:
        logger.debug("XPath evaluation failed for %r: %s", expr, exc)
        return None


def path_exists(document: Any, expr: str) -> bool:
    """Return ``True`` iff *expr* selects a non-empty node-set in *document*."""
    result = _evaluate(document, expr)
    return isinstance(result, list) and len(result) > 0


def extract_string(document: Any, expr: str) -> Optional[str]:
    """Evaluate ``string(expr)`` and return the value, or ``None`` when empty."""
    result = _evaluate(document, f"string({expr})")
    if not isinstance(result, str) or result == "":
        return None
    return str(result)


def extract_nodes(document: Any, expr: str) -> list[Any]:
    """Return the node-set selected by *expr* (``[]`` when nothing matches)."""
    result = _evaluate(document, expr)
    if not isinstance(result, list):
        return []
    return result


def extract_form(response: httpx.Response, form_path: str) -> Optional[FormInfo]:
    """Locate the form at *form_path* in an HTML response and describe it.

    ``method`` defaults to ``GET`` and is upper-cased; ``action`` is
    resolved against the response URL (a missing action means the response
    URL itself).  Hidden inputs without a ``name`` are skipped; a missing
    ``value`` becomes ``""`` and later duplicates overwrite earlier ones.

    Args:
        response: The response carrying the page.
        form_path: XPath selecting the form element.

    Returns:
        A :class:`FormInfo`, or ``None`` when the response is not HTML or
        *form_path* matches nothing.
    """
    document = parse_html(response)
    if document is None:
        return None

    if not path_exists(document, form_path):
        logger.error("XPath query returned no results: %s", form_path)
        return None

    method = extract_string(document, f"{form_path}/@method")
    method = method.upper() if method else "GET"

    base = str(response.url)
    form_action = extract_string(document, f"{form_path}/@action")
    action = urljoin(base, form_action) if form_action else base

    fields: dict[str, str] = {}
    for node in extract_nodes(document, f"{form_path}//input[@type='hidden']"):
        name = node.get("name")
        if name is None:
            continue
        fields[name] = node.get("value", "")

    return FormInfo(
        method=method,
        action=action,
        email_field=extract_string(
            document, f"({form_path}//input[@type='email'])[1]/@name"
        ),
        password_field=extract_string(
            document, f"({form_path}//input[@type='password'])[1]/@name"
        ),
        fields=fields,
    )


def _scalar_to_str(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, int, float)):
        return json.dumps(value)
    return None


def extract_json_object(response: httpx.Response) -> Optional[dict[str, str]]:
    """Flatten a JSON object response into its top-level scalar members.

    Nested objects, arrays and ``null`` members are dropped silently.

    Returns:
        The flattened map, or ``None`` when the media type is not exactly
        ``application/json``, the body is empty, the JSON is invalid, or
        the root is not an object.
    """
    ctype = media_type(response)
    if ctype != "application/json" or not response.content:
        logger.error("Empty JSON response or unexpected content %s", ctype or "(none)")
        return None

    try:
        root = json.loads(response.content)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.error("JSON parsing error: %s", exc)
        return None

    if not isinstance(root, dict):
        logger.error("Unexpected JSON type %s", type(root).__name__)
        return None

    result: dict[str, str] = {}
    for key, value in root.items():
        text = _scalar_to_str(value)
        if text is not None:
            result[key] = text
    return result


def extract_regex_group(text: str, pattern: str, group: int = 1) -> Optional[str]:
    """Return *group* of the first match of *pattern* in *text*, or ``None``."""
    if not text:
        logger.error("Empty text response")
        return None
    match = re.search(pattern, text)
    if match is None:
        return None
    return match.group(group)
