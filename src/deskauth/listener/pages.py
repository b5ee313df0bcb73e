"""HTML pages served to the browser by the callback listener.

Pages are rendered from the Jinja2 templates in ``listener/templates/``.
Autoescaping is on for every ``.html.j2`` template, so provider-supplied
text such as ``error_description`` is always rendered inert.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

TEMPLATE_DIR = Path(__file__).parent / "templates"
"""Path to the Jinja2 template directory (``listener/templates/``)."""

CONTENT_TYPE = "text/html; charset=utf-8"


@dataclass(frozen=True)
class Page:
    """A rendered response: HTML body and HTTP status."""

    body: str
    status: int = 200

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE


@lru_cache(maxsize=1)
def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html.j2"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def _render(template_name: str, status: int = 200, **context: object) -> Page:
    template = _environment().get_template(template_name)
    return Page(body=template.render(**context), status=status)


def authenticating_page(next_path: str = "/") -> Page:
    """Interim page shown while the code is exchanged.

    Its script navigates the browser to *next_path* (the listener root),
    producing the follow-up request that tells the listener the browser has
    this page before the server shuts down.
    """
    return _render("authenticating.html.j2", next_path=next_path)


def success_page() -> Page:
    """Terminal page served on the final root-path request."""
    return _render("success.html.j2")


def error_page(message: str, description: Optional[str] = None) -> Page:
    """Terminal page for a rejected callback."""
    return _render("error.html.j2", status=400, message=message, description=description)


def acknowledgement_page() -> Page:
    """Generic reply for requests that play no part in the handshake."""
    return _render("ack.html.j2")
