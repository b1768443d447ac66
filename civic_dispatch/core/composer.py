# civic_dispatch/core/composer.py
"""
Per-target issue report messages.

``compose(request, target)`` fills the target's message template and
returns the recipient, subject, full body and a ``mailto:`` URL that a
mail client can open directly.

Template placeholders::

    {category}     category label, e.g. "Water Supply"
    {title}        issue title
    {description}  issue description
    {location}     "lat, lng" with six decimals
    {reporter}     reporter name, or "Anonymous Citizen"

Substitution is one regex pass over the template.  Values are inserted
literally and never re-scanned, so an issue title containing
``{location}`` stays as typed.  Placeholders the template does not use
are simply not rendered; unknown ``{tokens}`` are left untouched.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable
from urllib.parse import quote

if TYPE_CHECKING:
    from civic_dispatch.core.domain import DispatchRequest, DispatchTarget

__all__ = [
    "DEFAULT_TEMPLATE",
    "PLACEHOLDERS",
    "ComposedMessage",
    "compose",
    "compose_all",
    "render_template",
    "encode_uri_component",
    "build_subject",
]


DEFAULT_TEMPLATE = (
    "Subject: Civic Issue Report - {category}\n"
    "\n"
    "Dear Municipal Corporation,\n"
    "\n"
    "I am reporting a civic issue in your jurisdiction.\n"
    "\n"
    "Issue Details:\n"
    "- Category: {category}\n"
    "- Title: {title}\n"
    "- Description: {description}\n"
    "- Location: {location}\n"
    "- Reported by: {reporter}\n"
    "\n"
    "Please take necessary action to address this issue.\n"
    "\n"
    "Thank you,\n"
    "{reporter}"
)

PLACEHOLDERS = ("category", "title", "description", "location", "reporter")

_PLACEHOLDER_RE = re.compile(r"\{(" + "|".join(PLACEHOLDERS) + r")\}")

# encodeURIComponent leaves these unescaped (besides alphanumerics and "-_.")
_URI_COMPONENT_SAFE = "!~*'()"


@dataclass(frozen=True)
class ComposedMessage:
    """A rendered report for one target."""

    recipient: str
    subject: str
    body: str
    mailto_url: str

    def as_plain_text(self) -> str:
        """Copy-paste rendering for the clipboard channel."""
        return f"To: {self.recipient}\nSubject: {self.subject}\n\n{self.body}"


def encode_uri_component(value: str) -> str:
    """Percent-encode like JavaScript's ``encodeURIComponent``."""
    return quote(value, safe=_URI_COMPONENT_SAFE)


def render_template(template: str, values: dict[str, str]) -> str:
    """Single-pass literal substitution of ``{name}`` placeholders."""
    def _sub(match: re.Match) -> str:
        name = match.group(1)
        if name in values:
            return values[name]
        return match.group(0)

    return _PLACEHOLDER_RE.sub(_sub, template)


def build_subject(request: "DispatchRequest") -> str:
    return f"Civic Issue Report - {request.category.label}"


def compose(request: "DispatchRequest", target: "DispatchTarget") -> ComposedMessage:
    values = {
        "category": request.category.label,
        "title": request.title,
        "description": request.description,
        "location": request.location.format(),
        "reporter": request.reporter_label,
    }
    body = render_template(target.message_template, values)
    subject = build_subject(request)
    mailto_url = (
        f"mailto:{target.contact_email}"
        f"?subject={encode_uri_component(subject)}"
        f"&body={encode_uri_component(body)}"
    )
    return ComposedMessage(
        recipient=target.contact_email,
        subject=subject,
        body=body,
        mailto_url=mailto_url,
    )


def compose_all(
    request: "DispatchRequest",
    targets: Iterable["DispatchTarget"],
) -> list[tuple["DispatchTarget", ComposedMessage]]:
    """Compose one message per target, preserving target order."""
    return [(target, compose(request, target)) for target in targets]
