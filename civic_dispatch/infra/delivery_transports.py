# civic_dispatch/infra/delivery_transports.py
"""
Delivery transports: how one issue report reaches one dispatch target.

Supports multiple transports:
- Simulated - network latency + random failures, nothing leaves the process
- HTTP - POST a JSON submission document to an intake endpoint
- Email - send the composed report through an SMTP relay

Every transport implements ``attempt_delivery(request, target)`` and
either returns a successful ``DispatchOutcome`` or raises
``TransportFailure``.  There are no retries: one attempt per
target per round.

Usage:
    transport = get_delivery_transport()
    outcome = await transport.attempt_delivery(request, target)
"""
from __future__ import annotations

import abc
import asyncio
import base64
import random
from typing import Any, Callable
from urllib.parse import quote

import aiohttp

from civic_dispatch.config import Settings, settings as default_settings
from civic_dispatch.core.composer import compose
from civic_dispatch.core.domain import DispatchOutcome, DispatchRequest, DispatchTarget
from civic_dispatch.core.errors import TransportFailure
from civic_dispatch.infra.http_client import get_sender_session
from civic_dispatch.infra.logging_config import get_logger, mask_coordinates

logger = get_logger(__name__)


class BaseDeliveryTransport(abc.ABC):
    """Abstract base class for delivery transports"""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Transport name for logging/metrics"""
        pass

    @abc.abstractmethod
    async def attempt_delivery(self, request: DispatchRequest, target: DispatchTarget) -> DispatchOutcome:
        """
        Deliver the report to the target.

        Returns:
            A successful DispatchOutcome.

        Raises:
            TransportFailure: delivery did not happen.
        """
        pass

    @abc.abstractmethod
    def is_configured(self) -> bool:
        """Check if transport is properly configured"""
        pass

    @classmethod
    @abc.abstractmethod
    def from_settings(cls, s: Settings) -> "BaseDeliveryTransport":
        """Build the transport from application settings"""
        pass


def _encode_photo(photo: str | bytes) -> str:
    """Photos are opaque: strings (data URLs) pass through, bytes become base64."""
    if isinstance(photo, bytes):
        return base64.b64encode(photo).decode("ascii")
    return photo


def build_submission_document(request: DispatchRequest, target: DispatchTarget) -> dict[str, Any]:
    """JSON document describing one issue for one target."""
    return {
        "issueId": request.issue_id,
        "title": request.title,
        "description": request.description,
        "category": request.category.value,
        "location": {
            "latitude": request.location.lat,
            "longitude": request.location.lng,
            "address": f"Location: {request.location.format()}",
        },
        "reporter": {
            "name": "Anonymous" if request.is_anonymous else request.reporter_display_name,
            "isAnonymous": request.is_anonymous,
        },
        "photos": [_encode_photo(p) for p in request.photos],
        "submittedAt": request.reported_at.isoformat() if request.reported_at else None,
        "municipality": {
            "id": target.id,
            "name": target.display_name,
            "email": target.contact_email,
        },
    }


class SimulatedTransport(BaseDeliveryTransport):
    """
    Reference transport: waits ``latency_seconds`` then succeeds with
    probability ``success_rate``.  Used for demos and local development.
    """

    FAILURE_REASON = "Municipality server temporarily unavailable"

    def __init__(
        self,
        latency_seconds: float = 2.0,
        success_rate: float = 0.9,
        rng: random.Random | None = None,
    ) -> None:
        self._latency_seconds = latency_seconds
        self._success_rate = success_rate
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(cls, s: Settings) -> "SimulatedTransport":
        return cls(
            latency_seconds=s.simulated_latency_seconds,
            success_rate=s.simulated_success_rate,
        )

    @property
    def name(self) -> str:
        return "simulated"

    def is_configured(self) -> bool:
        return 0.0 <= self._success_rate <= 1.0 and self._latency_seconds >= 0

    async def attempt_delivery(self, request: DispatchRequest, target: DispatchTarget) -> DispatchOutcome:
        logger.debug(
            f"Simulated submission to {target.display_name}: issue={request.issue_id}, "
            f"location=({mask_coordinates(request.location.lat, request.location.lng)})"
        )
        if self._latency_seconds > 0:
            await asyncio.sleep(self._latency_seconds)

        if self._rng.random() < self._success_rate:
            return DispatchOutcome.succeeded(target)
        raise TransportFailure(self.FAILURE_REASON)


class HttpSubmissionTransport(BaseDeliveryTransport):
    """
    POSTs the submission document to an intake endpoint.

    ``url_template`` may contain ``{target_id}``.  Any 2xx response counts
    as delivered; a ``reference_id`` field in the JSON body, if present,
    becomes the outcome's reference id.
    """

    def __init__(
        self,
        url_template: str | None,
        *,
        token: str | None = None,
        timeout_seconds: float = 30.0,
        session_factory: Callable[[], aiohttp.ClientSession] | None = None,
    ) -> None:
        self._url_template = url_template
        self._token = token
        self._timeout_seconds = timeout_seconds
        self._session_factory = session_factory

    @classmethod
    def from_settings(cls, s: Settings) -> "HttpSubmissionTransport":
        return cls(
            s.dispatch_http_url,
            token=s.dispatch_http_token,
            timeout_seconds=s.dispatch_http_timeout_seconds,
        )

    @property
    def name(self) -> str:
        return "http"

    def is_configured(self) -> bool:
        return bool(self._url_template)

    def url_for(self, target: DispatchTarget) -> str:
        return (self._url_template or "").replace("{target_id}", quote(target.id, safe=""))

    async def attempt_delivery(self, request: DispatchRequest, target: DispatchTarget) -> DispatchOutcome:
        if not self.is_configured():
            raise TransportFailure("HTTP intake endpoint not configured")

        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        payload = build_submission_document(request, target)
        session = self._session_factory() if self._session_factory else get_sender_session()

        try:
            async with session.post(
                self.url_for(target),
                json=payload,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout_seconds),
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise TransportFailure(f"Intake endpoint returned HTTP {resp.status}")
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    data = None

        except asyncio.TimeoutError:
            raise TransportFailure(
                f"Intake endpoint timed out after {self._timeout_seconds:g}s"
            ) from None

        except aiohttp.ClientError as exc:
            raise TransportFailure(f"Network error: {exc.__class__.__name__}") from exc

        reference_id = None
        if isinstance(data, dict) and data.get("reference_id"):
            reference_id = str(data["reference_id"])

        return DispatchOutcome.succeeded(target, reference_id=reference_id)


class EmailTransport(BaseDeliveryTransport):
    """
    Sends the composed report to the target's contact email via SMTP.
    smtplib is blocking, so the send runs in the default executor.
    """

    def __init__(
        self,
        host: str | None,
        port: int = 587,
        *,
        user: str | None = None,
        password: str | None = None,
        sender: str | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._sender = sender or user

    @classmethod
    def from_settings(cls, s: Settings) -> "EmailTransport":
        return cls(
            s.smtp_host,
            s.smtp_port,
            user=s.smtp_user,
            password=s.smtp_password,
            sender=s.smtp_sender,
        )

    @property
    def name(self) -> str:
        return "email"

    def is_configured(self) -> bool:
        return bool(self._host and self._sender)

    def build_message(self, request: DispatchRequest, target: DispatchTarget):
        from email.message import EmailMessage

        composed = compose(request, target)
        msg = EmailMessage()
        msg["From"] = self._sender
        msg["To"] = composed.recipient
        msg["Subject"] = composed.subject
        msg.set_content(composed.body)
        return msg

    async def attempt_delivery(self, request: DispatchRequest, target: DispatchTarget) -> DispatchOutcome:
        if not self.is_configured():
            raise TransportFailure("SMTP relay not configured")

        msg = self.build_message(request, target)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_smtp, msg)
        except OSError as exc:
            # smtplib.SMTPException is an OSError subclass
            raise TransportFailure(f"SMTP error: {exc.__class__.__name__}") from exc

        return DispatchOutcome.succeeded(
            target, message=f"Report emailed to {target.display_name}",
        )

    def _send_smtp(self, msg) -> None:
        """Send email via SMTP (blocking)"""
        import smtplib

        with smtplib.SMTP(self._host, self._port, timeout=30) as server:
            server.starttls()
            if self._user and self._password:
                server.login(self._user, self._password)
            server.send_message(msg)


# Transport registry
_TRANSPORTS: dict[str, type[BaseDeliveryTransport]] = {
    "simulated": SimulatedTransport,
    "http": HttpSubmissionTransport,
    "email": EmailTransport,
}


def get_delivery_transport(s: Settings | None = None) -> BaseDeliveryTransport:
    """
    Build the transport selected by ``dispatch_transport``.

    Unconfigured transports are still returned (every attempt will fail
    and be recorded as such) but a warning is logged.
    """
    s = s or default_settings
    transport_name = s.dispatch_transport

    if transport_name not in _TRANSPORTS:
        raise ValueError(f"Unknown dispatch transport: {transport_name}")

    transport = _TRANSPORTS[transport_name].from_settings(s)

    if not transport.is_configured():
        logger.warning(
            f"Dispatch transport '{transport_name}' not configured, deliveries will fail"
        )

    return transport
