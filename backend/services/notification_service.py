"""
Athlete notification service.

After a registration is recorded, each athlete with an email address receives
a confirmation in the entry's locale ("fr" → French, anything else → English).

Delivery is best-effort: it runs after the HTTP response has been sent, each
send is isolated, and failures are logged and swallowed — a registration is
never affected by its email.
"""
from __future__ import annotations

import logging
from html import escape
from typing import Optional, Protocol, Tuple

import httpx

from backend.config import Settings, settings
from backend.exceptions import NotificationError
from backend.models.models import Locale
from backend.validators import AthleteData

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, html: str) -> None:
        """Deliver one message. Raises NotificationError on failure."""


class ResendEmailSender:
    """Sends through the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        api_url: str = "https://api.resend.com/emails",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key   = api_key
        self._sender    = sender
        self._api_url   = api_url
        self._timeout   = timeout
        self._transport = transport

    async def send(self, to: str, subject: str, html: str) -> None:
        payload = {"from": self._sender, "to": [to], "subject": subject, "html": html}
        headers = {"Authorization": f"Bearer {self._api_key}"}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.post(self._api_url, json=payload, headers=headers)
            except httpx.HTTPError as e:
                raise NotificationError(f"Email transport error: {e}") from e
        if response.is_error:
            raise NotificationError(
                f"Email API returned {response.status_code}: {response.text[:200]}"
            )
        logger.info("Confirmation email sent to %s (status %d)", to, response.status_code)


class LoggingEmailSender:
    """Used when no API key is configured: records what would have been sent."""

    async def send(self, to: str, subject: str, html: str) -> None:
        logger.info("Email disabled, not sending %r to %s", subject, to)


def build_email_sender(config: Settings = settings) -> EmailSender:
    if not config.email_enabled:
        return LoggingEmailSender()
    return ResendEmailSender(
        api_key=config.RESEND_API_KEY,
        sender=config.MAIL_FROM,
        api_url=config.RESEND_API_URL,
        timeout=config.MAIL_TIMEOUT,
    )


# ── Template ──────────────────────────────────────────────────────────────────

_COPY = {
    Locale.FR: {
        "subject":  "Confirmation d'inscription au Poisson d'Avril 9ème édition",
        "title":    "Confirmation d'inscription",
        "dear":     "Cher(e)",
        "intro":    (
            "Nous avons le plaisir de vous confirmer que votre inscription au "
            "<span class='highlight'>9ème Trophée International de Surfcasting "
            "Poisson d'Avril</span> a été enregistrée avec succès."
        ),
        "details":  "Détails de l'événement",
        "date":     "30 Avril &amp; 01 &amp; 02 Mai 2026",
        "location": "Lieu",
        "place":    "Hammamet-Sud, Bouficha, Tunisie",
        "price":    "Tarif",
        "partner":  "Votre partenaire",
        "tickets":  (
            "Les tickets seront disponibles chez nos points de vente publiés "
            "sur notre page Facebook."
        ),
        "contact":  "Pour toute question, n'hésitez pas à nous contacter via WhatsApp :",
        "bye":      "À très bientôt !",
        "team":     "L'équipe CPSS",
    },
    Locale.EN: {
        "subject":  "Registration Confirmation - Poisson d'Avril 9th Edition",
        "title":    "Registration Confirmation",
        "dear":     "Dear",
        "intro":    (
            "We are pleased to confirm that your registration for the "
            "<span class='highlight'>9th Poisson d'Avril International Surfcasting "
            "Trophy</span> has been successfully recorded."
        ),
        "details":  "Event Details",
        "date":     "30 April &amp; 01 &amp; 02 May 2026",
        "location": "Location",
        "place":    "Hammamet-Sud, Bouficha, Tunisia",
        "price":    "Price",
        "partner":  "Your Partner",
        "tickets":  "Tickets will be available at our points of sale published on our Facebook page.",
        "contact":  "For any questions, feel free to contact us via WhatsApp:",
        "bye":      "See you soon!",
        "team":     "The CPSS Team",
    },
}

_STYLE = """
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #1a2744; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; }
    .header { background-color: #1a2744; color: white; padding: 20px; text-align: center; border-radius: 10px 10px 0 0; }
    .content { background-color: #f5f5f5; padding: 30px; border-radius: 0 0 10px 10px; }
    .highlight { color: #c92536; font-weight: bold; }
    .footer { text-align: center; margin-top: 20px; font-size: 12px; color: #666; }
    .info-box { background-color: white; padding: 15px; border-radius: 8px; margin: 15px 0; }
"""


def _full_name(athlete: AthleteData) -> str:
    return escape(f"{athlete.first_name} {athlete.last_name}")


def build_confirmation_email(
    athlete: AthleteData,
    is_pair: bool,
    partner: Optional[AthleteData],
    locale: Optional[str],
) -> Tuple[str, str]:
    """(subject, html) for one athlete."""
    copy = _COPY[Locale.FR if locale == Locale.FR else Locale.EN]

    partner_block = ""
    if is_pair and partner is not None:
        partner_block = (
            f"<div class='info-box'><h3>{copy['partner']}</h3>"
            f"<p><strong>{_full_name(partner)}</strong></p></div>"
        )

    html = (
        f"<!DOCTYPE html><html><head><meta charset='utf-8'><style>{_STYLE}</style></head>"
        f"<body><div class='container'>"
        f"<div class='header'><h1>{copy['title']}</h1>"
        f"<h2>Poisson d'Avril - 9ème Édition</h2></div>"
        f"<div class='content'>"
        f"<p>{copy['dear']} <strong>{_full_name(athlete)}</strong>,</p>"
        f"<p>{copy['intro']}</p>"
        f"<div class='info-box'><h3>{copy['details']}</h3>"
        f"<p>📅 <strong>Date:</strong> {copy['date']}</p>"
        f"<p>📍 <strong>{copy['location']}:</strong> {copy['place']}</p>"
        f"<p>💰 <strong>{copy['price']}:</strong> 450DT / 140€</p></div>"
        f"{partner_block}"
        f"<p>{copy['tickets']}</p>"
        f"<p>{copy['contact']}</p>"
        f"<p>📱 Bouch: +216 97 475 628<br>📱 Walid: +216 54 157 440</p>"
        f"<p>{copy['bye']}</p><p><strong>{copy['team']}</strong></p>"
        f"</div>"
        f"<div class='footer'><p>© 2026 CPSS - Club de Pêche Sportive de Sfax</p>"
        f"<p>contact@cpss-poissondavril.com</p></div>"
        f"</div></body></html>"
    )
    return copy["subject"], html


# ── Dispatch ──────────────────────────────────────────────────────────────────

async def send_confirmation_email(
    sender: EmailSender,
    athlete: AthleteData,
    is_pair: bool,
    partner: Optional[AthleteData],
    locale: Optional[str],
) -> bool:
    """
    Send one confirmation. Returns True on success.
    Swallows delivery errors (bad address, API outage) after logging them.
    """
    subject, html = build_confirmation_email(athlete, is_pair, partner, locale)
    try:
        await sender.send(str(athlete.email), subject, html)
    except NotificationError as e:
        logger.warning("Could not send confirmation to %s: %s", athlete.email, e)
        return False
    return True


async def notify_registration_confirmed(
    sender: EmailSender,
    athlete1: AthleteData,
    athlete2: Optional[AthleteData],
    is_pair: bool,
    locale: Optional[str],
) -> int:
    """
    Email both athletes of an entry, each naming the other as partner.
    Returns the number of successfully delivered messages.
    """
    count = 0
    if await send_confirmation_email(sender, athlete1, is_pair, athlete2 if is_pair else None, locale):
        count += 1
    if is_pair and athlete2 is not None and athlete2.email:
        if await send_confirmation_email(sender, athlete2, is_pair, athlete1, locale):
            count += 1
    return count


async def dispatch_confirmations(
    sender: EmailSender,
    registration_id: int,
    athlete1: AthleteData,
    athlete2: Optional[AthleteData],
    is_pair: bool,
    locale: Optional[str],
) -> None:
    """
    Background-task entry point. Runs after the response is sent, so nothing
    may escape: unexpected errors are logged with a traceback and dropped.
    """
    try:
        sent = await notify_registration_confirmed(sender, athlete1, athlete2, is_pair, locale)
        logger.info("Registration #%d: %d confirmation email(s) delivered", registration_id, sent)
    except Exception:
        logger.exception("Registration #%d: confirmation dispatch crashed", registration_id)
