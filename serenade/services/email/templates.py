"""
Transactional email bodies. Plain HTML strings; every interpolated value is escaped.
"""
from dataclasses import dataclass
from html import escape

from serenade.services.generation.prompt_builder import OCCASION_LABELS

_LAYOUT = """<!doctype html>
<html><body style="background:#0f0d0a;font-family:system-ui,Helvetica,Arial,sans-serif;margin:0;padding:0">
<div style="max-width:560px;margin:0 auto;padding:40px 20px;color:#ffffff">
<p style="font-size:28px;font-weight:700;text-align:center;color:#f97316">Serenade</p>
{body}
<hr style="border-color:#292724">
<p style="font-size:12px;color:#71717a">{footer}</p>
</div></body></html>"""

_BUTTON = '<p><a href="{url}" style="background:#f97316;color:#fff;padding:12px 24px;border-radius:8px;text-decoration:none">{label}</a></p>'


@dataclass
class RenderedEmail:
    subject: str
    html: str


def _occasion(occasion: str | None) -> str:
    return OCCASION_LABELS.get(occasion or "", occasion or "your occasion")


def _render(body: str, footer: str = "Made with love by Serenade.") -> str:
    return _LAYOUT.format(body=body, footer=footer)


def order_confirmation(recipient_name: str, occasion: str, genre: str, order_id: str, generate_url: str) -> RenderedEmail:
    body = (
        '<p style="font-size:22px;font-weight:700">Order Confirmed</p>'
        "<p>Your personalised song is being crafted right now.</p>"
        f"<p>For: <b>{escape(recipient_name)}</b><br>Occasion: {escape(_occasion(occasion))}<br>"
        f"Genre: {escape(genre)}<br>Order: {escape(order_id[:8])}</p>"
        + _BUTTON.format(url=escape(generate_url, quote=True), label="Watch it come to life")
    )
    return RenderedEmail(
        subject=f"Order confirmed! Your song for {recipient_name} is being created",
        html=_render(body),
    )


def song_ready(recipient_name: str, occasion: str, song_url: str) -> RenderedEmail:
    body = (
        '<p style="font-size:22px;font-weight:700">Your song is ready</p>'
        f"<p>The {escape(_occasion(occasion))} song for <b>{escape(recipient_name)}</b> has finished. "
        "Listen to the versions, pick your favourite and share it.</p>"
        + _BUTTON.format(url=escape(song_url, quote=True), label="Listen now")
    )
    return RenderedEmail(subject=f"Your song for {recipient_name} is ready", html=_render(body))


def gift(
    recipient_name: str,
    sender_name: str,
    occasion: str | None,
    share_url: str,
    personal_message: str | None = None,
) -> RenderedEmail:
    occasion_label = OCCASION_LABELS.get(occasion or "", "Special")
    body = (
        f'<p style="font-size:22px;font-weight:700">{escape(recipient_name)}, you have a gift!</p>'
        f"<p>{escape(sender_name)} created a personalised {escape(occasion_label.lower())} song just for you.</p>"
    )
    if personal_message:
        body += (
            '<p style="font-size:13px;color:#a1a1aa;margin-bottom:4px">Personal message:</p>'
            f'<p style="font-style:italic">"{escape(personal_message)}"</p>'
        )
    body += _BUTTON.format(url=escape(share_url, quote=True), label="Listen to your song")
    return RenderedEmail(
        subject=f"{sender_name} has a {occasion_label} surprise for you!",
        html=_render(body),
    )


def anniversary_reminder(
    recipient_name: str,
    occasion: str,
    create_song_url: str,
    unsubscribe_url: str,
    unsubscribe_all_url: str,
) -> RenderedEmail:
    occasion_label = _occasion(occasion)
    body = (
        '<p style="font-size:22px;font-weight:700">Continue the Story</p>'
        f"<p>It's almost time to celebrate {escape(occasion_label)} again! Last year, you created a "
        f"special song for {escape(recipient_name)}.</p>"
        "<p>Why not make this year's even more memorable with a brand new song?</p>"
        + _BUTTON.format(url=escape(create_song_url, quote=True), label="Create a new song")
    )
    footer = (
        f'<a href="{escape(unsubscribe_url, quote=True)}" style="color:#71717a">Stop reminders for this occasion</a>'
        f' &middot; <a href="{escape(unsubscribe_all_url, quote=True)}" style="color:#71717a">Unsubscribe from all reminders</a>'
    )
    return RenderedEmail(
        subject=f"It's almost {occasion_label} again",
        html=_render(body, footer=footer),
    )


def unsubscribe_page(title: str, message: str) -> str:
    body = f'<p style="font-size:22px;font-weight:700">{escape(title)}</p><p>{escape(message)}</p>'
    return _render(body)
