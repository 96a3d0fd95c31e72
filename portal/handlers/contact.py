from __future__ import annotations

import logging

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import Response

from portal.api.forms import ContactForm, parse_form
from portal.api.rendering import flash, redirect, render
from portal.errors import MailDeliveryError
from portal.services import services_of

logger = logging.getLogger(__name__)


async def get_contact(request: Request) -> Response:
    return render(request, "contact.html", {"title": "Contact"})


async def post_contact(request: Request) -> Response:
    form, errors = parse_form(ContactForm, await request.form())
    if form is None:
        for msg in errors:
            flash(request, "errors", msg)
        return redirect("/contact")

    mailer = services_of(request).mailer
    try:
        await run_in_threadpool(
            mailer.send,
            to=mailer.cfg.contact_email,
            subject="Contact Form",
            text=f"{form.name} <{form.email}>\n\n{form.message}\n",
            reply_to=form.email,
        )
    except MailDeliveryError:
        flash(request, "errors", "Your message could not be sent. Please try again later.")
        return redirect("/contact")

    flash(request, "success", "Email has been sent successfully!")
    return redirect("/contact")
