"""Amazon sign-in provider handler.

The Amazon provider page carries a ``signIn`` form with an e-mail and a
password field.  The handler fills in the account e-mail, asks the host for
the password and submits.  Amazon answers a wrong password by serving the
same form again with an error box, which is turned into
:class:`~chimelink.exceptions.AuthFailedError`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from chimelink.auth.base import ProviderHandler
from chimelink.document import extract_form, extract_string, parse_html, path_exists
from chimelink.exceptions import AuthFailedError, BadResponseError

if TYPE_CHECKING:
    from chimelink.auth.login import LoginFlow

logger = logging.getLogger(__name__)

SIGN_IN_FORM = "//form[@name='signIn']"
ERROR_MESSAGE = "//div[@id='auth-error-message-box']//*[contains(@class, 'a-list-item')]"


class AmazonProvider(ProviderHandler):
    """Log in through the Amazon sign-in form."""

    @property
    def provider(self) -> str:
        return "amazon"

    async def authenticate(self, flow: LoginFlow, response: httpx.Response) -> httpx.Response:
        form = extract_form(response, SIGN_IN_FORM)
        if form is None or not form.password_field:
            logger.error("No Amazon sign-in form at %s", response.url)
            raise BadResponseError("Could not find Amazon sign-in form")

        password = await flow.request_password()
        values = {form.password_field: password}
        if form.email_field:
            values[form.email_field] = flow.email

        result = await flow.submit_form(form, values)

        # A rejected password comes back as the same form.
        document = parse_html(result)
        if document is not None and path_exists(document, SIGN_IN_FORM):
            message = extract_string(document, ERROR_MESSAGE)
            message = " ".join(message.split()) if message else "Amazon sign-in was rejected"
            logger.error("Amazon sign-in rejected for %s: %s", flow.email, message)
            raise AuthFailedError(message)

        return result
