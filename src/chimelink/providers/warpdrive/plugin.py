"""WarpDrive (corporate SSO) provider handler.

WarpDrive serves a conventional login page: the first form on it that has a
password input.  The username goes into its e-mail field, or into its first
text input when it has none, and the page's CSRF hidden field is sent back
with it.  After a successful login the identity provider hands control back
to Chime through a SAML-style chain of pages, each holding a form of hidden
fields that a browser would submit automatically.  The handler submits
those forms itself, up to :data:`MAX_HOPS` of them, until a page carries the
session token.

What the handler learns on the way is kept in a :class:`WarpDriveState`.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

import httpx

from chimelink.auth.base import ProviderHandler, ProviderState
from chimelink.auth.login import TOKEN_PATTERN, LoginFlow
from chimelink.document import extract_form, extract_regex_group, extract_string, parse_html, path_exists
from chimelink.exceptions import AuthFailedError, BadResponseError

logger = logging.getLogger(__name__)

MAX_HOPS = 5

LOGIN_FORM = "(//form[.//input[@type='password']])[1]"
AUTO_SUBMIT_FORM = (
    "(//form[.//input[@type='hidden']"
    " and not(.//input[@type='text' or @type='email' or @type='password'])])[1]"
)
ERROR_MESSAGE = "//*[contains(@class, 'error')]"

_CSRF_NAME = re.compile(r"csrf|xsrf|authenticity_token", re.IGNORECASE)


class WarpDriveState(ProviderState):
    """Per-flow WarpDrive state.

    Attributes:
        csrf: ``(field_name, value)`` of the login page's CSRF field, when
            present.
        redirect_chain: Every form action submitted, login form first.
    """

    def __init__(self) -> None:
        super().__init__()
        self.csrf: Optional[tuple[str, str]] = None
        self.redirect_chain: list[str] = []

    def release(self) -> None:
        self.csrf = None
        self.redirect_chain = []
        super().release()


class WarpDriveProvider(ProviderHandler):
    """Log in through WarpDrive and follow the hand-back form chain."""

    @property
    def provider(self) -> str:
        return "wd"

    def create_state(self) -> WarpDriveState:
        return WarpDriveState()

    async def authenticate(self, flow: LoginFlow, response: httpx.Response) -> httpx.Response:
        state = flow.provider_state
        assert isinstance(state, WarpDriveState)
        chain = state.redirect_chain

        form = extract_form(response, LOGIN_FORM)
        if form is None or not form.password_field:
            logger.error("No WarpDrive login form at %s", response.url)
            raise BadResponseError("Could not find WarpDrive login form")

        username_field = form.email_field or _first_text_input(response)
        if not username_field:
            logger.error("WarpDrive login form at %s has no username field", response.url)
            raise BadResponseError("Could not find WarpDrive login form")

        for name, value in form.fields.items():
            if _CSRF_NAME.search(name):
                state.csrf = (name, value)
                break

        password = await flow.request_password()
        chain.append(form.action)
        result = await flow.submit_form(
            form, {username_field: flow.email, form.password_field: password}
        )

        for _ in range(MAX_HOPS):
            if extract_regex_group(result.text, TOKEN_PATTERN) is not None:
                return result

            document = parse_html(result)
            if document is None:
                return result
            if path_exists(document, LOGIN_FORM):
                message = extract_string(document, ERROR_MESSAGE)
                message = " ".join(message.split()) if message else "WarpDrive sign-in was rejected"
                logger.error("WarpDrive sign-in rejected for %s: %s", flow.email, message)
                raise AuthFailedError(message)
            if not path_exists(document, AUTO_SUBMIT_FORM):
                return result

            hop = extract_form(result, AUTO_SUBMIT_FORM)
            assert hop is not None
            logger.debug("Following WarpDrive hand-back form to %s", hop.action)
            chain.append(hop.action)
            result = await flow.submit_form(hop, {})

        if extract_regex_group(result.text, TOKEN_PATTERN) is None:
            logger.error("WarpDrive hand-back exceeded %d forms", MAX_HOPS)
            raise BadResponseError("Too many WarpDrive redirects")
        return result


def _first_text_input(response: httpx.Response) -> Optional[str]:
    document = parse_html(response)
    if document is None:
        return None
    return extract_string(document, f"({LOGIN_FORM}//input[@type='text'])[1]/@name")
