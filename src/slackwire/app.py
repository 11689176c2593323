from typing import Mapping, Optional

from slackwire.dispatch import DispatchPipeline, Outcome
from slackwire.events import UrlVerification
from slackwire.exceptions import AuthError, OAuthError, ParseError
from slackwire.logging import logger
from slackwire.oauth.flow import OAuthFlowController
from slackwire.parser import parse
from slackwire.registry import ListenerRegistry
from slackwire.request import IncomingRequest, Response
from slackwire.signature import SignatureVerifier


def _safe_hint(hint: Optional[str]) -> Optional[str]:
    # Only local paths, anything else would make the install link an open redirect
    if hint and hint.startswith("/") and not hint.startswith("//"):
        return hint
    return None


class App:
    def __init__(
        self,
        *,
        verifier: SignatureVerifier,
        pipeline: DispatchPipeline,
        oauth: Optional[OAuthFlowController] = None,
        success_url: Optional[str] = None,
        failure_url: Optional[str] = None,
    ) -> None:
        self.verifier = verifier
        self.pipeline = pipeline
        self.oauth = oauth
        self.success_url = success_url
        self.failure_url = failure_url

    @property
    def registry(self) -> ListenerRegistry:
        return self.pipeline.registry

    async def handle(self, request: IncomingRequest) -> Outcome:
        """Verify, parse and dispatch a single webhook request"""
        try:
            self.verifier.verify_request(request)
        except AuthError as e:
            logger.warning(f"Rejected request: {type(e).__name__}")
            return Outcome(response=Response.unauthorized())

        try:
            event = parse(request.body, request.content_type)
        except ParseError as e:
            logger.warning(f"Unable to parse request: {e}")
            return Outcome(response=Response.bad_request())

        if isinstance(event, UrlVerification):
            logger.info("Answering url verification challenge")
            return Outcome(response=Response.challenge(event.challenge))

        if request.retry_num:
            logger.debug(f"Retry {request.retry_num} ({request.retry_reason})")

        return await self.pipeline.dispatch(event, request)

    async def handle_install(self, redirect_hint: Optional[str] = None) -> Response:
        if self.oauth is None:
            return Response.text("Not found", status=404)

        try:
            url = await self.oauth.generate_install_url(_safe_hint(redirect_hint))
        except OAuthError as e:
            return Response.text("Unable to start the installation", status=e.status)
        return Response.redirect(url)

    async def handle_oauth_redirect(self, query: Mapping[str, str]) -> Response:
        if self.oauth is None:
            return Response.text("Not found", status=404)

        run = await self.oauth.run_callback(
            code=query.get("code"),
            state=query.get("state"),
            error=query.get("error"),
        )
        if run.succeeded:
            if target := run.redirect_hint or self.success_url:
                return Response.redirect(target)
            return Response.text("Installation successful!")

        if self.failure_url:
            return Response.redirect(self.failure_url)
        status = run.error.status if run.error else 500
        return Response.text("Installation failed", status=status)

    def __repr__(self) -> str:
        return f"<App (listeners={self.registry.count}, oauth={self.oauth is not None})>"
