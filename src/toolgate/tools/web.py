"""
Web tools for Toolgate.

This module provides the domain-kind tool:
- web_fetch: GET a URL and return its body as text

Security Note:
    The URL's host is checked against allow_domains before any connection
    is opened. Redirects are followed by hand, and every hop's host is
    checked again, so an allowed site cannot bounce the fetch to a domain
    the policy does not list.

    Additional protections:
    - Response size limits: Stop reading if response exceeds limit
    - Timeout enforcement: Abort requests that take too long
"""

from typing import Any
from urllib.parse import urlparse

import httpx

from toolgate.errors import DomainDeniedError, ToolExecutionError, ToolTimeoutError
from toolgate.patterns import PatternKind
from toolgate.policy import PolicyEngine
from toolgate.schema import PolicyDecision
from toolgate.tools.base import ToolContext, ToolOutput, guarded, object_schema, string_param

DEFAULT_TIMEOUT_SECONDS = 30
MAX_RESPONSE_BYTES = 10 * 1024 * 1024
MAX_REDIRECTS = 5


class WebFetchTool:
    """
    Fetch the content of a URL.

    Arguments:
        url (str): http(s) URL to fetch (required)

    Returns:
        On success: Response body decoded as text
        On failure: Error message describing what went wrong

    Example:
        args = {"url": "https://api.example.com/status"}
        output = tool.execute(args, context)
        if output.success:
            body = output.data
    """

    name = "web_fetch"
    description = "Fetch the full content from a URL."
    kind = PatternKind.DOMAIN
    parameters = object_schema({"url": string_param("URL to fetch")})

    def __init__(
        self,
        engine: PolicyEngine,
        transport: httpx.BaseTransport | None = None,
        max_response_bytes: int = MAX_RESPONSE_BYTES,
    ) -> None:
        self.engine = engine
        self.transport = transport
        self.max_response_bytes = max_response_bytes

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        """Validate web_fetch arguments."""
        errors = []

        if "url" not in args:
            errors.append("'url' is required")
        elif not isinstance(args["url"], str):
            errors.append("'url' must be a string")
        elif not args["url"].strip():
            errors.append("'url' cannot be empty")
        else:
            try:
                parsed = urlparse(args["url"])
                if parsed.scheme not in ("http", "https"):
                    errors.append("'url' scheme must be http or https")
                elif not parsed.hostname:
                    errors.append("'url' must have a host")
                else:
                    httpx.URL(args["url"])
            except (ValueError, httpx.InvalidURL):
                errors.append("'url' is not a valid URL")

        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        url = args.get("url")
        return guarded(
            self,
            args,
            check=lambda: self.engine.check_url(self.name, url),
            action=lambda: self._fetch(args, context),
            denial=lambda decision: self._denial(url, decision),
        )

    def _denial(self, url: str, decision: PolicyDecision) -> DomainDeniedError:
        return DomainDeniedError(
            tool=self.name,
            reason=decision.reason,
            rule=decision.rule_matched,
            domain=urlparse(url).hostname or "",
        )

    def _fetch(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        timeout = context.timeout_seconds or DEFAULT_TIMEOUT_SECONDS
        url = args["url"]

        try:
            with httpx.Client(timeout=timeout, follow_redirects=False, transport=self.transport) as client:
                for _ in range(MAX_REDIRECTS + 1):
                    with client.stream("GET", url) as response:
                        if response.is_redirect and response.next_request is not None:
                            url = str(response.next_request.url)
                            decision = self.engine.check_url(self.name, url)
                            if not decision.allowed:
                                return ToolOutput.from_error(self._denial(url, decision), redirect=True)
                            continue
                        return self._read_body(args, response)
        except httpx.TimeoutException:
            return ToolOutput.from_error(
                ToolTimeoutError(tool=self.name, tool_args=args, timeout_seconds=timeout)
            )
        except httpx.InvalidURL:
            # a hop URL httpx refuses to build a request for
            return self._failure(args, "invalid redirect URL")
        except httpx.HTTPError as e:
            return self._failure(args, f"request failed ({type(e).__name__})")

        return self._failure(args, f"too many redirects (max {MAX_REDIRECTS})")

    def _read_body(self, args: dict[str, Any], response: httpx.Response) -> ToolOutput:
        body_chunks = []
        total_size = 0
        for chunk in response.iter_bytes(chunk_size=8192):
            total_size += len(chunk)
            if total_size > self.max_response_bytes:
                return self._failure(
                    args,
                    f"response exceeded size limit ({self.max_response_bytes} bytes)",
                )
            body_chunks.append(chunk)

        raw = b"".join(body_chunks)
        try:
            body = raw.decode(response.encoding or "utf-8", errors="replace")
        except LookupError:
            # unknown charset in Content-Type
            body = raw.decode("utf-8", errors="replace")
        return ToolOutput.ok(
            body,
            url=args["url"],
            final_url=str(response.url),
            status_code=response.status_code,
            body_size=total_size,
        )

    def _failure(self, args: dict[str, Any], what: str) -> ToolOutput:
        return ToolOutput.from_error(
            ToolExecutionError(tool=self.name, tool_args=args, underlying_error=what)
        )

    def __repr__(self) -> str:
        return f"<Tool: {self.name}>"
