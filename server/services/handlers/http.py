"""HTTP tool handler - dynamic API tools described by an apiSpec.

apiSpec shape:
    {
        "method": "POST",
        "baseUrl": "https://api.example.com",
        "path": "/v1/items",
        "headers": {"Authorization": "Bearer ..."},
        "queryParams": {"q": "{query}", "format": "json"},
        "bodyTemplate": {"name": "{name}", "tags": ["{tag}"]}
    }

Placeholders of the form ``"{arg}"`` are filled from the node inputs.
"""

import time
from typing import Any, Dict, Optional

import httpx

from constants import BODYLESS_HTTP_METHODS
from core.logging import get_logger
from services.execution.models import InvocationContext, MISSING
from services.execution.templates import parse_template, render_query_params, render_template

logger = get_logger(__name__)


class ApiToolError(Exception):
    """The remote API answered with an error status."""

    def __init__(self, status_code: int, reason: str, url: str):
        self.status_code = status_code
        self.url = url
        super().__init__(f"Dynamic API error: {status_code} {reason}")


def _effective_timeout(default_timeout: float, context: InvocationContext) -> float:
    remaining = context.remaining()
    if remaining is None:
        return default_timeout
    # Never wait past the execution deadline
    return max(0.001, min(default_timeout, remaining))


async def invoke_api_tool(
    api_spec: Dict[str, Any],
    inputs: Dict[str, Any],
    context: InvocationContext,
    default_timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Any:
    """Call a dynamic API tool.

    Args:
        api_spec: Tool apiSpec (method, baseUrl, path, headers, queryParams, bodyTemplate)
        inputs: Node inputs used to fill placeholders
        context: Invocation context (deadline bounds the request timeout)
        default_timeout: Request timeout in seconds when no deadline is tighter
        transport: Optional httpx transport

    Returns:
        Parsed JSON response, or response text when the body is not JSON

    Raises:
        ApiToolError: on a 4xx/5xx response
        httpx.HTTPError: on transport failures and timeouts
    """
    method = str(api_spec.get('method') or 'GET').upper()
    base_url = api_spec.get('baseUrl') or ''
    if not base_url:
        raise ValueError("API tool spec is missing baseUrl")
    url = f"{base_url}{api_spec.get('path') or ''}"

    params: Dict[str, str] = {}
    if api_spec.get('queryParams'):
        params = render_query_params(parse_template(api_spec['queryParams']), inputs)

    request_kwargs: Dict[str, Any] = {
        'headers': dict(api_spec.get('headers') or {}),
        'params': params,
    }

    body_template = api_spec.get('bodyTemplate')
    if method not in BODYLESS_HTTP_METHODS and body_template:
        body = render_template(parse_template(body_template), inputs)
        if body is not MISSING:
            request_kwargs['json'] = body

    timeout = _effective_timeout(default_timeout, context)
    logger.info("[HTTP Tool] Executing", node_id=context.node_id, method=method, url=url,
                timeout=round(timeout, 3))

    start_time = time.monotonic()
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        response = await client.request(method, url, **request_kwargs)

    logger.info("[HTTP Tool] Response", node_id=context.node_id, status=response.status_code,
                duration_ms=int((time.monotonic() - start_time) * 1000))

    if response.status_code >= 400:
        raise ApiToolError(response.status_code, response.reason_phrase, str(response.url))

    try:
        return response.json()
    except ValueError:
        return response.text
