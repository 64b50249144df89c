"""
OIDC Router

Forwards inbound requests to the Workload Identity app, which serves the
discovery document and JWKS that Google uses to verify our identity tokens.
Every other path answers 404 {"error": "Endpoint not found"}.
"""

import uuid

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from wif_broker.schemas.lifecycle import HTTPRequest
from wif_broker.shared.core.exceptions import InternalError

router = APIRouter(tags=["oidc"])


@router.api_route("/{path:path}", methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def dispatch(request: Request, path: str):
    host = request.app.state.host
    wif_app = request.app.state.wif_app

    request_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
    inbound = HTTPRequest(
        request_id=request_id,
        path=request.url.path,
        method=request.method,
        headers=dict(request.headers),
    )

    # Issuer derives from the live request, so discovery matches the URL Google fetched
    app_url = str(request.base_url).rstrip("/")
    await wif_app.on_http_request(inbound, app_url)

    response = host.take_response(request_id)
    if response is None:
        raise InternalError(
            details={"request_id": request_id, "path": inbound.path, "cause": "no response delivered"}
        )
    return JSONResponse(status_code=response.status_code, content=response.body, headers=response.headers)
