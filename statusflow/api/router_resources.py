"""
FastAPI routers for resources and operations.

The routers are a thin shell: all request handling lives in
RequestGateway.
"""

# NOTE: Do NOT use `from __future__ import annotations` in this module.
# FastAPI resolves Depends() and Query() from runtime annotations.

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from statusflow.api.gateway import GatewayResponse, RequestGateway
from statusflow.api.models import ChangeRequestBody, StatusPatch


def _to_response(response: GatewayResponse) -> JSONResponse:
    return JSONResponse(
        status_code=response.status_code,
        content=response.body,
        headers=response.headers or None,
    )


def create_resource_router(*, get_gateway: Any) -> APIRouter:
    """
    Create the router for /resources endpoints.

    Args:
        get_gateway: Dependency callable returning a RequestGateway
    """
    router = APIRouter(prefix="/resources", tags=["resources"])

    @router.get("/{resource_id}", summary="Get a resource")
    def get_resource(
        resource_id: str,
        gateway: Annotated[RequestGateway, Depends(get_gateway)],
    ) -> JSONResponse:
        return _to_response(gateway.get_resource(resource_id))

    @router.patch(
        "/{resource_id}",
        summary="Change a resource's status",
        description=(
            "Returns 200 with the updated resource when the change completes "
            "synchronously, or 202 with an operation reference to poll."
        ),
    )
    def patch_resource(
        resource_id: str,
        body: StatusPatch,
        gateway: Annotated[RequestGateway, Depends(get_gateway)],
    ) -> JSONResponse:
        return _to_response(gateway.patch_resource(
            resource_id,
            body.status,
            expected_status=body.expectedStatus,
            status_detail=body.statusDetail,
        ))

    @router.post(
        "/{resource_id}/changeRequests",
        summary="Request a status change with parameters",
    )
    def post_change_request(
        resource_id: str,
        body: ChangeRequestBody,
        gateway: Annotated[RequestGateway, Depends(get_gateway)],
    ) -> JSONResponse:
        return _to_response(gateway.post_change_request(
            resource_id,
            body.status,
            params=body.params,
            expected_status=body.expectedStatus,
            status_detail=body.statusDetail,
        ))

    @router.get("/{resource_id}/operations", summary="List a resource's operations")
    def list_operations(
        resource_id: str,
        gateway: Annotated[RequestGateway, Depends(get_gateway)],
        limit: Annotated[int, Query(ge=1, le=1000)] = 100,
    ) -> JSONResponse:
        return _to_response(gateway.list_operations(resource_id, limit=limit))

    return router


def create_operation_router(*, get_gateway: Any) -> APIRouter:
    """
    Create the router for /operations endpoints.

    Args:
        get_gateway: Dependency callable returning a RequestGateway
    """
    router = APIRouter(prefix="/operations", tags=["operations"])

    @router.get("/{operation_id}", summary="Poll an operation")
    def get_operation(
        operation_id: str,
        gateway: Annotated[RequestGateway, Depends(get_gateway)],
    ) -> JSONResponse:
        return _to_response(gateway.get_operation(operation_id))

    return router


__all__ = ["create_resource_router", "create_operation_router"]
