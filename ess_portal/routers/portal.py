from typing import Any

from fastapi import APIRouter, Body, Depends

from ess_portal.schemas import LeaveRequestCreate
from ess_portal.security import require_session
from ess_portal.services import portal as portal_service
from ess_portal.sessions import Session
from ess_portal.upstream import UpstreamClient, get_upstream_client

router = APIRouter(prefix="/api", tags=["portal"])


def _read(resource: str):
    def _endpoint(
        session: Session = Depends(require_session),
        upstream: UpstreamClient = Depends(get_upstream_client),
    ) -> Any:
        return portal_service.fetch_resource(upstream, session, resource)

    _endpoint.__name__ = "read_" + resource.replace("/", "_")
    return _endpoint


for _resource, _entry in portal_service.READ_RESOURCES.items():
    router.add_api_route(
        f"/{_resource}",
        _read(_resource),
        methods=["GET"],
        responses={200: {"model": _entry.documented_as}} if _entry.documented_as is not None else None,
    )


@router.post("/attendance/checkin")
def checkin(
    payload: dict[str, Any] | None = Body(default=None),
    session: Session = Depends(require_session),
    upstream: UpstreamClient = Depends(get_upstream_client),
) -> Any:
    return portal_service.check_in(upstream, session, payload)


@router.post("/attendance/checkout")
def checkout(
    payload: dict[str, Any] | None = Body(default=None),
    session: Session = Depends(require_session),
    upstream: UpstreamClient = Depends(get_upstream_client),
) -> Any:
    return portal_service.check_out(upstream, session, payload)


@router.post("/leave/request")
@router.post("/leave/apply")
def apply_leave(
    payload: LeaveRequestCreate,
    session: Session = Depends(require_session),
    upstream: UpstreamClient = Depends(get_upstream_client),
) -> Any:
    return portal_service.apply_leave(upstream, session, payload)
