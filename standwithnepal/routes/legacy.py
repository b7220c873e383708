"""
Action-style endpoints kept for the existing frontend, e.g.
GET /api/issues.php?action=list&category=road

Each action delegates to the same payload builder as its REST route, so both
surfaces return identical bodies. Writes must be POSTed.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Body, Depends, File, Request, Response, UploadFile, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..auth import router as auth_routes
from ..auth.context import RequestContext
from ..auth.security import client_ip, get_request_context
from ..db import get_db
from ..errors import Forbidden, InvalidInput, NotAuthenticated, ServiceError, validation_message
from ..schemas.auth import LoginRequest, RegisterRequest
from ..schemas.issues import CommentCreate, IssueCreate, OfficialResponse, StatusUpdate
from ..schemas.notifications import MarkReadRequest, NotificationCreate
from ..storage.local_provider import get_storage
from ..storage.provider import StorageProvider
from . import analytics as analytics_routes
from . import issues as issue_routes
from . import locations as location_routes
from . import notifications as notification_routes
from .uploads import upload_payload


router = APIRouter(prefix="/api", tags=["legacy"], include_in_schema=False)

SOURCE = "legacy"


@dataclass
class ActionCall:
    db: Session
    ctx: RequestContext
    request: Request
    response: Response
    payload: Dict[str, Any]

    def arg(self, name: str) -> Optional[str]:
        return self.request.query_params.get(name)

    def body_field(self, name: str) -> Any:
        return self.payload.get(name)

    def parse(self, model):
        try:
            return model.model_validate(self.payload)
        except ValidationError as exc:
            raise InvalidInput(validation_message(exc.errors()))

    def created(self, body: dict) -> dict:
        self.response.status_code = status.HTTP_201_CREATED
        return body


@dataclass(frozen=True)
class Action:
    handler: Callable[[ActionCall], dict]
    write: bool = False


def _session(call: ActionCall) -> RequestContext:
    if not call.ctx.is_authenticated:
        raise NotAuthenticated("Not authenticated")
    return call.ctx


def _staff(call: ActionCall) -> RequestContext:
    ctx = _session(call)
    if ctx.user_type not in ("official", "admin"):
        raise Forbidden("Unauthorized")
    return ctx


def _create_notification(call: ActionCall) -> dict:
    _staff(call)
    return call.created(notification_routes.create_payload(call.db, call.parse(NotificationCreate)))


ISSUE_ACTIONS = {
    "list": Action(lambda c: issue_routes.list_payload(
        c.db, c.ctx, c.response, c.arg("category"), c.arg("status"), c.arg("district"), c.arg("limit"), c.arg("offset")
    )),
    "get": Action(lambda c: issue_routes.detail_payload(c.db, c.arg("id"))),
    "get_nearby": Action(lambda c: issue_routes.nearby_payload(c.db, c.arg("lat"), c.arg("lng"), c.arg("radius"))),
    "get_trending": Action(lambda c: issue_routes.trending_payload(c.db)),
    "get_comments": Action(lambda c: issue_routes.comments_payload(c.db, c.arg("issue_id"))),
    "create": Action(
        lambda c: c.created(issue_routes.create_payload(c.db, c.ctx, c.parse(IssueCreate), source=SOURCE)),
        write=True,
    ),
    "update_status": Action(
        lambda c: issue_routes.status_payload(
            c.db, c.ctx, c.body_field("issue_id"), c.parse(StatusUpdate), source=SOURCE
        ),
        write=True,
    ),
    "official_response": Action(
        lambda c: c.created(issue_routes.response_payload(
            c.db, c.ctx, c.body_field("issue_id"), c.parse(OfficialResponse), source=SOURCE
        )),
        write=True,
    ),
    "upvote": Action(lambda c: issue_routes.upvote_payload(c.db, c.ctx, c.body_field("issue_id")), write=True),
    "add_comment": Action(
        lambda c: c.created(issue_routes.add_comment_payload(
            c.db, c.ctx, c.body_field("issue_id"), c.parse(CommentCreate)
        )),
        write=True,
    ),
}

AUTH_ACTIONS = {
    "login": Action(
        lambda c: auth_routes.login_payload(c.db, c.parse(LoginRequest), client_ip(c.request), c.response),
        write=True,
    ),
    "register": Action(lambda c: c.created(auth_routes.register_payload(c.db, c.parse(RegisterRequest))), write=True),
    "logout": Action(lambda c: auth_routes.logout_payload(c.db, c.ctx, c.response)),
    "check_session": Action(lambda c: auth_routes.session_payload(c.ctx)),
}

LOCATION_ACTIONS = {
    "provinces": Action(lambda c: location_routes.provinces_payload(c.db)),
    "districts": Action(lambda c: location_routes.districts_payload(c.db, c.arg("province_id"))),
    "municipalities": Action(lambda c: location_routes.municipalities_payload(c.db, c.arg("district_id"))),
}

NOTIFICATION_ACTIONS = {
    "get_notifications": Action(lambda c: notification_routes.list_payload(c.db, _session(c))),
    "get_unread_count": Action(lambda c: notification_routes.unread_count_payload(c.db, _session(c))),
    "mark_read": Action(
        lambda c: notification_routes.mark_read_payload(c.db, _session(c), c.parse(MarkReadRequest).notification_id),
        write=True,
    ),
    "create_notification": Action(_create_notification, write=True),
}

ANALYTICS_ACTIONS = {
    "dashboard_stats": Action(lambda c: analytics_routes.dashboard_payload(c.db, c.ctx)),
    "category_distribution": Action(lambda c: analytics_routes.categories_payload(c.db)),
    "resolution_trends": Action(lambda c: analytics_routes.trends_payload(c.db)),
    "regional_stats": Action(lambda c: analytics_routes.regional_payload(c.db)),
}


def dispatch(actions: Dict[str, Action], call: ActionCall) -> dict:
    action = actions.get(call.arg("action") or "")
    if action is None:
        raise InvalidInput("Invalid action")
    if action.write and call.request.method != "POST":
        raise ServiceError("Method not allowed", status_code=status.HTTP_405_METHOD_NOT_ALLOWED)
    return action.handler(call)


def _endpoint(path: str, actions: Dict[str, Action]):
    @router.api_route(path, methods=["GET", "POST"])
    def _legacy(
        request: Request,
        response: Response,
        payload: Optional[Dict[str, Any]] = Body(default=None),
        db: Session = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context),
    ):
        call = ActionCall(db=db, ctx=ctx, request=request, response=response, payload=payload or {})
        return dispatch(actions, call)

    return _legacy


_endpoint("/issues.php", ISSUE_ACTIONS)
_endpoint("/auth.php", AUTH_ACTIONS)
_endpoint("/locations.php", LOCATION_ACTIONS)
_endpoint("/notifications.php", NOTIFICATION_ACTIONS)
_endpoint("/analytics.php", ANALYTICS_ACTIONS)


@router.post("/upload.php", status_code=status.HTTP_201_CREATED)
def legacy_upload(
    file: Optional[UploadFile] = File(default=None),
    storage: StorageProvider = Depends(get_storage),
):
    return upload_payload(file, storage)
