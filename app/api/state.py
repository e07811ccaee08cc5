from __future__ import annotations

from typing import Any, Dict

from aiohttp import web
from loguru import logger

from app.services import assignment
from app.services.assignment import DrawStatus
from app.services.draw_flow import DrawFlow, FlowResult
from app.services.shared_state import has_updates, prune_messages
from app.services.state_store import StoreUnavailableError

FLOW_KEY = web.AppKey("flow", DrawFlow)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,DELETE,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

STORAGE_ERROR = "Storage configuration error. See logs for details."
UNEXPECTED_ERROR = "Unexpected error while processing the request."
MISSING_SECTIONS = "Provide assignments, wishlists, messages and/or events in the request body."
BAD_ASSIGNMENTS = "Assignments must map participant ids to participant ids."
BAD_IDS = "giver and recipient must be participant ids."

DRAW_STATUS_CODES = {
    DrawStatus.COMPLETED: 200,
    DrawStatus.ALREADY_COMPLETE: 200,
    DrawStatus.INFEASIBLE: 409,
    DrawStatus.INVALID: 422,
}


def _json(body: Dict[str, Any], status: int = 200) -> web.Response:
    return web.json_response(body, status=status, headers=CORS_HEADERS)


async def _read_body(request: web.Request) -> Any:
    if not request.can_read_body:
        return {}
    try:
        return await request.json()
    except ValueError:
        return None


def _is_id(value: Any) -> bool:
    return value is None or isinstance(value, str)


def _flow_payload(result: FlowResult) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "message": result.message,
        "persisted": result.persisted,
        "offline": result.offline,
        "assigned": len(result.assignments),
    }
    if result.status is not None:
        payload["status"] = result.status.value
    if result.reason is not None:
        payload["reason"] = result.reason.value
    return payload


def _flow_response(result: FlowResult, failure_status: int = 422) -> web.Response:
    if result.ok:
        return _json(_flow_payload(result))
    if result.offline:
        return _json(_flow_payload(result), status=503)
    return _json(_flow_payload(result), status=failure_status)


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as exc:
        logger.bind(method=request.method, path=request.path).exception(
            "State API error: {error}", error=str(exc)
        )
        return _json({"message": UNEXPECTED_ERROR}, status=500)


async def options_handler(request: web.Request) -> web.Response:
    return web.Response(status=200, headers=CORS_HEADERS)


async def get_state_handler(request: web.Request) -> web.Response:
    flow = request.app[FLOW_KEY]
    try:
        state = flow.store.load()
    except StoreUnavailableError:
        return _json({"message": STORAGE_ERROR}, status=500)
    state["messages"] = prune_messages(state["messages"])
    return _json(state)


async def post_state_handler(request: web.Request) -> web.Response:
    flow = request.app[FLOW_KEY]
    body = await _read_body(request)
    if not has_updates(body):
        return _json({"message": MISSING_SECTIONS}, status=400)

    posted = body.get("assignments")
    if isinstance(posted, dict):
        if not all(isinstance(recipient, str) for recipient in posted.values()):
            return _json({"message": BAD_ASSIGNMENTS}, status=400)
        validation = assignment.validate(flow.participants, posted)
        if not validation.ok:
            return _json(
                {"message": validation.message, "reason": validation.reason.value},
                status=422,
            )

    try:
        merged = flow.store.save(body)
    except StoreUnavailableError:
        return _json({"message": UNEXPECTED_ERROR}, status=500)
    return _json(merged)


async def manual_entry_handler(request: web.Request) -> web.Response:
    flow = request.app[FLOW_KEY]
    body = await _read_body(request)
    if not isinstance(body, dict):
        return _json({"message": "Request body must be a JSON object."}, status=400)
    if not (_is_id(body.get("giver")) and _is_id(body.get("recipient"))):
        return _json({"message": BAD_IDS}, status=400)

    result = flow.record_manual(body.get("giver"), body.get("recipient"))
    return _flow_response(result)


async def complete_draw_handler(request: web.Request) -> web.Response:
    flow = request.app[FLOW_KEY]
    body = await _read_body(request)
    if not isinstance(body, dict):
        return _json({"message": "Request body must be a JSON object."}, status=400)

    seed = body.get("seed")
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        return _json({"message": "seed must be an integer."}, status=400)

    result = flow.draw_remaining(seed=seed)
    if result.offline and not result.ok:
        return _json(_flow_payload(result), status=503)
    return _json(_flow_payload(result), status=DRAW_STATUS_CODES.get(result.status, 200))


async def clear_draw_handler(request: web.Request) -> web.Response:
    flow = request.app[FLOW_KEY]
    return _flow_response(flow.clear_assignments())


async def reveal_handler(request: web.Request) -> web.Response:
    flow = request.app[FLOW_KEY]
    participant_id = request.match_info["participant_id"]
    if flow.roster.get(participant_id) is None:
        return _json({"message": f"{participant_id} is not on the roster."}, status=404)

    view = flow.reveal_for(participant_id)
    return _json(
        {
            "participant": participant_id,
            "recipient": view.recipient_id,
            "recipientName": view.recipient_name,
            "message": view.message,
            "offline": view.offline,
        }
    )


def create_app(flow: DrawFlow) -> web.Application:
    app = web.Application(middlewares=[error_middleware])
    app[FLOW_KEY] = flow
    app.router.add_route("OPTIONS", "/api/{tail:.*}", options_handler)
    app.router.add_get("/api/state", get_state_handler)
    app.router.add_post("/api/state", post_state_handler)
    app.router.add_post("/api/draw/manual", manual_entry_handler)
    app.router.add_post("/api/draw/complete", complete_draw_handler)
    app.router.add_delete("/api/draw", clear_draw_handler)
    app.router.add_get("/api/draw/{participant_id}", reveal_handler)
    return app
