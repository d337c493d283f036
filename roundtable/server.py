"""FastAPI transport: debates stream over SSE, control endpoints are plain JSON."""

import logging
import sys

import click
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import JSONResponse, StreamingResponse

from config.config_loader import load_config
from roundtable.debate import DebateController
from roundtable.errors import DebateError, InvalidConfiguration, InvalidState, NotFound
from roundtable.models import Template
from roundtable.protocol import (
    SseEncoder,
    comparison_to_dict,
    interjection_to_dict,
    session_to_dict,
    template_participants_from_list,
    template_to_dict,
)
from roundtable.providers.factory import build_providers
from roundtable.templates import coerce_style, name_participants

logger = logging.getLogger(__name__)

_STATUS_CODES: dict[type[DebateError], int] = {
    InvalidConfiguration: 400,
    NotFound: 404,
    InvalidState: 409,
}

_TEMPLATE_FIELDS = {
    "name": "name",
    "description": "description",
    "style": "style",
    "maxRounds": "max_rounds",
    "participants": "participants",
    "instructionOverrides": "instruction_overrides",
}


def _error(exc: DebateError) -> JSONResponse:
    return JSONResponse(status_code=_STATUS_CODES.get(type(exc), 500), content={"detail": str(exc), "code": exc.code})


def _bad_request(detail: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": detail})


def create_app(controller: DebateController) -> FastAPI:
    app = FastAPI(title="Roundtable")

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "sessions": len(controller.list_sessions()), "models": controller.models}

    # --- debates ---

    @app.post("/api/debates")
    async def create_debate(body: dict):
        question = body.get("question")
        if not isinstance(question, str):
            return _bad_request("'question' must be a string")
        policy = {
            "early_stop": body.get("earlyStop"),
            "min_rounds": body.get("minRounds"),
            "synthesizer": body.get("synthesizer"),
        }
        try:
            if body.get("templateId"):
                stream = controller.start_from_template(
                    question,
                    body["templateId"],
                    style=body.get("style"),
                    max_rounds=body.get("maxRounds"),
                    **policy,
                )
            else:
                raw = body.get("participants")
                if not isinstance(raw, list):
                    return _bad_request("Provide 'participants' or 'templateId'")
                participants = name_participants(template_participants_from_list(raw), controller.display_names)
                stream = controller.start(
                    question,
                    participants,
                    body.get("style") or "cooperative",
                    body.get("maxRounds"),
                    instruction_overrides=body.get("instructionOverrides"),
                    **policy,
                )
        except DebateError as exc:
            return _error(exc)
        except (KeyError, TypeError, ValueError) as exc:
            return _bad_request(f"Malformed debate request: {exc}")

        async def frames():
            encoder = SseEncoder()
            async for event in stream:
                yield encoder.encode(event)

        logger.info("Streaming session %s", stream.session_id)
        return StreamingResponse(
            frames(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Session-Id": stream.session_id},
        )

    @app.get("/api/debates")
    async def list_debates():
        return [session_to_dict(s) for s in controller.list_sessions()]

    @app.get("/api/debates/{session_id}")
    async def get_debate(session_id: str):
        try:
            return session_to_dict(controller.get_session(session_id))
        except DebateError as exc:
            return _error(exc)

    @app.delete("/api/debates/{session_id}")
    async def delete_debate(session_id: str):
        try:
            controller.delete_session(session_id)
        except DebateError as exc:
            return _error(exc)
        return {"ok": True}

    @app.post("/api/debates/{session_id}/cancel")
    async def cancel_debate(session_id: str):
        try:
            controller.cancel(session_id)
        except DebateError as exc:
            return _error(exc)
        return {"ok": True, "sessionId": session_id}

    @app.post("/api/debates/{session_id}/interjections", status_code=201)
    async def create_interjection(session_id: str, body: dict):
        content = body.get("content")
        if not isinstance(content, str):
            return _bad_request("'content' must be a string")
        try:
            interjection = controller.interject(
                session_id, content, body.get("type") or "comment", body.get("targetMessageId")
            )
        except DebateError as exc:
            return _error(exc)
        return interjection_to_dict(interjection)

    @app.get("/api/debates/{session_id}/interjections")
    async def list_interjections(session_id: str):
        try:
            return [interjection_to_dict(i) for i in controller.pending_interjections(session_id)]
        except DebateError as exc:
            return _error(exc)

    @app.get("/api/debates/{session_id}/positions")
    async def compare_positions(session_id: str, a: str, b: str):
        try:
            return comparison_to_dict(controller.compare_positions(session_id, a, b))
        except DebateError as exc:
            return _error(exc)

    # --- templates ---

    @app.get("/api/templates")
    async def list_templates(q: str | None = None, sort: str | None = None):
        store = controller.templates
        if q:
            templates = store.search(q)
        elif sort == "popular":
            templates = store.popular(limit=len(store.list_templates()))
        else:
            templates = store.list_templates()
        return [template_to_dict(t) for t in templates]

    @app.post("/api/templates", status_code=201)
    async def create_template(body: dict):
        try:
            template = Template(
                id="",
                name=str(body.get("name", "")),
                description=str(body.get("description", "")),
                style=coerce_style(body.get("style", "cooperative")),
                max_rounds=int(body.get("maxRounds", 3)),
                participants=template_participants_from_list(body.get("participants") or []),
                instruction_overrides=dict(body.get("instructionOverrides") or {}),
            )
            return template_to_dict(controller.templates.create_template(template))
        except DebateError as exc:
            return _error(exc)
        except (KeyError, TypeError, ValueError) as exc:
            return _bad_request(f"Malformed template: {exc}")

    @app.get("/api/templates/{template_id}")
    async def get_template(template_id: str):
        try:
            return template_to_dict(controller.templates.get_template(template_id))
        except DebateError as exc:
            return _error(exc)

    @app.put("/api/templates/{template_id}")
    async def update_template(template_id: str, body: dict):
        unknown = [k for k in body if k not in _TEMPLATE_FIELDS]
        if unknown:
            return _bad_request(f"Unknown template fields: {unknown}")
        changes = {_TEMPLATE_FIELDS[k]: v for k, v in body.items()}
        try:
            if "participants" in changes:
                changes["participants"] = template_participants_from_list(changes["participants"])
            if "max_rounds" in changes:
                changes["max_rounds"] = int(changes["max_rounds"])
            return template_to_dict(controller.templates.update_template(template_id, **changes))
        except DebateError as exc:
            return _error(exc)
        except (KeyError, TypeError, ValueError) as exc:
            return _bad_request(f"Malformed template: {exc}")

    @app.delete("/api/templates/{template_id}")
    async def delete_template(template_id: str):
        try:
            controller.templates.delete_template(template_id)
        except DebateError as exc:
            return _error(exc)
        return {"ok": True}

    return app


@click.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8420, type=int, show_default=True)
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(host: str, port: int, verbose: bool) -> None:
    """Serve the debate API (SSE streams plus control endpoints)."""
    load_dotenv()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.addHandler(handler)

    config = load_config()
    providers = build_providers(config)
    if len(providers) < 2:
        logger.warning("Only %d provider(s) available; debates need at least 2", len(providers))

    app = create_app(DebateController(config, providers))
    logger.info("starting roundtable server on http://%s:%d (models: %s)", host, port, ", ".join(sorted(providers)))
    uvicorn.run(app, host=host, port=port, log_level="debug" if verbose else "info")


if __name__ == "__main__":
    main()
