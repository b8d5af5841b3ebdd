"""HTTP API surface for the Question Flow engine."""

from __future__ import annotations

import os
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()

from question_flow import FlowEngine, build_engine  # noqa: E402
from question_flow.errors import FlowError, SessionConflictError  # noqa: E402
from question_flow.logging import (  # noqa: E402
    FLOW_REQUEST_DURATION,
    FLOW_REQUEST_ERRORS,
    FLOW_REQUESTS_TOTAL,
    configure_logging,
    trace_id_var,
)

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Definition load failures abort start-up
    if getattr(app.state, "engine", None) is None:
        app.state.engine = build_engine()
    yield


app = FastAPI(title="Question Flow Engine", version="1.0.0", lifespan=lifespan)


class NextStepRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    sessionId: str = Field(default="defaultSession", description="Session whose progress is advanced")
    questionnaire: Optional[Any] = Field(
        default=None,
        description="Block with `answers` ([{questionCode, value}]) or legacy `comboQuestions` ([{key, value}])",
    )


class ValidateRequest(BaseModel):
    questionnaire: Optional[Any] = None


def get_engine(request: Request) -> FlowEngine:
    return request.app.state.engine


def _error_detail(exc: Exception, trace_id: str) -> Dict[str, Any]:
    return {
        "errorType": exc.__class__.__name__,
        "message": str(exc),
        "traceId": trace_id,
    }


@app.post("/question_next_step")
def question_next_step(payload: NextStepRequest, engine: FlowEngine = Depends(get_engine)):  # noqa: D401
    """Save the submitted answers and return the next question or the final summary."""

    trace_id = str(uuid.uuid4())
    trace_id_var.set(trace_id)
    logger.bind(traceId=trace_id).info("Incoming request: {}", payload.model_dump())

    FLOW_REQUESTS_TOTAL.inc()

    try:
        with FLOW_REQUEST_DURATION.time():
            result = engine.next_step(payload.sessionId, payload.questionnaire)
        response: Dict[str, Any] = result.model_dump(by_alias=True)
        response["traceId"] = trace_id
        return response
    except FlowError as exc:
        FLOW_REQUEST_ERRORS.inc()
        logger.warning("Engine domain error: {}", exc, traceId=trace_id)
        code = status.HTTP_409_CONFLICT if isinstance(exc, SessionConflictError) else status.HTTP_400_BAD_REQUEST
        raise HTTPException(status_code=code, detail=_error_detail(exc, trace_id))
    except Exception as exc:
        FLOW_REQUEST_ERRORS.inc()
        logger.exception("Engine error: {}", exc, traceId=trace_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_error_detail(exc, trace_id),
        )
    finally:
        trace_id_var.set(None)


@app.get("/questionnaire")
def get_questionnaire(engine: FlowEngine = Depends(get_engine)):
    """Return the loaded questionnaire definition."""
    return engine.graph.questionnaire.model_dump(by_alias=True)


@app.get("/sessions/{session_id}")
def get_session(session_id: str, engine: FlowEngine = Depends(get_engine)):
    """Return the saved progress of a session."""
    state = engine.get_progress(session_id)
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No progress for session {session_id}")
    return state.model_dump()


@app.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(session_id: str, engine: FlowEngine = Depends(get_engine)):
    """Clear the saved progress of a session."""
    engine.clear_progress(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/answers/validate")
def validate_answers(payload: ValidateRequest, engine: FlowEngine = Depends(get_engine)):
    """Check each submitted answer against its question's data type."""
    results = engine.validate(payload.questionnaire)
    return {"results": [r.model_dump() for r in results]}


@app.get("/health")
def health(engine: FlowEngine = Depends(get_engine)):
    return {
        "status": "ok",
        "questionnaireId": engine.graph.questionnaire_id,
        "questions": len(engine.graph),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("API_HOST", "0.0.0.0"), port=int(os.getenv("API_PORT", "8000")))
