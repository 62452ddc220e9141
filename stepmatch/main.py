from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from stepmatch.config import settings
from stepmatch.exceptions import InvalidInputError, SelectionError
from stepmatch.logger import configure_logging
from stepmatch.models.request import Coordinate, PlanningRequest, VariantsRequest
from stepmatch.models.response import PlanResponse, SelectionResponse, VariantsResponse
from stepmatch.services.route.response_builder import ResponseBuilderService
from stepmatch.services.route_service import RouteService

configure_logging()

app = FastAPI(
    title="StepMatch API",
    description="Walking and running routes matched to a step goal",
    version=settings.api_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

route_service = RouteService()
response_builder = ResponseBuilderService()


def _session_or_404(session_id: str):
    try:
        return route_service.get_session(session_id)
    except SelectionError as e:
        raise HTTPException(status_code=404, detail=str(e))


# main api
@app.post("/api/v1/routes/plan", response_model=PlanResponse)
async def plan_route(request: PlanningRequest):
    """Plan a route matching the step goal and open a selection session"""
    try:
        session_id, result = await route_service.plan(request)
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))

    # Evicted while planning when the store is at capacity
    session = route_service.sessions.get(session_id)
    return response_builder.build_plan_response(
        result,
        session_id=session_id,
        attempts=session.attempt_state if session is not None else None,
    )


@app.post("/api/v1/routes/variants", response_model=VariantsResponse)
async def route_variants(body: VariantsRequest):
    """Several valid routes heading in different directions"""
    try:
        result = await route_service.variants(body.request, body.count)
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return response_builder.build_variants_response(result)


@app.post("/api/v1/sessions/{session_id}/destination", response_model=SelectionResponse)
async def propose_destination(session_id: str, destination: Coordinate):
    """Manually pick a destination, limited to a few valid attempts"""
    session = _session_or_404(session_id)
    try:
        outcome = await session.propose_manual_destination(destination)
    except SelectionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return response_builder.build_selection_response(outcome)


@app.post("/api/v1/sessions/{session_id}/reset", response_model=SelectionResponse)
async def reset_selection(session_id: str):
    """Restore the default route"""
    session = _session_or_404(session_id)
    try:
        route = session.reset_selection()
    except SelectionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return response_builder.build_reset_response(route, session.attempt_state)


@app.get("/api/v1/sessions/{session_id}", response_model=SelectionResponse)
async def get_session(session_id: str):
    """Active route and attempt state of a session"""
    session = _session_or_404(session_id)
    route = session.active_route
    return SelectionResponse(
        success=route is not None,
        message="active route" if route is not None else "no active route",
        route=response_builder.build_route(route) if route is not None else None,
        attempts=response_builder.build_attempts(session.attempt_state),
    )


@app.delete("/api/v1/sessions/{session_id}")
async def close_session(session_id: str):
    _session_or_404(session_id)
    route_service.close_session(session_id)
    return {"status": "closed"}


@app.get("/health")
async def health_check():
    """Health check"""
    return {"status": "healthy", "version": settings.api_version}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
