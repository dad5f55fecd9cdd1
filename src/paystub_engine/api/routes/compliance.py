"""Compliance reference endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Request, status

from paystub_engine.api.schemas import ErrorResponse, StateRuleResponse

router = APIRouter(prefix="/compliance", tags=["compliance"])


@router.get("/states", response_model=list[str])
async def list_states(request: Request) -> list[str]:
    """State codes with registered wage statement rules."""
    return request.app.state.compliance.registry.codes()


@router.get(
    "/states/{state_code}",
    response_model=StateRuleResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_state_requirements(
    request: Request,
    state_code: Annotated[str, Path(min_length=2, max_length=2)],
) -> StateRuleResponse:
    """Wage statement requirements registered for one state."""
    rule = request.app.state.compliance.state_requirements(state_code)
    if rule is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No wage statement rules for state '{state_code.upper()}'",
        )
    return StateRuleResponse.model_validate(rule)
