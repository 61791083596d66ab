"""Command execution API router."""

import uuid
import logging
from fastapi import APIRouter, Depends, Request

from chatcmd.api.dependencies import get_processor, get_validator
from chatcmd.api.models import ExecuteCommandRequest, CommandResponse, ValidateResponse
from chatcmd.models import AppContext
from chatcmd.services.chain_validator import ToolChainValidator
from chatcmd.services.command_processor import CommandProcessor

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/commands/execute", tags=["Commands"], response_model=CommandResponse)
async def execute_command(
    body: ExecuteCommandRequest,
    request: Request,
    processor: CommandProcessor = Depends(get_processor),
):
    """
    Execute a planner-produced tool chain for a user command.

    Tool failures and clarification requests are reported in the response
    body with HTTP 200; only malformed requests are rejected.
    """
    request_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
    logger.info(
        "Executing command",
        extra={
            "request_id": request_id,
            "tools": [step.tool for step in body.tool_chain],
            "command": body.command[:100],
        },
    )
    return await processor.process(
        body.command,
        body.current_user_id,
        body.tool_chain,
        app_context=AppContext.from_dict(body.app_context),
        max_chain_length=body.max_chain_length,
        request_id=request_id,
    )


@router.post("/commands/validate", tags=["Commands"], response_model=ValidateResponse)
async def validate_command(
    body: ExecuteCommandRequest,
    validator: ToolChainValidator = Depends(get_validator),
):
    """Run pre-flight and chain validation without executing any tool."""
    pre_flight = validator.validate_pre_flight(
        body.command, AppContext.from_dict(body.app_context), body.current_user_id
    )
    chain = validator.validate_chain(body.tool_chain)
    return {
        "pre_flight": pre_flight.to_dict(),
        "chain": chain.to_dict(),
        "pattern": validator.get_chain_pattern(body.tool_chain),
    }
