"""Sequential tool chain execution with parameter threading and short-circuiting."""

import time
import logging
from dataclasses import replace
from typing import Dict, Any, List, Optional

from chatcmd.infra.config import config
from chatcmd.infra.error_handler import classify_error
from chatcmd.infra.metrics import tool_calls_total, tool_call_duration, chain_executions_total, clarifications_total
from chatcmd.models import ToolCall, ToolContext, ToolResult
from chatcmd.services.chain_validator import ToolChainValidator
from chatcmd.services.parameter_mapper import ParameterMapper
from chatcmd.services.tool_registry import ToolRegistry
from chatcmd.tools.base import BaseTool

logger = logging.getLogger(__name__)


# A failure in one of these leaves later steps without the ids they need
CRITICAL_TOOLS = ["lookup_contacts", "resolve_conversation"]


def override_user_scoped_parameters(
    tool: BaseTool,
    params: Dict[str, Any],
    context: ToolContext,
) -> Dict[str, Any]:
    """
    Force user-scoped parameters to the authenticated user.

    Planner-supplied values are ignored so a chain can never act on behalf
    of another user. Mismatches are logged for audit.
    """
    if not tool.user_context_params:
        return params

    overridden = dict(params)
    overrides_applied = []
    for param_name in tool.user_context_params:
        original_value = overridden.get(param_name)
        if original_value is not None and original_value != context.current_user_id:
            overrides_applied.append({
                "param": param_name,
                "original_value": str(original_value)[:50],
            })
        overridden[param_name] = context.current_user_id

    if overrides_applied:
        logger.warning(
            f"Parameter override applied for tool {tool.name}: {overrides_applied}. "
            f"User: {context.current_user_id}",
            extra={"tool_name": tool.name, "request_id": context.request_id},
        )
    return overridden


def _status_label(result: ToolResult) -> str:
    if result.needs_clarification:
        return "clarification"
    return "success" if result.success else "failure"


class ToolChainExecutor:
    """Runs a validated chain one step at a time."""

    def __init__(
        self,
        registry: ToolRegistry,
        mapper: Optional[ParameterMapper] = None,
        validator: Optional[ToolChainValidator] = None,
        max_chain_length: Optional[int] = None,
    ):
        self.registry = registry
        self.mapper = mapper or ParameterMapper()
        self.validator = validator
        self.max_chain_length = max_chain_length or config.MAX_CHAIN_LENGTH

    async def execute_chain(
        self,
        chain: List[ToolCall],
        context: ToolContext,
        max_chain_length: Optional[int] = None,
    ) -> List[ToolResult]:
        """
        Execute tools in order.

        Args:
            chain: Steps to run
            context: Request context; a per-step copy carries the chain position
            max_chain_length: Ceiling on steps run (defaults to configured maximum)

        Returns:
            One result per executed step. Shorter than the chain when a
            critical tool fails, a tool asks for clarification, or the chain
            exceeds the ceiling.
        """
        ceiling = max_chain_length or self.max_chain_length
        results: List[ToolResult] = []
        previous_results: Dict[str, ToolResult] = {}
        outcome = "completed"

        for position, step in enumerate(chain, start=1):
            if position > ceiling:
                logger.warning(
                    f"Tool chain truncated at {ceiling} steps",
                    extra={"request_id": context.request_id, "chain_length": len(chain)},
                )
                break

            tool = self.registry.get_tool(step.tool)
            if tool is None:
                logger.warning(f"Tool '{step.tool}' not found", extra={"request_id": context.request_id})
                results.append(ToolResult(
                    success=False,
                    error=f"Tool '{step.tool}' not found",
                    next_action="error",
                    metadata={"tool_name": step.tool, "chain_position": position},
                ))
                tool_calls_total.labels(tool_name=step.tool, status="not_found").inc()
                continue

            step_context = replace(context, current_chain_length=position)
            result = await self._execute_step(tool, step, position, previous_results, step_context)

            results.append(result)
            previous_results[tool.name] = result

            if not result.success and tool.name in CRITICAL_TOOLS:
                logger.warning(
                    f"Critical tool {tool.name} failed, stopping chain: {result.error}",
                    extra={"tool_name": tool.name, "chain_position": position, "request_id": context.request_id},
                )
                outcome = "short_circuited"
                break

            if result.needs_clarification:
                logger.info(
                    f"Tool {tool.name} requested clarification, stopping chain",
                    extra={"tool_name": tool.name, "chain_position": position, "request_id": context.request_id},
                )
                clarifications_total.labels(clarification_type=result.clarification.clarification_type).inc()
                outcome = "clarification"
                break

        chain_executions_total.labels(outcome=outcome).inc()
        return results

    async def _execute_step(
        self,
        tool: BaseTool,
        step: ToolCall,
        position: int,
        previous_results: Dict[str, ToolResult],
        context: ToolContext,
    ) -> ToolResult:
        params = dict(step.parameters)
        for from_tool, from_result in previous_results.items():
            params = self.mapper.map(from_tool, from_result, tool.name, params)
        params = override_user_scoped_parameters(tool, params, context)
        params = tool.with_defaults(params)

        if self.validator is not None:
            report = self.validator.validate_tool_parameters(tool.name, params, context.app_context)
            if not report.valid:
                logger.error(
                    f"Invalid parameters for {tool.name}: {report.errors}",
                    extra={"tool_name": tool.name, "chain_position": position, "request_id": context.request_id},
                )
                tool_calls_total.labels(tool_name=tool.name, status="invalid").inc()
                return ToolResult(
                    success=False,
                    error=f"Invalid parameters: {', '.join(report.errors)}",
                    next_action="error",
                    metadata={"tool_name": tool.name, "chain_position": position},
                )
            if report.warnings:
                logger.warning(f"Parameter warnings for {tool.name}: {report.warnings}")

        start_time = time.time()
        try:
            result = await tool.execute(params, context)
        except Exception as e:
            elapsed = time.time() - start_time
            logger.error(
                f"Tool {tool.name} raised {type(e).__name__}: {e}",
                exc_info=True,
                extra={
                    "tool_name": tool.name,
                    "chain_position": position,
                    "request_id": context.request_id,
                    "error_category": classify_error(e).value,
                },
            )
            tool_calls_total.labels(tool_name=tool.name, status="error").inc()
            tool_call_duration.labels(tool_name=tool.name).observe(elapsed)
            return ToolResult(
                success=False,
                error=str(e) or type(e).__name__,
                next_action="error",
                metadata={
                    "tool_name": tool.name,
                    "chain_position": position,
                    "execution_time_ms": int(elapsed * 1000),
                },
            )

        elapsed = time.time() - start_time
        result.metadata.update({
            "execution_time_ms": int(elapsed * 1000),
            "tool_name": tool.name,
            "chain_position": position,
        })
        tool_calls_total.labels(tool_name=tool.name, status=_status_label(result)).inc()
        tool_call_duration.labels(tool_name=tool.name).observe(elapsed)
        logger.info(
            f"Executed {tool.name}: success={result.success} next_action={result.next_action}",
            extra={"tool_name": tool.name, "chain_position": position, "request_id": context.request_id},
        )
        return result
