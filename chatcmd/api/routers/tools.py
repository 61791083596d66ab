"""Tool catalogue API router."""

from fastapi import APIRouter, Depends, HTTPException, Query

from chatcmd.api.dependencies import get_registry
from chatcmd.api.models import ToolDescription, ToolListResponse
from chatcmd.services.tool_registry import ToolRegistry

router = APIRouter()


@router.get("/tools", tags=["Tools"], response_model=ToolListResponse)
async def list_tools(registry: ToolRegistry = Depends(get_registry)):
    """List every registered tool with its parameter schema."""
    items = registry.describe()
    return {"items": items, "count": len(items)}


@router.get("/tools/search", tags=["Tools"], response_model=ToolListResponse)
async def search_tools(
    capability: str = Query(..., min_length=1, description="Text to match against tool names and descriptions"),
    registry: ToolRegistry = Depends(get_registry),
):
    items = [tool.describe() for tool in registry.find_tools_by_capability(capability)]
    return {"items": items, "count": len(items)}


@router.get("/tools/{name}", tags=["Tools"], response_model=ToolDescription)
async def get_tool(name: str, registry: ToolRegistry = Depends(get_registry)):
    tool = registry.get_tool(name)
    if tool is None:
        raise HTTPException(status_code=404, detail=f"Tool '{name}' not found")
    return tool.describe()
