"""
Tools API endpoints - list the function-calling tools offered to the model.
"""

from fastapi import APIRouter, Depends

from ..tools import ToolRegistry
from .dependencies import get_tool_registry

router = APIRouter(prefix="/api", tags=["tools"])


@router.get("/tools")
async def list_tools(registry: ToolRegistry = Depends(get_tool_registry)):
    return {"tools": registry.get_tools_format()}
