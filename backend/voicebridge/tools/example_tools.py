"""
Example function-calling tools advertised in general (non-RAG) sessions.

All of them return simulated data; they exist so the voice agent can be
exercised end to end without external services.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List

from .registry import ToolDefinition


async def execute_sql_query(args: Dict[str, Any]) -> Dict[str, Any]:
    query = args.get("query")
    database = args.get("database") or "main"
    return {
        "success": True,
        "database": database,
        "query": query,
        "rows": [
            {"id": 1, "name": "Example", "value": 100},
            {"id": 2, "name": "Sample", "value": 200},
        ],
        "rowCount": 2,
        "message": "Query executed successfully (simulated)",
    }


async def get_analytics(args: Dict[str, Any]) -> Dict[str, Any]:
    start_date = args.get("startDate")
    end_date = args.get("endDate")
    return {
        "metric": args.get("metric"),
        "period": {"start": start_date, "end": end_date},
        "value": 12345,
        "trend": "+12.5%",
        "dataPoints": [
            {"date": start_date, "value": 10000},
            {"date": end_date, "value": 12345},
        ],
        "message": "Analytics retrieved successfully (simulated)",
    }


async def search_knowledge_base(args: Dict[str, Any]) -> Dict[str, Any]:
    query = args.get("query")
    max_results = int(args.get("maxResults") or 5)
    results = [
        {"title": "Example Document 1", "content": f"Relevant information about {query}", "relevance": 0.95},
        {"title": "Example Document 2", "content": f"Additional context for {query}", "relevance": 0.87},
    ][:max_results]
    return {
        "query": query,
        "results": results,
        "totalResults": len(results),
        "message": "Knowledge base search completed (simulated)",
    }


async def call_external_api(args: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "url": args.get("url"),
        "method": (args.get("method") or "GET").upper(),
        "status": 200,
        "data": {
            "message": "API call successful (simulated)",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    }


async def get_weather(args: Dict[str, Any]) -> Dict[str, Any]:
    units = args.get("units") or "celsius"
    return {
        "location": args.get("location"),
        "temperature": 22 if units == "celsius" else 72,
        "condition": "Partly Cloudy",
        "humidity": 65,
        "windSpeed": 15,
        "units": units,
        "message": "Weather data retrieved (simulated)",
    }


def _schema(properties: Dict[str, Dict[str, str]], required: List[str]) -> Dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


EXAMPLE_TOOLS: List[ToolDefinition] = [
    ToolDefinition(
        name="execute_sql_query",
        description="Execute a SQL query on a database. Use this for data retrieval and analytics.",
        parameters=_schema({
            "query": {"type": "string", "description": "The SQL query to execute"},
            "database": {"type": "string", "description": "The database name (optional, defaults to main)"},
        }, ["query"]),
        handler=execute_sql_query,
    ),
    ToolDefinition(
        name="get_analytics",
        description="Retrieve analytics data for a given time period and metric.",
        parameters=_schema({
            "metric": {"type": "string", "description": 'The metric to retrieve (e.g., "users", "revenue", "conversions")'},
            "startDate": {"type": "string", "description": "Start date in ISO format (YYYY-MM-DD)"},
            "endDate": {"type": "string", "description": "End date in ISO format (YYYY-MM-DD)"},
        }, ["metric", "startDate", "endDate"]),
        handler=get_analytics,
    ),
    ToolDefinition(
        name="search_knowledge_base",
        description="Search the knowledge base for relevant information on a topic.",
        parameters=_schema({
            "query": {"type": "string", "description": "The search query"},
            "maxResults": {"type": "number", "description": "Maximum number of results to return (default: 5)"},
        }, ["query"]),
        handler=search_knowledge_base,
    ),
    ToolDefinition(
        name="call_external_api",
        description="Make a call to an external API endpoint.",
        parameters=_schema({
            "url": {"type": "string", "description": "The API endpoint URL"},
            "method": {"type": "string", "description": "HTTP method (GET, POST, PUT, DELETE)"},
        }, ["url", "method"]),
        handler=call_external_api,
    ),
    ToolDefinition(
        name="get_weather",
        description="Get current weather information for a location.",
        parameters=_schema({
            "location": {"type": "string", "description": "City name or coordinates"},
            "units": {"type": "string", "description": "Temperature units: celsius or fahrenheit"},
        }, ["location"]),
        handler=get_weather,
    ),
]
