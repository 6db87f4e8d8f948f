from cr_status_mcp.tools.resource_status import register_resource_status_tools

__all__ = ["register_resource_status_tools"]
