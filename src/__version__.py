"""Version of the Color Me Shop MCP server."""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("colorme-mcp")
except PackageNotFoundError:
    # Running from a source checkout that was never installed
    __version__ = "0.1.0"
