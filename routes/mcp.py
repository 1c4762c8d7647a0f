from flask import Blueprint, request, jsonify
import json
import logging

from routes.chat import chat_service, tool_service, widget_auth
from services.cart_service import CartError
from services.shopify_admin_service import ShopifyAPIError
from services.tool_service import ToolError

mcp_bp = Blueprint('mcp', __name__)
logger = logging.getLogger(__name__)

SERVER_INFO = {"name": "shopbot-commerce-server", "version": "1.0.0"}
PROTOCOL_VERSION = "2024-11-05"

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602


def _rpc_result(request_id, result):
    return jsonify({"jsonrpc": "2.0", "id": request_id, "result": result})


def _rpc_error(request_id, code: int, message: str, status: int = 200):
    return jsonify({
        "jsonrpc": "2.0",
        "id": request_id,
        "error": {"code": code, "message": message}
    }), status


def _text_content(payload, is_error: bool = False) -> dict:
    text = payload if isinstance(payload, str) else json.dumps(payload, indent=2, default=str)
    content = {"content": [{"type": "text", "text": text}]}
    if is_error:
        content["isError"] = True
    return content


@mcp_bp.route('/mcp', methods=['POST', 'OPTIONS'])
@widget_auth.require_widget_token
def mcp_endpoint():
    """
    Commerce tools exposed over MCP (JSON-RPC 2.0 over HTTP)
    Methods: initialize, tools/list, tools/call
    """
    body = request.get_json(silent=True)
    if body is None:
        return _rpc_error(None, PARSE_ERROR, "Parse error", 400)

    if not isinstance(body, dict) or body.get("jsonrpc") != "2.0" \
            or not isinstance(body.get("method"), str) or not body["method"]:
        return _rpc_error(body.get("id") if isinstance(body, dict) else None,
                          INVALID_REQUEST, "Invalid Request", 400)

    request_id = body.get("id")
    method = body["method"]
    params = body.get("params")
    if params is None:
        params = {}
    if not isinstance(params, dict):
        return _rpc_error(request_id, INVALID_PARAMS, "params must be an object")

    # Notifications carry no id and get no response body
    if request_id is None and method.startswith("notifications/"):
        return "", 202

    logger.info(f"🔧 MCP request: {method}")

    if method == "initialize":
        return _rpc_result(request_id, {
            "protocolVersion": PROTOCOL_VERSION,
            "serverInfo": SERVER_INFO,
            "capabilities": {"tools": {}}
        })

    if method == "tools/list":
        return _rpc_result(request_id, {"tools": tool_service.list_tools()})

    if method == "tools/call":
        name = params.get("name")
        if not name or not isinstance(name, str):
            return _rpc_error(request_id, INVALID_PARAMS, "Tool name is required")

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return _rpc_error(request_id, INVALID_PARAMS, "Tool arguments must be an object")

        admin = chat_service.get_admin_client(widget_auth.get_current_shop())
        try:
            result = tool_service.execute(name, arguments, admin)
            return _rpc_result(request_id, _text_content(result))
        except (ToolError, CartError, ShopifyAPIError) as e:
            logger.warning(f"🔧 MCP tool {name} failed: {e}")
            return _rpc_result(request_id, _text_content(f"Error executing {name}: {e}", is_error=True))
        except Exception as e:
            logger.exception(f"🔧 Unexpected error in MCP tool {name}")
            return _rpc_result(request_id, _text_content(f"Error executing {name}: {e}", is_error=True))

    return _rpc_error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")
