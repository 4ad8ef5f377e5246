#!/usr/bin/env python3
"""
JSON-RPC 2.0 Server for DisputeService

Exposes dispute-lib to any language that can spawn a process and talk over
stdin/stdout.

Protocol: JSON-RPC 2.0 over stdin/stdout (newline-delimited JSON)
Specification: https://www.jsonrpc.org/specification

Usage:
    python -m dispute_lib.jsonrpc_server [--debug] [--data PATH] [--config PATH]

Example request (stdin):
    {"jsonrpc":"2.0","id":1,"method":"add_dispute","params":{"loan_id":"L1","dispute_index":0,"state":"open","created_at":1}}

Example response (stdout):
    {"jsonrpc":"2.0","id":1,"result":{"ok":true,"loan_id":"L1","accepted":true,...}}
"""

import sys
import json
import signal
import argparse
import traceback
from typing import Any, Dict, Optional

from dispute_lib import DisputeService
from dispute_lib.errors import DisputeLibError


class DisputeJsonRpcServer:
    """JSON-RPC 2.0 server wrapping the DisputeService API."""

    # JSON-RPC error codes
    ERROR_PARSE = -32700        # Invalid JSON
    ERROR_INVALID_REQUEST = -32600  # Invalid JSON-RPC structure
    ERROR_METHOD_NOT_FOUND = -32601  # Unknown method
    ERROR_INVALID_PARAMS = -32602   # Invalid parameters
    ERROR_INTERNAL = -32000      # Application error (catch-all)
    ERROR_DOMAIN = -32001        # dispute-lib error (validation, snapshot, fiscal data)

    def __init__(self, debug: bool = False, service: Optional[DisputeService] = None):
        """
        Initialize JSON-RPC server.

        Args:
            debug: Enable debug logging to stderr
            service: DisputeService to expose (a default one is created otherwise)
        """
        self.service = service or DisputeService()
        self.running = False
        self.debug = debug

        # Method dispatch table
        self.methods = {
            'add_dispute': self._handle_add_dispute,
            'get_loan': self._handle_get_loan,
            'aggregate_user_events': self._handle_aggregate_user_events,
            'batch_aggregate_user_events': self._handle_batch_aggregate_user_events,
            'aggregate_events': self._handle_aggregate_events,
            'fetch_debt_subject_to_limit': self._handle_fetch_debt_subject_to_limit,
        }

    def _log(self, message: str):
        """Log debug message to stderr (doesn't interfere with JSON-RPC on stdout)."""
        if self.debug:
            sys.stderr.write(f"[DEBUG] {message}\n")
            sys.stderr.flush()

    def start_server(self):
        """
        Start the JSON-RPC server loop.

        Reads requests from stdin, processes them, writes responses to stdout.
        Runs until EOF or stop signal received.
        """
        self.running = True
        self._log("DisputeService JSON-RPC server started")

        while self.running:
            try:
                line = sys.stdin.readline()

                if not line:
                    self._log("EOF received, shutting down")
                    break

                if not line.strip():
                    continue

                self._log(f"Received: {line.strip()}")
                response = self.handle_request(line)
                self._send_response(response)

            except KeyboardInterrupt:
                self._log("KeyboardInterrupt received, shutting down")
                break

            except Exception as e:
                # Fatal error in main loop
                self._log(f"Fatal error in main loop: {e}")
                traceback.print_exc(file=sys.stderr)
                break

        self.service.close()
        self._log("Server stopped")

    def stop_server(self):
        """Stop the server gracefully; the main loop exits after the current request."""
        self.running = False
        self._log("Stop signal received")

    def handle_request(self, request_json: str) -> Dict[str, Any]:
        """
        Parse and process a JSON-RPC request.

        Args:
            request_json: JSON-RPC request string

        Returns:
            JSON-RPC response dict (success or error)
        """
        request_id = None

        try:
            try:
                request = json.loads(request_json)
            except json.JSONDecodeError as e:
                return self._error_response(None, self.ERROR_PARSE,
                                            f"Parse error: {e}")

            if not isinstance(request, dict):
                return self._error_response(None, self.ERROR_INVALID_REQUEST,
                                            "Request must be a JSON object")

            if request.get("jsonrpc") != "2.0":
                return self._error_response(None, self.ERROR_INVALID_REQUEST,
                                            f"Invalid JSON-RPC version: {request.get('jsonrpc')}")

            request_id = request.get("id")
            method = request.get("method")
            params = request.get("params", {})

            if not method:
                return self._error_response(request_id, self.ERROR_INVALID_REQUEST,
                                            "Missing 'method' field")

            if not isinstance(params, dict):
                return self._error_response(request_id, self.ERROR_INVALID_PARAMS,
                                            f"Params must be an object, got {type(params).__name__}")

            if method not in self.methods:
                return self._error_response(request_id, self.ERROR_METHOD_NOT_FOUND,
                                            f"Method not found: {method}")

            self._log(f"Dispatching method: {method}")
            result = self.methods[method](params)

            return self._success_response(request_id, result)

        except DisputeLibError as e:
            self._log(f"Domain error: {e}")
            return self._error_response(request_id, self.ERROR_DOMAIN, str(e),
                                        data={"type": type(e).__name__})

        except ValueError as e:
            # Missing or malformed params raised by the handlers below
            return self._error_response(request_id, self.ERROR_INVALID_PARAMS, str(e))

        except Exception as e:
            self._log(f"Error processing request: {e}")
            return self._error_response(request_id, self.ERROR_INTERNAL,
                                        f"Internal error: {e}")

    # Method handlers - wrap DisputeService API

    @staticmethod
    def _require(params: Dict[str, Any], *names: str):
        missing = [n for n in names if params.get(n) is None]
        if missing:
            raise ValueError(f"Missing required parameter: {', '.join(missing)}")

    def _handle_add_dispute(self, params: Dict[str, Any]) -> Any:
        """Handle 'add_dispute' method."""
        self._require(params, 'loan_id', 'dispute_index', 'state', 'created_at')
        return self.service.add_dispute(
            params['loan_id'], params['dispute_index'], params['state'], params['created_at']
        )

    def _handle_get_loan(self, params: Dict[str, Any]) -> Any:
        """Handle 'get_loan' method. Result is null for an unknown loan."""
        self._require(params, 'loan_id')
        return self.service.get_loan(params['loan_id'])

    def _handle_aggregate_user_events(self, params: Dict[str, Any]) -> Any:
        """Handle 'aggregate_user_events' method."""
        return self.service.aggregate_user_events()

    def _handle_batch_aggregate_user_events(self, params: Dict[str, Any]) -> Any:
        """Handle 'batch_aggregate_user_events' method."""
        return self.service.batch_aggregate_user_events()

    def _handle_aggregate_events(self, params: Dict[str, Any]) -> Any:
        """Handle 'aggregate_events' method."""
        self._require(params, 'events')
        if not isinstance(params['events'], list):
            raise ValueError(f"events must be an array, got {type(params['events']).__name__}")
        return self.service.aggregate_events(params['events'])

    def _handle_fetch_debt_subject_to_limit(self, params: Dict[str, Any]) -> Any:
        """Handle 'fetch_debt_subject_to_limit' method."""
        self._require(params, 'fields')
        return self.service.fetch_debt_subject_to_limit(params['fields'])

    # Response formatting

    def _success_response(self, request_id: Any, result: Any) -> Dict[str, Any]:
        """Format successful JSON-RPC response."""
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "result": result
        }

    def _error_response(self, request_id: Any, code: int, message: str,
                        data: Optional[Any] = None) -> Dict[str, Any]:
        """Format JSON-RPC error response."""
        error = {
            "code": code,
            "message": message
        }
        if data is not None:
            error["data"] = data

        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "error": error
        }

    def _send_response(self, response: Dict[str, Any]):
        """Send JSON-RPC response to stdout."""
        response_json = json.dumps(response)
        self._log(f"Sending: {response_json}")
        sys.stdout.write(response_json + "\n")
        sys.stdout.flush()


def main():
    """Main entry point for JSON-RPC server."""
    parser = argparse.ArgumentParser(
        description="DisputeService JSON-RPC 2.0 Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Example usage:
  python -m dispute_lib.jsonrpc_server
  python -m dispute_lib.jsonrpc_server --debug --data ./data.json

Supported methods:
  - add_dispute
  - get_loan
  - aggregate_user_events
  - batch_aggregate_user_events
  - aggregate_events
  - fetch_debt_subject_to_limit

Protocol: JSON-RPC 2.0 over stdin/stdout
See: https://www.jsonrpc.org/specification
        """
    )
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug logging to stderr')
    parser.add_argument('--data', default=None,
                        help='Snapshot JSON file (overrides data_file_location)')
    parser.add_argument('--config', default=None,
                        help='Config YAML file (defaults to the bundled local-config.yaml)')

    args = parser.parse_args()

    service = DisputeService(config_path=args.config, data_path=args.data)
    server = DisputeJsonRpcServer(debug=args.debug, service=service)

    def signal_handler(sig, frame):
        server.stop_server()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    server.start_server()


if __name__ == "__main__":
    main()
