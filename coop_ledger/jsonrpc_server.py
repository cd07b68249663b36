#!/usr/bin/env python3
"""
JSON-RPC 2.0 Server for LedgerService

Provides a JSON-RPC interface to coop-ledger, so a front end written in any
language can drive the ledger by spawning a process and talking over
stdin/stdout.

Protocol: JSON-RPC 2.0 over stdin/stdout (newline-delimited JSON)
Specification: https://www.jsonrpc.org/specification

Usage:
    python -m coop_ledger.jsonrpc_server [--debug] [--config URI] [--offline]

Example request (stdin):
    {"jsonrpc":"2.0","id":1,"method":"record_transaction",
     "params":{"actor":{"id":"admin","role":"admin"},"member_id":"M-1",
               "kind":"voluntary_deposit","amount":50000}}

Example response (stdout):
    {"jsonrpc":"2.0","id":1,"result":{"id":"TRX-...","amount":50000,...}}

Actors are passed as {"id": ..., "role": ...} objects. Ledger errors come
back with code -32001 and data.type naming the exception class.
"""

import sys
import json
import signal
import logging
import argparse
from typing import Any, Dict, Optional

from coop_ledger import LedgerService
from coop_ledger.config_loader import ConfigLoader
from coop_ledger.errors import LedgerError, PartialDistributionFailure

logger = logging.getLogger(__name__)


class InvalidParams(ValueError):
    """Raised by a handler when a required parameter is missing or malformed"""
    pass


class MethodNotFound(LookupError):
    """Raised when the requested method is not in the dispatch table"""
    pass


def _require(params: Dict[str, Any], *names: str) -> None:
    for name in names:
        if params.get(name) in (None, ""):
            raise InvalidParams(f"Missing required parameter: {name}")


def _optional(params: Dict[str, Any], *names: str) -> Dict[str, Any]:
    return {name: params[name] for name in names if params.get(name) is not None}


class LedgerJsonRpcServer:
    """JSON-RPC 2.0 server wrapping the LedgerService API."""

    # JSON-RPC error codes
    ERROR_PARSE = -32700        # Invalid JSON
    ERROR_INVALID_REQUEST = -32600  # Invalid JSON-RPC structure
    ERROR_METHOD_NOT_FOUND = -32601  # Unknown method
    ERROR_INVALID_PARAMS = -32602   # Invalid parameters
    ERROR_INTERNAL = -32000      # Application error (catch-all)
    ERROR_LEDGER = -32001        # LedgerError raised by the service

    def __init__(self, debug: bool = False, config_uri: Optional[str] = None,
                 offline: Optional[bool] = None,
                 service: Optional[LedgerService] = None):
        """
        Initialize JSON-RPC server.

        Args:
            debug: Log every request and response at debug level
            config_uri: Operator config override passed to LedgerService
            offline: Start the service in offline mode
            service: Pre-built service (tests inject one over a temp cache)
        """
        self.service = service or LedgerService(config_uri=config_uri, offline=offline)
        self.running = False
        self.debug = debug

        # Method dispatch table
        self.methods = {
            'add_member': self._handle_add_member,
            'update_member': self._handle_update_member,
            'get_member': self._handle_get_member,
            'list_members': self._handle_list_members,
            'record_transaction': self._handle_record_transaction,
            'delete_transaction': self._handle_delete_transaction,
            'list_transactions': self._handle_list_transactions,
            'loan_terms': self._handle_loan_terms,
            'disburse_loan': self._handle_disburse_loan,
            'list_loans': self._handle_list_loans,
            'available_profit': self._handle_available_profit,
            'preview_distribution': self._handle_preview_distribution,
            'execute_distribution': self._handle_execute_distribution,
            'member_balances': self._handle_member_balances,
            'ledger_summary': self._handle_ledger_summary,
            'list_activity': self._handle_list_activity,
            'store_status': self._handle_store_status,
        }

    def _log(self, message: str):
        if self.debug:
            logger.debug(message)

    def start_server(self):
        """
        Start the JSON-RPC server loop.

        Reads requests from stdin, processes them, writes responses to stdout.
        Runs until EOF or stop signal received.
        """
        self.running = True
        logger.info("LedgerService JSON-RPC server started")

        try:
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

                except Exception:
                    logger.exception("Fatal error in main loop")
                    break
        finally:
            self.service.close()

        logger.info("Server stopped")

    def stop_server(self):
        """
        Stop the server gracefully.

        Sets running flag to False, causing the main loop to exit.
        """
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

            self._log(f"Dispatching method: {method}")
            result = self._dispatch(method, params)

            return self._success_response(request_id, result)

        except MethodNotFound as e:
            return self._error_response(request_id, self.ERROR_METHOD_NOT_FOUND, str(e))

        except InvalidParams as e:
            return self._error_response(request_id, self.ERROR_INVALID_PARAMS, str(e))

        except LedgerError as e:
            data = {"type": type(e).__name__}
            if isinstance(e, PartialDistributionFailure):
                data["processed"] = e.processed
                data["total"] = e.total
            return self._error_response(request_id, self.ERROR_LEDGER, str(e), data)

        except Exception as e:
            logger.exception(f"Error processing request: {e}")
            return self._error_response(request_id, self.ERROR_INTERNAL,
                                        f"Internal error: {e}")

    def _dispatch(self, method: str, params: Dict[str, Any]) -> Any:
        """
        Dispatch request to the matching LedgerService method.

        Raises:
            MethodNotFound: If method is not in the dispatch table
        """
        if method not in self.methods:
            raise MethodNotFound(f"Method not found: {method}")

        handler = self.methods[method]
        return handler(params)

    def _actor(self, params: Dict[str, Any], required: bool = True) -> Optional[Dict[str, Any]]:
        actor = params.get('actor')
        if actor is None and not required:
            return None
        if not isinstance(actor, dict) or not actor.get('id'):
            raise InvalidParams("Parameter 'actor' must be an object with an 'id'")
        return actor

    # Method handlers - wrap LedgerService API

    def _handle_add_member(self, params: Dict[str, Any]) -> Any:
        _require(params, 'name')
        return self.service.add_member(
            self._actor(params),
            params['name'],
            **_optional(params, 'national_id', 'address', 'phone', 'member_id', 'sponsor_id'),
        )

    def _handle_update_member(self, params: Dict[str, Any]) -> Any:
        _require(params, 'member_id')
        changes = params.get('changes') or {}
        if not isinstance(changes, dict):
            raise InvalidParams("Parameter 'changes' must be an object")
        return self.service.update_member(self._actor(params), params['member_id'], **changes)

    def _handle_get_member(self, params: Dict[str, Any]) -> Any:
        _require(params, 'member_id')
        return self.service.get_member(params['member_id'])

    def _handle_list_members(self, params: Dict[str, Any]) -> Any:
        return self.service.list_members(self._actor(params, required=False))

    def _handle_record_transaction(self, params: Dict[str, Any]) -> Any:
        _require(params, 'member_id', 'kind', 'amount')
        return self.service.record_transaction(
            self._actor(params),
            params['member_id'],
            params['kind'],
            params['amount'],
            params.get('note', ''),
        )

    def _handle_delete_transaction(self, params: Dict[str, Any]) -> Any:
        _require(params, 'transaction_id')
        return self.service.delete_transaction(self._actor(params), params['transaction_id'])

    def _handle_list_transactions(self, params: Dict[str, Any]) -> Any:
        return self.service.list_transactions(
            self._actor(params, required=False),
            **_optional(params, 'member_id', 'kind'),
        )

    def _handle_loan_terms(self, params: Dict[str, Any]) -> Any:
        _require(params, 'principal', 'monthly_interest_rate_percent', 'term_months')
        return self.service.loan_terms(
            params['principal'],
            params['monthly_interest_rate_percent'],
            params['term_months'],
        )

    def _handle_disburse_loan(self, params: Dict[str, Any]) -> Any:
        _require(params, 'member_id', 'principal', 'monthly_interest_rate_percent', 'term_months')
        return self.service.disburse_loan(
            self._actor(params),
            params['member_id'],
            params['principal'],
            params['monthly_interest_rate_percent'],
            params['term_months'],
        )

    def _handle_list_loans(self, params: Dict[str, Any]) -> Any:
        return self.service.list_loans(
            self._actor(params, required=False),
            **_optional(params, 'member_id', 'status'),
        )

    def _handle_available_profit(self, params: Dict[str, Any]) -> Any:
        # No parameters required
        return self.service.available_profit()

    def _handle_preview_distribution(self, params: Dict[str, Any]) -> Any:
        return self.service.preview_distribution(
            **_optional(params, 'manual_profit', 'member_share_percent')
        )

    def _handle_execute_distribution(self, params: Dict[str, Any]) -> Any:
        return self.service.execute_distribution(
            self._actor(params),
            **_optional(params, 'manual_profit', 'member_share_percent'),
        )

    def _handle_member_balances(self, params: Dict[str, Any]) -> Any:
        return self.service.member_balances(self._actor(params, required=False))

    def _handle_ledger_summary(self, params: Dict[str, Any]) -> Any:
        return self.service.ledger_summary(self._actor(params, required=False))

    def _handle_list_activity(self, params: Dict[str, Any]) -> Any:
        # No parameters required
        return self.service.list_activity()

    def _handle_store_status(self, params: Dict[str, Any]) -> Any:
        # No parameters required
        return self.service.store_status()

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
        description="LedgerService JSON-RPC 2.0 Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Example usage:
  python -m coop_ledger.jsonrpc_server
  python -m coop_ledger.jsonrpc_server --debug --offline
  coop-ledger-rpc --config /etc/coop-ledger.yaml

Supported methods:
  - add_member, update_member, get_member, list_members
  - record_transaction, delete_transaction, list_transactions
  - loan_terms, disburse_loan, list_loans
  - available_profit, preview_distribution, execute_distribution
  - member_balances, ledger_summary, list_activity, store_status

Protocol: JSON-RPC 2.0 over stdin/stdout
See: https://www.jsonrpc.org/specification
        """
    )
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug logging to stderr')
    parser.add_argument('--config', default=None,
                        help='Operator config override (path, file:// or http(s):// URI)')
    parser.add_argument('--offline', action='store_true',
                        help='Use the local cache only')

    args = parser.parse_args()

    # stdout carries the protocol, so logs go to stderr
    level = "DEBUG" if args.debug else ConfigLoader(args.config).get_log_level()
    logging.basicConfig(
        stream=sys.stderr,
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    server = LedgerJsonRpcServer(debug=args.debug, config_uri=args.config,
                                 offline=args.offline)

    # Handle signals for graceful shutdown
    def signal_handler(sig, frame):
        server.stop_server()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    # Start server (blocks until stopped)
    server.start_server()


if __name__ == "__main__":
    main()
