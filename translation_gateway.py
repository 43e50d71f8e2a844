#!/usr/bin/env python3
"""
securegate
Serves the secure translation pipeline over JSON-RPC on stdin/stdout
"""
import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Set, Tuple

from securegate.adapters import CommandGenerationProvider, FilesystemDocumentResolver
from securegate.approval_workflow import ApprovalWorkflow
from securegate.audit_logger import AuditLogger, JsonLinesAuditSink
from securegate.config import ConfigurationManager, GatewayConfig
from securegate.input_validator import InputValidator
from securegate.invoker import DocumentLoader, SecureTranslationInvoker
from securegate.jsonrpc_handler import JSONRPCHandler
from securegate.publication import PublicationGate
from securegate.rbac import RBAC, StaticRoleLookup
from securegate.review_queue import ReviewQueue
from securegate.security import ContentSanitizer, OutputValidator, SecretScanner
from securegate.session_manager import SessionManager
from securegate.size_guard import DocumentSizeGuard

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SESSION_CLEANUP_INTERVAL = 300
SHUTDOWN_GRACE_PERIOD = 10


def build_handler(config: GatewayConfig, audit: AuditLogger) -> Tuple[JSONRPCHandler, SessionManager]:
    """Wire the pipeline components from configuration"""
    scanner = SecretScanner()
    sanitizer = ContentSanitizer()
    validator = InputValidator(max_documents_per_request=config.limits.max_documents)
    workflow = ApprovalWorkflow()
    review_queue = ReviewQueue(scanner=scanner)

    invoker = SecureTranslationInvoker(
        provider=CommandGenerationProvider(config.provider),
        audit=audit,
        validator=validator,
        size_guard=DocumentSizeGuard(config.limits),
        sanitizer=sanitizer,
        scanner=scanner,
        output_validator=OutputValidator(
            {"strict_mode": config.strict_output_validation}, scanner=scanner, sanitizer=sanitizer
        ),
        breaker_config=config.circuit_breaker,
        workflow=workflow,
        review_queue=review_queue,
        loader=DocumentLoader(validator, FilesystemDocumentResolver.from_config(config.resolver), audit),
    )

    rbac = RBAC(config.rbac, StaticRoleLookup(config.user_roles), audit)
    gate = PublicationGate(workflow, rbac, audit, scanner)
    sessions = SessionManager(config.sessions, audit=audit)

    handler = JSONRPCHandler(invoker, gate, workflow, review_queue, sessions, invoker.breakers)
    return handler, sessions


async def process_request(line: str, jsonrpc_handler: JSONRPCHandler) -> Optional[Dict[str, Any]]:
    """Process a single request line.

    Returns:
        The response to write, or None for notifications and ignored input
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        # For parse errors, check if it looks like a JSON-RPC request
        if line.startswith('{') and any(key in line for key in ('jsonrpc', 'method')):
            return {
                "jsonrpc": "2.0",
                "id": None,
                "error": {
                    "code": -32700,
                    "message": "Parse error"
                }
            }
        logger.warning("Ignoring non-JSON input")
        return None

    if not isinstance(data, dict):
        return {
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": -32600, "message": "Invalid Request"}
        }

    return await jsonrpc_handler.handle_request(data)


async def respond(line: str, jsonrpc_handler: JSONRPCHandler, write_lock: asyncio.Lock) -> None:
    """Process one request line and write its response as a single line"""
    try:
        response = await process_request(line, jsonrpc_handler)
    except Exception as e:
        logger.error(f"Unhandled error processing request: {type(e).__name__}", exc_info=True)
        return

    if response is not None:
        async with write_lock:
            print(json.dumps(response, default=str))
            sys.stdout.flush()


async def read_requests(
    stdin_reader: asyncio.StreamReader,
    jsonrpc_handler: JSONRPCHandler,
    shutdown_event: asyncio.Event,
    in_flight: Set[asyncio.Task],
) -> None:
    """
    Read request lines until EOF or shutdown.

    Each request runs as its own task so a slow translation never delays
    the requests behind it. Running tasks are tracked in in_flight.
    """
    write_lock = asyncio.Lock()

    while not shutdown_event.is_set():
        try:
            # Use asyncio timeout to make stdin reading cancellable
            line_bytes = await asyncio.wait_for(stdin_reader.readline(), timeout=1.0)

            if not line_bytes:
                logger.info("Stdin closed - client disconnected, initiating shutdown")
                shutdown_event.set()
                break

            line = line_bytes.decode().strip()
            if not line:
                continue

            task = asyncio.create_task(respond(line, jsonrpc_handler, write_lock))
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)

        except asyncio.TimeoutError:
            continue
        except Exception as e:
            if shutdown_event.is_set():
                break
            logger.error(f"Error reading stdin: {e}")
            break


async def main() -> None:
    """Main entry point for stdio mode"""
    logger.info("securegate starting in stdio mode")

    parser = argparse.ArgumentParser(description="securegate")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.json"),
        help="Configuration file path (default: config.json)"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    args = parser.parse_args()

    # Set logging level
    logging.getLogger().setLevel(getattr(logging, args.log_level))

    config = ConfigurationManager(args.config).load()
    audit = AuditLogger([JsonLinesAuditSink(config.audit.log_file)])
    jsonrpc_handler, sessions = build_handler(config, audit)

    audit.system_startup({"config": str(args.config)})

    shutdown_event = asyncio.Event()

    def signal_handler(signum: int, _) -> None:
        logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    async def cleanup_sessions() -> None:
        while not shutdown_event.is_set():
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=SESSION_CLEANUP_INTERVAL)
            except asyncio.TimeoutError:
                sessions.cleanup()

    try:
        loop = asyncio.get_running_loop()

        stdin_reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(stdin_reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin)

        in_flight: Set[asyncio.Task] = set()
        stdin_task = asyncio.create_task(read_requests(stdin_reader, jsonrpc_handler, shutdown_event, in_flight))
        cleanup_task = asyncio.create_task(cleanup_sessions())
        shutdown_task = asyncio.create_task(shutdown_event.wait())
        _, pending = await asyncio.wait(
            [stdin_task, shutdown_task],
            return_when=asyncio.FIRST_COMPLETED
        )

        logger.info("Main loop exiting, cancelling remaining tasks...")
        for task in [*pending, cleanup_task]:
            task.cancel()
            try:
                await asyncio.wait_for(task, timeout=2.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass

        if in_flight:
            logger.info(f"Waiting for {len(in_flight)} in-flight requests")
            _, unfinished = await asyncio.wait(list(in_flight), timeout=SHUTDOWN_GRACE_PERIOD)
            for task in unfinished:
                task.cancel()
            await asyncio.gather(*unfinished, return_exceptions=True)

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    finally:
        audit.system_shutdown()
        logger.info("securegate shutdown complete")


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
