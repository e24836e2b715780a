import argparse
import asyncio
import dataclasses
import logging
import signal
import sys
from typing import List, Optional

from inkwell.core.config import Config
from inkwell.core.exceptions import InkwellError
from inkwell.core.logging import setup_logging
from inkwell.core.metrics import metrics
from inkwell.core.types import BackendKind, MirostatMode, endpoint_for_backend
from inkwell.orchestrator.coordinator import CancellationCoordinator
from inkwell.orchestrator.events import Event
from inkwell.orchestrator.router import EventRouter

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="inkwell", description="Stream a completion from a local inference server.")
    parser.add_argument("prompt", nargs="?", help="Prompt text (read from stdin when omitted)")
    parser.add_argument("-f", "--prompt-file", help="Read the prompt from a file")
    parser.add_argument("-b", "--backend", choices=[k.value for k in BackendKind], help="Server family")
    parser.add_argument("-e", "--endpoint", help="Server URL (defaults follow the backend)")
    parser.add_argument("-n", "--max-tokens", type=int)
    parser.add_argument("-t", "--temperature", type=float)
    parser.add_argument("--seed", type=int)
    parser.add_argument("--mirostat", type=int, choices=[m.value for m in MirostatMode])
    parser.add_argument("--stop", action="append", help="Stop sequence (repeatable)")
    parser.add_argument("--log-level", help="Logging level (overrides INKWELL_LOG_LEVEL)")
    return parser

def read_prompt(args: argparse.Namespace) -> str:
    if args.prompt_file:
        with open(args.prompt_file, encoding="utf-8") as fh:
            return fh.read()
    if args.prompt is not None:
        return args.prompt
    return sys.stdin.read()

async def run(args: argparse.Namespace, config: Config) -> int:
    logger = logging.getLogger("main")

    backend = BackendKind(args.backend) if args.backend else config.backend.kind
    endpoint = args.endpoint or config.backend.endpoint
    if args.backend and not args.endpoint and backend != config.backend.kind:
        endpoint = endpoint_for_backend(endpoint, backend)

    sampling = config.sampling
    overrides = {
        "max_tokens": args.max_tokens,
        "temperature": args.temperature,
        "seed": args.seed,
        "mirostat": MirostatMode(args.mirostat) if args.mirostat is not None else None,
        "stop": tuple(args.stop) if args.stop else None,
    }
    sampling = dataclasses.replace(sampling, **{k: v for k, v in overrides.items() if v is not None})
    request = sampling.to_request(read_prompt(args))

    router = EventRouter()
    coordinator = CancellationCoordinator(router=router, timeout_seconds=config.backend.timeout_seconds)

    async def on_failed(context, error):
        print(f"\ninkwell: {error}", file=sys.stderr)

    router.register(Event.GENERATION_FAILED, on_failed)

    # Ctrl-C stops the generation (and the server side of it) instead of killing us
    loop = asyncio.get_running_loop()
    def stop_generation():
        logger.info("Stopping...")
        asyncio.create_task(coordinator.cancel())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_generation)

    context = coordinator.start(endpoint, backend, request)
    try:
        async for chunk in context:
            sys.stdout.write(chunk.content)
            sys.stdout.flush()
    except InkwellError:
        return 1
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

    sys.stdout.write("\n")
    summary = f"{context.state.name.lower()}, {context.token_count} tokens"
    first_chunk_ms = metrics.last_latency("first_chunk", {"backend": backend.value})
    if first_chunk_ms is not None:
        summary += f", first chunk after {first_chunk_ms:.0f}ms"
    print(f"[{summary}]", file=sys.stderr)
    return 0

def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = Config.load()
    setup_logging(level=(args.log_level or config.logging.level).upper(), fmt=config.logging.format)
    try:
        return asyncio.run(run(args, config))
    except InkwellError as e:
        print(f"inkwell: {e}", file=sys.stderr)
        return 1

if __name__ == "__main__":
    sys.exit(main())
