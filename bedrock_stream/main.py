"""Stream a Bedrock completion for a prompt to stdout."""

import asyncio
import signal
import sys

from .config import Configuration
from .llm import BedrockError, BedrockStreamingClient, CancellationError, CancellationToken
from .logging_utils import configure_logging, logger


def read_prompt(argv: list[str]) -> str:
    """Prompt from the command line, or stdin when no arguments are given."""
    if argv:
        return " ".join(argv)
    return sys.stdin.read().strip()


async def run(prompt: str, config: Configuration) -> int:
    """Stream one completion; returns the process exit status."""
    cancellation = CancellationToken()

    def signal_handler() -> None:
        """Handle shutdown signals gracefully."""
        logger.info("Received shutdown signal, cancelling stream...")
        cancellation.cancel("interrupted")

    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, signal_handler)

    try:
        async with BedrockStreamingClient.from_config(config) as client:
            async with client.stream(prompt, cancellation=cancellation) as stream:
                async for chunk in stream:
                    sys.stdout.write(chunk.text)
                    sys.stdout.flush()
        sys.stdout.write("\n")
        return 0
    except CancellationError:
        sys.stdout.write("\n")
        return 130
    except BedrockError as e:
        logger.error("Completion failed", error_type=type(e).__name__, error_message=str(e))
        return 1


def main() -> None:
    """Main entry point."""
    config = Configuration()
    configure_logging(config.get_logging_config().get("level", "INFO"))

    prompt = read_prompt(sys.argv[1:])
    if not prompt:
        sys.stderr.write("usage: bedrock-stream PROMPT (or pipe the prompt on stdin)\n")
        sys.exit(2)

    sys.exit(asyncio.run(run(prompt, config)))


if __name__ == "__main__":
    main()
