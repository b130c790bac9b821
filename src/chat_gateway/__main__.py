import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from chat_gateway.app_config import load_json_config, parse_app_config, resolve_runtime_env
from chat_gateway.bootstrap import bootstrap_runtime
from chat_gateway.console import ConsoleChat


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()

    if not env.openai_api_key:
        logger.error("OPENAI_API_KEY environment variable is required.")
        sys.exit(1)

    runtime = bootstrap_runtime(app, env)

    console = ConsoleChat(
        orchestrator=runtime.orchestrator,
        catalog=runtime.catalog,
        ledger=runtime.ledger,
        policies=runtime.policies,
        account_id=app.account_id,
        role=app.role,
        model=app.default_model,
        mode=app.default_mode,
        raw_sse="--sse" in sys.argv[1:],
    )

    print("chat-gateway (type 'exit' to quit, '/help' for commands)")
    print(f"Account: {app.account_id} (role: {app.role})")
    print(f"Model: {console.model} | Mode: {console.mode}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    try:
        while True:
            try:
                user_input = input("you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()

            if trimmed in ("exit", "quit"):
                break

            if not trimmed:
                continue

            try:
                await console.run(trimmed)
                print()
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        runtime.store.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
