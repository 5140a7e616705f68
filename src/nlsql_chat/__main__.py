import asyncio
import sys

import httpx
from dotenv import load_dotenv
from loguru import logger

from nlsql_chat.app_config import load_json_config, parse_app_config, resolve_runtime_env
from nlsql_chat.bootstrap import bootstrap_runtime
from nlsql_chat.errors import ChatError


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()

    try:
        runtime = await bootstrap_runtime(app, env)
    except (ChatError, httpx.HTTPError) as ex:
        logger.error(f"Startup failed: {ex}")
        print(f"Could not start: {ex}", file=sys.stderr)
        sys.exit(1)

    chat = runtime.chat
    print("nlsql-chat (type 'exit' to quit, '/help' for commands)")
    print(f"API: {app.api_base_url}")
    if runtime.user is not None:
        print(f"User: {runtime.user.get('email', '?')}")
    if chat.state.workspace_id:
        status = "connected" if chat.state.workspace_connected else "not connected"
        print(f"Workspace: {chat.state.workspace_id} ({status})")
    else:
        chat.render_transcript()
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
                await chat.run(trimmed)
                print()
            except Exception as ex:
                logger.exception(f"Unhandled error: {ex}")
    finally:
        await runtime.api_client.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
