from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from nlsql_chat.api_client import ApiClient
from nlsql_chat.app_config import AppConfig, RuntimeEnv
from nlsql_chat.chat_client import ChatClient
from nlsql_chat.chat_config import ChatConfig
from nlsql_chat.logging_config import setup_logging


@dataclass
class AppRuntime:
    chat: ChatClient
    api_client: ApiClient
    user: dict | None
    log_descriptions: list[str]


async def authenticate(api_client: ApiClient, env: RuntimeEnv) -> dict | None:
    if env.api_token:
        api_client.set_token(env.api_token)
    elif env.username and env.password:
        await api_client.login(env.username, env.password)
    else:
        logger.warning("No NLSQL_API_TOKEN or NLSQL_USERNAME/NLSQL_PASSWORD set; calling the API anonymously")
        return None
    return await api_client.get_current_user()


async def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    api_client = ApiClient(app.api_base_url, timeout=app.request_timeout_seconds)
    user = await authenticate(api_client, env)
    if user is not None:
        logger.info(f"Signed in as {user.get('email', user.get('id', '?'))}")

    chat = ChatClient(
        ChatConfig(
            backend=api_client,
            welcome_text=app.welcome_message,
        )
    )

    if app.workspace_id and app.auto_connect:
        await chat.connect(app.workspace_id, app.session_id)

    return AppRuntime(
        chat=chat,
        api_client=api_client,
        user=user,
        log_descriptions=log_descriptions,
    )
