import asyncio

from dotenv import load_dotenv
from loguru import logger

from agent_chat.app_config import load_json_config, parse_app_config, resolve_runtime_env
from agent_chat.bootstrap import bootstrap_runtime
from agent_chat.credentials import CredentialResolver
from agent_chat.errors import CredentialDecryptionError
from agent_chat.shell import ChatShell


def _api_key_status(credentials: CredentialResolver, user_id: str) -> str:
    try:
        key = credentials.describe(user_id)
    except CredentialDecryptionError as ex:
        logger.warning(f"Stored API key is unreadable: {ex}")
        return "stored key is unreadable (set OPENROUTER_API_KEY to replace it)"
    return key.masked_key if key else "not configured (set OPENROUTER_API_KEY)"


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()
    runtime = bootstrap_runtime(app, env)

    try:
        print("agent-chat (type 'exit' to quit, '/help' for commands)")
        print(f"Agent: {runtime.agent.name} ({runtime.agent.model})")
        print(f"API key: {_api_key_status(runtime.credentials, runtime.user_id)}")
        if runtime.log_descriptions:
            print(f"Logging: {', '.join(runtime.log_descriptions)}")
        print()

        shell = ChatShell(runtime)
        while not shell.closed:
            try:
                user_input = await asyncio.to_thread(input, "you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()
            if trimmed in ("exit", "quit"):
                break
            if not trimmed:
                continue

            try:
                await shell.run(trimmed)
                print()
            except Exception as ex:
                logger.exception(f"Unhandled error: {ex}")
    finally:
        await runtime.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
