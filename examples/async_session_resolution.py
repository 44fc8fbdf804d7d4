import asyncio
import contextlib
import os
import sys
from dataclasses import dataclass

# Add src to path for running directly
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from anyio import create_task_group

from keycloak_identity import Authenticator, KeycloakConfig, MemorySessionStore
from keycloak_identity.testing import sign_in
from keycloak_identity.utils.logger import configure_logging


@dataclass
class User:
    email: str


class InMemoryUsers:
    def __init__(self, *emails: str) -> None:
        self.users = {email: User(email) for email in emails}

    async def find_by_identity(self, value: str) -> User | None:
        return self.users.get(value)


async def main() -> None:
    """
    Demonstrates resolving the current user of several sessions concurrently.
    Includes:
    - TaskGroup for concurrency
    - Unsigned test tokens (signature verification disabled for the example only)
    - OpenTelemetry instrumentation (auto-applied to the internal client)
    """
    configure_logging(level="DEBUG")
    print(">>> Starting session resolution example")

    config = KeycloakConfig(
        keycloak_url="https://sso.example.com",
        realm="example",
        app_host="http://localhost:8000",
        oauth_client_id="web",
        oauth_client_secret="change-me",
        unsafe_skip_signature_verification=True,
    )

    signed_in = MemorySessionStore()
    sign_in(signed_in, "alice@example.com", config)
    anonymous = MemorySessionStore()

    async with Authenticator(config, InMemoryUsers("alice@example.com")) as auth:

        async def resolve(name: str, session: MemorySessionStore) -> None:
            # Each task gets its own context, like one request per task in a web server
            user = await auth.current_user(session)
            print(f"    - {name}: {user}")

        async with create_task_group() as tg:
            tg.start_soon(resolve, "signed-in session", signed_in)
            tg.start_soon(resolve, "anonymous session", anonymous)

    print(">>> Done.")


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())
