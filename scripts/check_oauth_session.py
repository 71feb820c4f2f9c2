"""Quick connectivity check against the Client Portal Web API using OAuth."""

from __future__ import annotations

import logging

from ibkr.client import IBKRClient
from ibkr.config import IBKRSettings, OAuthConfig


def main() -> None:
    settings = IBKRSettings()
    logging.basicConfig(level=settings.log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    client = IBKRClient(OAuthConfig.from_settings(settings))
    try:
        if not client.authenticate():
            raise RuntimeError(
                "Live session token failed signature validation")
        token = client.token()
        print(f"Authenticated against {client.environment.value}; "
              f"token expires at {token.expiration_time() if token else None}.")
        print(client.initialize_session())
        print(client.ping())
    finally:
        if client.authenticated():
            client.logout()
        client.close()


if __name__ == "__main__":
    main()
