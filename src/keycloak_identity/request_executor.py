# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

"""
RequestExecutor component for running declarative HTTP requests against Keycloak.
"""

from typing import TYPE_CHECKING, Any

import httpx

from keycloak_identity.models import RequestDescriptor
from keycloak_identity.utils.logger import logger, truncate

if TYPE_CHECKING:
    from loguru import Logger


class RequestExecutor:
    """
    Sends the request described by a RequestDescriptor and checks its status.

    There is no retry logic here; retrying is a caller policy.

    Attributes:
        client (httpx.AsyncClient): The async HTTP client used for all requests.
    """

    def __init__(self, client: httpx.AsyncClient, log: "Logger | None" = None) -> None:
        """
        Initialize the RequestExecutor.

        Args:
            client: The async HTTP client to use for requests.
            log: Logger to report failures to. Defaults to the package logger.
        """
        self.client = client
        self.log = log or logger.bind(component="request_executor")

    async def execute(self, descriptor: RequestDescriptor) -> httpx.Response:
        """
        Executes one request.

        Args:
            descriptor: What to send and which status codes count as success.

        Returns:
            httpx.Response: The response, when its status is accepted.

        Raises:
            KeycloakError: `descriptor.error_kind`, when the status is not accepted or the
                request could not be sent (connection refused, timeout, etc.).
        """
        kwargs: dict[str, Any] = {"headers": descriptor.headers}
        if descriptor.content is not None:
            kwargs["content"] = descriptor.content
        if descriptor.data is not None:
            kwargs["data"] = descriptor.data
        if descriptor.json_body is not None:
            kwargs["json"] = descriptor.json_body
        if descriptor.params is not None:
            kwargs["params"] = descriptor.params
        if descriptor.timeout is not None:
            kwargs["timeout"] = descriptor.timeout

        try:
            response = await self.client.request(descriptor.method.value, descriptor.url, **kwargs)
        except httpx.HTTPError as e:
            self.log.error(f"{descriptor.error_message} (transport error): {e}")
            raise descriptor.error_kind(f"{descriptor.error_message}: {e}") from e

        self._verify_response(response, descriptor)
        return response

    def _verify_response(self, response: httpx.Response, descriptor: RequestDescriptor) -> None:
        """
        Raises `descriptor.error_kind` unless the response status is accepted.
        """
        code = response.status_code
        if descriptor.accepts(code):
            return

        body = response.text
        self.log.error(f"{descriptor.error_message}: {code} => {truncate(body)}")
        raise descriptor.error_kind(
            f"{descriptor.error_message}: {code} => {body}",
            status_code=code,
            body=body,
        )
