"""
REST API客户端基类

为控制面（Remnawave）与 Telegram Bot API 等出站调用提供：
- 超时控制（httpx.Timeout）
- 有限重试（tenacity，仅超时/网络错误/429/5xx）
- 错误分类
- 结构化请求日志（不记录认证头）
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.logging_config import get_logger


logger = get_logger(__name__)


class HTTPMethod(Enum):
    GET = "GET"
    POST = "POST"
    PATCH = "PATCH"
    DELETE = "DELETE"


@dataclass
class APIResponse:
    """API响应封装"""
    status_code: int
    data: Any
    elapsed_ms: float
    request_id: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400


class APIError(Exception):
    """API错误基类"""
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[APIResponse] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)

    def __str__(self):
        if self.status_code:
            return f"{self.message} | Status: {self.status_code}"
        return self.message


class AuthenticationError(APIError):
    """认证错误"""


class NotFoundError(APIError):
    """资源未找到错误"""


class RateLimitError(APIError):
    """速率限制错误"""


class ServerError(APIError):
    """服务器错误"""


class RetryableAPIError(APIError):
    """可重试的API错误（429/5xx），重试耗尽后转换为具体错误类型"""

    def __init__(self, message: str, status_code: int, response: APIResponse, retry_after: Optional[float] = None):
        super().__init__(message=message, status_code=status_code, response=response)
        self.retry_after = retry_after


RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

_ERROR_BY_STATUS = {
    401: AuthenticationError,
    403: AuthenticationError,
    404: NotFoundError,
    429: RateLimitError,
    500: ServerError,
    502: ServerError,
    503: ServerError,
    504: ServerError,
}

# Cap for provider-supplied Retry-After; a webhook request must not stall on it
_MAX_RETRY_AFTER_SECONDS = 5.0


class BaseAPIClient:
    """
    REST API客户端基类

    子类设置 base_url 与认证头，并基于 get/post/patch 实现具体调用。
    """

    service_name: str = "api"

    def __init__(
        self,
        base_url: str,
        *,
        timeout: Optional[httpx.Timeout] = None,
        max_retries: int = 2,
        retry_delay: float = 0.2,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: API基础URL
            timeout: httpx超时配置
            max_retries: 最大重试次数（不含首次请求）
            retry_delay: 指数退避基数（秒）
            headers: 默认请求头
            transport: 自定义传输层（测试中注入 httpx.MockTransport）
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or httpx.Timeout(15.0)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.default_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if headers:
            self.default_headers.update(headers)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def set_auth_token(self, token: str, header_name: str = "Authorization", prefix: str = "Bearer"):
        self.default_headers[header_name] = f"{prefix} {token}" if prefix else token

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _build_url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    @staticmethod
    def _error_message(status_code: int, data: Any) -> str:
        if isinstance(data, dict):
            for key in ("message", "error", "description", "detail"):
                value = data.get(key)
                if isinstance(value, str) and value:
                    return value
        return f"API request failed with status {status_code}"

    def _raise_for_response(self, response: APIResponse):
        error_class = _ERROR_BY_STATUS.get(response.status_code, APIError)
        raise error_class(
            message=self._error_message(response.status_code, response.data),
            status_code=response.status_code,
            response=response,
        )

    async def _send_once(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]],
        json_data: Optional[Dict[str, Any]],
    ) -> APIResponse:
        started = time.perf_counter()
        response = await self.client.request(
            method=method,
            url=url,
            params=params,
            json=json_data,
            headers=self.default_headers,
        )
        elapsed = (time.perf_counter() - started) * 1000

        data: Any = None
        if "application/json" in response.headers.get("content-type", ""):
            try:
                data = response.json()
            except ValueError:
                data = None

        api_response = APIResponse(
            status_code=response.status_code,
            data=data,
            elapsed_ms=elapsed,
            request_id=response.headers.get("x-request-id"),
        )
        logger.debug(
            "api_response",
            service=self.service_name,
            method=method,
            url=url,
            status_code=api_response.status_code,
            elapsed_ms=round(elapsed, 2),
        )

        if api_response.is_error and api_response.status_code in RETRY_STATUS_CODES:
            retry_after: Optional[float] = None
            if api_response.status_code == 429:
                try:
                    retry_after = float(response.headers.get("retry-after") or 0) or None
                except (TypeError, ValueError):
                    retry_after = None
                if retry_after:
                    await asyncio.sleep(min(retry_after, _MAX_RETRY_AFTER_SECONDS))
            raise RetryableAPIError(
                message=f"Transient API error with status {api_response.status_code}",
                status_code=api_response.status_code,
                response=api_response,
                retry_after=retry_after,
            )

        if api_response.is_error:
            self._raise_for_response(api_response)
        return api_response

    async def _request(
        self,
        method: Union[str, HTTPMethod],
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> APIResponse:
        """
        发送HTTP请求

        Raises:
            APIError: 重试耗尽或不可重试的错误
        """
        if isinstance(method, HTTPMethod):
            method = method.value
        url = self._build_url(endpoint)

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(
                multiplier=self.retry_delay,
                min=self.retry_delay,
                max=self.retry_delay * 8,
            ),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, RetryableAPIError)),
        )

        try:
            async for attempt in retrying:
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(
                            "api_request_retry",
                            service=self.service_name,
                            method=method,
                            url=url,
                            attempt=attempt.retry_state.attempt_number,
                        )
                    return await self._send_once(method, url, params, json_data)
        except httpx.TimeoutException as exc:
            raise APIError(f"Request timeout calling {self.service_name}") from exc
        except httpx.NetworkError as exc:
            raise APIError(f"Network error calling {self.service_name}: {exc}") from exc
        except RetryableAPIError as exc:
            self._raise_for_response(exc.response)
        raise APIError(f"Request to {self.service_name} was not attempted")

    async def get(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request(HTTPMethod.GET, endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request(HTTPMethod.POST, endpoint, **kwargs)

    async def patch(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request(HTTPMethod.PATCH, endpoint, **kwargs)
