"""
Base API client with common functionality
"""

import asyncio
from abc import ABC
from typing import Optional, Dict, Any, Union, List
import httpx
from tasksync.utils.logger import logger
from tasksync.config.constants import (
    IDEMPOTENT_METHODS,
    MAX_RETRIES,
    RETRY_DELAY,
    RETRY_MAX_DELAY,
)

JSONResponse = Union[Dict[str, Any], List[Any]]


def _is_retryable(error: Exception) -> bool:
    """Transport errors, throttling and server errors are worth another attempt"""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status == 429 or status >= 500
    return isinstance(error, httpx.RequestError)


class BaseAPIClient(ABC):
    """Base class for API clients with common functionality"""
    
    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY,
    ):
        """
        Initialize base API client
        
        Args:
            base_url: Base URL for API
            timeout: Request timeout in seconds (httpx default when omitted)
            transport: Custom httpx transport
            max_retries: Attempts for idempotent requests
            retry_delay: Initial backoff delay in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        
        client_kwargs: Dict[str, Any] = {}
        if timeout is not None:
            client_kwargs["timeout"] = timeout
        if transport is not None:
            client_kwargs["transport"] = transport
        self.client = httpx.AsyncClient(**client_kwargs)
        self.logger = logger
    
    def _backoff(self, attempt: int) -> float:
        """Delay before the next attempt (exponential, capped)"""
        return min(self.retry_delay * (2 ** attempt), RETRY_MAX_DELAY)
    
    async def _request(
        self,
        method: str,
        endpoint: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Any] = None,
        retries: Optional[int] = None,
    ) -> JSONResponse:
        """
        Make HTTP request with retry logic
        
        Only idempotent methods are retried. POST is sent exactly once so a
        lost response can never create a duplicate.
        
        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE)
            endpoint: API endpoint
            headers: Request headers
            params: Query parameters
            json_data: JSON body
            retries: Number of attempts (defaults to max_retries for idempotent methods)
            
        Returns:
            Response data (dict or list)
            
        Raises:
            httpx.HTTPError: If request fails after all retries
            ValueError: If a non-empty response body is not valid JSON
        """
        method = method.upper()
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        
        if retries is None:
            retries = self.max_retries if method in IDEMPOTENT_METHODS else 1
        
        for attempt in range(retries):
            try:
                self.logger.debug(f"Request: {method} {url} (attempt {attempt + 1}/{retries})")
                
                request_kwargs = {
                    "method": method,
                    "url": url,
                    "headers": headers,
                    "params": params,
                }
                
                if json_data is not None:
                    request_kwargs["json"] = json_data
                    self.logger.debug(f"Request JSON data: {json_data}")
                
                response = await self.client.request(**request_kwargs)
                
                self.logger.debug(f"Response status: {response.status_code}")
                if response.status_code >= 400:
                    self.logger.warning(f"Error response body: {response.text[:1000]}")
                
                response.raise_for_status()
                
                # Handle empty response (204 No Content or empty body)
                if response.status_code == 204 or not response.text.strip():
                    return {}
                
                return response.json()
            
            except (httpx.HTTPStatusError, httpx.RequestError) as e:
                if attempt < retries - 1 and _is_retryable(e):
                    delay = self._backoff(attempt)
                    self.logger.warning(
                        f"Request {method} {url} failed ({e}), retrying in {delay} seconds..."
                    )
                    await asyncio.sleep(delay)
                    continue
                self.logger.error(f"Request {method} {url} failed after {attempt + 1} attempt(s): {e}")
                raise
        
        return {}
    
    async def get(
        self,
        endpoint: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> JSONResponse:
        """Make GET request"""
        return await self._request("GET", endpoint, headers=headers, params=params)
    
    async def post(
        self,
        endpoint: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Any] = None,
    ) -> JSONResponse:
        """Make POST request"""
        return await self._request("POST", endpoint, headers=headers, params=params, json_data=json_data)
    
    async def put(
        self,
        endpoint: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Any] = None,
    ) -> JSONResponse:
        """Make PUT request"""
        return await self._request("PUT", endpoint, headers=headers, params=params, json_data=json_data)
    
    async def patch(
        self,
        endpoint: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Any] = None,
    ) -> JSONResponse:
        """Make PATCH request"""
        return await self._request("PATCH", endpoint, headers=headers, params=params, json_data=json_data)
    
    async def delete(
        self,
        endpoint: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> JSONResponse:
        """Make DELETE request"""
        return await self._request("DELETE", endpoint, headers=headers, params=params)
    
    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()
    
    async def __aenter__(self):
        """Async context manager entry"""
        return self
    
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close()
