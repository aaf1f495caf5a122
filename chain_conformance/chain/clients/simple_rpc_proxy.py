import logging
from typing import Any, Optional

from requests import Session
from web3 import HTTPProvider
from web3.types import RPCEndpoint

from ..errors import ChainConformanceError

rpc_logger = logging.getLogger("ChainRPC")


class ReceivedErrorResponseError(ChainConformanceError):
    def __init__(self, error: dict):
        self.response = error
        self.code = error.get("code")
        self.message = error.get("message")
        self.data = error.get("data")
        super().__init__(str(self))

    def __str__(self):
        return f"JSONRPCError(code={self.code}, message={self.message}, data={self.data})"


class SimpleRpcProxy:
    """JSON-RPC proxy dispatching attribute access to remote methods.

    `proxy.eth_blockNumber()` sends `eth_blockNumber` with no params and returns
    the `result` member, raising ReceivedErrorResponseError on an error response.
    `post()` sends a caller built envelope untouched and returns the raw response.
    """

    def __init__(self, url, timeout, session: Optional[Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session if session is not None else Session()
        self.provider = HTTPProvider(
            url,
            request_kwargs={"timeout": timeout},
            session=self.session,
            exception_retry_configuration=None,
        )

    def __getattr__(self, name):
        if name.startswith("__"):
            raise AttributeError(name)
        return RpcCaller(self.provider, self.url, name)

    def post(self, payload: Any, timeout=None) -> Any:
        rpc_logger.debug("-> %s %s", self.url, payload)
        response = self.session.post(url=self.url, json=payload, timeout=timeout or self.timeout)
        body = response.json()
        rpc_logger.debug("<- %s %s", self.url, body)
        return body

    def close(self):
        self.session.close()


class RpcCaller:
    def __init__(self, provider: HTTPProvider, url: str, method: str):
        self.provider = provider
        self.url = url
        self.method = method

    def __call__(self, *args, **argsn) -> Any:
        if argsn:
            raise ValueError('json rpc 2 only supports array arguments')

        rpc_logger.debug("-> %s %s%s", self.url, self.method, list(args))
        response = self.provider.make_request(RPCEndpoint(self.method), list(args))
        error = response.get("error")
        if error:
            rpc_logger.debug("<- %s %s error %s", self.url, self.method, error)
            raise ReceivedErrorResponseError(error if isinstance(error, dict) else {"message": str(error)})
        rpc_logger.debug("<- %s %s %s", self.url, self.method, response.get("result"))
        return response.get("result")
