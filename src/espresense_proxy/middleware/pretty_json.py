"""
Pretty-print JSON responses on request.

    GET /releases/latest.json?pretty

returns the manifest indented by two spaces, which is handy when reading
it in a browser tab. Without the flag the compact form is sent.
"""

import json

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


class PrettyJSONMiddleware(Middleware):

    def __init__(self, query_param: str = "pretty", indent: int = 2):
        self.query_param = query_param
        self.indent = indent

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        response = next(request)

        if not request.has_query(self.query_param) or not response.is_json:
            return response

        try:
            data = json.loads(response.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return response  # not ours to fix; send as is

        response.body = json.dumps(data, indent=self.indent, ensure_ascii=False).encode("utf-8")
        response.headers.pop("Content-Length", None)
        return response
