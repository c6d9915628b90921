import asyncio
import json
import unittest

import httpx

from miniopencode.catalog_client import CatalogClient
from miniopencode.errors import CatalogError
from miniopencode.models import ModelRef, SessionSummary


class _Recorder:
    """MockTransport handler that answers from a list of canned responses."""

    def __init__(self, *responses) -> None:
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _client(recorder: _Recorder) -> CatalogClient:
    return CatalogClient("http://srv:4096/", transport=httpx.MockTransport(recorder))


async def _call(recorder: _Recorder, method: str, *args, **kwargs):
    async with _client(recorder) as client:
        return await getattr(client, method)(*args, **kwargs)


class CatalogClientTests(unittest.TestCase):
    def test_list_sessions_parses_ids_and_titles(self) -> None:
        rec = _Recorder(httpx.Response(200, json=[{"id": "a", "title": "one"}, {"id": "b"}, {"title": "no id"}]))
        sessions = asyncio.run(_call(rec, "list_sessions"))
        self.assertEqual([SessionSummary(id="a", title="one"), SessionSummary(id="b", title="")], sessions)
        self.assertEqual("/session", rec.requests[0].url.path)

    def test_list_sessions_error_status_raises(self) -> None:
        rec = _Recorder(httpx.Response(500, text="broken"))
        with self.assertRaises(CatalogError) as ctx:
            asyncio.run(_call(rec, "list_sessions"))
        self.assertEqual(500, ctx.exception.status_code)
        self.assertEqual("broken", ctx.exception.body)

    def test_list_sessions_rejects_non_array(self) -> None:
        rec = _Recorder(httpx.Response(200, json={"id": "a"}))
        with self.assertRaises(CatalogError):
            asyncio.run(_call(rec, "list_sessions"))

    def test_list_messages_reads_flat_and_wrapped_tokens(self) -> None:
        rec = _Recorder(
            httpx.Response(
                200,
                json=[
                    {"id": "m1", "tokens": {"input": 10, "output": 5, "reasoning": 1}},
                    {"info": {"id": "m2", "tokens": {"input": 3, "output": -4}}, "parts": []},
                    {"id": "m3"},
                ],
            )
        )
        messages = asyncio.run(_call(rec, "list_messages", "s1"))
        self.assertEqual(["m1", "m2", "m3"], [m.id for m in messages])
        self.assertEqual(16, messages[0].tokens.total)
        self.assertEqual(3, messages[1].tokens.total)
        self.assertIsNone(messages[2].tokens)
        self.assertEqual("/session/s1/message", rec.requests[0].url.path)

    def test_create_session_accepts_id_variants(self) -> None:
        rec = _Recorder(httpx.Response(201, json={"ID": "X1"}))
        self.assertEqual("X1", asyncio.run(_call(rec, "create_session", "today")))
        self.assertEqual({"title": "today"}, json.loads(rec.requests[0].content))

    def test_create_session_without_id_raises(self) -> None:
        rec = _Recorder(httpx.Response(200, json={"title": "x"}))
        with self.assertRaises(CatalogError):
            asyncio.run(_call(rec, "create_session", "x"))

    def test_send_prompt_body_with_model_and_agent(self) -> None:
        rec = _Recorder(httpx.Response(204))
        asyncio.run(
            _call(rec, "send_prompt", "s1", "hello", model=ModelRef("anthropic", "claude"), agent="build")
        )
        request = rec.requests[0]
        self.assertEqual("/session/s1/prompt_async", request.url.path)
        self.assertEqual(
            {
                "parts": [{"type": "text", "text": "hello"}],
                "model": {"providerID": "anthropic", "modelID": "claude"},
                "agent": "build",
            },
            json.loads(request.content),
        )

    def test_send_prompt_minimal_body(self) -> None:
        rec = _Recorder(httpx.Response(202))
        asyncio.run(_call(rec, "send_prompt", "s1", "hi"))
        self.assertEqual({"parts": [{"type": "text", "text": "hi"}]}, json.loads(rec.requests[0].content))

    def test_send_prompt_failure_raises_and_is_not_retried(self) -> None:
        rec = _Recorder(httpx.Response(400, text="bad model"))
        with self.assertRaises(CatalogError) as ctx:
            asyncio.run(_call(rec, "send_prompt", "s1", "hi"))
        self.assertEqual(400, ctx.exception.status_code)
        self.assertEqual(1, len(rec.requests))

    def test_list_sessions_retries_connect_errors(self) -> None:
        request = httpx.Request("GET", "http://srv:4096/session")
        rec = _Recorder(httpx.ConnectError("refused", request=request), httpx.Response(200, json=[]))
        self.assertEqual([], asyncio.run(_call(rec, "list_sessions")))
        self.assertEqual(2, len(rec.requests))

    def test_check_health(self) -> None:
        self.assertTrue(asyncio.run(_call(_Recorder(httpx.Response(200)), "check_health")))
        self.assertFalse(asyncio.run(_call(_Recorder(httpx.Response(503)), "check_health")))
        request = httpx.Request("GET", "http://srv:4096/global/health")
        self.assertFalse(asyncio.run(_call(_Recorder(httpx.ConnectError("x", request=request)), "check_health")))


if __name__ == "__main__":
    unittest.main()
