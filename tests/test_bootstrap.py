import asyncio
import unittest
from unittest.mock import patch

from miniopencode.app_config import parse_app_config
from miniopencode.bootstrap import bootstrap_runtime, event_feed_for
from miniopencode.errors import CatalogError
from miniopencode.models import SessionSummary


class _FakeCatalog:
    instances: list["_FakeCatalog"] = []

    def __init__(self, base_url: str, *, timeout: float = 30.0) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.created: list[str] = []
        self.closed = False
        self.fail = False
        _FakeCatalog.instances.append(self)

    async def list_sessions(self):
        if self.fail:
            raise CatalogError("down")
        return [SessionSummary(id="ses_1", title="miniopencode")]

    async def list_messages(self, session_id):
        return []

    async def create_session(self, title):
        self.created.append(title)
        return "ses_created"

    async def send_prompt(self, session_id, text, *, model=None, agent=None):
        return None

    async def aclose(self) -> None:
        self.closed = True


class _FailingCatalog(_FakeCatalog):
    def __init__(self, base_url: str, *, timeout: float = 30.0) -> None:
        super().__init__(base_url, timeout=timeout)
        self.fail = True


class BootstrapTests(unittest.TestCase):
    def setUp(self) -> None:
        _FakeCatalog.instances.clear()

    def test_wires_runtime_for_fallback_session(self) -> None:
        app = parse_app_config({"Port": 5000, "PacingIntervalMs": 40, "ShowTools": False})

        async def scenario():
            with patch("miniopencode.bootstrap.CatalogClient", _FakeCatalog), patch(
                "miniopencode.bootstrap.setup_logging", return_value=["file (x.log, INFO)"]
            ):
                runtime = await bootstrap_runtime(app)
            await runtime.close()
            return runtime

        runtime = asyncio.run(scenario())
        catalog = _FakeCatalog.instances[0]
        self.assertEqual("http://127.0.0.1:5000", catalog.base_url)
        # "miniopencode" is a title here, not an id, so a session is created for it.
        self.assertEqual(["miniopencode"], catalog.created)
        self.assertEqual("ses_created", runtime.session_id)
        self.assertEqual("ses_created", runtime.controller.session_id)
        self.assertEqual(0.04, runtime.controller.options.pacing_interval_seconds)
        self.assertFalse(runtime.controller.options.show_tools)
        self.assertEqual(["file (x.log, INFO)"], runtime.log_descriptions)
        self.assertTrue(catalog.closed)

    def test_resolution_failure_closes_client(self) -> None:
        app = parse_app_config({"DefaultSession": "daily"})

        async def scenario() -> None:
            with patch("miniopencode.bootstrap.CatalogClient", _FailingCatalog), patch(
                "miniopencode.bootstrap.setup_logging", return_value=[]
            ):
                await bootstrap_runtime(app)

        with self.assertRaises(CatalogError):
            asyncio.run(scenario())
        self.assertTrue(_FakeCatalog.instances[0].closed)

    def test_event_feed_url(self) -> None:
        app = parse_app_config({"BaseUrl": "http://agent:1234/"})
        self.assertEqual("http://agent:1234/event", event_feed_for(app).url)


if __name__ == "__main__":
    unittest.main()
