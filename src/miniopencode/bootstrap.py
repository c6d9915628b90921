from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from miniopencode.app_config import AppConfig
from miniopencode.catalog_client import CatalogClient
from miniopencode.console_sink import ConsoleSink
from miniopencode.controller import ChatController, PromptDefaults, ViewOptions
from miniopencode.logging_config import setup_logging
from miniopencode.session_resolver import DailyLimits, SessionResolver
from miniopencode.stream import EventFeed, Streamer

FALLBACK_SESSION = "miniopencode"


@dataclass
class AppRuntime:
    catalog: CatalogClient
    streamer: Streamer
    controller: ChatController
    sink: ConsoleSink
    session_id: str
    log_descriptions: list[str]

    async def close(self) -> None:
        await self.streamer.stop()
        self.sink.close()
        await self.catalog.aclose()


def build_resolver(app: AppConfig, catalog: CatalogClient) -> SessionResolver:
    return SessionResolver(
        catalog=catalog,
        title_format=app.daily_title_format,
        limits=DailyLimits(max_tokens=app.daily_max_tokens, max_messages=app.daily_max_messages),
    )


def event_feed_for(app: AppConfig) -> EventFeed:
    return EventFeed(f"{app.base_url}/event")


async def bootstrap_runtime(app: AppConfig) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    catalog = CatalogClient(app.base_url, timeout=app.request_timeout_seconds)
    try:
        session_id = await build_resolver(app, catalog).resolve(app.default_session or FALLBACK_SESSION)
    except BaseException:
        await catalog.aclose()
        raise
    logger.info(f"bootstrap: session={session_id} base_url={app.base_url}")

    streamer = Streamer(event_feed_for(app), session_id=session_id)
    sink = ConsoleSink()
    controller = ChatController(
        stream=streamer,
        sender=catalog,
        session_id=session_id,
        sink=sink,
        options=ViewOptions(
            show_thinking=app.show_thinking,
            show_tools=app.show_tools,
            pacing_interval_seconds=max(1, app.pacing_interval_ms) / 1000,
            pacing_chunk_size=app.pacing_chunk_size,
        ),
        prompt_defaults=PromptDefaults(
            agent=app.agent,
            provider_id=app.provider_id,
            model_id=app.model_id,
        ),
    )

    return AppRuntime(
        catalog=catalog,
        streamer=streamer,
        controller=controller,
        sink=sink,
        session_id=session_id,
        log_descriptions=log_descriptions,
    )
