from contextlib import asynccontextmanager
from typing import Sequence

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from app.proxy.fetcher import build_client
from app.proxy.route import router
from app.vars import OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME


@asynccontextmanager
async def lifespan(app: FastAPI):
    # One connection pool for all outbound fetches
    app.state.http_client = build_client()
    try:
        yield
    finally:
        await app.state.http_client.aclose()
        app.state.http_client = None


app = FastAPI(lifespan=lifespan)
instrumentator = Instrumentator()

instrumentator.instrument(app).expose(app)


BODY_EVENT_TYPE = "http.response.body"


def is_body_span(span: ReadableSpan) -> bool:
    attributes = span.attributes or {}
    return attributes.get("asgi.event.type") == BODY_EVENT_TYPE


class FilteringSpanExporter(SpanExporter):
    """
    Drops the per-chunk ASGI send spans before export.
    A proxied page is sent as one body event per chunk, which would bury the
    fetch span under send spans.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        kept = [span for span in spans if not is_body_span(span)]
        if not kept:
            return SpanExportResult.SUCCESS
        return self.exporter.export(kept)

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def add_otlp_export(provider, endpoint: str, headers: str = ""):
    otlp_exporter = OTLPSpanExporter(endpoint=endpoint, headers=headers or None)
    processor = BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
    provider.add_span_processor(processor)
    return processor


trace.set_tracer_provider(
    TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
)
tracer_provider = trace.get_tracer_provider()
if OTLP_ENDPOINT:
    add_otlp_export(tracer_provider, OTLP_ENDPOINT, OTLP_HEADERS)

FastAPIInstrumentor.instrument_app(app)

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})

app.include_router(router)
