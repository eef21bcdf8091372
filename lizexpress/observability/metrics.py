# lizexpress/observability/metrics.py
from fastapi import APIRouter
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

router = APIRouter(tags=["observability"])

evidence_upload_counter = Counter(
    "lizexpress_evidence_upload_total",
    "Aantal evidence uploads",
    ["evidence_type", "result"],  # success|error|timeout
)

submission_counter = Counter(
    "lizexpress_verification_submission_total",
    "Aantal verificatie-inzendingen",
    ["result"],  # success|error
)

validation_counter = Counter(
    "lizexpress_evidence_rejected_total",
    "Afgewezen bestanden (MIME/grootte)",
    ["reason"],
)

upload_size_hist = Histogram(
    "lizexpress_evidence_size_bytes",
    "Bestandsgroottes van evidence uploads",
    buckets=(5e4, 1e5, 3e5, 1e6, 2e6, 3e6, 5e6),
)

upload_latency_hist = Histogram(
    "lizexpress_evidence_upload_seconds",
    "Duur van evidence uploads",
    ["evidence_type"],
    buckets=(0.1, 0.5, 1, 2, 5, 10, 20, 30),
)


@router.get("/metrics", include_in_schema=True)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
