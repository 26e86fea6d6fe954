import pytest

from pdf_relay.core.exceptions import EngineError, PayloadTooLargeError, UpstreamError
from pdf_relay.core.models import (
    DestinationHints,
    Fidelity,
    JobStatus,
    SourceMetadata,
    StoreHints,
    TransformRequest,
)
from pdf_relay.pipeline.orchestrator import (
    PipelineOrchestrator,
    output_title,
    page_progress,
    resolve_store_hints,
)
from pdf_relay.pipeline.progress import ProgressObserver
from pdf_relay.workers.registry import JobRegistry
from pdf_relay.workers.scheduler import DeadlineScheduler

from tests.fakes import FakeDestination, FakeEngine, FakeSource, ManualClock, make_pdf


class RecordingRegistry(JobRegistry):
    """Keeps a snapshot of the job after every accepted update."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.history = []

    def update(self, job_id, **patch):
        applied = super().update(job_id, **patch)
        if applied:
            job = self.get(job_id)
            self.history.append((job.status, job.progress, job.message))
        return applied


class RecordingObserver(ProgressObserver):
    def __init__(self):
        self.events = []

    def on_stage(self, status, progress, message):
        self.events.append((status, progress, message))

    def on_progress(self, progress, message):
        self.events.append((None, progress, message))


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return DeadlineScheduler(clock=clock)


@pytest.fixture
def registry(scheduler, clock):
    return RecordingRegistry(scheduler, clock=clock)


@pytest.fixture
def source():
    store = FakeSource()
    store.add("068000000000001", "Quarterly Report.pdf", make_pdf(3), container_id="069000000000001")
    return store


def _orchestrator(source, registry=None, engine=None, destination=None, **kwargs):
    return PipelineOrchestrator(
        source,
        destination or FakeDestination(),
        engine or FakeEngine(),
        registry=registry,
        **kwargs,
    )


def test_page_progress_maps_onto_processing_band():
    assert page_progress(0, 4) == 30
    assert page_progress(1, 4) == 42
    assert page_progress(3, 4) == 67
    assert page_progress(4, 4) == 80
    assert page_progress(9, 4) == 80
    assert page_progress(1, 0) == 30


def test_output_title_strips_extension():
    assert output_title("Quarterly Report.pdf", "_compressed") == "Quarterly Report_compressed"
    assert output_title("Scan.PDF", "_small") == "Scan_small"
    assert output_title("notes", "_compressed") == "notes_compressed"


def test_explicit_parent_overrides_source_container():
    metadata = SourceMetadata(title="a", container_id="source-doc")
    explicit = resolve_store_hints(DestinationHints(parent_id="case-1", owner_id="user-9"), metadata)
    inherited = resolve_store_hints(DestinationHints(owner_id="user-9"), metadata)

    assert explicit == StoreHints(container_id="case-1", owner_id="user-9", inherited=False)
    assert inherited == StoreHints(container_id="source-doc", owner_id="user-9", inherited=True)


def test_async_job_walks_every_stage_in_order(source, registry, clock):
    destination = FakeDestination()
    orchestrator = _orchestrator(source, registry, destination=destination)
    job_id = registry.create(TransformRequest(source_ref="068000000000001"))

    orchestrator.run_job(job_id)

    statuses = []
    for status, _, _ in registry.history:
        if not statuses or statuses[-1] is not status:
            statuses.append(status)
    assert statuses == [
        JobStatus.DOWNLOADING,
        JobStatus.PROCESSING,
        JobStatus.UPLOADING,
        JobStatus.COMPLETED,
    ]

    progress = [p for _, p, _ in registry.history]
    assert progress[0] == 10
    assert progress == sorted(progress)
    assert progress[-1] == 100
    assert 30 in progress and 80 in progress and 85 in progress
    assert all(p < 100 for p in progress[:-1])

    job = registry.get(job_id)
    assert job.status is JobStatus.COMPLETED
    assert job.error is None
    assert job.result["title"] == "Quarterly Report_compressed"
    assert job.result["destinationHandle"] == "dest-1"
    assert job.result["reductionPercent"] > 0
    assert destination.stored[0]["hints"].inherited is True


def test_completed_job_polls_identically_until_swept(source, registry, scheduler, clock):
    orchestrator = _orchestrator(source, registry, completed_ttl=3600)
    job_id = registry.create(TransformRequest(source_ref="068000000000001"))
    orchestrator.run_job(job_id)

    first = registry.get(job_id).to_dict()
    clock.advance(1800)
    scheduler.run_due()
    assert registry.get(job_id).to_dict() == first

    clock.advance(1800)
    scheduler.run_due()
    assert registry.get(job_id) is None


def test_source_failure_marks_job_failed(registry, scheduler, clock):
    source = FakeSource(download_error=ConnectionError("connection reset by peer"))
    source.add("068000000000001", "Report.pdf", make_pdf(1))
    engine = FakeEngine()
    destination = FakeDestination()
    orchestrator = _orchestrator(source, registry, engine=engine, destination=destination, failed_ttl=600)
    job_id = registry.create(TransformRequest(source_ref="068000000000001"))

    orchestrator.run_job(job_id)

    job = registry.get(job_id)
    assert job.status is JobStatus.FAILED
    assert "connection reset by peer" in job.error
    assert job.result is None
    assert job.progress < 100
    assert engine.calls == 0
    assert destination.stored == []

    clock.advance(600)
    scheduler.run_due()
    assert registry.get(job_id) is None


def test_engine_error_message_is_preserved(source, registry):
    message = "PDF is password-protected or locked. Please remove the password and try again."
    orchestrator = _orchestrator(source, registry, engine=FakeEngine(error=EngineError(message)))
    job_id = registry.create(TransformRequest(source_ref="068000000000001"))

    orchestrator.run_job(job_id)

    assert registry.get(job_id).error == message


def test_unexpected_engine_exception_becomes_engine_error(source):
    orchestrator = _orchestrator(source, engine=FakeEngine(error=ValueError("unsupported image filter")))

    with pytest.raises(EngineError) as exc_info:
        orchestrator.run(TransformRequest(source_ref="068000000000001"))
    assert exc_info.value.message == "unsupported image filter"


def test_destination_failure_becomes_upstream_error(source):
    orchestrator = _orchestrator(source, destination=FakeDestination(error=RuntimeError("quota exceeded")))

    with pytest.raises(UpstreamError, match="quota exceeded"):
        orchestrator.run(TransformRequest(source_ref="068000000000001"))


def test_sync_run_reports_to_observer_only(source):
    observer = RecordingObserver()
    result = _orchestrator(source).run(TransformRequest(source_ref="068000000000001"), observer)

    stages = [status for status, _, _ in observer.events if status is not None]
    assert stages == [JobStatus.DOWNLOADING, JobStatus.PROCESSING, JobStatus.UPLOADING]
    assert [p for _, p, _ in observer.events] == sorted(p for _, p, _ in observer.events)
    assert result.original_size > result.transformed_size


def test_supplied_metadata_skips_metadata_fetch(source):
    metadata = SourceMetadata(title="Prefetched.pdf", size=1024, container_id="069000000000002")
    destination = FakeDestination()

    result = _orchestrator(source, destination=destination).run(
        TransformRequest(source_ref="068000000000001"), metadata=metadata
    )

    assert source.metadata_calls == 0
    assert source.download_calls == 1
    assert result.title == "Prefetched_compressed"
    assert destination.stored[0]["hints"].container_id == "069000000000002"


def test_explicit_parent_reaches_destination(source):
    destination = FakeDestination()
    request = TransformRequest(
        source_ref="068000000000001",
        fidelity=Fidelity(quality=0.3, scale=0.5),
        hints=DestinationHints(parent_id="a01000000000001", owner_id="005000000000001"),
    )

    _orchestrator(source, destination=destination).run(request)

    assert destination.stored[0]["hints"] == StoreHints(
        container_id="a01000000000001",
        owner_id="005000000000001",
        inherited=False,
    )


def test_oversized_sync_body_is_rejected_before_transform(source):
    engine = FakeEngine()
    destination = FakeDestination()
    orchestrator = _orchestrator(source, engine=engine, destination=destination)

    with pytest.raises(PayloadTooLargeError, match='"async": true'):
        orchestrator.run(TransformRequest(source_ref="068000000000001"), max_bytes=10)
    assert engine.calls == 0
    assert destination.stored == []


def test_original_kept_when_transform_grows_document(source):
    destination = FakeDestination()
    orchestrator = _orchestrator(source, engine=FakeEngine(ratio=1.5), destination=destination)

    result = orchestrator.run(TransformRequest(source_ref="068000000000001"))

    original = source.documents["068000000000001"][1]
    assert destination.stored[0]["data"] == original
    assert result.kept_original is True
    assert result.reduction_percent == 0.0
    assert result.transformed_size == result.original_size


def test_larger_output_stored_when_keep_original_disabled(source):
    destination = FakeDestination()
    orchestrator = _orchestrator(
        source,
        engine=FakeEngine(ratio=1.5),
        destination=destination,
        keep_original_if_larger=False,
    )

    result = orchestrator.run(TransformRequest(source_ref="068000000000001"))

    assert result.kept_original is False
    assert result.transformed_size > result.original_size


def test_run_job_for_swept_job_is_a_noop(source, registry):
    _orchestrator(source, registry).run_job("does-not-exist")
    assert registry.history == []
