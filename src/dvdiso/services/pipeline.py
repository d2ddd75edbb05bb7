"""Conversion pipeline orchestration.

A job moves through Prepare, Probe, Transcode, Author, Validate, then the
optional Export and ISO stages, and ends in Done, Failed or Cancelled. Each
stage runs its external tools through one shared :class:`ProcessRunner`,
reports progress within its band and is checked for cancellation before
it starts.
"""

import shutil
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..config.settings import Settings
from ..exceptions import JobValidationError, PipelineError, ProbeError
from ..models.job import ConvertJobRequest, JobResult, JobStage, JobState
from ..models.preset import PresetDefinition
from ..utils.bitrate import resolve_video_bitrate
from ..utils.cancellation import CancellationToken
from ..utils.logging import LogSink, operation_context
from ..utils.progress import ProgressCallback, StageProgressReporter
from .base import BaseService
from .dvd_author import VIDEO_TS, AuthoredDVD, AuthoredTitle, DvdAuthor
from .exporter import FolderExporter
from .iso_builder import IsoBuilder, IsoMaker, default_builders
from .process_runner import ProcessRunner
from .prober import SourceProber
from .tool_manager import ToolManager
from .transcoder import DvdTranscoder

TRANSCODED_DIR = "transcoded"
DVD_ROOT_DIR = "dvdroot"

PATH_LABELS = {
    "output_dir": "Output directory",
    "working_dir": "Working directory",
    "tools_dir": "Tools directory",
}


def new_job_id() -> str:
    return uuid.uuid4().hex[:8]


def job_dir_name(job_id: str, started: Optional[datetime] = None) -> str:
    """Name of a job's private work directory: ``job_<timestamp>_<id>``."""
    started = started or datetime.now()
    return f"job_{started.strftime('%Y%m%d_%H%M%S')}_{job_id}"


@dataclass
class _JobRun:
    """Mutable bookkeeping for one pipeline run."""

    job_id: str
    stage: JobStage = JobStage.PREPARE
    job_dir: Optional[Path] = None
    staging_dir: Optional[Path] = None
    tools: Dict[str, Path] = field(default_factory=dict)
    video_kbps: Optional[int] = None
    transcoded: List[Path] = field(default_factory=list)


class ConvertPipeline(BaseService):
    """Runs conversion jobs from sources to VIDEO_TS folder and/or ISO."""

    def __init__(
        self,
        settings: Settings,
        log_sink: Optional[LogSink] = None,
        runner: Optional[ProcessRunner] = None,
        tool_manager: Optional[ToolManager] = None,
        iso_builders: Optional[Sequence[IsoBuilder]] = None,
    ):
        """Initialize the pipeline.

        Args:
            settings: Application settings
            log_sink: Sink receiving tool output for every job
            runner: Process runner shared by all stages
            tool_manager: Tool resolver; one for the request's tools
                directory is created per job if omitted
            iso_builders: ISO builders in order of preference
        """
        super().__init__(settings, log_sink)
        self.runner = runner or ProcessRunner(
            self.log_sink, kill_timeout=settings.process_kill_timeout
        )
        self.tool_manager = tool_manager
        self.iso_builders = list(iso_builders) if iso_builders is not None else None
        self.exporter = FolderExporter(settings, self.log_sink)

    def run(
        self,
        request: ConvertJobRequest,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> JobResult:
        """Run one job to a terminal state.

        Errors are returned in the result rather than raised. Outputs appear
        at their final paths only when the job reaches Done.

        Args:
            request: Job description
            progress_callback: Receives a snapshot at every progress update
            cancel_token: Token the caller cancels to stop the job

        Returns:
            JobResult in state Done, Failed or Cancelled
        """
        token = cancel_token or CancellationToken()
        reporter = StageProgressReporter(progress_callback)
        job = _JobRun(job_id=new_job_id())

        with operation_context("convert_job", component="pipeline", job_id=job.job_id):
            self._log_operation_start(
                "conversion job", job_id=job.job_id, sources=len(request.sources)
            )
            try:
                result = self._execute(request, job, reporter, token)
            except PipelineError as e:
                result = self._fail(job, e)
            except OSError as e:
                error = PipelineError(
                    f"File system error: {e}",
                    stage=job.stage.value,
                    context={"path": getattr(e, "filename", None)},
                )
                error.__cause__ = e
                result = self._fail(job, error)
            finally:
                self._remove_work_dir(job)

        return result

    def _execute(
        self,
        request: ConvertJobRequest,
        job: _JobRun,
        reporter: StageProgressReporter,
        token: CancellationToken,
    ) -> JobResult:
        preset = self._prepare(request, job, reporter, token)
        job_dir = self._create_job_dir(request, job, reporter)
        runner = self.runner

        self._enter(job, JobStage.PROBE, reporter, token)
        self._probe(request, job, reporter, token)

        job.video_kbps = resolve_video_bitrate(
            preset, request.total_duration, self.settings.disc_capacity_bytes
        )
        self.logger.info(
            f"Video bitrate {job.video_kbps}k for {request.total_duration:.0f}s "
            f"with preset {preset.id}"
        )

        self._enter(job, JobStage.TRANSCODE, reporter, token)
        transcoder = DvdTranscoder(
            self.settings, runner, job.tools["ffmpeg"], self.log_sink
        )
        job.transcoded = transcoder.transcode_sources(
            request.sources,
            job_dir / TRANSCODED_DIR,
            request.dvd,
            preset,
            job.video_kbps,
            cancel_token=token,
            progress=lambda fraction, message: reporter.update(
                JobStage.TRANSCODE, fraction, message
            ),
        )

        self._enter(job, JobStage.AUTHOR, reporter, token)
        author = DvdAuthor(self.settings, runner, job.tools["dvdauthor"], self.log_sink)
        titles = [
            AuthoredTitle(stream=stream, duration=source.duration)
            for stream, source in zip(job.transcoded, request.sources)
        ]
        authored = author.author(
            titles, request.dvd, job_dir / DVD_ROOT_DIR, cancel_token=token
        )
        reporter.update(JobStage.AUTHOR, 1.0, "Authoring complete")

        self._enter(job, JobStage.VALIDATE, reporter, token)
        author.validate_structure(authored)
        reporter.update(JobStage.VALIDATE, 1.0, "VIDEO_TS structure valid")

        output = request.output
        if output.export_folder:
            self._enter(job, JobStage.EXPORT, reporter, token)
            self.exporter.export(authored.video_ts_dir, self._staging_dir(request, job))
            reporter.update(JobStage.EXPORT, 1.0, "VIDEO_TS folder exported")

        if output.export_iso:
            self._enter(job, JobStage.ISO, reporter, token)
            self._build_iso(request, job, authored, token)
            reporter.update(JobStage.ISO, 1.0, f"{output.iso_name} created")

        job.stage = JobStage.DONE
        self.exporter.promote(self._staging_dir(request, job), output.output_dir)
        job.staging_dir = None

        video_ts_path = output.output_dir / VIDEO_TS
        iso_path = output.output_dir / output.iso_name
        result = JobResult(
            state=JobState.DONE,
            video_ts_path=video_ts_path if output.export_folder else None,
            iso_path=iso_path if output.export_iso else None,
            video_bitrate_kbps=job.video_kbps,
            job_dir=job.job_dir if self.settings.keep_work_files else None,
            transcoded_files=tuple(job.transcoded),
        )
        reporter.complete("Done")
        self.log_sink.write("pipeline", "Job completed")
        self._log_operation_complete(
            "conversion job",
            job_id=job.job_id,
            artifacts=", ".join(str(p) for p in result.artifacts),
        )
        return result

    def _enter(
        self,
        job: _JobRun,
        stage: JobStage,
        reporter: StageProgressReporter,
        token: CancellationToken,
    ) -> None:
        token.raise_if_cancelled(stage.value)
        job.stage = stage
        self.log_sink.write("pipeline", f"Stage: {stage.value}")
        reporter.start_stage(stage)

    def validate_request(self, request: ConvertJobRequest) -> PresetDefinition:
        """Reject malformed requests before any tool runs.

        Returns:
            The request's preset

        Raises:
            JobValidationError: If the request cannot be run
        """
        if not request.sources:
            raise JobValidationError("At least one source file is required")

        for source in request.sources:
            if not source.path.is_file():
                raise JobValidationError(
                    f"Source file not found: {source.path}",
                    context={"path": str(source.path)},
                )

        if not request.output.has_output:
            raise JobValidationError(
                "Nothing to produce: enable the VIDEO_TS folder and/or the ISO"
            )

        if request.preset is None:
            raise JobValidationError(
                f"No preset selected (requested '{request.dvd.preset_id}')"
            )

        if request.blank_paths:
            name = request.blank_paths[0]
            raise JobValidationError(
                f"{PATH_LABELS[name]} must not be empty", context={"field": name}
            )

        output_dir = request.output.output_dir.resolve()
        working_dir = request.working_dir.resolve()
        if output_dir == working_dir:
            raise JobValidationError(
                "Output directory must differ from the working directory",
                context={"path": str(output_dir)},
            )
        if output_dir.exists() and not output_dir.is_dir():
            raise JobValidationError(
                f"Output path is not a directory: {output_dir}",
                context={"path": str(output_dir)},
            )

        return request.preset

    def _prepare(
        self,
        request: ConvertJobRequest,
        job: _JobRun,
        reporter: StageProgressReporter,
        token: CancellationToken,
    ) -> PresetDefinition:
        job.stage = JobStage.PREPARE
        reporter.start_stage(JobStage.PREPARE, "Checking job")
        preset = self.validate_request(request)
        token.raise_if_cancelled(JobStage.PREPARE.value)

        builders = self._iso_builders(request)
        tool_manager = self.tool_manager or ToolManager(
            self.settings.model_copy(update={"tools_dir": request.tools_dir}),
            self.log_sink,
        )
        job.tools = tool_manager.ensure_tools(
            need_iso=request.output.export_iso,
            iso_builders=builders,
            cancel_token=token,
        )
        reporter.update(JobStage.PREPARE, 0.5, "Tools ready")
        return preset

    def _create_job_dir(
        self,
        request: ConvertJobRequest,
        job: _JobRun,
        reporter: StageProgressReporter,
    ) -> Path:
        job_dir = request.working_dir / job_dir_name(job.job_id)
        job.job_dir = job_dir
        (job_dir / TRANSCODED_DIR).mkdir(parents=True)
        (job_dir / DVD_ROOT_DIR).mkdir()
        self.logger.debug(f"Job directory: {job_dir}")
        reporter.update(JobStage.PREPARE, 1.0, "Job prepared")
        return job_dir

    def _probe(
        self,
        request: ConvertJobRequest,
        job: _JobRun,
        reporter: StageProgressReporter,
        token: CancellationToken,
    ) -> None:
        prober = SourceProber(
            self.settings, self.runner, job.tools["ffprobe"], self.log_sink
        )
        total = len(request.sources)
        for index, source in enumerate(request.sources):
            token.raise_if_cancelled(JobStage.PROBE.value)
            reporter.update_items(
                JobStage.PROBE, index, total, f"Probing {source.name}"
            )
            try:
                source.apply_probe(prober.probe(source.path, cancel_token=token))
            except ProbeError as e:
                if self.settings.strict_probe:
                    raise
                self.logger.warning(f"Probe failed for {source.name}, continuing: {e}")
                self.log_sink.write(
                    "pipeline", f"Probe failed for {source.name}: {e}", stream="warning"
                )
        reporter.update(JobStage.PROBE, 1.0, f"Probed {total} source(s)")

    def _iso_builders(self, request: ConvertJobRequest) -> List[IsoBuilder]:
        if self.iso_builders is not None:
            return self.iso_builders
        return default_builders(
            self.runner, request.tools_dir, self.settings.use_system_tools
        )

    def _build_iso(
        self,
        request: ConvertJobRequest,
        job: _JobRun,
        authored: AuthoredDVD,
        token: CancellationToken,
    ) -> Path:
        iso_maker = IsoMaker(self.settings, self._iso_builders(request), self.log_sink)
        return iso_maker.create_iso(
            authored.dvd_root,
            self._staging_dir(request, job),
            request.output.disc_label,
            cancel_token=token,
        )

    def _staging_dir(self, request: ConvertJobRequest, job: _JobRun) -> Path:
        if job.staging_dir is None:
            job.staging_dir = self.exporter.create_staging_dir(
                request.output.output_dir, job.job_id
            )
        return job.staging_dir

    def _fail(self, job: _JobRun, error: PipelineError) -> JobResult:
        if error.stage is None:
            error.stage = job.stage.value

        self.exporter.discard(job.staging_dir)
        job.staging_dir = None

        result = JobResult.failed(
            error,
            video_bitrate_kbps=job.video_kbps,
            job_dir=job.job_dir if self.settings.keep_work_files else None,
        )
        if result.cancelled:
            self.logger.warning(f"Job {job.job_id} cancelled during {error.stage}")
            self.log_sink.write("pipeline", "Job cancelled", stream="warning")
        else:
            self._log_operation_error("conversion job", error, stage=error.stage)
            self.log_sink.write("pipeline", error.describe(), stream="error")
        return result

    def _remove_work_dir(self, job: _JobRun) -> None:
        if job.job_dir is None or self.settings.keep_work_files:
            return
        try:
            shutil.rmtree(job.job_dir)
            self.logger.debug(f"Removed job directory {job.job_dir}")
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warning(f"Failed to remove job directory {job.job_dir}: {e}")


class JobHandle:
    """A submitted job: its future result and its cancellation token."""

    def __init__(self, future: "Future[JobResult]", token: CancellationToken):
        self.future = future
        self.token = token

    def cancel(self) -> None:
        """Request cancellation. Running tools are killed promptly."""
        self.token.cancel()

    def result(self, timeout: Optional[float] = None) -> JobResult:
        return self.future.result(timeout)

    def done(self) -> bool:
        return self.future.done()


class JobRunner:
    """Runs jobs one at a time on a background worker thread."""

    def __init__(self, pipeline: ConvertPipeline) -> None:
        self.pipeline = pipeline
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="dvdiso-job"
        )
        self._lock = threading.Lock()

    def submit(
        self,
        request: ConvertJobRequest,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> JobHandle:
        token = cancel_token or CancellationToken()
        with self._lock:
            future = self._executor.submit(
                self.pipeline.run, request, progress_callback, token
            )
        return JobHandle(future, token)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "JobRunner":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()
