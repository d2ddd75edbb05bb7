#!/usr/bin/env python3
"""dvdiso CLI - Main entry point.

Converts one or more video files into a DVD-Video ``VIDEO_TS`` folder and/or
an ISO image by probing, transcoding, authoring and imaging them with
external tools.
"""

import argparse
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from pydantic import ValidationError

from .config.presets import PresetsService
from .config.settings import Settings, load_settings
from .exceptions import ConfigurationError, PresetError
from .models.job import (
    ChapterMode,
    ConvertJobRequest,
    ConvertProgress,
    DvdSettings,
    OutputSettings,
    build_sources,
)
from .models.preset import PresetsDefaults
from .services.cleanup import CleanupManager
from .services.pipeline import ConvertPipeline, JobRunner
from .utils.console import (
    finish_progress_line,
    print_error,
    print_info,
    print_progress_line,
    print_success,
    print_warning,
)
from .utils.logging import LogSink, get_logger, operation_context, setup_logging
from .utils.time_format import format_duration_human_readable

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog="dvdiso",
        description="Convert video files into a DVD-Video folder and/or ISO image",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s movie.mkv -o ./out
  %(prog)s part1.mp4 part2.mp4 -o ./out --mode NTSC --chapters 5 --label HOLIDAY
  %(prog)s --clean
        """,
    )

    parser.add_argument("sources", nargs="*", type=Path, help="Input video files")
    parser.add_argument(
        "--clean",
        action="store_true",
        help="Remove leftover job directories and staging files, then exit",
    )
    parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Do not ask for confirmation when cleaning",
    )

    # Output options
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Output directory (default: ./output)",
    )
    parser.add_argument(
        "--no-folder",
        action="store_true",
        help="Do not write the VIDEO_TS folder",
    )
    parser.add_argument(
        "--no-iso",
        action="store_true",
        help="Do not write the ISO image",
    )
    parser.add_argument("--label", help="Disc volume label (default: DVDVIDEO)")

    # DVD options
    parser.add_argument(
        "--mode",
        type=str.upper,
        choices=["PAL", "NTSC"],
        help="DVD video standard: PAL (25fps, 720x576) or NTSC (29.97fps, 720x480)",
    )
    parser.add_argument(
        "--aspect",
        choices=["auto", "16:9", "4:3"],
        type=str.lower,
        help="Display aspect ratio (default: auto)",
    )
    parser.add_argument(
        "--chapters",
        type=int,
        metavar="MINUTES",
        help="Insert a chapter every MINUTES minutes (1-60, 0 disables)",
    )
    parser.add_argument("--preset", help="Encoding preset id (default: fit)")
    parser.add_argument(
        "--presets-file",
        type=Path,
        help="JSON file with encoding presets",
    )

    # Directories and tools
    parser.add_argument("--work-dir", type=Path, help="Working directory")
    parser.add_argument("--tools-dir", type=Path, help="Directory with tool binaries")
    parser.add_argument(
        "--keep-work-files",
        action="store_true",
        help="Keep the job's intermediate files after it finishes",
    )
    parser.add_argument(
        "--no-download",
        action="store_true",
        help="Never download missing tools",
    )

    # Logging options
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: INFO)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose console output (equivalent to --log-level DEBUG)",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress all console output except errors",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Write the log file as JSON lines",
    )

    parser.add_argument("--config", type=Path, help="Configuration file path")
    return parser


def validate_arguments(args: argparse.Namespace) -> None:
    """Validate command line arguments.

    Raises:
        ValueError: If the arguments conflict or are incomplete
    """
    if args.quiet and args.verbose:
        raise ValueError("Cannot use both --quiet and --verbose flags")

    if args.clean:
        if args.sources:
            raise ValueError("--clean does not take source files")
        return

    if not args.sources:
        raise ValueError("At least one source file is required")

    if args.no_folder and args.no_iso:
        raise ValueError("--no-folder and --no-iso cannot be combined")

    if args.chapters is not None and not 0 <= args.chapters <= 60:
        raise ValueError("--chapters must be between 0 and 60")


def settings_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Settings values given explicitly on the command line."""
    updates: Dict[str, Any] = {}

    if args.output:
        updates["output_dir"] = args.output
    if args.work_dir:
        updates["work_dir"] = args.work_dir
    if args.tools_dir:
        updates["tools_dir"] = args.tools_dir
    if args.presets_file:
        updates["presets_file"] = args.presets_file

    if args.mode:
        updates["video_format"] = args.mode
    if args.aspect:
        updates["aspect_ratio"] = args.aspect
    if args.chapters is not None:
        updates["chapter_interval_minutes"] = args.chapters or None
    if args.preset:
        updates["preset_id"] = args.preset
    if args.label is not None:
        updates["disc_label"] = args.label
    if args.no_folder:
        updates["export_folder"] = False
    if args.no_iso:
        updates["export_iso"] = False

    if args.keep_work_files:
        updates["keep_work_files"] = True
    if args.no_download:
        updates["download_tools"] = False

    if args.log_level:
        updates["log_level"] = args.log_level
    if args.verbose:
        updates["verbose"] = True
    if args.quiet:
        updates["quiet"] = True
    if args.json_logs:
        updates["json_logs"] = True

    return updates


def merge_settings_with_args(args: argparse.Namespace, settings: Settings) -> Settings:
    """Merge command line arguments with settings."""
    current_dict = settings.model_dump()
    current_dict.update(settings_overrides(args))
    return Settings(**current_dict)


def setup_application_logging(settings: Settings) -> None:
    """Set up application logging based on settings."""
    setup_logging(
        log_dir=settings.log_dir,
        log_level=settings.get_effective_log_level(),
        log_file="dvdiso.log",
        max_file_size=settings.log_file_max_size,
        backup_count=settings.log_file_backup_count,
        console_output=not settings.quiet,
        json_format=settings.json_logs,
    )


def build_job_request(
    settings: Settings,
    sources: List[Path],
    explicit: Set[str],
    presets: PresetsService,
) -> ConvertJobRequest:
    """Assemble the job request.

    Values set on the command line, in the environment or in the config
    file win; anything else comes from the presets file defaults.

    Raises:
        PresetError: If the presets file is invalid or the preset is unknown
    """
    defaults: PresetsDefaults = presets.root.defaults

    def pick(field: str, fallback: Any) -> Any:
        return getattr(settings, field) if field in explicit else fallback

    chapter_minutes = pick(
        "chapter_interval_minutes",
        defaults.chapters.minutes
        if ChapterMode.parse(defaults.chapters.mode) == ChapterMode.EVERY_N_MINUTES
        else None,
    )
    preset_id = pick("preset_id", defaults.preset_id)
    chapter_mode = ChapterMode.EVERY_N_MINUTES if chapter_minutes else ChapterMode.OFF

    dvd = DvdSettings(
        mode=pick("video_format", defaults.dvd_mode),
        aspect=pick("aspect_ratio", defaults.aspect),
        chapter_mode=chapter_mode,
        chapter_minutes=chapter_minutes or 5,
        preset_id=preset_id,
    )
    output = OutputSettings(
        output_dir=settings.output_dir,
        export_folder=pick("export_folder", defaults.export_folder),
        export_iso=pick("export_iso", defaults.export_iso),
        disc_label=pick("disc_label", defaults.disc_label),
    )
    return ConvertJobRequest(
        sources=build_sources(sources),
        dvd=dvd,
        output=output,
        working_dir=settings.work_dir,
        tools_dir=settings.tools_dir,
        preset=presets.get_preset(preset_id),
    )


class ConsoleProgress:
    """Prints progress snapshots on a single console line."""

    def __init__(self, quiet: bool = False) -> None:
        self.quiet = quiet
        self.last: Optional[ConvertProgress] = None

    def __call__(self, progress: ConvertProgress) -> None:
        if self.last is not None and (
            progress.percent == self.last.percent
            and progress.message == self.last.message
        ):
            return
        self.last = progress
        if not self.quiet:
            print_progress_line(str(progress))

    def finish(self) -> None:
        if not self.quiet and self.last is not None:
            finish_progress_line()


def perform_cleanup(settings: Settings, assume_yes: bool = False) -> int:
    """Remove leftover job data.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    logger = get_logger(__name__)
    cleanup_manager = CleanupManager(settings.work_dir, settings.output_dir)

    items = cleanup_manager.find_job_dirs() + cleanup_manager.find_staging_leftovers()
    if not items:
        print("No leftover job data found to clean.")
        logger.info("No leftover job data found to clean")
        return EXIT_SUCCESS

    print(f"The following {len(items)} items will be removed:")
    for item in items[:10]:
        print(f"  - {item}")
    if len(items) > 10:
        print(f"  ... and {len(items) - 10} more items")

    if not assume_yes:
        response = input("\nProceed with cleanup? [y/N]: ").strip().lower()
        if response not in ("y", "yes"):
            print("Cleanup cancelled.")
            logger.info("Cleanup cancelled by user")
            return EXIT_SUCCESS

    results = cleanup_manager.clean_all()
    removed = sum(stats.total_items_removed for stats in results.values())
    freed = sum(stats.size_freed_mb for stats in results.values())
    errors = sum(stats.errors for stats in results.values())

    print(f"Removed {removed} items, freed {freed:.1f} MB")
    if errors:
        print_warning(f"{errors} items could not be removed")
        return EXIT_FAILURE
    return EXIT_SUCCESS


def run_conversion(settings: Settings, request: ConvertJobRequest) -> int:
    """Run one job in the background and wait for it, cancelling on Ctrl+C."""
    logger = get_logger(__name__)
    log_sink = LogSink()
    pipeline = ConvertPipeline(settings, log_sink=log_sink)
    progress = ConsoleProgress(quiet=settings.quiet)
    start_time = time.time()

    with JobRunner(pipeline) as runner:
        handle = runner.submit(request, progress_callback=progress)
        try:
            result = handle.result()
        except KeyboardInterrupt:
            progress.finish()
            print_warning("Cancelling, stopping running tools...")
            handle.cancel()
            result = handle.result()

    progress.finish()
    elapsed = format_duration_human_readable(int(time.time() - start_time))

    if result.cancelled:
        print_warning("Operation cancelled by user")
        return EXIT_CANCELLED

    if not result.success:
        message = result.error.describe() if result.error else result.state.value
        logger.error(f"Job failed: {message}")
        print_error(message, title="Failed")
        return EXIT_FAILURE

    print_success(f"Finished in {elapsed}")
    if result.video_bitrate_kbps is not None:
        print_info(f"Video bitrate: {result.video_bitrate_kbps} kbps")
    for artifact in result.artifacts:
        print_info(str(artifact), title="Output")
    if result.job_dir is not None:
        print_info(str(result.job_dir), title="Work files")
    return EXIT_SUCCESS


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the dvdiso CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        validate_arguments(args)
        settings = load_settings(args.config)
        explicit = set(settings.model_fields_set) | set(settings_overrides(args))
        settings = merge_settings_with_args(args, settings)
    except (ValueError, ValidationError, ConfigurationError) as e:
        print_error(str(e), title="Error")
        return EXIT_USAGE

    setup_application_logging(settings)
    logger = get_logger(__name__)

    if args.clean:
        return perform_cleanup(settings, assume_yes=args.yes)

    try:
        request = build_job_request(
            settings, args.sources, explicit, PresetsService(settings.presets_file)
        )
    except (PresetError, ValueError) as e:
        print_error(str(e), title="Error")
        return EXIT_USAGE

    settings.create_directories()
    with operation_context("dvd_conversion", sources=len(request.sources)):
        logger.info(
            f"Converting {len(request.sources)} source(s) to {settings.output_dir}"
        )
        try:
            return run_conversion(settings, request)
        except KeyboardInterrupt:
            print_warning("Operation cancelled by user")
            return EXIT_CANCELLED


if __name__ == "__main__":
    sys.exit(main())
