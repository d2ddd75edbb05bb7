"""DVD authoring with dvdauthor and structural validation of its output."""

import xml.dom.minidom
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from ..config.settings import Settings
from ..exceptions import JobValidationError, OutputIntegrityError
from ..models.job import ChapterMode, DvdSettings
from ..utils.cancellation import CancellationToken
from ..utils.logging import LogSink
from ..utils.time_format import chapter_offsets, format_chapter_timestamp
from .base import BaseService
from .process_runner import ProcessRunner

VIDEO_TS = "VIDEO_TS"
AUDIO_TS = "AUDIO_TS"
AUTHORING_XML = "dvdauthor.xml"


@dataclass(frozen=True)
class AuthoredTitle:
    """One encoded stream placed on the disc."""

    stream: Path
    duration: float = 0.0


@dataclass
class AuthoredDVD:
    """A VIDEO_TS tree produced by dvdauthor."""

    dvd_root: Path
    creation_time: float = 0.0

    @property
    def video_ts_dir(self) -> Path:
        return self.dvd_root / VIDEO_TS

    @property
    def size_bytes(self) -> int:
        if not self.video_ts_dir.is_dir():
            return 0
        return sum(
            f.stat().st_size for f in self.video_ts_dir.iterdir() if f.is_file()
        )

    @property
    def size_gb(self) -> float:
        return self.size_bytes / (1024**3)


def find_structure_problems(video_ts_dir: Path) -> List[str]:
    """List everything missing from a VIDEO_TS directory.

    A usable structure has at least one ``.IFO`` info file, one ``.BUP``
    backup file and one non-empty ``.VOB`` data file, and every title set
    info file ``VTS_nn_0.IFO`` has its ``.BUP`` backup.

    Returns:
        Human-readable problems; empty when the structure is complete
    """
    if not video_ts_dir.is_dir():
        return [f"{video_ts_dir.name} directory does not exist"]

    files = [f for f in video_ts_dir.iterdir() if f.is_file()]
    by_suffix = {
        suffix: [f for f in files if f.suffix.upper() == suffix]
        for suffix in (".IFO", ".BUP", ".VOB")
    }

    problems = []
    if not by_suffix[".IFO"]:
        problems.append("no .IFO info files found")
    if not by_suffix[".BUP"]:
        problems.append("no .BUP backup files found")
    if not by_suffix[".VOB"]:
        problems.append("no .VOB data files found")
    elif all(f.stat().st_size == 0 for f in by_suffix[".VOB"]):
        problems.append("all .VOB data files are empty")

    backups = {f.stem.upper() for f in by_suffix[".BUP"]}
    for ifo in by_suffix[".IFO"]:
        name = ifo.stem.upper()
        if name.startswith("VTS_") and name not in backups:
            problems.append(f"missing backup file for {ifo.name}")

    return problems


class DvdAuthor(BaseService):
    """Builds the authoring description and runs dvdauthor."""

    def __init__(
        self,
        settings: Settings,
        runner: ProcessRunner,
        dvdauthor_path: Path,
        log_sink: Optional[LogSink] = None,
    ):
        if log_sink is None:
            log_sink = runner.log_sink
        super().__init__(settings, log_sink)
        self.runner = runner
        self.dvdauthor_path = dvdauthor_path

    def chapter_list(self, title: AuthoredTitle, dvd: DvdSettings) -> str:
        """dvdauthor ``chapters`` attribute for one title."""
        if dvd.chapter_mode == ChapterMode.EVERY_N_MINUTES:
            offsets = chapter_offsets(title.duration, dvd.chapter_minutes)
        else:
            offsets = [0]
        return ",".join(format_chapter_timestamp(offset) for offset in offsets)

    def build_authoring_xml(
        self, titles: Sequence[AuthoredTitle], dvd: DvdSettings
    ) -> ET.Element:
        """Create the dvdauthor description.

        One program chain holds one ``vob`` entry per stream, in order, so the
        streams play back to back as a single title.
        """
        if not titles:
            raise JobValidationError("Cannot author a DVD without streams")

        root = ET.Element("dvdauthor")
        ET.SubElement(root, "vmgm")
        titleset = ET.SubElement(root, "titleset")
        titles_el = ET.SubElement(titleset, "titles")

        video_attrs = {"format": dvd.mode.value.lower()}
        if dvd.aspect.encoder_flag:
            video_attrs["aspect"] = dvd.aspect.encoder_flag
            if dvd.aspect.encoder_flag == "16:9":
                video_attrs["widescreen"] = "nopanscan"
        ET.SubElement(titles_el, "video", video_attrs)

        pgc = ET.SubElement(titles_el, "pgc")
        for title in titles:
            ET.SubElement(
                pgc,
                "vob",
                file=str(title.stream),
                chapters=self.chapter_list(title, dvd),
            )
        return root

    def write_authoring_xml(self, root: ET.Element, xml_file: Path) -> Path:
        rough = ET.tostring(root, encoding="utf-8")
        pretty = xml.dom.minidom.parseString(rough).toprettyxml(
            indent="  ", encoding="utf-8"
        )
        xml_file.parent.mkdir(parents=True, exist_ok=True)
        xml_file.write_bytes(pretty)
        self.logger.debug(f"Wrote dvdauthor description to {xml_file}")
        return xml_file

    def author(
        self,
        titles: Sequence[AuthoredTitle],
        dvd: DvdSettings,
        dvd_root: Path,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AuthoredDVD:
        """Run dvdauthor to produce ``dvd_root/VIDEO_TS``.

        The result is not validated here; call :meth:`validate_structure`.

        Raises:
            ToolExecutionError: If dvdauthor exits with a non-zero code
            JobCancelledError: If the job was cancelled
        """
        self._log_operation_start("authoring", titles=len(titles), root=dvd_root)

        dvd_root.mkdir(parents=True, exist_ok=True)
        xml_file = self.write_authoring_xml(
            self.build_authoring_xml(titles, dvd), dvd_root.parent / AUTHORING_XML
        )

        result = self.runner.run(
            self.dvdauthor_path,
            ["-o", str(dvd_root), "-x", str(xml_file)],
            working_dir=dvd_root.parent,
            cancel_token=cancel_token,
        ).check()

        authored = AuthoredDVD(dvd_root=dvd_root, creation_time=result.duration)
        self._log_operation_complete(
            "authoring", seconds=f"{result.duration:.1f}", root=dvd_root
        )
        return authored

    def validate_structure(self, authored: AuthoredDVD) -> AuthoredDVD:
        """Check the VIDEO_TS tree regardless of dvdauthor's exit code.

        Raises:
            OutputIntegrityError: If any required file is missing
        """
        problems = find_structure_problems(authored.video_ts_dir)
        if problems:
            for problem in problems:
                self.logger.error(f"VIDEO_TS validation: {problem}")
            raise OutputIntegrityError(
                "dvdauthor produced an incomplete VIDEO_TS structure: "
                + "; ".join(problems),
                tool="dvdauthor",
                context={"path": str(authored.video_ts_dir)},
            )

        self.logger.info(
            f"VIDEO_TS structure valid ({authored.size_gb:.2f}GB): "
            f"{authored.video_ts_dir}"
        )
        return authored
