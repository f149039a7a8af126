"""ReportService: read a snapshot, reduce it, write the artifacts.

Artifacts for a session are addressed by its id under the report
directory and overwritten on every regeneration:

    <report_dir>/<session_id>.csv    tabular
    <report_dir>/<session_id>.txt    narrative (text)
    <report_dir>/<session_id>.pdf    narrative (PDF)

Each file is rendered to a temporary sibling and moved into place, so a
failed generation never leaves a partial artifact behind.  Unknown
sessions fail before anything is written.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from integrity_monitor.domain.errors import StorageError
from integrity_monitor.report.generator import IntegrityReport, ReportGenerator
from integrity_monitor.report.render import render_csv, render_pdf, render_text
from integrity_monitor.store.event_log import EventLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportArtifacts:
    report: IntegrityReport
    csv_path: Path
    text_path: Path
    pdf_path: Path

    def to_dict(self) -> dict:
        return {
            "session_id": self.report.session_id,
            "score": self.report.score,
            "counts": self.report.counts,
            "event_count": self.report.event_count,
            "csv": self.csv_path.name,
            "text": self.text_path.name,
            "pdf": self.pdf_path.name,
        }


class ReportService:
    """Generates and stores report artifacts on demand."""

    def __init__(
        self,
        event_log: EventLog,
        generator: ReportGenerator | None = None,
        output_dir: str | Path = "reports",
    ) -> None:
        self._log = event_log
        self._generator = generator or ReportGenerator()
        self._output_dir = Path(output_dir)

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    async def build(self, session_id: str) -> IntegrityReport:
        """Reduce the current snapshot of a session without writing anything."""
        session, signals = await self._log.snapshot(session_id)
        return self._generator.generate(session, signals)

    async def generate(self, session_id: str) -> ReportArtifacts:
        """(Re)generate and overwrite all artifacts for *session_id*."""
        report = await self.build(session_id)
        artifacts = ReportArtifacts(
            report=report,
            csv_path=self._output_dir / f"{session_id}.csv",
            text_path=self._output_dir / f"{session_id}.txt",
            pdf_path=self._output_dir / f"{session_id}.pdf",
        )
        await asyncio.to_thread(self._write, artifacts)
        logger.info(
            "Report generated for session %s: score=%d, events=%d",
            session_id,
            report.score,
            report.event_count,
        )
        return artifacts

    def artifact_path(self, session_id: str, suffix: str) -> Path:
        return self._output_dir / f"{session_id}.{suffix}"

    # ── Internals ────────────────────────────────────────────────────────

    def _write(self, artifacts: ReportArtifacts) -> None:
        report = artifacts.report
        staged: list[tuple[Path, Path]] = []
        try:
            self._output_dir.mkdir(parents=True, exist_ok=True)
            for target, content in (
                (artifacts.csv_path, render_csv(report)),
                (artifacts.text_path, render_text(report)),
            ):
                tmp = target.with_name(target.name + ".tmp")
                tmp.write_text(content, encoding="utf-8")
                staged.append((tmp, target))

            pdf_tmp = artifacts.pdf_path.with_name(artifacts.pdf_path.name + ".tmp")
            render_pdf(report, pdf_tmp)
            staged.append((pdf_tmp, artifacts.pdf_path))

            for tmp, target in staged:
                os.replace(tmp, target)
        except OSError as exc:
            for tmp, _ in staged:
                tmp.unlink(missing_ok=True)
            raise StorageError(f"writing report for {report.session_id} failed: {exc}") from exc
