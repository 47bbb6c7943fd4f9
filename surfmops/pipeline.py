"""
surfmops Pipeline
=================

Chains the stages with pull loops::

    records -> TargetReportExtractor -> TrackExtractor -> PerfEvaluator

Each stage is pushed with ``add_data`` and drained with
``has_pending_data`` / ``take_data`` by the stage after it.

Author: surfmops contributors
License: AGPL-3.0-or-later
"""

from __future__ import annotations

import logging
from typing import Iterable

from .aerodrome import Aerodrome
from .config import Config
from .dgps import read_dgps_file
from .extractor import TargetReportExtractor
from .model import ProcessingMode, Record, SystemType
from .perf import PerfEvaluator, PerfResults
from .records import RecordReader
from .tracks import TrackExtractor

logger = logging.getLogger(__name__)


class Pipeline:
    """Evaluation pipeline assembled from a Config."""

    def __init__(self, config: Config):
        self.config = config
        self.reader = RecordReader(config.date, config.sics())
        self.extractor = TargetReportExtractor(config.arp, config.smr_positions)
        self.aerodrome = Aerodrome.from_config(config.areas)
        self.extractor.set_locate_point_callback(self.aerodrome.locate_point)
        self.track_extractor = TrackExtractor(config.mode)
        self.evaluator = PerfEvaluator(config.mode, config.evaluation_periods())

        if config.excluded_addresses:
            with open(config.excluded_addresses, "r", encoding="utf-8") as f:
                n = self.extractor.load_excluded_addresses(f)
            logger.info("Excluding %d Mode-S address(es)", n)

    def load_reference(self) -> int:
        """Feed the DGPS ground truth (reference mode only)."""
        dgps = self.config.dgps
        if self.config.mode is not ProcessingMode.REFERENCE or dgps is None or not dgps.file:
            return 0
        samples = read_dgps_file(dgps.file)
        n = self.extractor.add_dgps_data(samples, dgps.mode_s, dgps.mode_3a,
                                         dgps.ident, dgps.tod_offset)
        self._drain_extractor()
        return n

    def add_line(self, line: str):
        """Decode one input line and push it through the extractor."""
        self.reader.add_data(line)
        while self.reader.has_pending_data():
            self.add_record(self.reader.take_data())

    def add_record(self, record: Record):
        self.extractor.add_data(record)
        self._drain_extractor()

    def _drain_extractor(self):
        while self.extractor.has_pending_data():
            self.track_extractor.add_data(self.extractor.take_data())

    def finish(self) -> PerfResults:
        """Release every track to the evaluator and compute the metrics."""
        while self.track_extractor.has_pending_data():
            track = self.track_extractor.take_data()
            if track is None:
                break
            self.evaluator.add_data(track)
        for sys_type in (SystemType.SMR, SystemType.MLAT, SystemType.ADSB):
            counter = self.extractor.counters(sys_type)
            logger.info("%s records: in=%d out=%d", sys_type.value,
                        counter.n_in, counter.n_out)
        return self.evaluator.run()

    def run(self, lines: Iterable[str]) -> PerfResults:
        self.load_reference()
        for line in lines:
            self.add_line(line)
        return self.finish()
