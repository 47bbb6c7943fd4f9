"""surfmops: airport surface surveillance performance evaluator.

Evaluates SMR (ED-116), MLAT and ADS-B (ED-117) recordings: update rate,
probability of detection, false detection, identification, long gaps and
position accuracy, against ADS-B or a DGPS reference vehicle.

Quick Start::

    from surfmops import Pipeline, load_config, format_results
    pipeline = Pipeline(load_config("airport.yaml"))
    with open("recording.jsonl") as f:
        print(format_results(pipeline.run(f)))
"""

__version__ = "1.0.0"
__license__ = "AGPL-3.0-or-later"

# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------
from .model import (
    Area,
    DataSourceId,
    GeoPoint,
    MessageType,
    NamedArea,
    ProcessingMode,
    Record,
    SystemType,
    TargetReport,
    TargetType,
)

# ---------------------------------------------------------------------------
# Counting and metrics
# ---------------------------------------------------------------------------
from .counters import (
    BasicCounter,
    InOutCounter,
    IntervalCounter,
    PdCounter,
    PfdCounter,
    PfdCounter2,
    PfidCounter,
    PidCounter,
    PlgCounter,
    UrCounter,
)
from .perf import (
    EvaluationPeriods,
    PerfEvaluator,
    PerfResults,
    PositionAccuracy,
    format_results,
    position_accuracy,
)

# ---------------------------------------------------------------------------
# Pipeline stages and collaborators
# ---------------------------------------------------------------------------
from .extractor import TargetReportExtractor
from .tracks import Track, TrackExtractor, interpolate_positions
from .aerodrome import Aerodrome, AreaPolygon
from .dgps import DgpsFormatError, DgpsHeaderError, DgpsSample, read_dgps_csv
from .records import RecordFormatError, RecordReader, read_records
from .config import (
    Config,
    ConfigError,
    ConfigWarning,
    MissingConfigError,
    load_config,
    parse_config,
)
from .pipeline import Pipeline
