"""
Domain layer for batch file conversion.
Provides the converter registry, per-file Job state machine and a service
that runs a batch sequentially, so front-ends (HTTP, CLI or others) share
the same core logic.
"""

from .adapters import LocalStorage, MemorySink
from .errors import (
    ConversionError,
    DecodeError,
    EmptyBatch,
    EncodeError,
    InvalidScale,
    InvalidTransition,
    ResourceInitError,
    UnsupportedConversion,
)
from .interfaces import ConversionSpec, FormatConverter, InputFile, OutputArtifact, OutputSink
from .job import CancellationToken, Job, JobEvent, JobStatus
from .registry import CONVERSION_TYPES, ConverterRegistry, build_registry, default_registry
from .service import Batch, ConversionService
