"""Filesystem crawl pipeline.

Parallel walker, stream sink, record batch and progress reporter.
"""

from fsdelta.crawler.batch import RecordBatchError, RecordBatchWriter, read_record_batch
from fsdelta.crawler.ignore import IgnoreRules
from fsdelta.crawler.progress import ProgressReporter, format_progress
from fsdelta.crawler.sink import CounterSnapshot, ScanCounters, SinkError, StreamSink
from fsdelta.crawler.walker import Crawler, CrawlerError, WalkSummary

__all__ = [
    "CounterSnapshot",
    "Crawler",
    "CrawlerError",
    "IgnoreRules",
    "ProgressReporter",
    "RecordBatchError",
    "RecordBatchWriter",
    "ScanCounters",
    "SinkError",
    "StreamSink",
    "WalkSummary",
    "format_progress",
    "read_record_batch",
]
