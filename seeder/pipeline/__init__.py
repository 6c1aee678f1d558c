"""
Pipeline package: bounded, rate-limited batch submission of generation
requests to a downstream client.
"""

from seeder.pipeline.batch import BoundedBatchPipeline, RecordSink, chunked

__all__ = ["BoundedBatchPipeline", "RecordSink", "chunked"]
